"""Global configuration (connections, tone, council pacing, outreach limits).

Stored as config.json under the data directory. get_config() returns the
defaults merged with stored values; update_config() applies a partial update
in which llm_connections is replaced wholesale and unknown keys are ignored.

Connection resolution: connection_profile names one of llm_connections;
"default" or "current" (or an unknown name) means the first connection.
No connection at all is a configuration problem and raises ConfigError.
"""

import json
from pathlib import Path
from typing import Any

from chorus.llm import HttpLLM
from chorus.models import ChatMessage

_CONFIG_DEFAULTS: dict[str, Any] = {
    "llm_connections": [],
    "connection_profile": "default",
    "tone_anchor": "raw",
    "council_auto_continue": True,
    "council_speed": "normal",
    "outreach_cooldown": 4,
    "max_pending_dms": 2,
}

TONE_ANCHORS: dict[str, dict[str, str]] = {
    "gothic":   {"name": "Gothic",   "description": "Literary, dramatic, poetic. Emotions are landscapes. Everything is beautiful and terrible."},
    "raw":      {"name": "Raw",      "description": "Conversational, profane, blunt. No metaphors. Real people at 3am."},
    "clinical": {"name": "Clinical", "description": "Analytical, detached, precise. Dissects rather than feels. Uncomfortable accuracy."},
    "surreal":  {"name": "Surreal",  "description": "Dreamlike, associative, weird. Dream logic. Images over arguments."},
    "baroque":  {"name": "Baroque",  "description": "Purple prose, theatrical, Shakespearean. Every sentence is a soliloquy."},
    "noir":     {"name": "Noir",     "description": "Hardboiled, cynical, street-level metaphors. Everything is a crime scene."},
    "feral":    {"name": "Feral",    "description": "Primal, instinctive, barely verbal. Gut feeling and body memory."},
    "sardonic": {"name": "Sardonic", "description": "Dry wit, gallows humor. Everything is a defense mechanism shaped like a joke."},
    "mythic":   {"name": "Mythic",   "description": "Parable, archetype, prophecy. Ancient voice that has seen this story before."},
    "tender":   {"name": "Tender",   "description": "Gentle, intimate, soft-spoken. Sits with you rather than lectures."},
}

COUNCIL_SPEEDS = ("fast", "normal", "slow")


class ConfigError(ValueError):
    """Raised when the configuration cannot support the requested operation."""


def _config_path(data_dir: Path) -> Path:
    return data_dir / "config.json"


def get_config(data_dir: Path) -> dict[str, Any]:
    """Read config, returning defaults merged with stored values."""
    config: dict[str, Any] = json.loads(json.dumps(_CONFIG_DEFAULTS))
    path = _config_path(data_dir)
    if path.is_file():
        stored = json.loads(path.read_text())
        for key in _CONFIG_DEFAULTS:
            if key in stored:
                config[key] = stored[key]
    if config["tone_anchor"] not in TONE_ANCHORS:
        config["tone_anchor"] = "raw"
    if config["council_speed"] not in COUNCIL_SPEEDS:
        config["council_speed"] = "normal"
    return config


def update_config(data_dir: Path, fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config."""
    config = get_config(data_dir)
    for key in _CONFIG_DEFAULTS:
        if key in fields:
            config[key] = fields[key]
    data_dir.mkdir(parents=True, exist_ok=True)
    _config_path(data_dir).write_text(json.dumps(config, indent=2))
    return get_config(data_dir)


def tone_description(config: dict[str, Any]) -> str:
    tone = TONE_ANCHORS.get(config.get("tone_anchor", "raw"), TONE_ANCHORS["raw"])
    return f"{tone['name']}: {tone['description']}"


def resolve_connection(config: dict[str, Any]) -> dict[str, Any]:
    """Find the LLM connection selected by connection_profile.

    Falls back to the first configured connection when the profile is
    "default"/"current" or names a connection that no longer exists.
    """
    connections = config.get("llm_connections") or []
    if not connections:
        raise ConfigError("No LLM connection configured. Add one in Settings")
    profile = config.get("connection_profile") or "default"
    if profile not in ("default", "current"):
        for conn in connections:
            if conn.get("name") == profile:
                return conn
    return connections[0]


def build_llm(config: dict[str, Any]) -> HttpLLM:
    """Construct the HTTP completion client for the selected connection."""
    conn = resolve_connection(config)
    if not conn.get("provider_url"):
        raise ConfigError(f"Connection {conn.get('name', '')!r} has no provider URL")
    return HttpLLM(
        provider_url=conn["provider_url"],
        api_key=conn.get("api_key", ""),
        provider_format=conn.get("provider_format", "koboldcpp"),
        model=conn.get("model", ""),
    )


class ConfiguredLLM:
    """LLM that re-reads config.json on every call.

    Connection edits made through the settings endpoint apply to the next
    call without rebuilding sessions.
    """

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = data_dir

    async def __call__(self, stage: str, messages: list[ChatMessage], max_tokens: int) -> str:
        llm = build_llm(get_config(self._data_dir))
        return await llm(stage, messages, max_tokens)
