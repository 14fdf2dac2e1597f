"""Core domain models.

Every social component operates on these types. Pydantic is used for
validation and serialisation at every data boundary: loading a chat from
disk, HTTP request bodies, and the typed results handed to the presentation
layer.

Records loaded from disk are sanitised rather than rejected: an influence
outside 0–100 is clamped, an unknown relationship label falls back to
"curious", an unknown lifecycle state to "dormant".
"""

from __future__ import annotations

import time
from typing import Literal, get_args

from pydantic import BaseModel, Field, field_validator, model_validator

# ---------------------------------------------------------------------------
# Closed vocabularies
# ---------------------------------------------------------------------------

RelationshipLabel = Literal[
    "hostile",
    "resentful",
    "indifferent",
    "curious",
    "devoted",
    "protective",
    "obsessed",
    "manic",
    "grieving",
]

ShiftSignal = Literal["none", "warmer", "colder", "much_warmer", "much_colder"]

VoiceState = Literal["active", "agitated", "dormant", "dead"]

ResolutionType = Literal["fade", "heal", "confront", "witness", "transform", "endure"]

ImpactLevel = Literal["none", "minor", "significant", "critical"]

RELATIONSHIP_LABELS: tuple[str, ...] = get_args(RelationshipLabel)
SHIFT_SIGNALS: tuple[str, ...] = get_args(ShiftSignal)
VOICE_STATES: tuple[str, ...] = get_args(VoiceState)
IMPACT_LEVELS: tuple[str, ...] = get_args(ImpactLevel)

THEMES: dict[str, list[str]] = {
    "emotional": [
        "heartbreak", "rage", "euphoria", "grief", "love", "terror",
        "shame", "triumph", "jealousy", "loneliness", "guilt", "pride",
    ],
    "relational": [
        "betrayal", "intimacy", "rejection", "connection", "deception",
        "trust", "abandonment", "devotion", "manipulation", "forgiveness",
    ],
    "physical": [
        "violence", "near_death", "injury", "intoxication", "desire",
        "adrenaline", "exhaustion", "comfort", "hunger", "pain",
    ],
    "identity": [
        "revelation", "transformation", "loss_of_purpose", "self_discovery",
        "humiliation", "empowerment", "submission", "defiance", "doubt", "resolve",
    ],
}

ALL_THEMES: frozenset[str] = frozenset(t for group in THEMES.values() for t in group)

# Progress a resolution must reach before the lifecycle may retire the voice.
# endure never resolves through progress.
RESOLUTION_THRESHOLDS: dict[str, int | None] = {
    "fade": 60,
    "heal": 70,
    "transform": 50,
    "confront": 80,
    "witness": 60,
    "endure": None,
}


def _now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Completion-provider messages and story context
# ---------------------------------------------------------------------------

class ChatMessage(BaseModel):
    """One role-tagged message sent to the completion provider."""

    role: Literal["system", "user", "assistant"]
    content: str


class SceneMessage(BaseModel):
    """A message from the host story, read-only prompt material."""

    is_user: bool = False
    name: str = ""
    text: str


class SceneContext(BaseModel):
    """Read-only story context supplied by the host chat application."""

    messages: list[SceneMessage] = Field(default_factory=list)
    persona: str = ""
    user_name: str = "{{user}}"


# ---------------------------------------------------------------------------
# Voice records
# ---------------------------------------------------------------------------

class Resolution(BaseModel):
    """A voice's hidden path to narrative closure."""

    type: ResolutionType
    condition: str = ""
    progress: int = 0
    threshold: int | None = None

    @field_validator("progress", mode="before")
    @classmethod
    def _clamp_progress(cls, v: int | float | None) -> int:
        return max(0, min(100, int(v or 0)))

    @model_validator(mode="after")
    def _default_threshold(self) -> Resolution:
        if self.threshold is None:
            self.threshold = RESOLUTION_THRESHOLDS[self.type]
        return self

    @property
    def complete(self) -> bool:
        if self.progress >= 100:
            return True
        return self.threshold is not None and self.progress >= self.threshold


class PendingDM(BaseModel):
    """An opening line a voice has prepared but the user has not read yet."""

    text: str
    trigger: str
    timestamp: int = Field(default_factory=_now_ms)


class DirectoryEntry(BaseModel):
    """One turn of a 1:1 directory conversation."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: int = Field(default_factory=_now_ms)


class CouncilEntry(BaseModel):
    """One line of the shared council conversation."""

    role: Literal["user", "voice"]
    content: str
    voice_id: str | None = None
    name: str | None = None
    timestamp: int = Field(default_factory=_now_ms)


class InfluenceTriggers(BaseModel):
    raises: list[str] = Field(default_factory=list)
    lowers: list[str] = Field(default_factory=list)


class Voice(BaseModel):
    """A persistent persona with relationship, influence and resolution state."""

    id: str
    name: str = "Unknown Voice"
    arcana: str = "fool"

    # Free-text descriptors, passed through to prompts uninterpreted
    personality: str = ""
    speaking_style: str = ""
    obsession: str = ""
    opinion: str = ""
    blind_spot: str = ""
    self_awareness: str = ""
    metaphor_domain: str = "general"
    verbal_tic: str = ""
    birth_moment: str = ""

    influence: int = 0
    relationship: RelationshipLabel = "curious"
    state: VoiceState = "dormant"
    resolution: Resolution | None = None
    relationships: dict[str, str] = Field(default_factory=dict)
    influence_triggers: InfluenceTriggers = Field(default_factory=InfluenceTriggers)

    directory_history: list[DirectoryEntry] = Field(default_factory=list)
    pending_dm: PendingDM | None = None
    silent_streak: int = 0
    chattiness: int = 3

    @field_validator("influence", mode="before")
    @classmethod
    def _clamp_influence(cls, v: int | float | None) -> int:
        return max(0, min(100, int(v or 0)))

    @field_validator("relationship", mode="before")
    @classmethod
    def _known_relationship(cls, v: str | None) -> str:
        return v if v in RELATIONSHIP_LABELS else "curious"

    @field_validator("state", mode="before")
    @classmethod
    def _known_state(cls, v: str | None) -> str:
        return v if v in VOICE_STATES else "dormant"

    @field_validator("silent_streak", mode="before")
    @classmethod
    def _non_negative_streak(cls, v: int | None) -> int:
        return max(0, int(v or 0))

    @property
    def alive(self) -> bool:
        return self.state != "dead"


class ChatState(BaseModel):
    """Everything persisted for one chat: the voice deck and the council log."""

    voices: list[Voice] = Field(default_factory=list)
    council_history: list[CouncilEntry] = Field(default_factory=list)

    def get_voice(self, voice_id: str | None) -> Voice | None:
        for voice in self.voices:
            if voice.id == voice_id:
                return voice
        return None

    def living_voices(self) -> list[Voice]:
        return [v for v in self.voices if v.alive]

    def voices_with_pending_dm(self) -> list[Voice]:
        return [v for v in self.living_voices() if v.pending_dm is not None]
