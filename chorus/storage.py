"""JSON file storage.

All state is stored in flat JSON files under a configurable base directory.
There is no database or ORM: reads and writes go through plain helper
methods that load and dump JSON.

Directory layout:

    {base}/
      config.json             ← global settings (see chorus.config)
      chats/
        {chat_id}.json        ← ChatState: voice deck + council history

A chat file is rewritten whole after every state-changing operation, so a
session can always be rebuilt from disk verbatim.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from chorus.models import ChatState

logger = logging.getLogger(__name__)

_UNSAFE_ID = re.compile(r"[^A-Za-z0-9_.-]+")


def safe_chat_id(chat_id: str) -> str:
    """Map a host chat id onto a filesystem-safe file stem."""
    cleaned = _UNSAFE_ID.sub("-", chat_id).strip("-.")
    return cleaned or "default"


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._chat_root = base_path / "chats"
        self._chat_root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _chat_file(self, chat_id: str) -> Path:
        return self._chat_root / f"{safe_chat_id(chat_id)}.json"

    def _read_json(self, path: Path) -> Any:
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        path.write_text(json.dumps(data, indent=2))

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    def get_chat(self, chat_id: str) -> ChatState:
        """Load a chat's state. A chat that was never saved starts empty."""
        path = self._chat_file(chat_id)
        if not path.exists():
            return ChatState()
        return ChatState.model_validate(self._read_json(path))

    def save_chat(self, chat_id: str, state: ChatState) -> None:
        self._write_json(self._chat_file(chat_id), state.model_dump())
        logger.debug("chat saved id=%s voices=%d", chat_id, len(state.voices))

    def delete_chat(self, chat_id: str) -> bool:
        path = self._chat_file(chat_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def list_chats(self) -> list[str]:
        return sorted(p.stem for p in self._chat_root.glob("*.json"))
