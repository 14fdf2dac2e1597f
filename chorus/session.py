"""Per-chat session context.

Everything the orchestrators need between calls lives here instead of in
module globals: the loaded ChatState, the storage it is saved to, and the
working state of each channel (directory thread, council, outreach).

    session = Session.load(storage, "chat-1", config, llm)
    reply = await send_directory_message(session, "hello")

Session.save() is the persistence hook; every state-changing operation
calls it. Session.reset() clears channel working state on a chat switch
without touching the persisted voices.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from chorus.llm import LLM
from chorus.models import ChatState, SceneContext
from chorus.storage import Storage

logger = logging.getLogger(__name__)


class DirectoryState:
    """Which 1:1 thread is open and which voices have an exchange outstanding."""

    def __init__(self) -> None:
        self.active_voice_id: str | None = None
        self.in_flight: set[str] = set()


class CouncilState:
    def __init__(self) -> None:
        self.active = False
        self.in_flight = False
        self.initialized = False
        self.silent_turns = 0
        self.total_turns = 0
        self.auto_task: asyncio.Task | None = None


class OutreachState:
    """Events seen since the last outreach. The cooldown is read from live config."""

    def __init__(self, cooldown: Callable[[], int]) -> None:
        self._cooldown = cooldown
        self.counter = 0

    @property
    def cooldown(self) -> int:
        return self._cooldown()

    def reset(self) -> None:
        """Make the next story event eligible for outreach."""
        self.counter = self.cooldown


class Session:
    def __init__(
        self,
        storage: Storage,
        chat_id: str,
        state: ChatState,
        config: dict[str, Any],
        llm: LLM,
    ) -> None:
        self.storage = storage
        self.chat_id = chat_id
        self.state = state
        self.config = config
        self.llm = llm
        self.scene = SceneContext()
        self.directory = DirectoryState()
        self.council = CouncilState()
        self.outreach = OutreachState(lambda: self.outreach_cooldown)

    @classmethod
    def load(cls, storage: Storage, chat_id: str, config: dict[str, Any], llm: LLM) -> Session:
        return cls(storage, chat_id, storage.get_chat(chat_id), config, llm)

    @property
    def outreach_cooldown(self) -> int:
        return int(self.config.get("outreach_cooldown", 4))

    @property
    def max_pending_dms(self) -> int:
        return int(self.config.get("max_pending_dms", 2))

    def save(self) -> None:
        self.storage.save_chat(self.chat_id, self.state)

    def reset(self) -> None:
        """Clear channel working state (chat switch, panel closed)."""
        task = self.council.auto_task
        if task is not None and not task.done():
            task.cancel()
        self.directory = DirectoryState()
        self.council = CouncilState()
        self.outreach.reset()
        logger.debug("session reset chat=%s", self.chat_id)
