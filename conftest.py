import os
import shutil
from pathlib import Path

import pytest

TEST_DATA_DIR = Path("data-tests")

# chorus.app builds a default app at import time
os.environ["DATA_DIR"] = str(TEST_DATA_DIR)

from chorus.models import ChatMessage, Voice  # noqa: E402
from chorus.session import Session  # noqa: E402
from chorus.storage import Storage  # noqa: E402


@pytest.fixture(autouse=True)
def clean_test_data():
    """Wipe data-tests/ before every test."""
    if TEST_DATA_DIR.exists():
        shutil.rmtree(TEST_DATA_DIR)
    TEST_DATA_DIR.mkdir(parents=True)
    yield
    # data-tests/ stays behind for inspection


@pytest.fixture
def data_dir() -> Path:
    return TEST_DATA_DIR


class StubLLM:
    """Scripted completion provider.

    Returns queued replies in order; an Exception instance in the queue is
    raised instead. Every call is recorded as (stage, messages, max_tokens).
    """

    def __init__(self, *replies: str | Exception) -> None:
        self.replies: list[str | Exception] = list(replies)
        self.calls: list[tuple[str, list[ChatMessage], int]] = []

    async def __call__(self, stage: str, messages: list[ChatMessage], max_tokens: int) -> str:
        self.calls.append((stage, messages, max_tokens))
        if not self.replies:
            raise AssertionError(f"Unexpected LLM call for stage {stage!r}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def stages(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def stub_llm() -> StubLLM:
    return StubLLM()


def make_voice(voice_id: str, name: str | None = None, **fields) -> Voice:
    fields.setdefault("state", "active")
    fields.setdefault("influence", 40)
    return Voice(id=voice_id, name=name or voice_id.replace("_", " ").title(), **fields)


@pytest.fixture
def voice_factory():
    return make_voice


@pytest.fixture
def make_session(data_dir, stub_llm):
    """Build a Session over a fresh chat with the given voices."""

    def _make(*voices: Voice, config: dict | None = None, chat_id: str = "chat") -> Session:
        storage = Storage(data_dir)
        session = Session.load(storage, chat_id, config or {}, stub_llm)
        session.state.voices.extend(voices)
        return session

    return _make
