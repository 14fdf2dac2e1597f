"""Tests for chorus.session."""

import asyncio

from chorus.session import Session
from chorus.storage import Storage


def test_load_new_chat_is_empty(data_dir, stub_llm) -> None:
    session = Session.load(Storage(data_dir), "fresh", {}, stub_llm)
    assert session.state.voices == []
    assert session.directory.active_voice_id is None
    assert not session.council.active
    assert session.outreach.cooldown == 4
    assert session.outreach.counter == 0
    assert session.max_pending_dms == 2


def test_config_drives_outreach_limits(make_session) -> None:
    session = make_session(config={"outreach_cooldown": 2, "max_pending_dms": 5})
    assert session.outreach.cooldown == 2
    assert session.max_pending_dms == 5


def test_cooldown_reads_current_config(make_session) -> None:
    session = make_session()
    session.config = {"outreach_cooldown": 1}
    assert session.outreach.cooldown == 1
    session.outreach.reset()
    assert session.outreach.counter == 1


def test_save_then_load(make_session, voice_factory, data_dir, stub_llm) -> None:
    session = make_session(voice_factory("critic", "The Critic", influence=61))
    session.save()
    again = Session.load(Storage(data_dir), "chat", {}, stub_llm)
    assert again.state.get_voice("critic").influence == 61


def test_reset_clears_channel_state(make_session, voice_factory) -> None:
    session = make_session(voice_factory("critic"))
    session.directory.active_voice_id = "critic"
    session.council.active = True
    session.council.total_turns = 9
    session.reset()
    assert session.directory.active_voice_id is None
    assert not session.council.active
    assert session.council.total_turns == 0
    assert session.outreach.counter == session.outreach.cooldown
    assert session.state.get_voice("critic") is not None


async def test_reset_cancels_auto_continue(make_session) -> None:
    session = make_session()
    task = asyncio.get_running_loop().create_task(asyncio.sleep(60))
    session.council.auto_task = task
    session.reset()
    await asyncio.sleep(0)
    assert task.cancelled()
