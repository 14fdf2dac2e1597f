"""Tests for the story-event pipeline: classify → progress → outreach."""

from unittest.mock import patch

from chorus.llm import LLMError
from chorus.models import Resolution
from chorus.social.events import process_story_event

CLASSIFICATION = (
    '{"impact": "significant", "themes": ["guilt"], "summary": "She lied.",'
    ' "resolution_progress": [{"voiceId": "moth", "progress": 6}]}'
)


async def test_progress_applied_and_saved(make_session, voice_factory, stub_llm):
    session = make_session(voice_factory("moth", "Moth", resolution=Resolution(type="heal", progress=10)))
    stub_llm.replies.append(CLASSIFICATION)

    result = await process_story_event(session, "She looked me in the eye and lied.")

    assert result.classification.impact == "significant"
    assert result.outreach is None
    assert stub_llm.stages == ["classifier"]
    assert session.state.voices[0].resolution.progress == 16
    stored = session.storage.get_chat(session.chat_id)
    assert stored.voices[0].resolution.progress == 16


async def test_outreach_fires_after_classification(make_session, voice_factory, stub_llm):
    session = make_session(voice_factory("moth", "Moth", relationship="hostile", influence=70))
    session.outreach.reset()
    stub_llm.replies.extend([CLASSIFICATION, "You saw that, didn't you?"])

    with patch("chorus.social.outreach.random.random", return_value=0.0):
        result = await process_story_event(session, "She looked me in the eye and lied.")

    assert stub_llm.stages == ["classifier", "outreach"]
    assert result.outreach.voice_id == "moth"
    assert result.outreach.trigger == "grievance"
    assert session.state.voices[0].pending_dm.text == "You saw that, didn't you?"
    outreach_system = stub_llm.calls[1][1][0].content
    assert "She lied." in outreach_system


async def test_short_message_skips_classifier(make_session, voice_factory, stub_llm):
    session = make_session(voice_factory("moth"))
    result = await process_story_event(session, "Hm.")
    assert result.classification.impact == "none"
    assert stub_llm.calls == []
    assert session.outreach.counter == 1


async def test_classifier_failure_does_not_block_outreach(make_session, voice_factory, stub_llm):
    session = make_session(voice_factory("moth", "Moth", relationship="obsessed", influence=80))
    session.outreach.reset()
    stub_llm.replies.extend([LLMError("down"), "I was waiting for you."])

    with patch("chorus.social.outreach.random.random", return_value=0.0):
        result = await process_story_event(session, "The door creaks open slowly.")

    assert result.classification.themes == []
    assert result.outreach.trigger == "obsession"
