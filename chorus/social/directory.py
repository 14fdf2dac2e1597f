"""Directory: private 1:1 threads between the user and one voice.

Exchange flow:
  1. Build messages: system prompt + last 40 history entries + user message.
  2. One completion call ("directory", 600 tokens).
  3. Split the reply into visible text and the [ASSESSMENT] block.
  4. Apply the assessment: relationship drift, influence delta, and
     confront progress (the only resolution type this channel advances).
  5. Append both turns, trim the thread to 60 entries, save.

A failed completion still consumes the turn: the user sees "..." and both
turns are recorded.
"""

from __future__ import annotations

import logging

from chorus.config import tone_description
from chorus.models import ChatMessage, DirectoryEntry, Voice
from chorus.prompts import (
    DEFAULT_DIRECTORY_PROMPT,
    persona_excerpt,
    render_prompt,
    scene_excerpt,
    voice_context,
)
from chorus.session import Session
from chorus.social.extractors import Assessment, DirectoryReply, parse_assessment
from chorus.social.influence import adjust_influence
from chorus.social.relationships import apply_shift
from chorus.social.resolution import DIRECTORY_TYPES, advance_resolution

logger = logging.getLogger(__name__)

MAX_TOKENS = 600
PROMPT_WINDOW = 40
HISTORY_LIMIT = 60
SCENE_LIMIT = 300
PERSONA_LIMIT = 600
FALLBACK_REPLY = "..."


class VoiceNotFound(LookupError):
    """No directory voice is selected, or the id is not in the deck."""


def _resolve_voice(session: Session, voice_id: str | None) -> Voice:
    voice_id = voice_id or session.directory.active_voice_id
    if not voice_id:
        raise VoiceNotFound("No directory voice selected")
    voice = session.state.get_voice(voice_id)
    if voice is None:
        raise VoiceNotFound(f"Voice {voice_id!r} not found")
    return voice


# ---------------------------------------------------------------------------
# Thread lifecycle
# ---------------------------------------------------------------------------

def open_directory(session: Session, voice_id: str) -> Voice:
    """Select a voice's thread and deliver its pending DM, if any."""
    voice = _resolve_voice(session, voice_id)
    session.directory.active_voice_id = voice.id
    if voice.pending_dm is not None:
        voice.directory_history.append(DirectoryEntry(
            role="assistant",
            content=voice.pending_dm.text,
            timestamp=voice.pending_dm.timestamp,
        ))
        voice.directory_history = voice.directory_history[-HISTORY_LIMIT:]
        voice.pending_dm = None
        session.save()
    return voice


def close_directory(session: Session) -> None:
    session.directory.active_voice_id = None


# ---------------------------------------------------------------------------
# Exchange
# ---------------------------------------------------------------------------

def build_directory_messages(session: Session, voice: Voice, user_message: str) -> list[ChatMessage]:
    resolution = voice.resolution
    ctx = {
        "voice": voice_context(voice),
        "user": session.scene.user_name,
        "tone": tone_description(session.config),
        "persona": persona_excerpt(session.scene, PERSONA_LIMIT),
        "scene": scene_excerpt(session.scene, SCENE_LIMIT),
        "confront": resolution is not None and resolution.type == "confront",
    }
    messages = [ChatMessage(role="system", content=render_prompt(DEFAULT_DIRECTORY_PROMPT, ctx))]
    for entry in voice.directory_history[-PROMPT_WINDOW:]:
        messages.append(ChatMessage(role=entry.role, content=entry.content))
    messages.append(ChatMessage(role="user", content=user_message))
    return messages


def apply_assessment(voice: Voice, assessment: Assessment) -> None:
    reason = assessment.reason or ""
    if assessment.relationship_shift:
        apply_shift(voice, assessment.relationship_shift, reason)
    if assessment.influence_delta is not None:
        adjust_influence(voice, assessment.influence_delta)
    if assessment.confront_progress and assessment.confront_progress > 0:
        advance_resolution(voice, assessment.confront_progress, DIRECTORY_TYPES)


async def send_directory_message(
    session: Session, user_message: str, voice_id: str | None = None
) -> DirectoryReply:
    """Run one 1:1 exchange with the selected (or given) voice."""
    voice = _resolve_voice(session, voice_id)
    in_flight = session.directory.in_flight
    if voice.id in in_flight:
        logger.warning("Directory exchange already running for %s", voice.name)
        return DirectoryReply(text=FALLBACK_REPLY)

    in_flight.add(voice.id)
    try:
        try:
            messages = build_directory_messages(session, voice, user_message)
            raw = await session.llm("directory", messages, MAX_TOKENS)
            text, assessment = parse_assessment(raw)
        except Exception as e:
            logger.warning("Directory reply failed for %s: %s", voice.name, e)
            text, assessment = FALLBACK_REPLY, None

        if not text:
            text = FALLBACK_REPLY
        if assessment is not None:
            apply_assessment(voice, assessment)

        voice.directory_history.append(DirectoryEntry(role="user", content=user_message))
        voice.directory_history.append(DirectoryEntry(role="assistant", content=text))
        voice.directory_history = voice.directory_history[-HISTORY_LIMIT:]
        session.save()
        return DirectoryReply(text=text, assessment=assessment)
    finally:
        in_flight.discard(voice.id)
