"""Council: a freeform group conversation among all living voices.

One completion call per turn produces every voice line at once, followed by
optional [COUNCIL_DYNAMICS] (voice-to-voice opinion shifts) and
[COUNCIL_INSIGHTS] (earned breakthroughs) sections.

Turn flow:
  1. Guard: a turn already running, or the council inactive → silent no-op.
  2. Build the roster and the last 25 council entries into one prompt.
  3. Completion ("council", 600 tokens) → parse_council_response().
  4. Dynamics overwrite voice.relationships[to_id] with the new opinion.
  5. Insights advance heal/witness/confront/transform by 5-9 points.
  6. Voice lines join the council history (trimmed to 40), silence
     streaks and turn counters move, the chat is saved.

While the council is active and auto-continue is on, an asyncio task keeps
taking turns at the configured speed.
"""

from __future__ import annotations

import asyncio
import logging
import random

from chorus.config import tone_description
from chorus.models import ChatMessage, CouncilEntry, Voice
from chorus.prompts import (
    DEFAULT_COUNCIL_PROMPT,
    DEFAULT_COUNCIL_REQUEST,
    persona_excerpt,
    render_prompt,
    scene_excerpt,
    voice_context,
)
from chorus.session import Session
from chorus.social.extractors import CouncilTurn, parse_council_response
from chorus.social.resolution import COUNCIL_TYPES, advance_resolution

logger = logging.getLogger(__name__)

MAX_TOKENS = 600
PROMPT_WINDOW = 25
HISTORY_LIMIT = 40
SCENE_LIMIT = 250
PERSONA_LIMIT = 500

# speed → (base seconds, jitter range seconds)
AUTO_INTERVALS = {
    "fast": (6.5, 3.0),
    "normal": (10.0, 7.0),
    "slow": (20.0, 10.0),
}
MIN_AUTO_INTERVAL = 4.0


def next_auto_interval(speed: str) -> float:
    """Seconds until the next auto-continue turn, jittered around the base."""
    base, jitter = AUTO_INTERVALS.get(speed, AUTO_INTERVALS["normal"])
    return max(MIN_AUTO_INTERVAL, base + (random.random() - 0.5) * jitter)


def speaker_count(voice_count: int, user_spoke: bool) -> int:
    if user_spoke:
        return min(voice_count, 3)
    return min(voice_count, 1 if random.random() < 0.4 else 2)


def idle_awareness(silent_turns: int, user: str = "{{user}}") -> str:
    if silent_turns >= 8:
        return (
            f"{user} has been watching in silence for {silent_turns} turns. "
            f"The voices have noticed. Some are annoyed. Some want {user} to speak."
        )
    if silent_turns >= 4:
        return f"{user} has been quiet for a while. Some voices are starting to notice."
    return ""


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

def _history_context(session: Session) -> list[dict]:
    user = session.scene.user_name
    return [
        {"speaker": user if e.role == "user" else (e.name or "?"), "content": e.content}
        for e in session.state.council_history
    ]


def build_council_messages(
    session: Session, voices: list[Voice], user_message: str | None
) -> list[ChatMessage]:
    names = {v.id: v.name for v in session.state.voices}
    count = speaker_count(len(voices), user_message is not None)
    ctx = {
        "user": session.scene.user_name,
        "tone": tone_description(session.config),
        "persona": persona_excerpt(session.scene, PERSONA_LIMIT),
        "scene": scene_excerpt(session.scene, SCENE_LIMIT),
        "voices": [voice_context(v, names) for v in voices],
        "history": _history_context(session),
        "window": PROMPT_WINDOW,
        "idle": idle_awareness(session.council.silent_turns, session.scene.user_name),
        "speaker_count": count,
        "plural": count > 1,
        "user_spoke": user_message is not None,
        "user_message": user_message or "",
    }
    return [
        ChatMessage(role="system", content=render_prompt(DEFAULT_COUNCIL_PROMPT, ctx)),
        ChatMessage(role="user", content=render_prompt(DEFAULT_COUNCIL_REQUEST, ctx)),
    ]


# ---------------------------------------------------------------------------
# Applying a parsed turn
# ---------------------------------------------------------------------------

def apply_council_turn(session: Session, turn: CouncilTurn) -> None:
    state = session.state

    for dynamic in turn.dynamics:
        source = state.get_voice(dynamic.from_id)
        if source is None:
            continue
        source.relationships[dynamic.to_id] = dynamic.opinion
        logger.info("Council dynamic: %s → %s: %s", source.name, dynamic.to_name, dynamic.opinion)

    for insight in turn.insights:
        voice = state.get_voice(insight.voice_id)
        if voice is None or voice.resolution is None:
            continue
        before = voice.resolution.progress
        after = advance_resolution(voice, random.randint(5, 9), COUNCIL_TYPES)
        if after != before:
            logger.info("Council insight: %s (%r)", voice.name, insight.insight)

    if turn.messages:
        state.council_history.extend(
            CouncilEntry(role="voice", content=m.content, voice_id=m.voice_id, name=m.name)
            for m in turn.messages
        )
        state.council_history = state.council_history[-HISTORY_LIMIT:]

        speakers = {m.voice_id for m in turn.messages}
        for voice in state.living_voices():
            voice.silent_streak = 0 if voice.id in speakers else voice.silent_streak + 1


# ---------------------------------------------------------------------------
# Turns
# ---------------------------------------------------------------------------

async def run_council_turn(session: Session, user_message: str | None = None) -> CouncilTurn | None:
    """Take one council turn. None means the turn did not run at all."""
    council = session.council
    if council.in_flight or not council.active:
        return None
    voices = session.state.living_voices()
    if not voices:
        return None

    council.in_flight = True
    try:
        try:
            messages = build_council_messages(session, voices, user_message)
            raw = await session.llm("council", messages, MAX_TOKENS)
            turn = parse_council_response(raw, voices)
        except Exception as e:
            logger.warning("Council generation failed: %s", e)
            turn = CouncilTurn()

        apply_council_turn(session, turn)
        if user_message is None:
            council.silent_turns += 1
        council.total_turns += 1
        session.save()
        return turn
    finally:
        council.in_flight = False


async def send_council_message(session: Session, text: str) -> CouncilTurn | None:
    """Record the user's line in the council and let the voices react."""
    cleaned = (text or "").strip()
    if not cleaned:
        return None
    state = session.state
    state.council_history.append(CouncilEntry(role="user", content=cleaned))
    state.council_history = state.council_history[-HISTORY_LIMIT:]
    session.council.silent_turns = 0
    session.save()
    return await run_council_turn(session, cleaned)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

async def _auto_continue(session: Session) -> None:
    council = session.council
    delay = 8.0 + random.random() * 4.0
    while council.active:
        await asyncio.sleep(delay)
        if not council.active or not session.config.get("council_auto_continue", True):
            break
        if not council.in_flight:
            try:
                await run_council_turn(session)
            except Exception:
                logger.exception("Council auto-continue turn failed")
        delay = next_auto_interval(session.config.get("council_speed", "normal"))


def start_auto_continue(session: Session) -> None:
    stop_auto_continue(session)
    if not session.config.get("council_auto_continue", True):
        logger.info("Council auto-continue disabled")
        return
    session.council.auto_task = asyncio.get_running_loop().create_task(_auto_continue(session))


def stop_auto_continue(session: Session) -> None:
    task = session.council.auto_task
    if task is not None and not task.done():
        task.cancel()
    session.council.auto_task = None


async def activate_council(session: Session, auto_continue: bool = True) -> CouncilTurn | None:
    """Open the council. The first activation in a session opens with a burst turn."""
    council = session.council
    if council.active:
        return None
    council.active = True
    if not session.state.living_voices():
        return None

    turn = None
    if not council.initialized:
        council.initialized = True
        council.silent_turns = 0
        council.total_turns = 0
        turn = await run_council_turn(session)

    if auto_continue:
        start_auto_continue(session)
    logger.info(
        "Council activated (%d voices, %d history messages)",
        len(session.state.living_voices()), len(session.state.council_history),
    )
    return turn


def deactivate_council(session: Session) -> None:
    if not session.council.active:
        return
    session.council.active = False
    stop_auto_continue(session)
    logger.info("Council deactivated")


def reset_council(session: Session) -> None:
    """Full reset on chat change. History on disk is kept."""
    deactivate_council(session)
    session.council.initialized = False
    session.council.silent_turns = 0
    session.council.total_turns = 0


def clear_council_history(session: Session) -> None:
    session.state.council_history = []
    session.save()
