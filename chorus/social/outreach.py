"""Outreach: voices that start a conversation on their own.

After each story event every living voice is scored for how badly it wants
to reach out. At most one voice, the top scorer, rolls against its score.
On success it writes an opening line, which waits as a pending DM until
the user opens that voice's directory thread.

Guards, checked in order:
  1. cooldown   : a counter bumped on every event must reach the cooldown.
  2. pending cap: no outreach while max_pending_dms voices are waiting.
  3. score > 0  : dead/dormant voices and voices already waiting score 0.
"""

from __future__ import annotations

import logging
import random
import re
from collections.abc import Collection

from pydantic import BaseModel

from chorus.config import tone_description
from chorus.models import ChatMessage, ImpactLevel, PendingDM, Voice
from chorus.prompts import (
    DEFAULT_OUTREACH_PROMPT,
    DEFAULT_OUTREACH_REQUEST,
    persona_excerpt,
    render_prompt,
    scene_excerpt,
    voice_context,
)
from chorus.session import Session
from chorus.social.relationships import RELATIONSHIP_INTENSITY

logger = logging.getLogger(__name__)

MAX_TOKENS = 200
MIN_OPENING_LEN = 5
SCENE_LIMIT = 200
PERSONA_LIMIT = 400


class OutreachResult(BaseModel):
    voice_id: str
    name: str
    trigger: str


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def score_outreach(voice: Voice, themes: Collection[str] = (), impact: ImpactLevel = "none") -> int:
    """How badly a voice wants to reach out right now. Never negative."""
    if voice.state in ("dead", "dormant"):
        return 0
    if voice.pending_dm is not None:
        return 0

    score = RELATIONSHIP_INTENSITY.get(voice.relationship, 0)

    if voice.influence >= 70:
        score += 25
    elif voice.influence >= 50:
        score += 15
    elif voice.influence >= 30:
        score += 5

    raises = set(voice.influence_triggers.raises)
    matches = sum(1 for t in themes if t in raises)
    if matches >= 2:
        score += 20
    elif matches == 1:
        score += 10

    if impact == "critical":
        score += 15
    elif impact == "significant":
        score += 8

    if voice.state == "agitated":
        score += 15

    if voice.silent_streak >= 8:
        score += 12
    elif voice.silent_streak >= 5:
        score += 6

    score += (voice.chattiness or 3) * 2

    # just spoke in the council
    if voice.silent_streak == 0:
        score -= 15
    if voice.influence < 20:
        score -= 20

    return max(0, score)


def describe_trigger(voice: Voice, impact: ImpactLevel = "none") -> str:
    if voice.state == "agitated":
        return "agitated"
    if impact == "critical":
        return "critical_event"
    if voice.relationship in ("hostile", "resentful"):
        return "grievance"
    if voice.relationship in ("obsessed", "manic"):
        return "obsession"
    if voice.relationship in ("devoted", "protective"):
        return "concern"
    if voice.silent_streak >= 5:
        return "breaking_silence"
    return "unprompted"


# ---------------------------------------------------------------------------
# Opening line
# ---------------------------------------------------------------------------

def trigger_context(voice: Voice, themes: Collection[str], impact: ImpactLevel, summary: str) -> str:
    """Plain-language reasons handed to the model for why it is reaching out."""
    parts = []
    if voice.state == "agitated":
        parts.append(
            f"You are AGITATED. Your influence is at {voice.influence}/100 and climbing. "
            "You cannot keep quiet any more."
        )
    if impact in ("critical", "significant"):
        parts.append(f'Something just happened in the story: "{summary or "a significant event"}". It matters to you.')
    matched = [t for t in themes if t in voice.influence_triggers.raises]
    if matched:
        parts.append(f"Themes that hit your triggers just appeared: {', '.join(matched)}.")
    if voice.relationship in ("hostile", "resentful"):
        parts.append("You have a grievance with {{user}} and something just tipped you over.")
    elif voice.relationship in ("devoted", "protective"):
        parts.append("You are worried about {{user}}. Something about this feels wrong.")
    elif voice.relationship in ("obsessed", "manic"):
        parts.append("You cannot stop thinking about {{user}}. You need their attention.")
    if voice.silent_streak >= 5:
        parts.append(f"You have been quiet for {voice.silent_streak} turns. The silence is breaking.")
    if not parts:
        parts.append("Something compelled you to speak. Your personality decides what.")
    return "\n".join(parts)


_LABEL_RE = re.compile(r"^\[.*?\]:\s*")
_QUOTES_RE = re.compile(r"^[\"']|[\"']$")


def clean_opening_line(text: str) -> str | None:
    """Strip a stray "[Name]:" label and wrapping quotes. None if too short."""
    if not text or len(text.strip()) < MIN_OPENING_LEN:
        return None
    cleaned = _LABEL_RE.sub("", text.strip())
    cleaned = _QUOTES_RE.sub("", cleaned).strip()
    if len(cleaned) < MIN_OPENING_LEN:
        return None
    return cleaned


async def generate_opening_line(
    session: Session,
    voice: Voice,
    themes: Collection[str],
    impact: ImpactLevel,
    summary: str,
) -> str | None:
    ctx = {
        "voice": voice_context(voice),
        "user": session.scene.user_name,
        "tone": tone_description(session.config),
        "persona": persona_excerpt(session.scene, PERSONA_LIMIT),
        "scene": scene_excerpt(session.scene, SCENE_LIMIT),
        "trigger_context": trigger_context(voice, themes, impact, summary),
    }
    messages = [
        ChatMessage(role="system", content=render_prompt(DEFAULT_OUTREACH_PROMPT, ctx)),
        ChatMessage(role="user", content=render_prompt(DEFAULT_OUTREACH_REQUEST, ctx)),
    ]
    text = await session.llm("outreach", messages, MAX_TOKENS)
    return clean_opening_line(text)


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def pick_candidate(voices: list[Voice], themes: Collection[str], impact: ImpactLevel) -> tuple[Voice, int] | None:
    """Highest scorer above zero. Ties go to the earlier voice in the deck."""
    best: tuple[Voice, int] | None = None
    for voice in voices:
        score = score_outreach(voice, themes, impact)
        if score > 0 and (best is None or score > best[1]):
            best = (voice, score)
    return best


async def check_outreach(
    session: Session,
    themes: Collection[str] = (),
    impact: ImpactLevel = "none",
    summary: str = "",
) -> OutreachResult | None:
    """Run the outreach protocol once for a story event.

    A failed roll or a failed generation leaves everything as it was apart
    from the cooldown counter; the voice is scored afresh next event.
    """
    state = session.outreach
    state.counter += 1
    if state.counter < state.cooldown:
        return None

    living = session.state.living_voices()
    if not living:
        return None
    if len(session.state.voices_with_pending_dm()) >= session.max_pending_dms:
        return None

    candidate = pick_candidate(living, themes, impact)
    if candidate is None:
        return None
    voice, score = candidate

    roll = random.random() * 100
    if roll > score:
        logger.debug("outreach roll missed voice=%s score=%d roll=%.1f", voice.name, score, roll)
        return None

    try:
        text = await generate_opening_line(session, voice, themes, impact, summary)
    except Exception as e:
        logger.warning("Outreach generation failed for %s: %s", voice.name, e)
        return None
    if text is None:
        return None

    trigger = describe_trigger(voice, impact)
    voice.pending_dm = PendingDM(text=text, trigger=trigger)
    state.counter = 0
    session.save()
    logger.info("Outreach: %s reaches out (score: %d, trigger: %s)", voice.name, score, trigger)
    return OutreachResult(voice_id=voice.id, name=voice.name, trigger=trigger)
