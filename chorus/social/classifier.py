"""Per-story-event classifier call.

One cheap completion per story message decides its impact level, which
themes are present, and a short summary. When any voice is working toward
a heal, transform or witness resolution, the same call also rates how far
the message moved each of them.

Classification failures never block the caller: every failure path
returns the safe default Classification().
"""

import logging

from chorus.llm import LLM
from chorus.models import ChatMessage, Voice
from chorus.prompts import (
    DEFAULT_CLASSIFIER_PROMPT,
    DEFAULT_CLASSIFIER_REQUEST,
    render_prompt,
    theme_list,
)
from chorus.social.extractors import Classification, parse_classification
from chorus.social.resolution import CLASSIFIER_TYPES, advance_resolution, needs_progress

logger = logging.getLogger(__name__)

MIN_MESSAGE_LEN = 10
MAX_TOKENS = 200


def resolution_candidates(voices: list[Voice]) -> list[dict]:
    """Living voices whose resolution the classifier may rate."""
    return [
        {
            "id": v.id,
            "name": v.name,
            "type": v.resolution.type,
            "condition": v.resolution.condition,
        }
        for v in voices
        if v.alive and v.resolution is not None and needs_progress(v, CLASSIFIER_TYPES)
    ]


def build_classifier_messages(message_text: str, voices: list[Voice]) -> list[ChatMessage]:
    ctx = {
        "themes": theme_list(),
        "message": message_text,
        "candidates": resolution_candidates(voices),
    }
    return [
        ChatMessage(role="system", content=render_prompt(DEFAULT_CLASSIFIER_PROMPT, ctx)),
        ChatMessage(role="user", content=render_prompt(DEFAULT_CLASSIFIER_REQUEST, ctx)),
    ]


async def classify_message(llm: LLM, message_text: str, voices: list[Voice]) -> Classification:
    """Classify one story message. Short messages are not sent at all."""
    if not message_text or len(message_text.strip()) < MIN_MESSAGE_LEN:
        return Classification()
    try:
        messages = build_classifier_messages(message_text, voices)
        raw = await llm("classifier", messages, MAX_TOKENS)
    except Exception as e:
        logger.warning("Classifier call failed: %s", e)
        return Classification()
    result = parse_classification(raw)
    logger.debug("classified impact=%s themes=%s", result.impact, result.themes)
    return result


def apply_classifier_progress(classification: Classification, voices: list[Voice]) -> bool:
    """Advance heal/transform/witness resolutions from classifier ratings.

    Returns True if any voice changed.
    """
    changed = False
    by_id = {v.id: v for v in voices}
    for entry in classification.resolution_progress:
        voice = by_id.get(entry.voice_id)
        if voice is None or not voice.alive or entry.progress <= 0:
            continue
        before = voice.resolution.progress if voice.resolution else None
        after = advance_resolution(voice, entry.progress, CLASSIFIER_TYPES)
        if after is not None and after != before:
            changed = True
    return changed
