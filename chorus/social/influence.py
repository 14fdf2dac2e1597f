"""Influence ledger: a bounded 0–100 integer per voice.

The ledger does not interpret influence; the external lifecycle does that.
It only guarantees the bounded value and the clamped step size.
"""

import logging

from chorus.models import Voice

logger = logging.getLogger(__name__)

MAX_STEP = 8
MIN_INFLUENCE = 0
MAX_INFLUENCE = 100


def clamp_delta(raw_delta: int) -> int:
    return max(-MAX_STEP, min(MAX_STEP, int(raw_delta)))


def adjust_influence(voice: Voice, raw_delta: int) -> int:
    """Apply a model-requested influence change and return the new value.

    The delta is clamped to ±8 first, then the result to [0, 100].
    A zero delta is accepted and leaves the voice untouched.
    """
    delta = clamp_delta(raw_delta)
    if delta == 0:
        return voice.influence
    old = voice.influence
    voice.influence = max(MIN_INFLUENCE, min(MAX_INFLUENCE, old + delta))
    if voice.influence != old:
        logger.info("%s influence %d → %d (requested %+d)", voice.name, old, voice.influence, raw_delta)
    return voice.influence
