"""Relationship state machine: how a voice's stance toward the user drifts.

Nine labels, four non-trivial shift signals. The table is total: every
(label, signal) pair has a successor, so transition() never fails.

Shape of the table:
  - hostile absorbs further cold; it does not escape via much_colder.
  - protective absorbs further warmth.
  - obsessed and manic only reach each other on warm signals; no other
    label can drift into them.
"""

from __future__ import annotations

import logging

from chorus.models import RelationshipLabel, ShiftSignal

logger = logging.getLogger(__name__)

# current → {signal: next}
DRIFT_TABLE: dict[str, dict[str, str]] = {
    "hostile":     {"warmer": "resentful",  "colder": "hostile",     "much_warmer": "curious",    "much_colder": "hostile"},
    "resentful":   {"warmer": "curious",    "colder": "hostile",     "much_warmer": "protective", "much_colder": "hostile"},
    "indifferent": {"warmer": "curious",    "colder": "resentful",   "much_warmer": "devoted",    "much_colder": "hostile"},
    "curious":     {"warmer": "devoted",    "colder": "indifferent", "much_warmer": "devoted",    "much_colder": "resentful"},
    "devoted":     {"warmer": "protective", "colder": "curious",     "much_warmer": "protective", "much_colder": "resentful"},
    "protective":  {"warmer": "protective", "colder": "devoted",     "much_warmer": "protective", "much_colder": "curious"},
    "obsessed":    {"warmer": "obsessed",   "colder": "devoted",     "much_warmer": "manic",      "much_colder": "resentful"},
    "manic":       {"warmer": "manic",      "colder": "obsessed",    "much_warmer": "manic",      "much_colder": "hostile"},
    "grieving":    {"warmer": "curious",    "colder": "indifferent", "much_warmer": "devoted",    "much_colder": "resentful"},
}

# How emotionally charged each label is; feeds the outreach score.
RELATIONSHIP_INTENSITY: dict[str, int] = {
    "obsessed": 30,
    "manic": 28,
    "hostile": 22,
    "resentful": 18,
    "devoted": 15,
    "protective": 12,
    "grieving": 10,
    "curious": 3,
    "indifferent": 0,
}


def transition(current: RelationshipLabel, shift: ShiftSignal) -> RelationshipLabel:
    """Return the label a voice moves to after a shift signal.

    "none" returns current unchanged. Callers must treat a result equal to
    current as a no-op: no mutation, no save, no log line.
    """
    if shift == "none":
        return current
    return DRIFT_TABLE[current][shift]  # type: ignore[return-value]


def apply_shift(voice, shift: ShiftSignal | None, reason: str = "") -> bool:
    """Drift voice.relationship by one signal. Returns True if it changed."""
    if not shift:
        return False
    new = transition(voice.relationship, shift)
    if new == voice.relationship:
        return False
    logger.info(
        "%s relationship %s → %s (%s)", voice.name, voice.relationship, new, reason,
    )
    voice.relationship = new
    return True
