"""Resolution tracker: progress toward a voice's narrative closure.

Each resolution type declares which exchange channels may advance it.
Quiet or forced endings (fade, endure) cannot be earned through dialogue,
and confront only moves when the user faces the voice.

Reaching the threshold or 100 is a signal only. Retiring the voice is
the external lifecycle's decision.
"""

import logging
from collections.abc import Collection

from chorus.models import Voice

logger = logging.getLogger(__name__)

# type → channels allowed to advance it
RESOLUTION_CHANNELS: dict[str, frozenset[str]] = {
    "fade": frozenset(),
    "heal": frozenset({"council", "classifier"}),
    "transform": frozenset({"council", "classifier"}),
    "witness": frozenset({"council", "classifier"}),
    "confront": frozenset({"directory", "council"}),
    "endure": frozenset(),
}


def allowed_types(channel: str) -> frozenset[str]:
    """Resolution types the given channel may advance."""
    return frozenset(t for t, chans in RESOLUTION_CHANNELS.items() if channel in chans)


DIRECTORY_TYPES = allowed_types("directory")
COUNCIL_TYPES = allowed_types("council")
CLASSIFIER_TYPES = allowed_types("classifier")


def advance_resolution(voice: Voice, amount: int, allowed: Collection[str]) -> int | None:
    """Advance voice.resolution.progress by amount, saturating at 100.

    Returns the resulting progress, or None when the voice has no
    resolution. A type outside `allowed` or a non-positive amount leaves
    progress unchanged.
    """
    resolution = voice.resolution
    if resolution is None:
        return None
    if resolution.type not in allowed or amount <= 0:
        return resolution.progress
    old = resolution.progress
    resolution.progress = min(100, old + int(amount))
    if resolution.progress != old:
        logger.info(
            "%s %s progress %d → %d", voice.name, resolution.type, old, resolution.progress,
        )
    return resolution.progress


def needs_progress(voice: Voice, allowed: Collection[str]) -> bool:
    """True if voice has an allowed resolution that has not reached its threshold."""
    resolution = voice.resolution
    if resolution is None or resolution.type not in allowed:
        return False
    return not resolution.complete
