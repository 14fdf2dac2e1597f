"""Tolerant parsers for completion-provider output.

Three grammars, one recovery rule: try to extract structure, fall back to
a safe default, never raise on model output.

  parse_assessment      : [ASSESSMENT] ... [/ASSESSMENT] key/value block
                           riding along a 1:1 directory reply.
  parse_classification  : embedded JSON object from the classifier call.
  parse_council_response: "Name: text" lines followed by the optional
                           [COUNCIL_DYNAMICS] and [COUNCIL_INSIGHTS] sections.

Roster name resolution comes in two strengths:

  resolve_speaker : exact (case-insensitive) match, then the same with a
                     leading "the" stripped from both sides.
  resolve_mention : substring containment in either direction, used for
                     names inside dynamics and insights, which models
                     abbreviate more often.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Sequence

from pydantic import BaseModel, Field

from chorus.models import ALL_THEMES, IMPACT_LEVELS, ImpactLevel, ShiftSignal, Voice

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

class Assessment(BaseModel):
    """Side-effect data from a directory reply. Every field is optional."""

    relationship_shift: ShiftSignal | None = None
    influence_delta: int | None = None
    confront_progress: int | None = None
    reason: str | None = None

    @property
    def fields_found(self) -> int:
        return sum(
            v is not None
            for v in (self.relationship_shift, self.influence_delta, self.confront_progress, self.reason)
        )

    @property
    def is_empty(self) -> bool:
        """Block was present but no field could be read."""
        return self.fields_found == 0

    @property
    def is_partial(self) -> bool:
        return 0 < self.fields_found < 4


class DirectoryReply(BaseModel):
    text: str
    assessment: Assessment | None = None


class ResolutionProgress(BaseModel):
    voice_id: str
    progress: int


class Classification(BaseModel):
    impact: ImpactLevel = "none"
    themes: list[str] = Field(default_factory=list)
    summary: str = ""
    resolution_progress: list[ResolutionProgress] = Field(default_factory=list)


class CouncilMessage(BaseModel):
    voice_id: str
    name: str
    arcana: str = ""
    relationship: str = ""
    content: str


class Dynamic(BaseModel):
    from_id: str
    to_id: str
    to_name: str
    opinion: str


class Insight(BaseModel):
    voice_id: str
    name: str
    insight: str


class CouncilTurn(BaseModel):
    messages: list[CouncilMessage] = Field(default_factory=list)
    dynamics: list[Dynamic] = Field(default_factory=list)
    insights: list[Insight] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Assessment block
# ---------------------------------------------------------------------------

_BLOCK_RE = re.compile(r"\[ASSESSMENT\](.*?)(?:\[/ASSESSMENT\]|\Z)", re.DOTALL | re.IGNORECASE)
_SHIFT_RE = re.compile(r"relationship_shift:\s*(none|warmer|colder|much_warmer|much_colder)\b", re.IGNORECASE)
_DELTA_RE = re.compile(r"influence_delta:\s*([+-]?\d+)", re.IGNORECASE)
_CONFRONT_RE = re.compile(r"confront_progress:\s*(\d+)", re.IGNORECASE)
_REASON_RE = re.compile(r"reason:\s*(.+)", re.IGNORECASE)


def parse_assessment(text: str) -> tuple[str, Assessment | None]:
    """Split a directory reply into (visible text, assessment).

    Each field is matched on its own; a garbled field is None while the
    others still count. An opening marker with no closing marker takes the
    rest of the text as the block. No block at all gives (stripped text, None).
    """
    if not text:
        return "", None

    match = _BLOCK_RE.search(text)
    if match is None:
        return text.strip(), None

    block = match.group(1)
    assessment = Assessment()
    if m := _SHIFT_RE.search(block):
        assessment.relationship_shift = m.group(1).lower()  # type: ignore[assignment]
    if m := _DELTA_RE.search(block):
        assessment.influence_delta = int(m.group(1))
    if m := _CONFRONT_RE.search(block):
        assessment.confront_progress = int(m.group(1))
    if m := _REASON_RE.search(block):
        assessment.reason = m.group(1).strip()

    visible = (text[:match.start()] + text[match.end():]).strip()
    return visible, assessment


# ---------------------------------------------------------------------------
# Classifier JSON
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def _extract_json_object(text: str) -> dict:
    cleaned = text.strip()
    fenced = _FENCE_RE.search(cleaned)
    if fenced:
        cleaned = fenced.group(1).strip()
    start = cleaned.find("{")
    if start < 0:
        raise ValueError("no JSON object in classifier output")
    data, _ = json.JSONDecoder().raw_decode(cleaned, start)
    if not isinstance(data, dict):
        raise ValueError("classifier output is not an object")
    return data


def _coerce_progress(entries: object) -> list[ResolutionProgress]:
    if not isinstance(entries, list):
        return []
    result = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        voice_id = entry.get("voiceId") or entry.get("voice_id")
        value = entry.get("progress")
        if not voice_id or isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if isinstance(value, float) and not math.isfinite(value):
            continue
        result.append(ResolutionProgress(
            voice_id=str(voice_id),
            progress=max(0, min(10, round(value))),
        ))
    return result


def parse_classification(text: str) -> Classification:
    """Parse classifier output, coercing every field into its closed range.

    Unknown impact becomes "none", unknown themes are dropped, progress is
    rounded and clamped to [0, 10]. Anything unparseable yields the default.
    """
    try:
        data = _extract_json_object(text or "")
        impact = data.get("impact")
        themes = data.get("themes")
        summary = data.get("summary")
        return Classification(
            impact=impact if impact in IMPACT_LEVELS else "none",
            themes=[t for t in themes if isinstance(t, str) and t in ALL_THEMES]
            if isinstance(themes, list) else [],
            summary=summary if isinstance(summary, str) else "",
            resolution_progress=_coerce_progress(data.get("resolution_progress")),
        )
    except (ValueError, TypeError, AttributeError, OverflowError) as e:
        logger.warning("Classifier output unusable: %s", e)
        return Classification()


# ---------------------------------------------------------------------------
# Roster name resolution
# ---------------------------------------------------------------------------

_ARTICLE_RE = re.compile(r"^the\s+")


def normalize_name(name: str) -> str:
    """Lowercase, brackets dropped, underscores read as spaces, whitespace collapsed."""
    cleaned = name.replace("_", " ").strip("[] \t")
    return " ".join(cleaned.split()).lower()


def _strip_article(name: str) -> str:
    return _ARTICLE_RE.sub("", name)


def resolve_speaker(raw_name: str, roster: Sequence[Voice]) -> Voice | None:
    """Exact match first, then with a leading "the" removed from both sides."""
    wanted = normalize_name(raw_name)
    if not wanted:
        return None
    for voice in roster:
        if normalize_name(voice.name) == wanted:
            return voice
    bare = _strip_article(wanted)
    for voice in roster:
        if _strip_article(normalize_name(voice.name)) == bare:
            return voice
    return None


def resolve_mention(raw_name: str, roster: Sequence[Voice]) -> Voice | None:
    """First voice whose name contains raw_name or is contained in it."""
    wanted = normalize_name(raw_name)
    if not wanted:
        return None
    for voice in roster:
        name = normalize_name(voice.name)
        if wanted in name or _strip_article(name) in wanted:
            return voice
    return None


# ---------------------------------------------------------------------------
# Council response
# ---------------------------------------------------------------------------

DYNAMICS_MARKER = "[COUNCIL_DYNAMICS]"
INSIGHTS_MARKER = "[COUNCIL_INSIGHTS]"

_SECTION_ORDER = ("messages", "dynamics", "insights")
_MESSAGE_RE = re.compile(r"^\[?([^\]:\[]+?)\]?\s*:\s*(.+)$")
_DYNAMIC_RE = re.compile(r"(.+?)\s*(?:→|->)+\s*(.+?):\s*(.+)")
_INSIGHT_RE = re.compile(r"(.+?):\s*(.+)")
_NONE_RE = re.compile(r"^none\.?$", re.IGNORECASE)

MAX_OPINION_LEN = 60
MAX_INSIGHT_LEN = 120
MIN_INSIGHT_LEN = 6


def _is_none(raw: str) -> bool:
    return not raw.strip() or bool(_NONE_RE.match(raw.strip()))


def _split_sections(raw: str) -> tuple[list[str], str, str]:
    """Return (message lines, dynamics text, insights text).

    Sections only move forward; a marker for an earlier section is ignored
    and its line is treated as content of the current one.
    """
    lines = [line.strip() for line in raw.split("\n") if line.strip()]
    section = "messages"
    buckets: dict[str, list[str]] = {"messages": [], "dynamics": [], "insights": []}
    for line in lines:
        for name, marker in (("dynamics", DYNAMICS_MARKER), ("insights", INSIGHTS_MARKER)):
            if line.upper().startswith(marker) and _SECTION_ORDER.index(name) > _SECTION_ORDER.index(section):
                section = name
                rest = line[len(marker):].strip()
                if rest:
                    buckets[section].append(rest)
                break
        else:
            buckets[section].append(line)
    return buckets["messages"], "\n".join(buckets["dynamics"]), "\n".join(buckets["insights"])


def _parse_messages(lines: list[str], roster: Sequence[Voice]) -> list[CouncilMessage]:
    messages = []
    for line in lines:
        match = _MESSAGE_RE.match(line)
        if not match:
            continue
        voice = resolve_speaker(match.group(1), roster)
        content = match.group(2).strip()
        if voice is None or not content:
            continue
        messages.append(CouncilMessage(
            voice_id=voice.id,
            name=voice.name,
            arcana=voice.arcana,
            relationship=voice.relationship,
            content=content,
        ))
    return messages


def _parse_dynamics(raw: str, roster: Sequence[Voice]) -> list[Dynamic]:
    if _is_none(raw):
        return []
    dynamics = []
    for segment in re.split(r"[,;\n]", raw):
        match = _DYNAMIC_RE.search(segment)
        if not match:
            continue
        source = resolve_mention(match.group(1), roster)
        target = resolve_mention(match.group(2), roster)
        if source is None or target is None or source.id == target.id:
            continue
        dynamics.append(Dynamic(
            from_id=source.id,
            to_id=target.id,
            to_name=target.name,
            opinion=match.group(3).strip()[:MAX_OPINION_LEN],
        ))
    return dynamics


def _parse_insights(raw: str, roster: Sequence[Voice]) -> list[Insight]:
    if _is_none(raw):
        return []
    insights = []
    for segment in re.split(r"[;\n]", raw):
        match = _INSIGHT_RE.search(segment.strip())
        if not match:
            continue
        voice = resolve_mention(match.group(1), roster)
        text = match.group(2).strip()
        if voice is None or len(text) < MIN_INSIGHT_LEN:
            continue
        insights.append(Insight(voice_id=voice.id, name=voice.name, insight=text[:MAX_INSIGHT_LEN]))
    return insights


def parse_council_response(raw: str, roster: Sequence[Voice]) -> CouncilTurn:
    """Split one council completion into messages, dynamics and insights.

    Names the roster does not know are dropped silently. A section whose
    body is "none", or that is missing, yields an empty list.
    """
    if not raw:
        return CouncilTurn()
    message_lines, dynamics_raw, insights_raw = _split_sections(raw)
    return CouncilTurn(
        messages=_parse_messages(message_lines, roster),
        dynamics=_parse_dynamics(dynamics_raw, roster),
        insights=_parse_insights(insights_raw, roster),
    )
