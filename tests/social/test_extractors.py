"""Tests for the tolerant response parsers."""

import pytest

from chorus.models import Voice
from chorus.social.extractors import (
    Classification,
    normalize_name,
    parse_assessment,
    parse_classification,
    parse_council_response,
    resolve_mention,
    resolve_speaker,
)


# ── Assessment block ─────────────────────────────────────


class TestParseAssessment:
    def test_full_block(self) -> None:
        text, a = parse_assessment(
            "hello\n[ASSESSMENT]\nrelationship_shift: warmer\ninfluence_delta: 3\nreason: test\n[/ASSESSMENT]"
        )
        assert text == "hello"
        assert a.relationship_shift == "warmer"
        assert a.influence_delta == 3
        assert a.reason == "test"
        assert a.confront_progress is None

    def test_no_block(self) -> None:
        assert parse_assessment("  just talking  ") == ("just talking", None)

    def test_empty_input(self) -> None:
        assert parse_assessment("") == ("", None)

    def test_partial_block(self) -> None:
        _, a = parse_assessment("ok [ASSESSMENT]\nrelationship_shift: sideways\ninfluence_delta: -5\n[/ASSESSMENT]")
        assert a.relationship_shift is None
        assert a.influence_delta == -5
        assert a.is_partial
        assert not a.is_empty

    def test_empty_block_is_distinct_from_missing(self) -> None:
        text, a = parse_assessment("Fine.\n[ASSESSMENT]\ngarbage\n[/ASSESSMENT]")
        assert text == "Fine."
        assert a is not None
        assert a.is_empty

    def test_confront_progress(self) -> None:
        _, a = parse_assessment(
            "[ASSESSMENT]\nrelationship_shift: none\ninfluence_delta: +2\n"
            "confront_progress: 7\nreason: faced it\n[/ASSESSMENT]"
        )
        assert a.relationship_shift == "none"
        assert a.influence_delta == 2
        assert a.confront_progress == 7
        assert a.fields_found == 4

    def test_out_of_range_delta_kept_raw(self) -> None:
        """Clamping is the ledger's job, not the parser's."""
        _, a = parse_assessment("x\n[ASSESSMENT]\ninfluence_delta: 40\n[/ASSESSMENT]")
        assert a.influence_delta == 40

    def test_block_in_the_middle(self) -> None:
        text, _ = parse_assessment("Before.\n[ASSESSMENT]\nreason: r\n[/ASSESSMENT]\nAfter.")
        assert text == "Before.\n\nAfter."

    def test_unterminated_block_runs_to_end(self) -> None:
        text, a = parse_assessment("Go away.\n[ASSESSMENT]\nrelationship_shift: colder")
        assert text == "Go away."
        assert a.relationship_shift == "colder"

    def test_case_insensitive_markers(self) -> None:
        text, a = parse_assessment("Hm.\n[assessment]\nrelationship_shift: MUCH_COLDER\n[/assessment]")
        assert text == "Hm."
        assert a.relationship_shift == "much_colder"


# ── Classifier JSON ──────────────────────────────────────


class TestParseClassification:
    def test_fenced_json_unknown_theme_dropped(self) -> None:
        result = parse_classification('```json\n{"impact":"critical","themes":["x"],"summary":"s"}\n```')
        assert result == Classification(impact="critical", themes=[], summary="s", resolution_progress=[])

    def test_garbage_gives_safe_default(self) -> None:
        assert parse_classification("I think it was sad?") == Classification()
        assert parse_classification("") == Classification()
        assert parse_classification("{not json") == Classification()

    def test_json_with_surrounding_prose(self) -> None:
        result = parse_classification(
            'Sure! {"impact": "minor", "themes": ["guilt", "trust", 7], "summary": ""} Hope that helps {x}'
        )
        assert result.impact == "minor"
        assert result.themes == ["guilt", "trust"]

    def test_unknown_impact_coerced_to_none(self) -> None:
        assert parse_classification('{"impact": "apocalyptic"}').impact == "none"

    def test_non_string_summary(self) -> None:
        assert parse_classification('{"impact": "minor", "summary": 12}').summary == ""

    def test_resolution_progress_rounded_and_clamped(self) -> None:
        result = parse_classification(
            '{"impact": "significant", "themes": [], "summary": "x", "resolution_progress": ['
            '{"voiceId": "moth", "progress": 4.6},'
            '{"voiceId": "critic", "progress": 25},'
            '{"voiceId": "wren", "progress": -3},'
            '{"voiceId": "", "progress": 5},'
            '{"voiceId": "bool", "progress": true},'
            '{"voiceId": "str", "progress": "5"}'
            ']}'
        )
        assert [(p.voice_id, p.progress) for p in result.resolution_progress] == [
            ("moth", 5), ("critic", 10), ("wren", 0),
        ]

    def test_non_finite_progress_dropped_alone(self) -> None:
        result = parse_classification(
            '{"impact": "critical", "themes": ["grief"], "summary": "gone",'
            ' "resolution_progress": [{"voiceId": "a", "progress": NaN},'
            ' {"voiceId": "b", "progress": Infinity}, {"voiceId": "c", "progress": 4}]}'
        )
        assert result.impact == "critical"
        assert result.themes == ["grief"]
        assert [(p.voice_id, p.progress) for p in result.resolution_progress] == [("c", 4)]

    def test_first_object_is_used(self) -> None:
        assert parse_classification('[{"impact": "critical"}]').impact == "critical"
        assert parse_classification('["critical"]') == Classification()


# ── Name resolution ──────────────────────────────────────


ROSTER = [
    Voice(id="a", name="Voice A"),
    Voice(id="critic", name="The Critic"),
    Voice(id="moth", name="Moth"),
]


def test_normalize_name():
    assert normalize_name("[VOICE_A]") == "voice a"
    assert normalize_name("  The   Critic ") == "the critic"


@pytest.mark.parametrize("raw, expected", [
    ("Voice A", "a"),
    ("VOICE_A", "a"),
    ("the critic", "critic"),
    ("Critic", "critic"),
    ("The Moth", "moth"),
    ("Crit", None),
    ("Nobody", None),
    ("", None),
])
def test_resolve_speaker(raw, expected):
    voice = resolve_speaker(raw, ROSTER)
    assert (voice.id if voice else None) == expected


@pytest.mark.parametrize("raw, expected", [
    ("Crit", "critic"),
    ("the critic's echo", "critic"),
    ("VOICE_A", "a"),
    ("Nobody", None),
])
def test_resolve_mention(raw, expected):
    voice = resolve_mention(raw, ROSTER)
    assert (voice.id if voice else None) == expected


# ── Council response ─────────────────────────────────────


class TestParseCouncilResponse:
    def test_bracketed_speaker_with_none_sections(self) -> None:
        turn = parse_council_response(
            "[VOICE_A]: hi\n[COUNCIL_DYNAMICS] none\n[COUNCIL_INSIGHTS] none", ROSTER
        )
        assert len(turn.messages) == 1
        assert turn.messages[0].voice_id == "a"
        assert turn.messages[0].content == "hi"
        assert turn.dynamics == []
        assert turn.insights == []

    def test_unknown_speakers_dropped(self) -> None:
        turn = parse_council_response("[GHOST]: boo\nMoth: light?\nThe Critic: Pathetic.", ROSTER)
        assert [m.voice_id for m in turn.messages] == ["moth", "critic"]

    def test_lines_without_colon_ignored(self) -> None:
        turn = parse_council_response("*silence*\nMoth: ...light", ROSTER)
        assert [m.content for m in turn.messages] == ["...light"]

    def test_dynamics(self) -> None:
        turn = parse_council_response(
            "Moth: hm\n[COUNCIL_DYNAMICS]\n"
            "Critic → Moth: dismissive — ignored them; Moth -> The Critic: wary\n"
            "Moth → Moth: self-loathing",
            ROSTER,
        )
        assert [(d.from_id, d.to_id, d.opinion) for d in turn.dynamics] == [
            ("critic", "moth", "dismissive — ignored them"),
            ("moth", "critic", "wary"),
        ]
        assert turn.dynamics[0].to_name == "Moth"

    def test_dynamics_opinion_truncated(self) -> None:
        turn = parse_council_response("[COUNCIL_DYNAMICS] Moth → Critic: " + "z" * 100, ROSTER)
        assert len(turn.dynamics[0].opinion) == 60

    def test_insights(self) -> None:
        turn = parse_council_response(
            "[COUNCIL_DYNAMICS] none\n[COUNCIL_INSIGHTS]\n"
            "Critic: admitted it might be wrong about trust; Moth: ok\n"
            "Nobody: realised everything",
            ROSTER,
        )
        assert len(turn.insights) == 1
        assert turn.insights[0].voice_id == "critic"
        assert turn.insights[0].insight == "admitted it might be wrong about trust"

    def test_insight_truncated(self) -> None:
        turn = parse_council_response("[COUNCIL_INSIGHTS] Moth: " + "y" * 200, ROSTER)
        assert len(turn.insights[0].insight) == 120

    def test_sections_only_move_forward(self) -> None:
        turn = parse_council_response(
            "[COUNCIL_INSIGHTS] Moth: let go of something small\n"
            "[COUNCIL_DYNAMICS] Moth → Critic: fond\n"
            "Critic: too late",
            ROSTER,
        )
        assert turn.messages == []
        assert turn.dynamics == []
        assert [i.voice_id for i in turn.insights] == ["moth", "critic"]

    def test_none_with_period(self) -> None:
        turn = parse_council_response("Moth: x\n[COUNCIL_DYNAMICS] None.\n[COUNCIL_INSIGHTS] NONE", ROSTER)
        assert turn.dynamics == [] and turn.insights == []

    def test_missing_sections_and_empty_input(self) -> None:
        turn = parse_council_response("Moth: only me", ROSTER)
        assert turn.dynamics == [] and turn.insights == []
        assert parse_council_response("", ROSTER).messages == []
