"""Tests for Handlebars prompt rendering: helpers, context builders and the
default voice templates."""

import pytest

from chorus.models import Resolution, SceneContext, SceneMessage, Voice
from chorus.prompts import (
    DEFAULT_CLASSIFIER_REQUEST,
    DEFAULT_DIRECTORY_PROMPT,
    PromptError,
    persona_excerpt,
    render_prompt,
    scene_excerpt,
    theme_list,
    voice_context,
)


# ── render_prompt ────────────────────────────────────────────


def test_render_simple_variable():
    assert render_prompt("Hello {{name}}!", {"name": "World"}) == "Hello World!"


def test_triple_stash_not_escaped():
    assert render_prompt("{{{text}}}", {"text": "<b> & \"q\""}) == "<b> & \"q\""


def test_render_invalid_template():
    with pytest.raises(PromptError):
        render_prompt("{{> missing_partial}}", {})


def test_helper_last():
    tpl = "{{#last items 2}}{{this}} {{/last}}"
    assert render_prompt(tpl, {"items": ["a", "b", "c"]}) == "b c "


def test_helper_or():
    assert render_prompt('{{{or x "N/A"}}}', {"x": ""}) == "N/A"
    assert render_prompt('{{{or x "N/A"}}}', {"x": "set"}) == "set"


# ── context builders ─────────────────────────────────────────


def _scene() -> SceneContext:
    return SceneContext(
        persona="P" * 700,
        messages=[
            SceneMessage(is_user=True, text="first"),
            SceneMessage(name="Mara", text="x" * 400),
            SceneMessage(is_user=True, text="third"),
            SceneMessage(name="", text="fourth"),
        ],
    )


def test_scene_excerpt_last_three_truncated():
    text = scene_excerpt(_scene(), 300)
    lines = text.split("\n")
    assert len(lines) == 3
    assert lines[0] == "Mara: " + "x" * 300
    assert lines[1] == "{{user}}: third"
    assert lines[2] == "{{char}}: fourth"


def test_scene_excerpt_empty():
    assert scene_excerpt(None, 300) == ""
    assert scene_excerpt(SceneContext(), 300) == ""


def test_persona_excerpt_truncated():
    assert len(persona_excerpt(_scene(), 600)) == 600
    assert persona_excerpt(None, 600) == ""


def test_voice_context_names_known_opinions_only():
    voice = Voice(id="a", name="A", relationships={"b": "allied", "gone": "hated"})
    ctx = voice_context(voice, {"b": "The Moth"})
    assert ctx["opinions"] == [{"name": "The Moth", "opinion": "allied"}]
    assert "directory_history" not in ctx


def test_theme_list_groups():
    assert theme_list().splitlines()[0].startswith("EMOTIONAL: heartbreak")


# ── default templates ────────────────────────────────────────


def _directory_ctx(voice: Voice) -> dict:
    return {
        "voice": voice_context(voice),
        "user": "{{user}}",
        "tone": "Raw: blunt",
        "persona": "",
        "scene": "",
        "confront": voice.resolution is not None and voice.resolution.type == "confront",
    }


def test_directory_prompt_keeps_user_placeholder():
    voice = Voice(id="critic", name="The Critic", personality="Cutting")
    text = render_prompt(DEFAULT_DIRECTORY_PROMPT, _directory_ctx(voice))
    assert "You are The Critic, a fragment of {{user}}'s psyche" in text
    assert "(No persona available)" in text
    assert "Obsession: N/A" in text
    assert "[ASSESSMENT]" in text
    assert "confront_progress" not in text


def test_directory_prompt_confront_section():
    voice = Voice(
        id="critic", name="The Critic",
        resolution=Resolution(type="confront", condition="admit the failure"),
    )
    text = render_prompt(DEFAULT_DIRECTORY_PROMPT, _directory_ctx(voice))
    assert 'Your resolution condition is: "admit the failure"' in text
    assert "confront_progress: (integer 0-10" in text


def test_classifier_request_candidates_section():
    ctx = {"message": "She lied.", "candidates": [
        {"id": "moth", "name": "The Moth", "type": "heal", "condition": "be forgiven"},
    ]}
    text = render_prompt(DEFAULT_CLASSIFIER_REQUEST, ctx)
    assert '"resolution_progress"' in text
    assert 'voiceId "moth" (The Moth, heal): be forgiven' in text

    plain = render_prompt(DEFAULT_CLASSIFIER_REQUEST, {"message": "She lied.", "candidates": []})
    assert "resolution_progress" not in plain
