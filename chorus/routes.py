"""FastAPI API endpoints under /api.

Endpoint groups: health and settings, chats, voices (per chat), scene context,
directory threads, council, story events. Everything chat-scoped is nested
under /api/chats/{chat_id}/ and runs against the chat's in-process Session.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from chorus.config import get_config, resolve_connection, update_config
from chorus.models import SceneContext, Voice
from chorus.session import Session
from chorus.social import (
    activate_council,
    check_outreach,
    clear_council_history,
    close_directory,
    deactivate_council,
    open_directory,
    process_story_event,
    run_council_turn,
    send_council_message,
    send_directory_message,
)

router = APIRouter()


# ── Request bodies ───────────────────────────────────────


class DirectoryMessageBody(BaseModel):
    message: str
    voice_id: str | None = None


class CouncilMessageBody(BaseModel):
    message: str


class StoryEventBody(BaseModel):
    message: str


# ── Session registry ─────────────────────────────────────


def _session(request: Request, chat_id: str) -> Session:
    """Get or create the chat's session, refreshing its config."""
    app_state = request.app.state
    config = get_config(app_state.data_dir)
    session = app_state.sessions.get(chat_id)
    if session is None:
        session = Session.load(app_state.storage, chat_id, config, app_state.llm)
        app_state.sessions[chat_id] = session
    session.config = config
    return session


def _require_connection(request: Request, session: Session) -> None:
    """Raise ConfigError if calls would go to an unconfigured provider."""
    if request.app.state.llm_injected:
        return
    resolve_connection(session.config)


def _dump(result) -> dict | None:
    return result.model_dump() if result is not None else None


# ── Health / settings ────────────────────────────────────


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(request: Request):
    """Get global settings (connections, tone, council pacing, outreach limits)."""
    return get_config(request.app.state.data_dir)


@router.patch("/settings")
async def update_settings(request: Request, body: dict):
    """Update global settings (partial merge)."""
    return update_config(request.app.state.data_dir, body)


# ── Voices / scene ───────────────────────────────────────


@router.get("/chats/{chat_id}/voices")
async def list_voices(request: Request, chat_id: str):
    """List the chat's voice deck."""
    return [v.model_dump() for v in _session(request, chat_id).state.voices]


@router.post("/chats/{chat_id}/voices", status_code=201)
async def add_voice(request: Request, chat_id: str, body: Voice):
    """Add a voice born by the host application."""
    session = _session(request, chat_id)
    if session.state.get_voice(body.id) is not None:
        raise HTTPException(409, f"Voice '{body.id}' already exists")
    session.state.voices.append(body)
    session.save()
    return body.model_dump()


@router.get("/chats")
async def list_chats(request: Request):
    """List chat ids that have saved voice state."""
    return request.app.state.storage.list_chats()


@router.delete("/chats/{chat_id}")
async def delete_chat(request: Request, chat_id: str):
    """Drop a chat's session and its saved voice state."""
    session = request.app.state.sessions.pop(chat_id, None)
    if session is not None:
        session.reset()
    if not request.app.state.storage.delete_chat(chat_id):
        raise HTTPException(404, f"Chat '{chat_id}' not found")
    return {"ok": True}


@router.put("/chats/{chat_id}/scene")
async def set_scene(request: Request, chat_id: str, body: SceneContext):
    """Replace the story context used in voice prompts."""
    _session(request, chat_id).scene = body
    return {"ok": True}


@router.post("/chats/{chat_id}/reset")
async def reset_session(request: Request, chat_id: str):
    """Clear channel working state (directory, council, outreach cooldown)."""
    _session(request, chat_id).reset()
    return {"ok": True}


# ── Directory ────────────────────────────────────────────


@router.post("/chats/{chat_id}/directory/{voice_id}/open")
async def directory_open(request: Request, chat_id: str, voice_id: str):
    """Open a voice's 1:1 thread, delivering its pending DM."""
    voice = open_directory(_session(request, chat_id), voice_id)
    return voice.model_dump()


@router.post("/chats/{chat_id}/directory/close")
async def directory_close(request: Request, chat_id: str):
    close_directory(_session(request, chat_id))
    return {"ok": True}


@router.post("/chats/{chat_id}/directory/message")
async def directory_message(request: Request, chat_id: str, body: DirectoryMessageBody):
    """Send a message in the open (or given) thread; returns {text, assessment}."""
    session = _session(request, chat_id)
    _require_connection(request, session)
    reply = await send_directory_message(session, body.message, body.voice_id)
    return reply.model_dump()


# ── Council ──────────────────────────────────────────────


@router.post("/chats/{chat_id}/council/activate")
async def council_activate(request: Request, chat_id: str):
    """Open the council; the first activation runs an opening turn."""
    session = _session(request, chat_id)
    if session.state.living_voices() and not session.council.initialized:
        _require_connection(request, session)
    return {"turn": _dump(await activate_council(session))}


@router.post("/chats/{chat_id}/council/deactivate")
async def council_deactivate(request: Request, chat_id: str):
    deactivate_council(_session(request, chat_id))
    return {"ok": True}


@router.post("/chats/{chat_id}/council/turn")
async def council_turn(request: Request, chat_id: str):
    """Take one council turn without user input."""
    session = _session(request, chat_id)
    _require_connection(request, session)
    return {"turn": _dump(await run_council_turn(session))}


@router.post("/chats/{chat_id}/council/message")
async def council_message(request: Request, chat_id: str, body: CouncilMessageBody):
    """Speak to the council; returns the voices' reaction."""
    if not body.message.strip():
        raise HTTPException(400, "Message is empty")
    session = _session(request, chat_id)
    _require_connection(request, session)
    return {"turn": _dump(await send_council_message(session, body.message))}


@router.post("/chats/{chat_id}/council/clear")
async def council_clear(request: Request, chat_id: str):
    clear_council_history(_session(request, chat_id))
    return {"ok": True}


# ── Story events ─────────────────────────────────────────


@router.post("/chats/{chat_id}/events")
async def story_event(request: Request, chat_id: str, body: StoryEventBody):
    """Classify a story message, then give voices a chance to reach out."""
    session = _session(request, chat_id)
    _require_connection(request, session)
    result = await process_story_event(session, body.message)
    return result.model_dump()


@router.post("/chats/{chat_id}/outreach/check")
async def outreach_check(request: Request, chat_id: str):
    """Run an outreach check with no classified event (cooldown still applies)."""
    session = _session(request, chat_id)
    _require_connection(request, session)
    return {"outreach": _dump(await check_outreach(session))}
