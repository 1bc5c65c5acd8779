"""Health check, game state and turn transition endpoints."""

from fastapi import APIRouter, Request

from infinite_chronicles.session import GameSession

from .models import ChoiceBody, ChooseBody, StartBody

router = APIRouter()


def _session(request: Request) -> GameSession:
    return request.app.state.session


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/state")
async def get_state(request: Request):
    """Current game state (credential omitted)."""
    return _session(request).snapshot()


@router.post("/game/start")
async def start_game(request: Request, body: StartBody):
    """Start a new game from a character profile."""
    session = _session(request)
    await session.start_game(body.profile, body.api_key)
    return session.snapshot()


@router.post("/game/choice")
async def make_choice(request: Request, body: ChoiceBody):
    """Submit free-text (or cheat) action for the next turn."""
    session = _session(request)
    await session.make_choice(body.text, body.is_cheat)
    return session.snapshot()


@router.post("/game/choose")
async def choose(request: Request, body: ChooseBody):
    """Submit one of the offered choices, rolling its skill check if it has one."""
    session = _session(request)
    await session.choose(body.choice, body.is_cheat)
    return session.snapshot()


@router.post("/game/undo")
async def undo(request: Request):
    """Step back one turn."""
    session = _session(request)
    await session.undo()
    return session.snapshot()


@router.post("/game/restart")
async def restart(request: Request):
    """Discard the current game."""
    session = _session(request)
    await session.restart()
    return session.snapshot()


@router.post("/game/cheat")
async def toggle_cheat(request: Request):
    """Toggle cheat mode."""
    session = _session(request)
    await session.toggle_cheat_mode()
    return session.snapshot()


@router.delete("/game/error")
async def clear_error(request: Request):
    """Dismiss the current error message."""
    session = _session(request)
    await session.clear_error()
    return session.snapshot()
