"""FastAPI API endpoints under /api.

Endpoint groups: health, game (state + turn transitions), saves (slots,
export, import), settings (engine config). The GameSession lives on
app.state.session; every game and save endpoint returns the session snapshot
(or the slot list) so the client can re-render.
"""

from fastapi import APIRouter

from .game import router as game_router
from .saves import router as saves_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(game_router)
router.include_router(saves_router)
router.include_router(settings_router)
