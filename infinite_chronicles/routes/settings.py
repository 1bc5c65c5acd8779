"""Engine settings endpoints (LLM connection, pacing, prompt sizes)."""

from fastapi import APIRouter, Request

from infinite_chronicles.config import update_config

router = APIRouter()


@router.get("/settings")
async def get_settings(request: Request):
    """Get the engine settings the running session uses."""
    return request.app.state.session.config


@router.patch("/settings")
async def update_settings(request: Request, body: dict):
    """Update engine settings (partial merge). Applies from the next turn."""
    config = update_config(request.app.state.data_dir, body)
    request.app.state.session.apply_config(config)
    return config
