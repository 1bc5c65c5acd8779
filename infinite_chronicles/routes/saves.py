"""Save slots, quick save, file export and file import endpoints."""

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from infinite_chronicles.storage import SLOT_COUNT, SaveStore, serialize_state

router = APIRouter()


def _check_slot(slot: int) -> None:
    if not 1 <= slot <= SLOT_COUNT:
        raise HTTPException(404, "Slot not found")


@router.get("/saves")
async def list_saves(request: Request):
    """Describe every save slot."""
    return request.app.state.session.list_saves()


@router.post("/saves/{slot}")
async def save_game(request: Request, slot: int):
    """Save the current game into a slot (overwrites)."""
    _check_slot(slot)
    session = request.app.state.session
    await session.save_game(slot)
    return session.snapshot()


@router.post("/saves/{slot}/load")
async def load_game(request: Request, slot: int):
    """Replace the current game with a slot's save."""
    _check_slot(slot)
    session = request.app.state.session
    await session.load_game(slot)
    return session.snapshot()


@router.post("/quicksave")
async def quick_save(request: Request):
    session = request.app.state.session
    await session.quick_save()
    return session.snapshot()


@router.post("/quicksave/load")
async def quick_load(request: Request):
    session = request.app.state.session
    await session.quick_load()
    return session.snapshot()


@router.delete("/saves/{slot}")
async def delete_save(request: Request, slot: int):
    """Delete a slot's save."""
    _check_slot(slot)
    if not await request.app.state.session.delete_save(slot):
        raise HTTPException(404, "Slot is empty")
    return {"ok": True}


@router.get("/export")
async def export_game(request: Request):
    """Download the current game as a save file."""
    state = request.app.state.session.state
    filename = SaveStore.export_file_name(state)
    return JSONResponse(
        serialize_state(state),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import")
async def import_game(request: Request, blob: dict):
    """Replace the current game with an uploaded save file."""
    session = request.app.state.session
    await session.import_blob(blob)
    return session.snapshot()
