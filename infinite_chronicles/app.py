import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from infinite_chronicles.config import get_config
from infinite_chronicles.routes import router
from infinite_chronicles.session import GameSession, LLMFactory
from infinite_chronicles.storage import SaveStore

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def create_app(
    data_dir: Path | None = None, llm_factory: LLMFactory | None = None
) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

    app = FastAPI(title="Infinite Chronicles")
    app.state.data_dir = resolved
    app.state.session = GameSession(
        llm_factory=llm_factory,
        store=SaveStore(resolved),
        config=get_config(resolved),
    )
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
