import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from chorus.config import ConfigError, ConfiguredLLM
from chorus.llm import LLM
from chorus.routes import router
from chorus.social import VoiceNotFound
from chorus.storage import Storage

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def create_app(data_dir: Path | None = None, llm: LLM | None = None) -> FastAPI:
    """Build the API app.

    `llm` replaces the config-driven provider (tests, offline wiring checks).
    """
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))

    app = FastAPI(title="Chorus")
    app.state.data_dir = resolved
    app.state.storage = Storage(resolved)
    app.state.sessions = {}
    app.state.llm = llm or ConfiguredLLM(resolved)
    app.state.llm_injected = llm is not None
    app.include_router(router, prefix="/api")

    @app.exception_handler(ConfigError)
    async def config_error(request: Request, exc: ConfigError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(VoiceNotFound)
    async def voice_not_found(request: Request, exc: VoiceNotFound):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    return app


logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
