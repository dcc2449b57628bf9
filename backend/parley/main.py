"""Parley application entry point.

Parley is a real-time chat backend: accounts, rooms, messages with
reactions, edits, replies, mentions, pins, favorites and file attachments,
served over a JSON HTTP API and a WebSocket event channel.

Modules:
    - auth: registration, login, identity tokens
    - rooms: room creation and lookup
    - messages: message lifecycle, delivery timers, HTTP routes
    - files: uploads and downloads
    - realtime: socket sessions, room registry, typing, fan-out
    - store: DuckDB persistence
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from parley.auth.router import router as auth_router
from parley.config import get_config
from parley.envelope import register_exception_handlers
from parley.files.router import router as files_router
from parley.messages.router import favorites_router
from parley.messages.router import router as messages_router
from parley.realtime.router import router as ws_router
from parley.rooms.router import router as rooms_router
from parley.services import Services, ensure_services

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Per-request / per-connection chatter from these is not useful here.
for _noisy in (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "multipart",
    "python_multipart",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build services on startup, stop timers and close the store on shutdown."""
    services = getattr(app.state, "services", None)
    config = services.config if services is not None else get_config()

    # Apply configured log level to the root logger.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    services = ensure_services(app)
    logger.info(
        "Parley ready on http://%s:%s (db=%s)",
        config.server.host, config.server.port, config.storage.db_path,
    )

    yield  # Application runs here

    await services.shutdown()
    app.state.services = None
    logger.info("Application shutdown complete")


def create_app(services: Optional[Services] = None) -> FastAPI:
    app = FastAPI(
        title="Parley API",
        description="Real-time chat backend",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    config = services.config if services is not None else get_config()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(auth_router)
    app.include_router(rooms_router)
    app.include_router(messages_router)
    app.include_router(favorites_router)
    app.include_router(files_router)
    app.include_router(ws_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint."""
        return {"status": "ok"}

    return app


app = create_app()
