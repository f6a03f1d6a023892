"""FastAPI application factory for the lmhost server."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.routes import health, providers, streams, ws
from .services import get_session_manager
from .state import init_start_time

logger = logging.getLogger(__name__)

# (router, prefix, tag)
_ROUTERS = (
    (health.router, "", "Health"),
    (providers.router, "/api/v1", "Providers"),
    (streams.router, "/api/v1/streams", "Streams"),
    (ws.router, "/api/v1", "WebSocket"),
)


@asynccontextmanager
async def _serve(app: FastAPI) -> AsyncIterator[None]:
    init_start_time()
    yield

    # No stream may outlive the host
    manager = get_session_manager()
    aborted = manager.abort_all()
    if aborted:
        logger.info("Aborted %d active stream(s) on shutdown", aborted)
    await manager.wait_idle(timeout=5.0)


def create_app(
    title: str = "lmhost",
    debug: bool = False,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Build the lmhost API.

    Args:
        title: OpenAPI title
        debug: FastAPI debug mode
        cors_origins: Allowed origins for the UI process; None allows any
            origin without credentials
    """
    app = FastAPI(
        title=title,
        description="Lifecycle and streaming API for local model providers",
        version=__version__,
        debug=debug,
        lifespan=_serve,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=cors_origins is not None,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    for router, prefix, tag in _ROUTERS:
        app.include_router(router, prefix=prefix, tags=[tag])
    return app
