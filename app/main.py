from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI

from app.api import router as lookup_router
from app.stream import router as stream_router
from logging_config import configure_logging
from services.engine import build_default_engine
from settings import Settings, get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    engine = build_default_engine()
    await engine.start()
    try:
        yield
    finally:
        await engine.stop()
        build_default_engine.cache_clear()


def create_stream_app() -> FastAPI:
    """Subscriber-facing app; owns the engine lifecycle."""
    configure_logging()
    app = FastAPI(
        title="Scale Aggregator",
        description="Aggregated live readings from networked scales over WebSocket.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(stream_router)
    return app


def create_lookup_app() -> FastAPI:
    """Optional request/response accessor sharing the stream app's engine."""
    configure_logging()
    app = FastAPI(
        title="Scale Aggregator Lookup",
        description="Read-only lookup of the latest reading by scale address.",
        version="0.1.0",
    )
    app.include_router(lookup_router)
    return app


async def serve(settings: Optional[Settings] = None) -> None:
    """Run the stream server and, when enabled, the lookup server in one loop."""
    settings = settings or get_settings()
    stream_server = uvicorn.Server(
        uvicorn.Config(
            create_stream_app(),
            host=settings.host,
            port=settings.port,
            log_config=None,
        )
    )

    lookup_server: Optional[uvicorn.Server] = None
    lookup_task: Optional[asyncio.Task[None]] = None
    if settings.enable_http_server:
        lookup_server = uvicorn.Server(
            uvicorn.Config(
                create_lookup_app(),
                host=settings.host,
                port=settings.http_port,
                log_config=None,
                lifespan="off",
            )
        )
        lookup_task = asyncio.create_task(lookup_server.serve(), name="lookup-server")
        logger.info("HTTP lookup server starting on port %d", settings.http_port)
    else:
        logger.info("HTTP lookup server disabled (ENABLE_HTTP_SERVER=false)")

    logger.info("WebSocket server starting on port %d", settings.port)
    try:
        await stream_server.serve()
    finally:
        if lookup_server is not None and lookup_task is not None:
            lookup_server.should_exit = True
            await lookup_task


app = create_stream_app()
