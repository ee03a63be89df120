from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.conditions import build_default_conditions
from services.prefetcher import build_default_prefetcher
from services.registry import build_default_registry
from services.transport import build_default_transport


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # Station configuration errors surface here and abort startup.
    conditions = build_default_conditions()
    prefetcher = build_default_prefetcher()
    prefetcher.load()
    try:
        yield
    finally:
        prefetcher.shutdown()
        conditions.shutdown()
        build_default_prefetcher.cache_clear()
        build_default_conditions.cache_clear()
        build_default_registry.cache_clear()
        if build_default_transport.cache_info().currsize:
            build_default_transport().close()
            build_default_transport.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Lake Conditions Feed",
        description="Normalized lake station telemetry and prefetched flow fields.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
