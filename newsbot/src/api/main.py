"""
NewsBot - FastAPI Application
===============================
Application factory and process entry point.

Lifespan:
    startup   build the ``ServiceContainer``, ensure MongoDB TTL indexes,
              start the ``NewsRefreshWorker`` when ``REFRESH_ENABLED``.
    shutdown  stop the refresh worker.

A MongoDB outage at startup is logged, not fatal: ``/health`` reports
the session store as not ready and chat turns answer with the canned
degraded reply until it recovers.

Usage:
    uvicorn newsbot.src.api.main:app --port 8000
    python -m newsbot.src.api.main
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from newsbot.config.settings import settings
from newsbot.src.api.dependencies import ServiceContainer, build_services
from newsbot.src.api.errors import register_exception_handlers
from newsbot.src.api.routes import admin_router, chat_router, health_router, search_router
from newsbot.src.utils.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    t_start = time.perf_counter()
    services: ServiceContainer = build_services()
    app.state.services = services

    try:
        await services.sessions.ensure_indexes()
        await services.cache.ensure_indexes()
    except Exception as exc:
        logger.error("MongoDB index setup failed (%s) — continuing; sessions may be unavailable.", exc)

    if settings.REFRESH_ENABLED:
        services.refresh_worker.start()

    logger.info("NewsBot API ready in %.1fms (env=%s).", (time.perf_counter() - t_start) * 1000, settings.ENV)
    yield

    await services.refresh_worker.stop()
    logger.info("NewsBot API shut down.")


def create_app() -> FastAPI:
    app = FastAPI(title="NewsBot RAG API", description="Conversational news assistant with retrieval-augmented answers", version="1.0.0", lifespan=lifespan)

    app.add_middleware(CORSMiddleware, allow_origins=settings.CORS_ORIGINS, allow_credentials=True, allow_methods=["*"], allow_headers=["*"])
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(chat_router)
    app.include_router(search_router)
    app.include_router(admin_router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("newsbot.src.api.main:app", host=settings.API_HOST, port=settings.API_PORT)
