"""
Monorepo Starter API Server

Entry point for the FastAPI application.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import Optional

import httpx
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import router as api_router
from app.core.config import Settings, get_settings
from app.core.container import build_container
from app.core.errors import register_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from app.repositories.base import Repositories
from app.tasks.session_sweep import sweep_periodically

log = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    *,
    repositories: Optional[Repositories] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)
    container = build_container(settings, repositories=repositories, http_client=http_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info("server.starting", env=settings.app_env, storage=settings.storage_backend, port=settings.port)
        sweeper: Optional[asyncio.Task] = None
        if settings.storage_backend == "memory":
            # The ARQ worker only reaches SQL storage; memory sessions are swept here
            sweeper = asyncio.create_task(sweep_periodically(container.repositories))
        app.state.session_sweeper = sweeper
        yield
        log.info("server.shutting_down")
        if sweeper is not None:
            sweeper.cancel()
            with suppress(asyncio.CancelledError):
                await sweeper
        await container.aclose()

    app = FastAPI(
        title="Monorepo Starter API",
        description="Authentication, sessions and example resources for the monorepo starter.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.container = container

    register_exception_handlers(app, expose_internal=settings.is_development)

    # Middleware (last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.is_production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(api_router, prefix="/api")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check endpoint for startup probes."""
        return {"status": "ready", "storage": settings.storage_backend}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("app.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
