"""
ARQ background task: delete sessions past their expiry.

Runs every 15 minutes: from the ARQ worker for SQL storage, or inside the
API process (sweep_periodically) for memory storage. Safe to run alongside
request traffic and to run twice; it only ever removes rows that are
already expired.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog
from arq import cron
from arq.connections import RedisSettings

from app.core.config import get_settings
from app.repositories.base import Repositories

log = structlog.get_logger()

SWEEP_INTERVAL_SECONDS = 15 * 60


async def sweep_expired_sessions(ctx: dict) -> int:
    """Delete expired sessions. Returns the number removed."""
    repositories: Repositories = ctx["repositories"]
    removed = await repositories.sessions.delete_expired(datetime.now(timezone.utc))
    if removed:
        log.info("sessions.swept", count=removed)
    return removed


async def sweep_periodically(repositories: Repositories, interval_seconds: float = SWEEP_INTERVAL_SECONDS) -> None:
    """In-process sweep loop for the memory backend, which no worker can reach."""
    ctx = {"repositories": repositories}
    while True:
        try:
            await sweep_expired_sessions(ctx)
        except Exception:
            log.exception("sessions.sweep_failed")
        await asyncio.sleep(interval_seconds)


async def startup(ctx: dict) -> None:
    from app.core.logging import configure_logging
    from app.repositories.sql import create_sql_repositories_from_settings

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    ctx["repositories"] = create_sql_repositories_from_settings(settings)


async def shutdown(ctx: dict) -> None:
    repositories: Repositories | None = ctx.get("repositories")
    if repositories is not None:
        await repositories.aclose()


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration (``arq app.tasks.session_sweep.WorkerSettings``)."""

    functions = [sweep_expired_sessions]
    cron_jobs = [
        cron(sweep_expired_sessions, minute={0, 15, 30, 45}, run_at_startup=True),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
