"""
Scheduler Service

Runs the scheduled video refresh every REFRESH_INTERVAL_HOURS (default 12).

Single-leader election via Postgres advisory locks:
- Only the instance that acquires the lock executes the tick
- Other instances silently skip
- Controlled by SCHEDULER_ENABLED env (default: true)
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from viewtrack.services.orchestrator import RunTrigger

if TYPE_CHECKING:
    from viewtrack.services.container import ServiceContainer

logger = logging.getLogger("scheduler")

# Advisory lock key (arbitrary int64, unique per job type)
LOCK_REFRESH_VIDEOS = 910_001


class SchedulerService:
    """Periodic scheduled refresh, one leader per tick."""

    def __init__(self, container: "ServiceContainer"):
        self.scheduler = AsyncIOScheduler()
        self._container = container
        self._running = False

    async def _try_advisory_lock(self, conn: AsyncConnection, lock_key: int) -> bool:
        """Return True if this instance is leader for this tick."""
        result = await conn.execute(text(f"SELECT pg_try_advisory_lock({lock_key})"))
        return bool(result.scalar())

    async def _release_advisory_lock(self, conn: AsyncConnection, lock_key: int) -> None:
        await conn.execute(text(f"SELECT pg_advisory_unlock({lock_key})"))

    def start(self) -> None:
        settings = self._container.settings
        if not settings.scheduler_enabled:
            logger.info("Scheduler DISABLED by SCHEDULER_ENABLED=false, skipping start")
            return
        if self._running:
            return

        self.scheduler.add_job(
            self._run_refresh_videos,
            IntervalTrigger(hours=settings.refresh_interval_hours),
            id="refresh_videos",
            name="Scheduled video refresh",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        self._running = True
        logger.info(f"Scheduler started: video refresh every {settings.refresh_interval_hours}h")

    def stop(self) -> None:
        if not self._running:
            return
        self.scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Scheduler stopped")

    def is_running(self) -> bool:
        return self._running

    async def _run_refresh_videos(self) -> dict | None:
        """Protected by advisory lock on Postgres; other databases run unguarded."""
        if not self._container.settings.is_postgres:
            return await self._refresh_once()

        async with self._container.engine.connect() as conn:
            if not await self._try_advisory_lock(conn, LOCK_REFRESH_VIDEOS):
                logger.debug("[refresh_videos] Advisory lock not acquired, another instance is leader, skipping tick")
                return None
            try:
                logger.info("[refresh_videos] LEADER, running scheduled refresh")
                return await self._refresh_once()
            finally:
                await self._release_advisory_lock(conn, LOCK_REFRESH_VIDEOS)

    async def _refresh_once(self) -> dict | None:
        try:
            summary = await self._container.orchestrator.run(RunTrigger(manual=False))
        except Exception:
            logger.exception("[refresh_videos] scheduled refresh failed")
            return None
        return summary.model_dump(by_alias=True)
