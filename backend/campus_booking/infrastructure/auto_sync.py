"""Periodic slot resynchronization for space/date pairs being observed."""
from __future__ import annotations

import asyncio
import datetime as dt
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..domain.repositories import LocalCache, RemoteStore
from ..usecases import slots as slot_usecase

logger = logging.getLogger(__name__)


def job_id(space_id: str, on_date: dt.date) -> str:
    return f"slot-sync:{space_id}:{on_date.isoformat()}"


class SlotAutoSync:
    """Keeps one interval job per watched space/date while observers exist."""

    def __init__(
        self,
        remote: RemoteStore,
        cache: LocalCache,
        *,
        interval_seconds: int = 10,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self.remote = remote
        self.cache = cache
        self.interval_seconds = interval_seconds
        self.scheduler = scheduler or AsyncIOScheduler()
        self._watchers: dict[str, int] = {}

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        if self.scheduler.running:
            logger.warning("Slot auto-sync is already running")
            return
        self.scheduler.start()
        logger.info("Slot auto-sync started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        if not self.scheduler.running:
            return
        self.scheduler.remove_all_jobs()
        self._watchers.clear()
        self.scheduler.shutdown(wait=False)
        # AsyncIOScheduler finishes shutting down in a loop callback
        await asyncio.sleep(0)
        logger.info("Slot auto-sync stopped")

    def watcher_count(self, space_id: str, on_date: dt.date) -> int:
        return self._watchers.get(job_id(space_id, on_date), 0)

    def watch(self, space_id: str, on_date: dt.date) -> None:
        key = job_id(space_id, on_date)
        self._watchers[key] = self._watchers.get(key, 0) + 1
        if self._watchers[key] > 1:
            return
        self.scheduler.add_job(
            self._sync,
            IntervalTrigger(seconds=self.interval_seconds),
            args=[space_id, on_date],
            id=key,
            name=f"Sync slots for {space_id} on {on_date.isoformat()}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.debug("auto-sync scheduled for %s", key)

    def unwatch(self, space_id: str, on_date: dt.date) -> None:
        key = job_id(space_id, on_date)
        remaining = self._watchers.get(key, 0) - 1
        if remaining > 0:
            self._watchers[key] = remaining
            return
        self._watchers.pop(key, None)
        if self.scheduler.get_job(key) is not None:
            self.scheduler.remove_job(key)
        logger.debug("auto-sync cancelled for %s", key)

    @asynccontextmanager
    async def watching(self, space_id: str, on_date: dt.date) -> AsyncIterator[None]:
        self.watch(space_id, on_date)
        try:
            yield
        finally:
            self.unwatch(space_id, on_date)

    async def _sync(self, space_id: str, on_date: dt.date) -> None:
        await slot_usecase.sync_time_slots(self.remote, self.cache, space_id=space_id, on_date=on_date)
