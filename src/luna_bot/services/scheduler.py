"""APScheduler-based background job service."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from luna_bot.log import get_logger

logger = get_logger(__name__)


class SchedulerService:
    """Runs the bot's periodic jobs (flush, retention sweep, presence) on the event loop."""

    def __init__(self, timezone: str = "UTC"):
        self._timezone = timezone
        self._scheduler = AsyncIOScheduler(timezone=timezone)

    async def start(self) -> None:
        self._scheduler.start()
        logger.info("scheduler_started", timezone=self._timezone)

    async def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            # AsyncIOScheduler applies shutdown on the next loop iteration
            await asyncio.sleep(0)
        logger.info("scheduler_stopped")

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def add_interval_job(
        self,
        seconds: float,
        callback: Callable[..., Coroutine[Any, Any, None]],
        job_id: str,
        **kwargs: Any,
    ) -> str:
        """Add a recurring job. Re-adding an existing ``job_id`` replaces it."""
        self._scheduler.add_job(
            self._guarded,
            IntervalTrigger(seconds=seconds),
            id=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            kwargs={"job_id": job_id, "callback": callback, "kwargs": kwargs},
        )
        logger.info("interval_job_added", job_id=job_id, seconds=seconds)
        return job_id

    def remove_job(self, job_id: str) -> bool:
        """Remove a scheduled job. Returns True if found and removed."""
        if self._scheduler.get_job(job_id) is None:
            return False
        self._scheduler.remove_job(job_id)
        logger.info("job_removed", job_id=job_id)
        return True

    def list_jobs(self) -> list[dict[str, Optional[str]]]:
        return [
            {
                "id": job.id,
                "next_run_time": str(job.next_run_time) if job.next_run_time else None,
                "trigger": str(job.trigger),
            }
            for job in self._scheduler.get_jobs()
        ]

    @staticmethod
    async def _guarded(
        job_id: str,
        callback: Callable[..., Coroutine[Any, Any, None]],
        kwargs: dict[str, Any],
    ) -> None:
        try:
            await callback(**kwargs)
        except Exception as e:
            logger.error("scheduled_job_error", job_id=job_id, error=str(e))
