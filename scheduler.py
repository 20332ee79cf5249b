import logging
from typing import Any, Callable, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class SchedulerManager:
    """Timer jobs for the client side (cache polling, simulated feed).

    Runs on the asyncio event loop, so job callbacks interleave with other
    coroutines only at await points.
    """

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None) -> None:
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def add_interval_job(
        self,
        func: Callable[..., Any],
        seconds: float,
        job_id: str,
        *,
        args: Optional[Sequence[Any]] = None,
    ) -> None:
        trigger = IntervalTrigger(seconds=seconds)
        self.scheduler.add_job(
            func,
            trigger,
            args=list(args or []),
            id=job_id,
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=int(max(seconds, 1)),
        )
        logger.info(f"scheduler_job_added: id={job_id} every_secs={seconds:.1f}")

    def remove_job(self, job_id: str) -> None:
        if self.scheduler.get_job(job_id) is not None:
            self.scheduler.remove_job(job_id)
            logger.info(f"scheduler_job_removed: id={job_id}")

    def job_ids(self) -> list[str]:
        return [job.id for job in self.scheduler.get_jobs()]

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
