"""APScheduler wrapper repeating feedmailer runs on an interval."""

from __future__ import annotations

from typing import Callable

import structlog
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

RUN_JOB_ID = "feedmailer::run"


class APSchedulerAdapter:
    """Own the scheduler used by ``feedmailer watch``.

    Per-source due-ness is still decided by each source's refresh rule; the
    interval only sets how often sources are looked at.
    """

    def __init__(self, scheduler: BlockingScheduler | None = None) -> None:
        self.scheduler = scheduler or BlockingScheduler()
        self.logger = structlog.get_logger("feedmailer.scheduler")

    def schedule_runs(self, callback: Callable[[], None], every_minutes: float) -> None:
        if every_minutes <= 0:
            raise ValueError("Interval must be positive")
        trigger = self._build_trigger(every_minutes)
        self.scheduler.add_job(
            callback,
            trigger=trigger,
            id=RUN_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info("job_scheduled", every_minutes=every_minutes)

    def start(self) -> None:
        self.logger.info("apscheduler_started")
        self.scheduler.start()

    def shutdown(self) -> None:
        self.scheduler.shutdown(wait=False)
        self.logger.info("apscheduler_stopped")

    @staticmethod
    def _build_trigger(every_minutes: float) -> IntervalTrigger:
        return IntervalTrigger(seconds=every_minutes * 60)

    def list_jobs(self) -> list[dict]:
        return [
            {"id": job.id, "next_run_time": getattr(job, "next_run_time", None), "trigger": str(job.trigger)}
            for job in self.scheduler.get_jobs()
        ]


__all__ = ["APSchedulerAdapter", "RUN_JOB_ID"]
