"""
Timer handles on top of APScheduler.
Each handle belongs to whoever armed it and is cancelled by that owner.
"""
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger("focusup.scheduler")


class TimerHandle:
    """Cancelable reference to one scheduled job"""

    def __init__(self, scheduler: BaseScheduler, job_id: str):
        self.scheduler = scheduler
        self.job_id = job_id
        self.cancelled = False

    def cancel(self) -> None:
        """Remove the job; safe to call more than once or after it ran"""
        if self.cancelled:
            return
        self.cancelled = True
        try:
            self.scheduler.remove_job(self.job_id)
        except JobLookupError:
            # One-shot jobs are dropped by the scheduler after running
            pass


class SchedulerTimers:
    """
    Recurring and one-shot timers backed by an APScheduler scheduler.

    On an AsyncIOScheduler jobs are wrapped as coroutines so they run on
    the event loop thread instead of the default thread pool; session
    state is then only ever touched from one thread.
    """

    def __init__(self, scheduler: BaseScheduler):
        self.scheduler = scheduler

    def call_every(self, seconds: float, func: Callable[[], None], name: str = "tick") -> TimerHandle:
        job_id = f"{name}-{uuid.uuid4().hex}"
        self.scheduler.add_job(
            self._wrap(func),
            IntervalTrigger(seconds=seconds),
            id=job_id,
            coalesce=True,
            max_instances=1,
        )
        logger.debug(f"Scheduled recurring job {job_id} every {seconds}s")
        return TimerHandle(self.scheduler, job_id)

    def call_later(self, seconds: float, func: Callable[[], None], name: str = "timeout") -> TimerHandle:
        job_id = f"{name}-{uuid.uuid4().hex}"
        self.scheduler.add_job(
            self._wrap(func),
            DateTrigger(run_date=datetime.now() + timedelta(seconds=seconds)),
            id=job_id,
            misfire_grace_time=None,
        )
        logger.debug(f"Scheduled one-shot job {job_id} in {seconds}s")
        return TimerHandle(self.scheduler, job_id)

    def _wrap(self, func: Callable[[], None]) -> Callable:
        if not isinstance(self.scheduler, AsyncIOScheduler):
            return func

        async def run_on_loop():
            func()

        return run_on_loop
