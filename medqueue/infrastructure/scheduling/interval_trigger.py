"""
APScheduler-backed trigger that invokes the expiry sweep on a fixed interval.
"""

import logging
from typing import Any, Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger as _APInterval

from ...application.ports.trigger import Trigger

logger = logging.getLogger(__name__)


class IntervalTrigger(Trigger):
    def __init__(self, seconds: int, scheduler: Optional[BackgroundScheduler] = None) -> None:
        if seconds <= 0:
            raise ValueError("Interval must be positive")
        self.seconds = seconds
        self._scheduler = scheduler or BackgroundScheduler(timezone="UTC")

    def on_tick(self, callback: Callable[[], Any]) -> None:
        name = getattr(callback, "__name__", "tick")
        self._scheduler.add_job(
            callback,
            _APInterval(seconds=self.seconds),
            id=f"medqueue-{name}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Scheduled %s every %ds", name, self.seconds)

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Interval trigger started")

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Interval trigger stopped")
