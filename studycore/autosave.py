"""
Periodic autosave of dirty session state.

Uses an APScheduler BackgroundScheduler with a single interval job. The job
never overlaps itself and missed runs collapse into one.
"""

import logging
import threading
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .constants import AUTOSAVE_INTERVAL_SECONDS

logger = logging.getLogger(__name__)

AUTOSAVE_JOB_ID = "studycore_autosave"


class AutosaveTimer:
    """
    Calls `flush` every `interval_seconds` until stopped.

    `flush` decides whether there is anything to push; the timer only keeps
    time. Errors raised by `flush` are logged and the job stays scheduled so
    the next run can retry.
    """

    def __init__(
        self,
        flush: Callable[[], bool],
        interval_seconds: float = AUTOSAVE_INTERVAL_SECONDS,
    ):
        if interval_seconds <= 0:
            raise ValueError("Autosave interval must be positive.")
        self._flush = flush
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[BackgroundScheduler] = None
        self._flush_thread_id: Optional[int] = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.is_running:
            raise ValueError("Autosave timer is already running.")
        scheduler = BackgroundScheduler(daemon=True)
        scheduler.add_job(
            self.tick,
            IntervalTrigger(seconds=self.interval_seconds),
            id=AUTOSAVE_JOB_ID,
            name="Session autosave",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.debug(f"Autosave started with a {self.interval_seconds}s interval")

    def stop(self, wait: bool = True) -> None:
        """
        Stop the job. With `wait`, a flush in progress finishes first, unless
        stop is called from that flush itself.
        """
        if threading.get_ident() == self._flush_thread_id:
            wait = False
        scheduler = self._scheduler
        self._scheduler = None
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=wait)
            logger.debug("Autosave stopped")

    def tick(self) -> bool:
        """Run one flush now. Returns whether anything was pushed."""
        self._flush_thread_id = threading.get_ident()
        try:
            return self._flush()
        except Exception:
            logger.exception("Autosave flush raised an unexpected error")
            return False
        finally:
            self._flush_thread_id = None
