import logging
import threading
from datetime import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import sessionmaker

from config import get_settings
from database import SessionLocal, session_scope
from recurrence import local_now
from reminders import Notifier, ReminderService, ScanResult


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

JOB_ID = "reminder_scan"


class SchedulerManager:
    """Owns the background reminder job.

    ``start`` runs a scan right away and then once per interval; ``stop``
    prevents any further scan from starting and leaves a scan that is already
    running to finish on its worker thread. At most one scan runs at a time,
    including across a stop and a quick restart.
    """

    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        settings = get_settings()
        self.timezone = settings.timezone
        self.interval_minutes = settings.reminder_interval_minutes
        self.session_factory = session_factory
        self.notifier = notifier
        self.clock = clock
        self.scheduler: Optional[BackgroundScheduler] = None
        self._stopped = threading.Event()
        self._stopped.set()
        self._lock = threading.Lock()
        self._scan_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def _run_job(self, source: str = "manual") -> Optional[ScanResult]:
        if self._stopped.is_set():
            logger.info(f"scheduler_run_skipped: source={source} reason=stopped")
            return None
        # a scan left over from a previous start may still be running
        if not self._scan_lock.acquire(blocking=False):
            logger.info(f"scheduler_run_skipped: source={source} reason=busy")
            return None
        try:
            logger.info(f"scheduler_run: source={source}")
            with session_scope(self.session_factory) as session:
                result = ReminderService(session, self.notifier).scan(self.clock())
        finally:
            self._scan_lock.release()
        logger.info(
            f"scheduler_run: source={source} users={result.users} "
            f"sent={result.sent} failed={result.failed}"
        )
        return result

    def start(self) -> None:
        with self._lock:
            if self.running:
                logger.info("Scheduler already running")
                return
            self._stopped.clear()
            self.scheduler = BackgroundScheduler(timezone=self.timezone)
            self.scheduler.add_job(
                self._run_job,
                IntervalTrigger(minutes=self.interval_minutes),
                args=["interval"],
                id=JOB_ID,
                replace_existing=True,
                next_run_time=datetime.now(ZoneInfo(self.timezone)),
                max_instances=1,
                coalesce=True,
                misfire_grace_time=300,
            )
            self.scheduler.start()
            logger.info(
                f"Scheduler started with reminder scan every {self.interval_minutes} minutes"
            )

    def stop(self) -> None:
        with self._lock:
            self._stopped.set()
            if self.running:
                self.scheduler.shutdown(wait=False)
                logger.info("Scheduler stopped")
