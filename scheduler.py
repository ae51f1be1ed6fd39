import logging
import threading
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler

from reminders import ReminderEngine, SweepResult

logger = logging.getLogger(__name__)

IDLE = "idle"
RUNNING = "running"

SWEEP_JOB_ID = "reminder-sweep"
INITIAL_JOB_ID = "reminder-sweep-initial"


class ReminderScheduler:
    """Runs the reminder sweep on a fixed interval, plus once shortly after
    start-up.

    A timer fire that lands while a sweep is running is skipped
    (``max_instances=1``), not queued.
    """

    def __init__(
        self,
        engine: ReminderEngine,
        interval_minutes: int = 60,
        warmup_seconds: int = 5,
        scheduler=None,
    ):
        self.engine = engine
        self.interval_minutes = interval_minutes
        self.warmup_seconds = warmup_seconds
        self._scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self._state_lock = threading.Lock()
        self._active = 0
        self.last_result = None

    @property
    def state(self) -> str:
        return RUNNING if self._active else IDLE

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self):
        if self.running:
            return
        self._scheduler.add_job(
            self._tick,
            "interval",
            minutes=self.interval_minutes,
            id=SWEEP_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.add_job(
            self._tick,
            "date",
            run_date=datetime.now(timezone.utc) + timedelta(seconds=self.warmup_seconds),
            id=INITIAL_JOB_ID,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "Reminder scheduler started (every %d minutes)", self.interval_minutes
        )

    def stop(self):
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Reminder scheduler stopped")

    def trigger(self) -> SweepResult:
        """Run one sweep synchronously and return its counts."""
        return self._run()

    def _tick(self):
        if self.state == RUNNING:
            logger.warning("Reminder sweep still running, skipping this run")
            return
        self._run()

    def _run(self) -> SweepResult:
        with self._state_lock:
            self._active += 1
        try:
            result = self.engine.run_sweep()
        finally:
            with self._state_lock:
                self._active -= 1
        self.last_result = result
        return result
