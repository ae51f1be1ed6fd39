import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from dateutil.relativedelta import relativedelta

from notifier import ReminderEmail
from store import DueReminder

logger = logging.getLogger(__name__)


def add_one_month(d: date) -> date:
    # relativedelta clamps to the last day of shorter months (Jan 31 -> Feb 28/29)
    return d + relativedelta(months=+1)


def next_occurrence(due_date: date, reminder_date: date) -> tuple[date, date]:
    return add_one_month(due_date), add_one_month(reminder_date)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SweepResult:
    as_of: date
    found: int = 0
    sent: int = 0
    failed: int = 0
    recurrences_created: int = 0
    recurrence_failures: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ReminderEngine:
    """Finds expenses whose reminder date has arrived, emails each owner once
    and spawns next month's occurrence for recurring expenses.

    Sweeps are serialized through a lock; two overlapping sweeps would both
    read a row before either marks it notified.
    """

    def __init__(self, store, notifier, clock=utc_now):
        self.store = store
        self.notifier = notifier
        self.clock = clock
        self._lock = threading.Lock()

    def pending_reminders(
        self, now: Optional[datetime] = None, user_id: Optional[int] = None
    ) -> list[DueReminder]:
        as_of = (now or self.clock()).date()
        return self.store.find_due_reminders(as_of, user_id=user_id)

    def run_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        with self._lock:
            return self._sweep((now or self.clock()).date())

    def _sweep(self, as_of: date) -> SweepResult:
        result = SweepResult(as_of=as_of)
        logger.info("Checking for reminders (%s)", as_of.isoformat())

        try:
            due = self.store.find_due_reminders(as_of)
        except Exception as e:
            logger.exception("Could not load due reminders")
            result.error = str(e)
            return result

        result.found = len(due)
        for reminder in due:
            try:
                self._process(reminder, result)
            except Exception:
                result.failed += 1
                logger.exception("Error processing reminder %s", reminder.expense_id)

        logger.info(
            "Reminder sweep finished: found=%d sent=%d failed=%d",
            result.found,
            result.sent,
            result.failed,
        )
        return result

    def _process(self, reminder: DueReminder, result: SweepResult):
        outcome = self.notifier.send_reminder(
            ReminderEmail(
                to_email=reminder.owner_email,
                owner_name=reminder.owner_name,
                expense_name=reminder.name,
                amount=reminder.amount,
                due_date=reminder.due_date,
                category=reminder.category,
            )
        )
        if not outcome.success:
            result.failed += 1
            logger.warning(
                "Failed to send reminder for %s (expense %s): %s",
                reminder.name,
                reminder.expense_id,
                outcome.error,
            )
            return

        self.store.mark_notified(reminder.expense_id)
        result.sent += 1
        logger.info("Reminder sent for %s -> %s", reminder.name, reminder.owner_email)

        if reminder.recurring:
            if self._create_successor(reminder):
                result.recurrences_created += 1
            else:
                result.recurrence_failures += 1

    def _create_successor(self, reminder: DueReminder) -> bool:
        # a failed successor is not backfilled by later sweeps
        try:
            owner_id = self.store.get_owner_id(reminder.expense_id)
            due_date, reminder_date = next_occurrence(
                reminder.due_date, reminder.reminder_date
            )
            new_id = self.store.insert_expense(
                owner_id=owner_id,
                name=reminder.name,
                amount=reminder.amount,
                category=reminder.category,
                due_date=due_date,
                reminder_date=reminder_date,
                recurring=True,
                notified=False,
            )
        except Exception:
            logger.exception(
                "Error creating next occurrence of recurring expense %s",
                reminder.expense_id,
            )
            return False

        logger.info(
            "Created recurring expense %s for %s (due %s)",
            new_id,
            reminder.name,
            due_date.isoformat(),
        )
        return True
