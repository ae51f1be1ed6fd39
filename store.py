from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from database import Expense, User


@dataclass(frozen=True)
class DueReminder:
    expense_id: int
    name: str
    amount: Decimal
    category: str
    due_date: date
    reminder_date: date
    recurring: bool
    owner_name: str
    owner_email: str


class ExpenseStore:
    """Reminder-side reads and writes against the expenses table.

    Every write runs in its own session and commits on its own, so one
    item's failure never rolls back another's.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def find_due_reminders(
        self, as_of: date, user_id: Optional[int] = None
    ) -> list[DueReminder]:
        with self._session_factory() as db:
            query = (
                db.query(Expense, User.name, User.email)
                .join(User, Expense.user_id == User.id)
                .filter(Expense.reminder_date <= as_of, Expense.notified.is_(False))
            )
            if user_id is not None:
                query = query.filter(Expense.user_id == user_id)
            rows = query.order_by(Expense.due_date, Expense.id).all()

            return [
                DueReminder(
                    expense_id=expense.id,
                    name=expense.expense_name,
                    amount=expense.amount,
                    category=expense.category,
                    due_date=expense.due_date,
                    reminder_date=expense.reminder_date,
                    recurring=bool(expense.recurring),
                    owner_name=owner_name,
                    owner_email=owner_email,
                )
                for expense, owner_name, owner_email in rows
            ]

    def mark_notified(self, expense_id: int):
        with self._session_factory() as db:
            try:
                updated = (
                    db.query(Expense)
                    .filter(Expense.id == expense_id)
                    .update({Expense.notified: True}, synchronize_session=False)
                )
                db.commit()
            except Exception:
                db.rollback()
                raise
        if not updated:
            raise LookupError(f"Expense {expense_id} no longer exists")

    def get_owner_id(self, expense_id: int) -> int:
        with self._session_factory() as db:
            owner_id = (
                db.query(Expense.user_id).filter(Expense.id == expense_id).scalar()
            )
        if owner_id is None:
            raise LookupError(f"Expense {expense_id} no longer exists")
        return owner_id

    def insert_expense(
        self,
        owner_id: int,
        name: str,
        amount: Decimal,
        category: str,
        due_date: date,
        reminder_date: date,
        recurring: bool,
        notified: bool = False,
    ) -> int:
        with self._session_factory() as db:
            expense = Expense(
                user_id=owner_id,
                expense_name=name,
                amount=amount,
                category=category,
                due_date=due_date,
                reminder_date=reminder_date,
                recurring=recurring,
                notified=notified,
            )
            try:
                db.add(expense)
                db.commit()
            except Exception:
                db.rollback()
                raise
            return expense.id
