from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import Expense, User, create_session_factory
from main import create_app
from notifier import SendResult
from reminders import ReminderEngine
from store import ExpenseStore


class FakeNotifier:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.sent = []
        self.welcomed = []

    def send_reminder(self, reminder):
        self.sent.append(reminder)
        if reminder.expense_name in self.fail_for:
            return SendResult(success=False, error="SMTP unavailable")
        return SendResult(success=True, message_id=f"<{len(self.sent)}@test>")

    def send_welcome(self, to_email, name):
        self.welcomed.append(to_email)
        return SendResult(success=True, message_id="<welcome@test>")

    def send_test(self, to_email):
        return SendResult(success=False, error="Email service not configured")


def at(year, month, day):
    return datetime(year, month, day, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings():
    return Settings(database_url="sqlite://", secret_key="test-secret")


@pytest.fixture
def session_factory(settings):
    return create_session_factory(settings.database_url)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def failing_notifier():
    def _make(*expense_names):
        return FakeNotifier(fail_for=expense_names)

    return _make


@pytest.fixture
def store(session_factory):
    return ExpenseStore(session_factory)


@pytest.fixture
def engine(store, notifier):
    return ReminderEngine(store, notifier, clock=lambda: at(2024, 3, 10))


@pytest.fixture
def make_user(session_factory):
    def _make(name="Asha", email="asha@example.com"):
        with session_factory() as db:
            user = User(name=name, email=email, password_hash="x")
            db.add(user)
            db.commit()
            return user.id

    return _make


@pytest.fixture
def make_expense(session_factory):
    def _make(user_id, **overrides):
        fields = dict(
            expense_name="Rent",
            amount=Decimal("1200.00"),
            category="Bills",
            due_date=date(2024, 3, 15),
            reminder_date=date(2024, 3, 10),
            recurring=False,
            notified=False,
        )
        fields.update(overrides)
        with session_factory() as db:
            expense = Expense(user_id=user_id, **fields)
            db.add(expense)
            db.commit()
            return expense.id

    return _make


@pytest.fixture
def get_expense(session_factory):
    def _get(expense_id):
        with session_factory() as db:
            expense = db.get(Expense, expense_id)
            if expense is not None:
                db.expunge(expense)
            return expense

    return _get


@pytest.fixture
def all_expenses(session_factory):
    def _all():
        with session_factory() as db:
            rows = db.query(Expense).order_by(Expense.id).all()
            db.expunge_all()
            return rows

    return _all


@pytest.fixture
def client(settings, session_factory, notifier):
    app = create_app(
        settings,
        notifier=notifier,
        session_factory=session_factory,
        start_scheduler=False,
    )
    app.state.reminder_engine.clock = lambda: at(2024, 3, 10)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(client):
    response = client.post(
        "/auth/signup",
        json={"name": "Asha", "email": "asha@example.com", "password": "secret123"},
    )
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}
