import asyncio
from datetime import date

from database import Expense, User
from notifier import SendResult

RENT = {
    "expense_name": "Rent",
    "amount": "1200.00",
    "category": "Bills",
    "due_date": "2024-03-15",
    "reminder_date": "2024-03-10",
    "recurring": True,
}


def create_rent(client, headers, **overrides):
    response = client.post("/api/expenses", json={**RENT, **overrides}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_home_and_health(client):
    assert client.get("/").status_code == 200
    health = client.get("/api/health").json()
    assert health["success"] is True
    assert health["scheduler"] == "idle"


def test_signup_hashes_password_and_sends_welcome(client, notifier, session_factory):
    response = client.post(
        "/auth/signup",
        json={"name": "Asha", "email": "Asha@Example.com", "password": "secret123"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == "asha@example.com"
    assert notifier.welcomed == ["asha@example.com"]
    with session_factory() as db:
        stored = db.query(User).one()
    assert stored.password_hash != "secret123"


def test_signup_rejects_duplicate_email(client, auth_headers):
    response = client.post(
        "/auth/signup",
        json={"name": "Asha", "email": "asha@example.com", "password": "another1"},
    )
    assert response.status_code == 400


def test_login_and_me(client, auth_headers):
    bad = client.post(
        "/auth/login", json={"email": "asha@example.com", "password": "wrong-pass"}
    )
    assert bad.status_code == 401

    good = client.post(
        "/auth/login", json={"email": "asha@example.com", "password": "secret123"}
    )
    assert good.status_code == 200
    token = good.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["name"] == "Asha"


def test_update_profile(client, auth_headers):
    response = client.put(
        "/auth/update-profile", json={"name": "Asha R"}, headers=auth_headers
    )
    assert response.json()["name"] == "Asha R"


def test_expenses_require_authentication(client):
    assert client.get("/api/expenses").status_code == 401
    assert (
        client.get("/api/expenses", headers={"Authorization": "Bearer nope"}).status_code
        == 401
    )


def test_create_expense_starts_unnotified(client, auth_headers):
    expense = create_rent(client, auth_headers)

    assert expense["notified"] is False
    assert expense["paid"] is False
    assert expense["recurring"] is True
    assert expense["category"] == "Bills"


def test_create_rejects_reminder_after_due(client, auth_headers):
    response = client.post(
        "/api/expenses",
        json={**RENT, "reminder_date": "2024-03-20"},
        headers=auth_headers,
    )
    assert response.status_code == 422


def test_create_rejects_bad_amount_and_category(client, auth_headers):
    for bad in ({"amount": "0"}, {"amount": "-5"}, {"category": "Yachts"}):
        response = client.post(
            "/api/expenses", json={**RENT, **bad}, headers=auth_headers
        )
        assert response.status_code == 422, bad


def test_update_checks_merged_dates(client, auth_headers):
    expense = create_rent(client, auth_headers)

    response = client.put(
        f"/api/expenses/{expense['id']}",
        json={"due_date": "2024-03-05"},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Reminder date cannot be after due date"


def test_update_with_no_fields_is_rejected(client, auth_headers):
    expense = create_rent(client, auth_headers)
    response = client.put(f"/api/expenses/{expense['id']}", json={}, headers=auth_headers)
    assert response.status_code == 400


def test_changing_reminder_date_resets_notified(client, auth_headers, session_factory):
    expense = create_rent(client, auth_headers)
    with session_factory() as db:
        db.get(Expense, expense["id"]).notified = True
        db.commit()

    renamed = client.put(
        f"/api/expenses/{expense['id']}",
        json={"expense_name": "House rent"},
        headers=auth_headers,
    ).json()
    assert renamed["notified"] is True

    moved = client.put(
        f"/api/expenses/{expense['id']}",
        json={"reminder_date": "2024-03-12"},
        headers=auth_headers,
    ).json()
    assert moved["notified"] is False
    assert moved["reminder_date"] == "2024-03-12"


def test_notified_is_not_user_writable(client, auth_headers):
    expense = create_rent(client, auth_headers)
    response = client.put(
        f"/api/expenses/{expense['id']}",
        json={"notified": True, "expense_name": "Rent"},
        headers=auth_headers,
    )
    assert response.json()["notified"] is False


def test_pay_toggle(client, auth_headers):
    expense = create_rent(client, auth_headers)

    paid = client.patch(f"/api/expenses/{expense['id']}/pay", headers=auth_headers).json()
    assert paid["paid"] is True
    assert paid["paid_at"] is not None
    assert paid["notified"] is False

    unpaid = client.patch(
        f"/api/expenses/{expense['id']}/pay", headers=auth_headers
    ).json()
    assert unpaid["paid"] is False
    assert unpaid["paid_at"] is None


def test_users_cannot_see_each_others_expenses(client, auth_headers):
    expense = create_rent(client, auth_headers)
    other = client.post(
        "/auth/signup",
        json={"name": "Ravi", "email": "ravi@example.com", "password": "secret123"},
    ).json()
    other_headers = {"Authorization": f"Bearer {other['access_token']}"}

    assert client.get("/api/expenses", headers=other_headers).json() == []
    assert (
        client.get(f"/api/expenses/{expense['id']}", headers=other_headers).status_code
        == 404
    )
    assert (
        client.delete(f"/api/expenses/{expense['id']}", headers=other_headers).status_code
        == 404
    )


def test_list_filters_and_ordering(client, auth_headers):
    create_rent(client, auth_headers)
    create_rent(
        client,
        auth_headers,
        expense_name="Groceries",
        category="Food",
        due_date="2024-03-02",
        reminder_date="2024-03-01",
        recurring=False,
    )

    names = [e["expense_name"] for e in client.get("/api/expenses", headers=auth_headers).json()]
    assert names == ["Groceries", "Rent"]

    food = client.get("/api/expenses?category=Food", headers=auth_headers).json()
    assert [e["expense_name"] for e in food] == ["Groceries"]

    recurring = client.get("/api/expenses?recurring=true", headers=auth_headers).json()
    assert [e["expense_name"] for e in recurring] == ["Rent"]

    ranged = client.get(
        "/api/expenses?start_date=2024-03-10&end_date=2024-03-31", headers=auth_headers
    ).json()
    assert [e["expense_name"] for e in ranged] == ["Rent"]

    assert client.get("/api/expenses?category=Yachts", headers=auth_headers).status_code == 400


def test_categories(client, auth_headers):
    categories = client.get("/api/expenses/categories", headers=auth_headers).json()
    assert "Bills" in categories["categories"]
    assert len(categories["categories"]) == 8


def test_monthly_summary(client, auth_headers):
    create_rent(client, auth_headers)
    create_rent(client, auth_headers, expense_name="Power", amount="300.50")
    create_rent(
        client,
        auth_headers,
        expense_name="Bus pass",
        category="Transport",
        amount="50",
        due_date="2024-04-02",
        reminder_date="2024-04-01",
    )

    summary = client.get(
        "/api/expenses/summary/monthly?year=2024&month=3", headers=auth_headers
    ).json()

    assert summary["month"] == "2024-03"
    assert float(summary["total_amount"]) == 1500.50
    assert summary["by_category"][0]["category"] == "Bills"
    assert summary["by_category"][0]["count"] == 2
    assert summary["total_expenses"] == 3


def test_delete_expense(client, auth_headers):
    expense = create_rent(client, auth_headers)
    assert client.delete(f"/api/expenses/{expense['id']}", headers=auth_headers).status_code == 200
    assert client.get(f"/api/expenses/{expense['id']}", headers=auth_headers).status_code == 404


def test_pending_then_trigger_then_nothing_pending(client, auth_headers, notifier):
    create_rent(client, auth_headers)
    create_rent(
        client,
        auth_headers,
        expense_name="Future",
        due_date="2024-03-30",
        reminder_date="2024-03-25",
    )

    pending = client.get("/api/reminders/pending", headers=auth_headers).json()
    assert pending["today"] == "2024-03-10"
    assert pending["count"] == 1
    assert pending["reminders"][0]["name"] == "Rent"

    report = client.post("/api/reminders/trigger", headers=auth_headers).json()
    assert report["success"] is True
    assert (report["found"], report["sent"], report["failed"]) == (1, 1, 0)
    assert report["recurrences_created"] == 1
    assert [e.expense_name for e in notifier.sent] == ["Rent"]

    assert client.get("/api/reminders/pending", headers=auth_headers).json()["count"] == 0

    expenses = client.get("/api/expenses", headers=auth_headers).json()
    successor = [e for e in expenses if e["due_date"] == "2024-04-15"]
    assert len(successor) == 1
    assert successor[0]["reminder_date"] == "2024-04-10"
    assert successor[0]["notified"] is False


def test_trigger_failure_returns_generic_message(client, auth_headers):
    class DownStore:
        def find_due_reminders(self, as_of, user_id=None):
            raise RuntimeError("password=hunter2 connection refused")

    client.app.state.reminder_engine.store = DownStore()

    response = client.post("/api/reminders/trigger", headers=auth_headers)

    assert response.status_code == 500
    assert response.json()["detail"] == "Reminder check failed"


def test_email_status_and_test_email(client, auth_headers):
    status = client.get("/api/reminders/email-status").json()
    assert status["configured"] is False

    response = client.post(
        "/api/reminders/test-email", json={"email": "asha@example.com"}, headers=auth_headers
    ).json()
    assert response["success"] is False
    assert response["message"] == "Email service not configured"


def test_reminder_dates_are_plain_dates(client, auth_headers):
    expense = create_rent(client, auth_headers)
    assert date.fromisoformat(expense["due_date"]) == date(2024, 3, 15)


def test_welcome_email_is_sent_off_the_event_loop(client, notifier):
    loop_states = []

    def send_welcome(to_email, name):
        try:
            asyncio.get_running_loop()
            loop_states.append("on-loop")
        except RuntimeError:
            loop_states.append("worker")
        return notifier.__class__.send_welcome(notifier, to_email, name)

    notifier.send_welcome = send_welcome

    response = client.post(
        "/auth/signup",
        json={"name": "Asha", "email": "asha@example.com", "password": "secret123"},
    )

    assert response.status_code == 201
    assert loop_states == ["worker"]
    assert notifier.welcomed == ["asha@example.com"]


def test_signup_succeeds_when_welcome_email_fails(client, notifier):
    notifier.send_welcome = lambda to_email, name: SendResult(
        success=False, error="SMTP unavailable"
    )

    response = client.post(
        "/auth/signup",
        json={"name": "Asha", "email": "asha@example.com", "password": "secret123"},
    )

    assert response.status_code == 201
    assert response.json()["access_token"]


def test_monthly_summary_defaults_to_reminder_clock_month(client, auth_headers):
    create_rent(client, auth_headers)

    summary = client.get("/api/expenses/summary/monthly", headers=auth_headers).json()

    assert summary["month"] == "2024-03"
    assert [e["expense_name"] for e in summary["upcoming"]] == ["Rent"]
