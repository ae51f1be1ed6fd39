import calendar
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db, Expense, User, CATEGORIES
from schemas import (
    CategoryTotal,
    EmailStatus,
    EmailTestRequest,
    Expense as ExpenseOut,
    ExpenseCreate,
    ExpenseUpdate,
    MonthlySummary,
    PendingReminder,
    PendingReminders,
    SweepReport,
)

logger = logging.getLogger(__name__)

router = APIRouter()
reminders_router = APIRouter()


def _get_owned_expense(db: Session, expense_id: int, user: User) -> Expense:
    expense = (
        db.query(Expense)
        .filter(Expense.id == expense_id, Expense.user_id == user.id)
        .first()
    )
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    return expense


@router.get("/expenses", response_model=list[ExpenseOut])
async def get_expenses(
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    recurring: Optional[bool] = None,
    paid: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if category is not None and category not in CATEGORIES:
        raise HTTPException(status_code=400, detail="Invalid category")

    query = db.query(Expense).filter(Expense.user_id == current_user.id)
    if category:
        query = query.filter(Expense.category == category)
    if start_date:
        query = query.filter(Expense.due_date >= start_date)
    if end_date:
        query = query.filter(Expense.due_date <= end_date)
    if recurring is not None:
        query = query.filter(Expense.recurring == recurring)
    if paid is not None:
        query = query.filter(Expense.paid == paid)

    return query.order_by(Expense.due_date, Expense.id).all()


@router.get("/expenses/categories")
async def get_categories():
    return {"categories": CATEGORIES}


@router.get("/expenses/summary/monthly", response_model=MonthlySummary)
async def get_monthly_summary(
    request: Request,
    year: Optional[int] = Query(None, ge=1970, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    today = request.app.state.reminder_engine.clock().date()
    year = year or today.year
    month = month or today.month
    start = date(year, month, 1)
    end = date(year, month, calendar.monthrange(year, month)[1])

    in_month = db.query(Expense).filter(
        Expense.user_id == current_user.id,
        Expense.due_date >= start,
        Expense.due_date <= end,
    )
    total = in_month.with_entities(func.coalesce(func.sum(Expense.amount), 0)).scalar()

    by_category = (
        in_month.with_entities(
            Expense.category,
            func.sum(Expense.amount).label("total"),
            func.count(Expense.id).label("count"),
        )
        .group_by(Expense.category)
        .order_by(func.sum(Expense.amount).desc())
        .all()
    )

    upcoming = (
        db.query(Expense)
        .filter(
            Expense.user_id == current_user.id,
            Expense.due_date >= today,
            Expense.due_date <= today + timedelta(days=7),
        )
        .order_by(Expense.due_date)
        .limit(5)
        .all()
    )

    count = db.query(func.count(Expense.id)).filter(
        Expense.user_id == current_user.id
    ).scalar()

    return MonthlySummary(
        month=f"{year}-{month:02d}",
        total_amount=total,
        by_category=[
            CategoryTotal(category=row.category, total=row.total, count=row.count)
            for row in by_category
        ],
        upcoming=[ExpenseOut.model_validate(e) for e in upcoming],
        total_expenses=count,
    )


@router.get("/expenses/{expense_id}", response_model=ExpenseOut)
async def get_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _get_owned_expense(db, expense_id, current_user)


@router.post("/expenses", response_model=ExpenseOut, status_code=status.HTTP_201_CREATED)
async def create_expense(
    expense: ExpenseCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    db_expense = Expense(
        user_id=current_user.id,
        expense_name=expense.expense_name,
        amount=expense.amount,
        category=expense.category,
        due_date=expense.due_date,
        reminder_date=expense.reminder_date,
        recurring=expense.recurring,
        notified=False,
    )
    db.add(db_expense)
    db.commit()
    db.refresh(db_expense)
    return db_expense


@router.put("/expenses/{expense_id}", response_model=ExpenseOut)
async def update_expense(
    expense_id: int,
    update: ExpenseUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense = _get_owned_expense(db, expense_id, current_user)
    changes = update.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No fields to update")

    due_date = changes.get("due_date", expense.due_date)
    reminder_date = changes.get("reminder_date", expense.reminder_date)
    if reminder_date > due_date:
        raise HTTPException(
            status_code=400, detail="Reminder date cannot be after due date"
        )

    # a new reminder date is a new notification obligation
    if "reminder_date" in changes and changes["reminder_date"] != expense.reminder_date:
        changes["notified"] = False

    for field, value in changes.items():
        setattr(expense, field, value)
    db.commit()
    db.refresh(expense)
    return expense


@router.patch("/expenses/{expense_id}/pay", response_model=ExpenseOut)
async def toggle_paid(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense = _get_owned_expense(db, expense_id, current_user)
    expense.paid = not expense.paid
    expense.paid_at = datetime.now(timezone.utc) if expense.paid else None
    db.commit()
    db.refresh(expense)
    return expense


@router.delete("/expenses/{expense_id}")
async def delete_expense(
    expense_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    expense = _get_owned_expense(db, expense_id, current_user)
    db.delete(expense)
    db.commit()
    return {"message": "Expense deleted successfully"}


@reminders_router.post("/trigger", response_model=SweepReport)
def trigger_reminders(
    request: Request, current_user: User = Depends(get_current_user)
):
    logger.info("Manual reminder check requested by user %s", current_user.id)
    result = request.app.state.reminder_scheduler.trigger()
    if not result.ok:
        raise HTTPException(status_code=500, detail="Reminder check failed")
    return SweepReport(
        success=True,
        message="Reminder check completed",
        as_of=result.as_of,
        found=result.found,
        sent=result.sent,
        failed=result.failed,
        recurrences_created=result.recurrences_created,
        recurrence_failures=result.recurrence_failures,
    )


@reminders_router.get("/pending", response_model=PendingReminders)
def pending_reminders(
    request: Request, current_user: User = Depends(get_current_user)
):
    engine = request.app.state.reminder_engine
    now = engine.clock()
    try:
        pending = engine.pending_reminders(now=now, user_id=current_user.id)
    except Exception:
        logger.exception("Could not load pending reminders")
        raise HTTPException(status_code=500, detail="Error fetching pending reminders")
    return PendingReminders(
        today=now.date(),
        count=len(pending),
        reminders=[PendingReminder.model_validate(p) for p in pending],
    )


@reminders_router.post("/test-email")
def send_test_email(
    body: EmailTestRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
):
    result = request.app.state.notifier.send_test(body.email)
    return {
        "success": result.success,
        "message": "Test email sent! Check your inbox." if result.success else result.error,
    }


@reminders_router.get("/email-status", response_model=EmailStatus)
async def email_status(request: Request):
    settings = request.app.state.settings
    return EmailStatus(
        configured=settings.email_configured,
        from_address=settings.sender_address,
    )
