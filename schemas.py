from pydantic import BaseModel, constr, condecimal, field_validator, model_validator
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from database import CATEGORIES

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class UserCreate(BaseModel):
    name: constr(strip_whitespace=True, min_length=2, max_length=50)
    email: constr(strip_whitespace=True, to_lower=True, pattern=EMAIL_PATTERN)
    password: constr(min_length=6)


class UserLogin(BaseModel):
    email: constr(strip_whitespace=True, to_lower=True, pattern=EMAIL_PATTERN)
    password: str


class UserUpdate(BaseModel):
    name: Optional[constr(strip_whitespace=True, min_length=2, max_length=50)] = None


class UserOut(BaseModel):
    id: int
    name: str
    email: str

    class Config:
        from_attributes = True


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Optional[UserOut] = None


class ExpenseCreate(BaseModel):
    expense_name: constr(strip_whitespace=True, min_length=1, max_length=100)
    amount: condecimal(gt=0, max_digits=10, decimal_places=2)
    category: str = "Other"
    due_date: date
    reminder_date: date
    recurring: bool = False

    @field_validator("category")
    @classmethod
    def known_category(cls, value):
        if value not in CATEGORIES:
            raise ValueError(f"Invalid category. Allowed values: {CATEGORIES}")
        return value

    @model_validator(mode="after")
    def reminder_not_after_due(self):
        if self.reminder_date > self.due_date:
            raise ValueError("Reminder date cannot be after due date")
        return self


class ExpenseUpdate(BaseModel):
    expense_name: Optional[constr(strip_whitespace=True, min_length=1, max_length=100)] = None
    amount: Optional[condecimal(gt=0, max_digits=10, decimal_places=2)] = None
    category: Optional[str] = None
    due_date: Optional[date] = None
    reminder_date: Optional[date] = None
    recurring: Optional[bool] = None

    @field_validator("*")
    @classmethod
    def no_explicit_null(cls, value):
        if value is None:
            raise ValueError("Field cannot be null")
        return value

    @field_validator("category")
    @classmethod
    def known_category(cls, value):
        if value not in CATEGORIES:
            raise ValueError(f"Invalid category. Allowed values: {CATEGORIES}")
        return value


class Expense(BaseModel):
    id: int
    user_id: int
    expense_name: str
    amount: Decimal
    category: str
    due_date: date
    reminder_date: date
    recurring: bool
    notified: bool
    paid: bool
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CategoryTotal(BaseModel):
    category: str
    total: Decimal
    count: int


class MonthlySummary(BaseModel):
    month: str
    total_amount: Decimal
    by_category: list[CategoryTotal]
    upcoming: list[Expense]
    total_expenses: int


class PendingReminder(BaseModel):
    expense_id: int
    name: str
    amount: Decimal
    category: str
    due_date: date
    reminder_date: date
    recurring: bool
    owner_email: str

    class Config:
        from_attributes = True


class PendingReminders(BaseModel):
    today: date
    count: int
    reminders: list[PendingReminder]


class SweepReport(BaseModel):
    success: bool
    message: str
    as_of: date
    found: int = 0
    sent: int = 0
    failed: int = 0
    recurrences_created: int = 0
    recurrence_failures: int = 0


class EmailTestRequest(BaseModel):
    email: constr(strip_whitespace=True, pattern=EMAIL_PATTERN)


class EmailStatus(BaseModel):
    configured: bool
    provider: str = "SMTP"
    from_address: Optional[str] = None
