import html as html_lib
import logging
import smtplib
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Optional

from config import Settings

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£"}


@dataclass(frozen=True)
class ReminderEmail:
    to_email: str
    owner_name: str
    expense_name: str
    amount: Decimal
    due_date: date
    category: str


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def format_amount(amount, currency: str = "INR") -> str:
    symbol = CURRENCY_SYMBOLS.get(currency, currency + " ")
    return f"{symbol}{Decimal(amount):,.2f}"


def format_due_date(d: date) -> str:
    return f"{d.strftime('%A')}, {d.day} {d.strftime('%B %Y')}"


def render_reminder(reminder: ReminderEmail, currency: str, dashboard_url: str):
    """Return ``(subject, text, html)`` for a reminder email."""
    amount = format_amount(reminder.amount, currency)
    due = format_due_date(reminder.due_date)
    subject = f"Reminder: {reminder.expense_name} - {amount} due soon!"

    text = (
        f"Hi {reminder.owner_name},\n\n"
        "This is a reminder about your upcoming expense:\n\n"
        f"Expense: {reminder.expense_name}\n"
        f"Amount: {amount}\n"
        f"Category: {reminder.category}\n"
        f"Due Date: {due}\n\n"
        "Don't forget to make this payment on time!\n\n"
        f"View your dashboard: {dashboard_url}\n\n"
        "- Expense Reminder App\n"
    )

    rows = "".join(
        f'<tr><td style="padding:8px 0;color:#888;">{label}</td>'
        f'<td style="padding:8px 0;text-align:right;font-weight:600;">{value}</td></tr>'
        for label, value in (
            ("Expense", html_lib.escape(reminder.expense_name)),
            ("Amount", html_lib.escape(amount)),
            ("Category", html_lib.escape(reminder.category)),
            ("Due Date", due),
        )
    )
    html = (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"></head>"
        "<body style=\"font-family:'Segoe UI',Tahoma,sans-serif;background:#f5f7fa;\">"
        "<div style=\"max-width:600px;margin:0 auto;padding:20px;background:white;\">"
        "<h1>Expense Reminder</h1>"
        f"<p>Hi <strong>{html_lib.escape(reminder.owner_name)}</strong>,</p>"
        "<p>This is a friendly reminder about your upcoming expense:</p>"
        f"<table style=\"width:100%;border-collapse:collapse;\">{rows}</table>"
        "<p>Don't forget to make this payment on time to avoid any late fees!</p>"
        f"<p><a href=\"{html_lib.escape(dashboard_url)}\">View Dashboard</a></p>"
        "</div></body></html>"
    )
    return subject, text, html


class EmailNotifier:
    """Sends reminder emails over SMTP. Never raises; every outcome is a
    ``SendResult``."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def configured(self) -> bool:
        return self.settings.email_configured

    def send_reminder(self, reminder: ReminderEmail) -> SendResult:
        subject, text, html = render_reminder(
            reminder,
            self.settings.currency,
            self.settings.frontend_url.rstrip("/") + "/dashboard",
        )
        return self._send(reminder.to_email, subject, text, html)

    def send_welcome(self, to_email: str, name: str) -> SendResult:
        subject = f"Welcome to Expense Reminder, {name}!"
        text = (
            f"Hi {name},\n\n"
            "Thank you for joining Expense Reminder! You can now:\n"
            "- add and track your expenses\n"
            "- set reminder dates for each expense\n"
            "- receive email notifications before due dates\n"
            "- set up recurring monthly expenses\n"
            "- view your monthly expense summary\n"
        )
        html = (
            "<!DOCTYPE html><html><body>"
            f"<h1>Welcome!</h1><p>Hi <strong>{html_lib.escape(name)}</strong>,</p>"
            "<p>Thank you for joining Expense Reminder! We're excited to help "
            "you manage your expenses and never miss a payment again.</p>"
            "</body></html>"
        )
        return self._send(to_email, subject, text, html)

    def send_test(self, to_email: str) -> SendResult:
        return self.send_reminder(
            ReminderEmail(
                to_email=to_email,
                owner_name="Test User",
                expense_name="Test Expense",
                amount=Decimal("1000"),
                due_date=date.today(),
                category="Bills",
            )
        )

    def _build_message(self, to_email, subject, text, html) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = formataddr(
            (self.settings.email_from_name, self.settings.sender_address)
        )
        msg["To"] = to_email
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid(domain=self.settings.sender_address.split("@")[-1])
        msg.set_content(text)
        msg.add_alternative(html, subtype="html")
        return msg

    def _connect(self) -> smtplib.SMTP:
        s = self.settings
        if s.smtp_secure:
            return smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout)
        smtp = smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout)
        smtp.starttls()
        return smtp

    def _send(self, to_email, subject, text, html) -> SendResult:
        if not self.configured:
            logger.warning("Email transport not configured, skipping mail to %s", to_email)
            return SendResult(success=False, error="Email service not configured")

        try:
            msg = self._build_message(to_email, subject, text, html)
            with self._connect() as smtp:
                if self.settings.smtp_user:
                    smtp.login(self.settings.smtp_user, self.settings.smtp_pass or "")
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError, ValueError) as e:
            logger.error("Failed to send email to %s: %s", to_email, e)
            return SendResult(success=False, error=str(e))

        logger.info("Email sent to %s: %s", to_email, msg["Message-ID"])
        return SendResult(success=True, message_id=msg["Message-ID"])
