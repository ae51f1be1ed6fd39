import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def _bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./expenses.db"
    secret_key: str = "dev-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7

    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_secure: bool = False
    smtp_timeout: float = 15.0
    email_from_name: str = "Expense Reminder"
    email_from_address: Optional[str] = None
    frontend_url: str = "http://localhost:5173"
    currency: str = "INR"

    reminder_interval_minutes: int = 60
    reminder_warmup_seconds: int = 5
    scheduler_enabled: bool = True

    log_level: str = "INFO"
    environment: str = "development"

    @property
    def sender_address(self) -> Optional[str]:
        return self.email_from_address or self.smtp_user

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_host and self.sender_address)


def load_settings() -> Settings:
    load_dotenv()
    return Settings(
        database_url=os.getenv("DATABASE_URL", Settings.database_url),
        secret_key=os.getenv("SECRET_KEY", Settings.secret_key),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", Settings.jwt_algorithm),
        access_token_expire_minutes=int(
            os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", Settings.access_token_expire_minutes)
        ),
        smtp_host=os.getenv("SMTP_HOST"),
        smtp_port=int(os.getenv("SMTP_PORT", Settings.smtp_port)),
        smtp_user=os.getenv("SMTP_USER"),
        smtp_pass=os.getenv("SMTP_PASS"),
        smtp_secure=_bool(os.getenv("SMTP_SECURE")),
        smtp_timeout=float(os.getenv("SMTP_TIMEOUT", Settings.smtp_timeout)),
        email_from_name=os.getenv("EMAIL_FROM_NAME", Settings.email_from_name),
        email_from_address=os.getenv("EMAIL_FROM_ADDRESS"),
        frontend_url=os.getenv("FRONTEND_URL", Settings.frontend_url),
        currency=os.getenv("CURRENCY", Settings.currency),
        reminder_interval_minutes=int(
            os.getenv("REMINDER_INTERVAL_MINUTES", Settings.reminder_interval_minutes)
        ),
        reminder_warmup_seconds=int(
            os.getenv("REMINDER_WARMUP_SECONDS", Settings.reminder_warmup_seconds)
        ),
        scheduler_enabled=_bool(os.getenv("SCHEDULER_ENABLED"), default=True),
        log_level=os.getenv("LOG_LEVEL", Settings.log_level),
        environment=os.getenv("ENVIRONMENT", Settings.environment),
    )


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
