import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI

from auth import auth_router
from config import Settings, configure_logging, load_settings
from database import create_session_factory
from notifier import EmailNotifier
from reminders import ReminderEngine
from router import router, reminders_router
from scheduler import ReminderScheduler
from store import ExpenseStore

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    notifier=None,
    session_factory=None,
    start_scheduler: Optional[bool] = None,
) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    session_factory = session_factory or create_session_factory(settings.database_url)
    notifier = notifier or EmailNotifier(settings)
    engine = ReminderEngine(ExpenseStore(session_factory), notifier)
    reminder_scheduler = ReminderScheduler(
        engine,
        interval_minutes=settings.reminder_interval_minutes,
        warmup_seconds=settings.reminder_warmup_seconds,
    )
    if start_scheduler is None:
        start_scheduler = settings.scheduler_enabled

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not settings.email_configured:
            logger.warning(
                "Email service not configured; set SMTP_* in .env to enable reminders"
            )
        if start_scheduler:
            reminder_scheduler.start()
        try:
            yield
        finally:
            reminder_scheduler.stop()

    app = FastAPI(title="Expense Reminder API", lifespan=lifespan)
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.notifier = notifier
    app.state.reminder_engine = engine
    app.state.reminder_scheduler = reminder_scheduler

    app.include_router(router, prefix="/api", tags=["expenses"])
    app.include_router(reminders_router, prefix="/api/reminders", tags=["reminders"])
    app.include_router(auth_router, prefix="/auth", tags=["authentication"])

    @app.get("/")
    def home():
        return {"message": "Welcome to Expense Reminder API"}

    @app.get("/api/health")
    def health():
        return {
            "success": True,
            "message": "Expense Reminder API is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "scheduler": reminder_scheduler.state,
        }

    return app


if __name__ == "__main__":
    uvicorn.run(create_app(), host="127.0.0.1", port=8000)
