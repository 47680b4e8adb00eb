"""
Household Rotation Engine — Periodic job runner.

Registers the engine's batch entry points on the python-telegram-bot
JobQueue:

- rotation sweep, daily at ROTATION_SWEEP_HOUR;
- absence reconciliation, daily at ABSENCE_SWEEP_HOUR;
- reminder dispatch, every REMINDER_POLL_MINUTES.

Every run reads all it needs from storage, so a missed or repeated run is
harmless.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import time as dt_time
from datetime import timedelta
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from telegram.ext import Application, ApplicationBuilder, ContextTypes

from src.config import settings

if TYPE_CHECKING:
    from src.data.db import HouseholdDB
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


async def rotation_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    from src.core.rotation_sweeper import run_rotation_sweep

    db = context.application.bot_data["db"]
    try:
        report = await asyncio.to_thread(run_rotation_sweep, db)
    except Exception as exc:
        logger.error("Rotation sweep crashed: %s", exc)
        return
    for error in report.errors:
        logger.warning("Rotation sweep: %s", error)


async def absence_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    from src.core.absence_reconciler import run_absence_reconciliation

    db = context.application.bot_data["db"]
    try:
        report = await asyncio.to_thread(run_absence_reconciliation, db)
    except Exception as exc:
        logger.error("Absence reconciliation crashed: %s", exc)
        return
    for error in report.errors:
        logger.warning("Absence reconciliation: %s", error)


async def reminder_job(context: ContextTypes.DEFAULT_TYPE) -> None:
    from src.core.reminders import dispatch_due_reminders

    db = context.application.bot_data["db"]
    notifier = context.application.bot_data["notifier"]
    try:
        sent = await dispatch_due_reminders(db, notifier)
    except Exception as exc:
        logger.error("Reminder dispatch crashed: %s", exc)
        return
    if sent:
        logger.info("Reminder dispatch: %d messages sent", sent)


def build_app(
    db: HouseholdDB | None = None,
    notifier: NotificationPort | None = None,
) -> Application:
    """Build the Telegram Application and register the periodic jobs.

    Args:
        db: Storage. Defaults to HouseholdDB at DATABASE_PATH.
        notifier: Notification port. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if db is None:
        from src.data.db import HouseholdDB
        db = HouseholdDB()

    if notifier is None:
        from src.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    app.bot_data["db"] = db
    app.bot_data["notifier"] = notifier

    _schedule_jobs(app)
    return app


def _schedule_jobs(app: Application) -> None:
    tz = ZoneInfo(settings.TIMEZONE)

    app.job_queue.run_daily(
        rotation_job,
        time=dt_time(hour=settings.ROTATION_SWEEP_HOUR, minute=0, tzinfo=tz),
        name="rotation_sweep",
    )
    app.job_queue.run_daily(
        absence_job,
        time=dt_time(hour=settings.ABSENCE_SWEEP_HOUR, minute=0, tzinfo=tz),
        name="absence_reconciliation",
    )
    app.job_queue.run_repeating(
        reminder_job,
        interval=timedelta(minutes=settings.REMINDER_POLL_MINUTES),
        first=timedelta(seconds=10),
        name="reminder_dispatch",
    )

    logger.info(
        "Jobs scheduled: rotation sweep %02d:00, absences %02d:00 %s, reminders every %d min",
        settings.ROTATION_SWEEP_HOUR,
        settings.ABSENCE_SWEEP_HOUR,
        settings.TIMEZONE,
        settings.REMINDER_POLL_MINUTES,
    )


def main() -> None:
    """Entry point: build the app and keep the job queue running."""
    if not settings.TELEGRAM_BOT_TOKEN or settings.TELEGRAM_BOT_TOKEN.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    logger.info("Starting household rotation jobs...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    main()
