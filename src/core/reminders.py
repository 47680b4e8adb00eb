"""Reminder delivery — hand queued TaskReminders to the notification port.

The rotation sweeper only writes reminder rows; this module picks up the
ones whose time has come, marks them sent and (optionally) pushes one short
message per reminder.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from src.core.due_date import local_now
from src.data.models import ReminderType

if TYPE_CHECKING:
    from src.data.db import HouseholdDB
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

_TEMPLATES: dict[ReminderType, str] = {
    ReminderType.DUE_SOON: "Reminder: '{task}' is due tomorrow.",
    ReminderType.DUE_TODAY: "Reminder: '{task}' is due today.",
    ReminderType.OVERDUE: "'{task}' is overdue.",
}


@dataclass
class DueReminder:
    id: int
    reminder_type: ReminderType
    task_name: str
    member_name: str
    chat_id: int | None


def process_due_reminders(db: HouseholdDB, now: datetime | None = None) -> list[DueReminder]:
    """Mark every unsent reminder scheduled at or before ``now`` as sent and return them."""
    now = now or local_now()
    reminders = db.due_unsent_reminders(now)
    due: list[DueReminder] = []
    for reminder in reminders:
        assignment = db.get_assignment(reminder.assignment_id)
        task = db.get_task(assignment.task_id) if assignment else None
        member = db.get_member(reminder.member_id)
        due.append(DueReminder(
            id=reminder.id,
            reminder_type=reminder.reminder_type,
            task_name=task.name if task else "(deleted task)",
            member_name=member.name if member else "(unknown)",
            chat_id=member.telegram_user_id if member else None,
        ))
    db.mark_reminders_sent([r.id for r in reminders], now)
    if due:
        logger.info("%d reminders due", len(due))
    return due


def format_reminder(reminder: DueReminder) -> str:
    return _TEMPLATES[reminder.reminder_type].format(task=reminder.task_name)


async def dispatch_due_reminders(
    db: HouseholdDB,
    notifier: NotificationPort,
    now: datetime | None = None,
) -> int:
    """Send due reminders to members that have a chat id. Returns messages sent.

    A failed delivery is logged and skipped; the reminder stays marked sent.
    """
    sent = 0
    for reminder in process_due_reminders(db, now):
        if reminder.chat_id is None:
            logger.debug("Reminder #%d: %s has no chat id", reminder.id, reminder.member_name)
            continue
        try:
            await notifier.send_message(reminder.chat_id, format_reminder(reminder))
            sent += 1
        except Exception as exc:
            logger.error("Failed to deliver reminder #%d: %s", reminder.id, exc)
    return sent
