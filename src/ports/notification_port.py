"""Notification port — delivers reminder messages to members.

The reminder dispatcher depends on this protocol, never on a specific
messaging provider.
"""

from __future__ import annotations

from typing import Protocol


class NotificationPort(Protocol):
    """Abstract message sink; ``chat_id`` is the member's telegram_user_id."""

    async def send_message(self, chat_id: int, text: str) -> None: ...
