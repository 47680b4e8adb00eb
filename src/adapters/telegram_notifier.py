"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance so reminder dispatch can push messages to
members' Telegram chats.
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, chat_id: int, text: str) -> None:
        try:
            await self._bot.send_message(chat_id=chat_id, text=text)
        except TelegramError as exc:
            logger.error("Telegram delivery to %d failed: %s", chat_id, exc)
            raise
