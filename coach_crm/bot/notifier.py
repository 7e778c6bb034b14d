from __future__ import annotations

import logging

from aiogram import Bot, html
from aiogram.exceptions import TelegramAPIError

from coach_crm.notify import ToastLevel

logger = logging.getLogger(__name__)

_ICONS = {
    ToastLevel.INFO: "🔔",
    ToastLevel.SUCCESS: "✅",
    ToastLevel.ERROR: "⚠️",
}


class TelegramNotifier:
    """
    Deliver toasts as chat messages to one trainer.
    """

    def __init__(self, bot: Bot, chat_id: int) -> None:
        self.bot = bot
        self.chat_id = chat_id

    async def notify(self, level: ToastLevel, title: str, message: str) -> None:
        text = f"{_ICONS[level]} {html.bold(html.quote(title))}\n{html.quote(message)}"
        try:
            await self.bot.send_message(chat_id=self.chat_id, text=text, parse_mode="HTML")
        except TelegramAPIError as exc:
            logger.warning("Failed to deliver toast to %s: %s", self.chat_id, exc)
