from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware, Bot
from aiogram.types import CallbackQuery, Message, TelegramObject

from coach_crm.bot.notifier import TelegramNotifier
from coach_crm.cache import QueryCache
from coach_crm.core import get_settings
from coach_crm.data import CrmData
from coach_crm.db.models import Profile
from coach_crm.db.supabase import SupabaseClient, SupabaseError, eq

logger = logging.getLogger(__name__)


class TrainerContextMiddleware(BaseMiddleware):
    """
    Middleware that attaches the trainer's profile and data session.

    The profile is resolved by Telegram user id. Each trainer keeps one
    `CrmData` (and so one query cache) for the life of the process.
    Works for both Message and CallbackQuery events.
    """

    def __init__(self, client: SupabaseClient) -> None:
        self.client = client
        self.sessions: dict[int, CrmData] = {}

    def _session(self, bot: Bot, telegram_user_id: int, profile: Profile) -> CrmData:
        session = self.sessions.get(telegram_user_id)
        if session is None or session.user_id != profile.id:
            settings = get_settings()
            session = CrmData(
                self.client,
                user_id=profile.id,
                cache=QueryCache(stale_after=settings.query_stale_seconds),
                notifier=TelegramNotifier(bot, telegram_user_id),
                alert_days=settings.subscription_alert_days,
            )
            self.sessions[telegram_user_id] = session
        return session

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        from_user = None
        if isinstance(event, (Message, CallbackQuery)):
            from_user = event.from_user

        profile: Profile | None = None
        crm: CrmData | None = None
        if from_user:
            try:
                row = await self.client.select_one(
                    "profiles", {"telegram_user_id": eq(from_user.id)}
                )
            except SupabaseError as exc:
                logger.warning("Failed to resolve trainer profile: %s", exc)
                row = None
            if row is not None:
                profile = Profile.model_validate(row)
                crm = self._session(data["bot"], from_user.id, profile)

        data["profile"] = profile
        data["crm"] = crm
        return await handler(event, data)
