from __future__ import annotations

import logging

from aiogram import F, Router, html
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from coach_crm.bot.keyboards import READ_NOTIFICATION, Keyboards
from coach_crm.data import CrmData
from coach_crm.db.supabase import SupabaseError

logger = logging.getLogger(__name__)

router = Router(name="notifications")

SHOWN = 10
NOT_LINKED = "יש לשלוח /start כדי לקשר את הפרופיל שלך."


async def _send_notifications(message: Message, crm: CrmData) -> None:
    feed = await crm.notifications.fetch_notifications(crm.user_id)
    unread = [item for item in feed.notifications if not item.is_read]

    if not unread:
        await message.answer("אין התראות חדשות 🎉")
        return

    await message.answer(f"<b>🔔 {feed.unread_count} התראות שלא נקראו</b>")
    for item in unread[:SHOWN]:
        await message.answer(
            f"<b>{html.quote(item.title)}</b>\n{html.quote(item.message)}",
            reply_markup=Keyboards.notification_actions(item.id),
        )


@router.message(Command("notifications"))
async def cmd_notifications(message: Message, crm: CrmData | None = None) -> None:
    if crm is None:
        await message.answer(NOT_LINKED)
        return
    await _send_notifications(message, crm)


@router.callback_query(F.data == "menu_notifications")
async def cb_notifications(callback: CallbackQuery, crm: CrmData | None = None) -> None:
    if crm is None:
        await callback.answer(NOT_LINKED, show_alert=True)
        return
    await _send_notifications(callback.message, crm)
    await callback.answer()


@router.callback_query(F.data.startswith(READ_NOTIFICATION))
async def cb_mark_read(callback: CallbackQuery, crm: CrmData | None = None) -> None:
    if crm is None:
        await callback.answer(NOT_LINKED, show_alert=True)
        return

    notification_id = callback.data[len(READ_NOTIFICATION):]
    try:
        await crm.notifications.mark_as_read(crm.user_id, notification_id)
    except SupabaseError as exc:
        logger.info("Marking notification %s read failed: %s", notification_id, exc)
        await callback.answer()
        return

    await callback.message.edit_reply_markup(reply_markup=None)
    await callback.answer("סומן כנקרא")


@router.message(Command("read_all"))
async def cmd_read_all(message: Message, crm: CrmData | None = None) -> None:
    """
    Mark every stored notification read. Subscription alerts stay.
    """

    if crm is None:
        await message.answer(NOT_LINKED)
        return

    try:
        marked = await crm.notifications.mark_all_as_read(crm.user_id)
    except SupabaseError as exc:
        logger.info("Marking all notifications read failed: %s", exc)
        return

    await message.answer(f"סומנו {len(marked)} התראות כנקראו.")
