from __future__ import annotations

import logging

from aiogram import F, Router, html
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, Message

from coach_crm.bot.keyboards import QUICK_STATUSES, SET_STATUS, Keyboards
from coach_crm.core.validation import MissingIdentifierError
from coach_crm.data import CrmData
from coach_crm.db.filters import filters_to_group
from coach_crm.db.models import Lead
from coach_crm.db.supabase import SupabaseError

logger = logging.getLogger(__name__)

router = Router(name="leads")

PAGE_SIZE = 20
NOT_LINKED = "יש לשלוח /start כדי לקשר את הפרופיל שלך."


def format_lead_line(index: int, lead: Lead) -> str:
    status = lead.status_main or "—"
    if lead.status_sub:
        status = f"{status} / {lead.status_sub}"
    return f"{index}. <code>{lead.id}</code> · {html.quote(status)}"


def format_lead(lead: Lead, customer_name: str | None) -> str:
    lines = [f"<b>{html.quote(customer_name or 'ליד')}</b>", ""]
    fields = [
        ("סטטוס", lead.status_main),
        ("תת-סטטוס", lead.status_sub),
        ("מקור", lead.source),
        ("מטרה", lead.fitness_goal),
        ("רמת פעילות", lead.activity_level),
        ("זמן מועדף", lead.preferred_time),
        ("מנוי עד", lead.subscription_data.get("expirationDate")),
    ]
    for label, value in fields:
        if value:
            lines.append(f"{label}: {html.quote(str(value))}")
    if lead.created_at:
        lines.append(f"נוצר: {lead.created_at.strftime('%d.%m.%Y')}")
    return "\n".join(lines)


async def _send_leads(message: Message, crm: CrmData) -> None:
    view = await crm.saved_views.get_default_view("leads")
    group = filters_to_group(view.filter_config.get("advancedFilters") or []) if view else None

    try:
        leads = await crm.leads.list_leads(group, page_size=PAGE_SIZE)
    except SupabaseError as exc:
        logger.error("Failed to list leads: %s", exc)
        await message.answer("לא ניתן לטעון לידים כרגע. נסה שוב מאוחר יותר.")
        return

    if not leads:
        await message.answer("אין לידים להצגה.")
        return

    title = f"לידים ({html.quote(view.view_name)})" if view else "לידים"
    lines = [f"<b>{title}</b>", ""]
    lines.extend(format_lead_line(idx, lead) for idx, lead in enumerate(leads, start=1))
    await message.answer("\n".join(lines))


@router.message(Command("leads"))
async def cmd_leads(message: Message, crm: CrmData | None = None) -> None:
    """
    First page of leads, narrowed by the trainer's default saved view.
    """

    if crm is None:
        await message.answer(NOT_LINKED)
        return
    await _send_leads(message, crm)


@router.callback_query(F.data == "menu_leads")
async def cb_leads(callback: CallbackQuery, crm: CrmData | None = None) -> None:
    if crm is None:
        await callback.answer(NOT_LINKED, show_alert=True)
        return
    await _send_leads(callback.message, crm)
    await callback.answer()


@router.message(Command("lead"))
async def cmd_lead(message: Message, command: CommandObject, crm: CrmData | None = None) -> None:
    if crm is None:
        await message.answer(NOT_LINKED)
        return
    if not command.args:
        await message.answer("שימוש: /lead &lt;מזהה&gt;")
        return

    try:
        lead = await crm.leads.fetch_lead(command.args.strip())
        customer = await crm.customers.fetch_customer(lead.customer_id) if lead and lead.customer_id else None
    except SupabaseError as exc:
        logger.error("Failed to load lead: %s", exc)
        await message.answer("לא ניתן לטעון את הליד כרגע.")
        return

    if lead is None:
        await message.answer("הליד לא נמצא.")
        return

    await message.answer(
        format_lead(lead, customer.full_name if customer else None),
        reply_markup=Keyboards.lead_statuses(lead.id),
    )


async def _set_status(crm: CrmData, lead_id: str, status: str) -> Lead | None:
    # Failures already reached the trainer as a toast
    try:
        return await crm.leads.update_lead_status(lead_id, status)
    except SupabaseError as exc:
        logger.info("Status update for lead %s failed: %s", lead_id, exc)
        return None


@router.message(Command("status"))
async def cmd_status(message: Message, command: CommandObject, crm: CrmData | None = None) -> None:
    """
    /status <lead id> <status>. The status may contain spaces.
    """

    if crm is None:
        await message.answer(NOT_LINKED)
        return

    parts = (command.args or "").split(maxsplit=1)
    if len(parts) != 2:
        await message.answer("שימוש: /status &lt;מזהה&gt; &lt;סטטוס&gt;")
        return

    lead_id, status = parts
    try:
        await _set_status(crm, lead_id, status.strip())
    except MissingIdentifierError:
        await message.answer("מזהה הליד חסר.")


@router.callback_query(F.data.startswith(SET_STATUS))
async def cb_status(callback: CallbackQuery, crm: CrmData | None = None) -> None:
    if crm is None:
        await callback.answer(NOT_LINKED, show_alert=True)
        return

    lead_id, _, index = callback.data[len(SET_STATUS):].rpartition(":")
    if not index.isdigit() or int(index) >= len(QUICK_STATUSES):
        await callback.answer()
        return

    await _set_status(crm, lead_id, QUICK_STATUSES[int(index)])
    await callback.answer()
