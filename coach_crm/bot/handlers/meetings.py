from __future__ import annotations

import logging
from datetime import date
from typing import Any

from aiogram import Router, html
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from coach_crm.data import CrmData
from coach_crm.db.models import Meeting
from coach_crm.db.supabase import SupabaseError
from coach_crm.state.calendar_view import CalendarState, visible_range

logger = logging.getLogger(__name__)

router = Router(name="meetings")

NOT_LINKED = "יש לשלוח /start כדי לקשר את הפרופיל שלך."
VIEW_MODES = ("day", "week", "month")


def meeting_type(data: dict[str, Any]) -> str:
    return str(
        data.get("סוג פגישה") or data.get("meeting_type") or data.get("type") or "פגישת הכרות"
    )


def format_meeting(meeting: Meeting) -> str:
    when = meeting.created_at.strftime("%d.%m %H:%M") if meeting.created_at else "—"
    status = meeting.meeting_data.get("status") or meeting.meeting_data.get("סטטוס") or "פעיל"
    return f"{when} · {html.quote(meeting_type(meeting.meeting_data))} · {html.quote(str(status))}"


@router.message(Command("meetings"))
async def cmd_meetings(
    message: Message, command: CommandObject, crm: CrmData | None = None
) -> None:
    """
    /meetings [day|week|month]: meetings in the current calendar period.
    """

    if crm is None:
        await message.answer(NOT_LINKED)
        return

    mode = (command.args or "week").strip().lower()
    if mode not in VIEW_MODES:
        await message.answer("שימוש: /meetings [day|week|month]")
        return

    start, end = visible_range(CalendarState(view_mode=mode, selected_date=date.today()))
    try:
        meetings = await crm.meetings.list_meetings(start=start, end=end)
    except SupabaseError as exc:
        logger.error("Failed to list meetings: %s", exc)
        await message.answer("לא ניתן לטעון פגישות כרגע.")
        return

    if not meetings:
        await message.answer("אין פגישות בתקופה הזאת.")
        return

    lines = [f"<b>📅 פגישות {start:%d.%m}–{end:%d.%m}</b>", ""]
    lines.extend(format_meeting(meeting) for meeting in meetings)
    await message.answer("\n".join(lines))
