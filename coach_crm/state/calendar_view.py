from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta
from typing import Literal

from pydantic import BaseModel, Field

ViewMode = Literal["day", "week", "month"]


class CalendarState(BaseModel):
    view_mode: ViewMode = "week"
    selected_date: date = Field(default_factory=date.today)


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last_day))


def _shift(state: CalendarState, steps: int) -> CalendarState:
    if state.view_mode == "month":
        selected = _add_months(state.selected_date, steps)
    elif state.view_mode == "week":
        selected = state.selected_date + timedelta(weeks=steps)
    else:
        selected = state.selected_date + timedelta(days=steps)
    return state.model_copy(update={"selected_date": selected})


def set_view_mode(state: CalendarState, mode: ViewMode) -> CalendarState:
    return state.model_copy(update={"view_mode": mode})


def set_selected_date(state: CalendarState, selected: date | datetime) -> CalendarState:
    if isinstance(selected, datetime):
        selected = selected.date()
    return state.model_copy(update={"selected_date": selected})


def next_period(state: CalendarState) -> CalendarState:
    return _shift(state, 1)


def previous_period(state: CalendarState) -> CalendarState:
    return _shift(state, -1)


def today(state: CalendarState, now: date | None = None) -> CalendarState:
    return state.model_copy(update={"selected_date": now or date.today()})


def visible_range(state: CalendarState) -> tuple[datetime, datetime]:
    """
    First and last instant shown by the current view. Weeks start on Sunday.
    """

    selected = state.selected_date
    if state.view_mode == "day":
        start = end = selected
    elif state.view_mode == "week":
        # date.weekday(): Monday is 0, Sunday is 6
        start = selected - timedelta(days=(selected.weekday() + 1) % 7)
        end = start + timedelta(days=6)
    else:
        start = selected.replace(day=1)
        end = selected.replace(day=calendar.monthrange(selected.year, selected.month)[1])
    return datetime.combine(start, time.min), datetime.combine(end, time.max)
