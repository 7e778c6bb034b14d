"""
Client-only UI state: pure reducers over pydantic models, no I/O.

`UIStore` is the one place that keeps the current values and persists the
sidebar and table preferences.
"""

from .calendar_view import CalendarState, visible_range
from .impersonation import Identity, ImpersonationState, effective_identity
from .sidebar import SidebarState
from .store import UIState, UIStore
from .table_state import TableState, TablesState, get_table

__all__ = [
    "CalendarState",
    "Identity",
    "ImpersonationState",
    "SidebarState",
    "TableState",
    "TablesState",
    "UIState",
    "UIStore",
    "effective_identity",
    "get_table",
    "visible_range",
]
