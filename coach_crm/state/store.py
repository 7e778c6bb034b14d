"""
UI state container.

Holds one value per slice and replaces it through the slice's reducer
functions. Sidebar and table preferences outlive the process: they are
written to a JSON file after every change and read back on start.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Literal

from pydantic import BaseModel, Field, ValidationError

from coach_crm.core import get_settings
from coach_crm.state.calendar_view import CalendarState
from coach_crm.state.impersonation import ImpersonationState
from coach_crm.state.sidebar import SidebarState
from coach_crm.state.table_state import TablesState

logger = logging.getLogger(__name__)

SliceName = Literal["sidebar", "table_state", "impersonation", "calendar"]
PERSISTED: tuple[SliceName, ...] = ("sidebar", "table_state")


class UIState(BaseModel):
    sidebar: SidebarState = Field(default_factory=SidebarState)
    table_state: TablesState = Field(default_factory=TablesState)
    impersonation: ImpersonationState = Field(default_factory=ImpersonationState)
    calendar: CalendarState = Field(default_factory=CalendarState)


class UIStore:
    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path else None
        self._listeners: list[Callable[[UIState], None]] = []
        self.state = self._load()

    @classmethod
    def from_settings(cls) -> UIStore:
        return cls(get_settings().ui_state_path)

    def _load(self) -> UIState:
        if self._path is None or not self._path.exists():
            return UIState()
        try:
            saved = UIState.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            logger.warning("Failed to load UI state from %s: %s", self._path, exc)
            return UIState()
        return UIState(sidebar=saved.sidebar, table_state=saved.table_state)

    def _save(self) -> None:
        if self._path is None:
            return
        data = self.state.model_dump_json(include=set(PERSISTED), indent=2)
        try:
            self._path.write_text(data, encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to save UI state to %s: %s", self._path, exc)

    def dispatch(self, slice_name: SliceName, reducer: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Run `reducer(current_slice, *args, **kwargs)` and store the result.
        """

        current = getattr(self.state, slice_name)
        new = reducer(current, *args, **kwargs)
        if new is current:
            return new
        self.state = self.state.model_copy(update={slice_name: new})
        if slice_name in PERSISTED:
            self._save()
        for listener in list(self._listeners):
            listener(self.state)
        return new

    def subscribe(self, listener: Callable[[UIState], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
