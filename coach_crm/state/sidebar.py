from __future__ import annotations

from pydantic import BaseModel, Field

DEFAULT_SECTIONS = {
    "leads": True,
    "customers": False,
    "templates": False,
    "nutrition_templates": False,
    "meetings": False,
}


class SidebarState(BaseModel):
    is_collapsed: bool = False
    expanded_sections: dict[str, bool] = Field(default_factory=lambda: dict(DEFAULT_SECTIONS))


def _all_sections(state: SidebarState, expanded: bool) -> dict[str, bool]:
    return {key: expanded for key in state.expanded_sections}


def set_sidebar_collapsed(state: SidebarState, collapsed: bool) -> SidebarState:
    # A collapsed sidebar shows no open sections
    sections = _all_sections(state, False) if collapsed else dict(state.expanded_sections)
    return state.model_copy(update={"is_collapsed": collapsed, "expanded_sections": sections})


def toggle_sidebar(state: SidebarState) -> SidebarState:
    return set_sidebar_collapsed(state, not state.is_collapsed)


def toggle_section(state: SidebarState, resource_key: str) -> SidebarState:
    """
    Accordion toggle: opening a section closes every other one.
    """

    if state.expanded_sections.get(resource_key, False):
        sections = {**state.expanded_sections, resource_key: False}
    else:
        sections = {**_all_sections(state, False), resource_key: True}
    return state.model_copy(update={"expanded_sections": sections})


def set_section_expanded(state: SidebarState, resource_key: str, expanded: bool) -> SidebarState:
    sections = {**state.expanded_sections, resource_key: expanded}
    return state.model_copy(update={"expanded_sections": sections})


def expand_all_sections(state: SidebarState) -> SidebarState:
    return state.model_copy(update={"expanded_sections": _all_sections(state, True)})


def collapse_all_sections(state: SidebarState) -> SidebarState:
    return state.model_copy(update={"expanded_sections": _all_sections(state, False)})
