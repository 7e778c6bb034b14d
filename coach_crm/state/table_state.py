"""
Per-resource table preferences: visible columns, their order and widths, the
search box, active filters and grouping.

Every function returns a new `TablesState`. Actions on a resource that was
never initialized are ignored, except `set_column_visibility` and
`apply_saved_view` which create it.
"""

from __future__ import annotations

from typing import Any, Callable, Literal, Optional

from pydantic import BaseModel, Field

from coach_crm.db.filters import ActiveFilter

SortDirection = Optional[Literal["asc", "desc"]]
GroupKeys = tuple[Optional[str], Optional[str]]


class TableState(BaseModel):
    column_visibility: dict[str, bool] = Field(default_factory=dict)
    column_sizing: dict[str, int] = Field(default_factory=dict)
    column_order: list[str] = Field(default_factory=list)
    search_query: str = ""
    active_filters: list[ActiveFilter] = Field(default_factory=list)
    group_by_keys: GroupKeys = (None, None)
    group_sorting: dict[str, SortDirection] = Field(
        default_factory=lambda: {"level1": None, "level2": None}
    )
    collapsed_groups: list[str] = Field(default_factory=list)


class TablesState(BaseModel):
    tables: dict[str, TableState] = Field(default_factory=dict)


def get_table(state: TablesState, resource_key: str) -> TableState:
    return state.tables.get(resource_key) or TableState()


def _update(
    state: TablesState,
    resource_key: str,
    change: Callable[[TableState], dict[str, Any]],
) -> TablesState:
    table = state.tables.get(resource_key)
    if table is None:
        return state
    tables = {**state.tables, resource_key: table.model_copy(update=change(table))}
    return state.model_copy(update={"tables": tables})


def initialize_table(
    state: TablesState,
    resource_key: str,
    column_ids: list[str],
    *,
    visibility: dict[str, bool] | None = None,
    sizing: dict[str, int] | None = None,
    order: list[str] | None = None,
) -> TablesState:
    if resource_key in state.tables:
        return state
    visibility = visibility or {}
    table = TableState(
        column_visibility={column: visibility.get(column, True) for column in column_ids},
        column_sizing=dict(sizing or {}),
        column_order=list(order or column_ids),
    )
    return state.model_copy(update={"tables": {**state.tables, resource_key: table}})


def set_column_visibility(
    state: TablesState, resource_key: str, column_id: str, visible: bool
) -> TablesState:
    if resource_key not in state.tables:
        table = TableState(column_visibility={column_id: visible}, column_order=[column_id])
        return state.model_copy(update={"tables": {**state.tables, resource_key: table}})
    return _update(
        state,
        resource_key,
        lambda t: {"column_visibility": {**t.column_visibility, column_id: visible}},
    )


def toggle_column_visibility(state: TablesState, resource_key: str, column_id: str) -> TablesState:
    # Unknown columns count as visible, so the first toggle hides them
    return _update(
        state,
        resource_key,
        lambda t: {
            "column_visibility": {
                **t.column_visibility,
                column_id: not t.column_visibility.get(column_id, True),
            }
        },
    )


def set_all_column_visibility(
    state: TablesState, resource_key: str, visibility: dict[str, bool]
) -> TablesState:
    return _update(state, resource_key, lambda t: {"column_visibility": dict(visibility)})


def set_column_sizing(state: TablesState, resource_key: str, column_id: str, size: int) -> TablesState:
    return _update(
        state,
        resource_key,
        lambda t: {"column_sizing": {**t.column_sizing, column_id: size}},
    )


def set_column_order(state: TablesState, resource_key: str, order: list[str]) -> TablesState:
    return _update(state, resource_key, lambda t: {"column_order": list(order)})


def set_search_query(state: TablesState, resource_key: str, query: str) -> TablesState:
    return _update(state, resource_key, lambda t: {"search_query": query})


def add_filter(
    state: TablesState, resource_key: str, flt: ActiveFilter | dict[str, Any]
) -> TablesState:
    flt = flt if isinstance(flt, ActiveFilter) else ActiveFilter.model_validate(flt)
    return _update(state, resource_key, lambda t: {"active_filters": [*t.active_filters, flt]})


def update_filter(
    state: TablesState, resource_key: str, filter_id: str, changes: dict[str, Any]
) -> TablesState:
    def change(table: TableState) -> dict[str, Any]:
        filters = [
            flt.model_copy(update=changes) if flt.id == filter_id else flt
            for flt in table.active_filters
        ]
        return {"active_filters": filters}

    return _update(state, resource_key, change)


def remove_filter(state: TablesState, resource_key: str, filter_id: str) -> TablesState:
    return _update(
        state,
        resource_key,
        lambda t: {"active_filters": [f for f in t.active_filters if f.id != filter_id]},
    )


def clear_filters(state: TablesState, resource_key: str) -> TablesState:
    return _update(state, resource_key, lambda t: {"active_filters": []})


def set_group_by(
    state: TablesState,
    resource_key: str,
    level1: str | None,
    level2: str | None = None,
) -> TablesState:
    """
    Group rows by up to two columns. Regrouping expands every group.
    """

    if level1 is None:
        level2 = None
    return _update(
        state,
        resource_key,
        lambda t: {"group_by_keys": (level1, level2), "collapsed_groups": []},
    )


def set_group_sorting(
    state: TablesState, resource_key: str, level: Literal[1, 2], direction: SortDirection
) -> TablesState:
    name = "level1" if level == 1 else "level2"
    return _update(
        state,
        resource_key,
        lambda t: {"group_sorting": {**t.group_sorting, name: direction}},
    )


def toggle_group_collapsed(state: TablesState, resource_key: str, group_key: str) -> TablesState:
    def change(table: TableState) -> dict[str, Any]:
        if group_key in table.collapsed_groups:
            return {"collapsed_groups": [g for g in table.collapsed_groups if g != group_key]}
        return {"collapsed_groups": [*table.collapsed_groups, group_key]}

    return _update(state, resource_key, change)


def apply_saved_view(
    state: TablesState, resource_key: str, filter_config: dict[str, Any]
) -> TablesState:
    """
    Load a saved view's stored configuration into the table.

    Keys missing from the configuration keep their current value, except the
    filters and search box which a view always replaces.
    """

    table = get_table(state, resource_key)
    update: dict[str, Any] = {
        "search_query": filter_config.get("searchQuery") or "",
        "active_filters": [
            ActiveFilter.model_validate(flt) for flt in filter_config.get("advancedFilters") or []
        ],
        "collapsed_groups": [],
    }
    if filter_config.get("columnVisibility") is not None:
        update["column_visibility"] = dict(filter_config["columnVisibility"])
    if filter_config.get("columnOrder") is not None:
        update["column_order"] = list(filter_config["columnOrder"])
    if filter_config.get("columnWidths") is not None:
        update["column_sizing"] = dict(filter_config["columnWidths"])
    if filter_config.get("groupByKeys") is not None:
        level1, level2 = (list(filter_config["groupByKeys"]) + [None, None])[:2]
        update["group_by_keys"] = (level1, level2 if level1 else None)

    tables = {**state.tables, resource_key: table.model_copy(update=update)}
    return state.model_copy(update={"tables": tables})


def to_filter_config(
    state: TablesState,
    resource_key: str,
    *,
    sort_by: str | None = None,
    sort_order: Literal["asc", "desc"] | None = None,
) -> dict[str, Any]:
    """
    The table's current configuration in the shape saved views store.
    """

    table = get_table(state, resource_key)
    config: dict[str, Any] = {
        "searchQuery": table.search_query,
        "columnVisibility": dict(table.column_visibility),
        "columnOrder": list(table.column_order),
        "columnWidths": dict(table.column_sizing),
        "advancedFilters": [
            flt.model_dump(by_alias=True, exclude_none=True) for flt in table.active_filters
        ],
    }
    if any(table.group_by_keys):
        config["groupByKeys"] = list(table.group_by_keys)
    if sort_by:
        config["sortBy"] = sort_by
        config["sortOrder"] = sort_order or "asc"
    return config
