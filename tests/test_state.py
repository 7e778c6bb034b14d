"""Unit tests for the UI state slices and their store."""

import json
from datetime import date, datetime, time

import pytest

from coach_crm.db.models import Profile, UserRole
from coach_crm.state import calendar_view, impersonation, sidebar, table_state
from coach_crm.state.calendar_view import CalendarState
from coach_crm.state.impersonation import ImpersonationState
from coach_crm.state.sidebar import SidebarState
from coach_crm.state.store import UIStore
from coach_crm.state.table_state import TablesState, get_table


# ── Sidebar ──


def test_opening_a_section_closes_the_others():
    state = sidebar.toggle_section(SidebarState(), "customers")

    assert state.expanded_sections["customers"] is True
    assert state.expanded_sections["leads"] is False

    state = sidebar.toggle_section(state, "customers")
    assert not any(state.expanded_sections.values())


def test_collapsing_sidebar_closes_all_sections():
    state = sidebar.toggle_sidebar(SidebarState())

    assert state.is_collapsed
    assert not any(state.expanded_sections.values())
    assert sidebar.expand_all_sections(state).expanded_sections["meetings"] is True


# ── Table state ──


def test_actions_on_unknown_table_are_ignored():
    state = TablesState()

    assert table_state.set_search_query(state, "leads", "dana") is state
    assert table_state.toggle_column_visibility(state, "leads", "phone") is state


def test_initialize_and_column_preferences():
    state = table_state.initialize_table(
        TablesState(), "leads", ["name", "phone", "notes"], visibility={"notes": False}
    )
    state = table_state.toggle_column_visibility(state, "leads", "phone")
    state = table_state.toggle_column_visibility(state, "leads", "bmi")
    state = table_state.set_column_sizing(state, "leads", "name", 240)

    table = get_table(state, "leads")
    assert table.column_visibility == {"name": True, "phone": False, "notes": False, "bmi": False}
    assert table.column_order == ["name", "phone", "notes"]
    assert table.column_sizing == {"name": 240}
    assert table_state.initialize_table(state, "leads", ["other"]) is state


def test_set_column_visibility_creates_table():
    state = table_state.set_column_visibility(TablesState(), "customers", "email", False)

    assert get_table(state, "customers").column_visibility == {"email": False}


def test_filters_lifecycle():
    state = table_state.initialize_table(TablesState(), "leads", ["name"])
    state = table_state.add_filter(
        state, "leads", {"id": "f1", "fieldId": "source", "operator": "is", "values": ["facebook"]}
    )
    state = table_state.update_filter(state, "leads", "f1", {"values": ["instagram"]})

    assert get_table(state, "leads").active_filters[0].values == ["instagram"]
    assert get_table(table_state.remove_filter(state, "leads", "f1"), "leads").active_filters == []


def test_grouping_resets_collapsed_groups():
    state = table_state.initialize_table(TablesState(), "leads", ["status"])
    state = table_state.toggle_group_collapsed(state, "leads", "חדש")
    assert get_table(state, "leads").collapsed_groups == ["חדש"]

    state = table_state.set_group_by(state, "leads", None, "source")

    table = get_table(state, "leads")
    assert table.group_by_keys == (None, None)
    assert table.collapsed_groups == []


def test_saved_view_config_round_trip():
    config = {
        "searchQuery": "dana",
        "columnVisibility": {"name": True, "notes": False},
        "columnOrder": ["notes", "name"],
        "columnWidths": {"name": 200},
        "groupByKeys": ["status"],
        "advancedFilters": [
            {"id": "f1", "fieldId": "status", "operator": "is", "values": ["חדש"], "type": "select"}
        ],
    }

    state = table_state.apply_saved_view(TablesState(), "leads", config)
    table = get_table(state, "leads")
    assert table.group_by_keys == ("status", None)
    assert table.active_filters[0].field_id == "status"

    exported = table_state.to_filter_config(state, "leads", sort_by="created_at")
    assert exported["advancedFilters"] == config["advancedFilters"]
    assert exported["columnWidths"] == {"name": 200}
    assert exported["groupByKeys"] == ["status", None]
    assert exported["sortOrder"] == "asc"


# ── Impersonation ──


def test_impersonation_overrides_identity():
    coach = Profile(id="U1", role=UserRole.ADMIN)
    state = impersonation.start_impersonation(ImpersonationState(), "U9", "C9")

    identity = impersonation.effective_identity(state, coach)
    assert (identity.user_id, identity.customer_id) == ("U9", "C9")
    assert identity.is_trainee and identity.is_impersonating

    identity = impersonation.effective_identity(impersonation.stop_impersonation(state), coach)
    assert identity.user_id == "U1"
    assert not identity.is_trainee


def test_trainee_identity_and_missing_ids():
    trainee = Profile(id="U2", role=UserRole.TRAINEE, customer_id="C2")

    assert impersonation.effective_identity(ImpersonationState(), trainee).is_trainee
    assert impersonation.effective_identity(ImpersonationState(), None).user_id is None
    with pytest.raises(ValueError):
        impersonation.start_impersonation(ImpersonationState(), "", "C1")


# ── Calendar ──


def test_week_range_starts_on_sunday():
    state = CalendarState(view_mode="week", selected_date=date(2024, 5, 10))

    start, end = calendar_view.visible_range(state)

    assert start == datetime(2024, 5, 5)
    assert end == datetime.combine(date(2024, 5, 11), time.max)


def test_month_navigation_clamps_day():
    state = CalendarState(view_mode="month", selected_date=date(2024, 1, 31))

    state = calendar_view.next_period(state)

    assert state.selected_date == date(2024, 2, 29)
    start, end = calendar_view.visible_range(state)
    assert (start.date(), end.date()) == (date(2024, 2, 1), date(2024, 2, 29))


def test_day_navigation_and_today():
    state = CalendarState(view_mode="day", selected_date=date(2024, 5, 10))

    assert calendar_view.previous_period(state).selected_date == date(2024, 5, 9)
    assert calendar_view.today(state, date(2024, 6, 1)).selected_date == date(2024, 6, 1)


# ── Store ──


def test_store_persists_only_preferences(tmp_path):
    path = tmp_path / "ui_state.json"
    store = UIStore(path)
    seen = []
    store.subscribe(seen.append)

    store.dispatch("sidebar", sidebar.toggle_section, "meetings")
    store.dispatch("impersonation", impersonation.start_impersonation, "U9", "C9")

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert set(saved) == {"sidebar", "table_state"}
    assert len(seen) == 2

    reloaded = UIStore(path)
    assert reloaded.state.sidebar.expanded_sections["meetings"] is True
    assert not reloaded.state.impersonation.is_impersonating


def test_store_skips_unchanged_slices(tmp_path):
    store = UIStore(tmp_path / "ui_state.json")
    seen = []
    store.subscribe(seen.append)

    store.dispatch("table_state", table_state.set_search_query, "leads", "x")

    assert seen == []
    assert not (tmp_path / "ui_state.json").exists()


def test_store_falls_back_to_defaults_on_corrupt_file(tmp_path):
    path = tmp_path / "ui_state.json"
    path.write_text("{not json", encoding="utf-8")

    store = UIStore(path)

    assert store.state.sidebar.expanded_sections["leads"] is True
