import json
from datetime import datetime

import pytest

from coach_crm.data import MeetingsData, PlansData
from coach_crm.db.models import NutritionPlan, PlanKind

MEETING_ROW = {"id": "M1", "lead_id": "L1", "meeting_data": {"מטרה": "כוח", "_formId": "form-9"}}
PLAN_ROW = {
    "id": "P1",
    "customer_id": "C1",
    "start_date": "2024-05-01",
    "is_active": True,
    "targets": {"calories": 2200, "protein": 160},
}


@pytest.fixture
def meetings(client, reconciler) -> MeetingsData:
    return MeetingsData(client, reconciler)


@pytest.fixture
def plans(client, reconciler) -> PlansData:
    return PlansData(client, reconciler)


@pytest.mark.asyncio
async def test_list_meetings_in_calendar_window(meetings: MeetingsData, fake):
    fake.route("GET", "meetings", [MEETING_ROW])

    result = await meetings.list_meetings(
        "C1", start=datetime(2024, 5, 5), end=datetime(2024, 5, 11, 23, 59)
    )

    assert [meeting.id for meeting in result] == ["M1"]
    params = fake.requests[0].url.params
    assert params["customer_id"] == "eq.C1"
    assert params["and"] == "(created_at.gte.2024-05-05T00:00:00,created_at.lte.2024-05-11T23:59:00)"


@pytest.mark.asyncio
async def test_update_meeting_merges_form_data(meetings: MeetingsData, fake, notifier):
    fake.route("GET", "meetings", [MEETING_ROW])
    await meetings.list_meetings()
    merged = {**MEETING_ROW["meeting_data"], "הערות": "להתקשר שוב", "מטרה": None}
    fake.route("PATCH", "meetings", [{**MEETING_ROW, "meeting_data": merged}])

    meeting = await meetings.update_meeting("M1", {"הערות": "להתקשר שוב", "מטרה": None})

    sent = json.loads(fake.calls("PATCH", "meetings")[0].content)
    assert sent == {"meeting_data": merged}
    assert meeting.meeting_data["הערות"] == "להתקשר שוב"
    cached_list = next(value for _, value in meetings._cache.entries(("meetings",)))
    assert cached_list[0].meeting_data == merged
    assert notifier.toasts[-1].message == "הפגישה עודכנה"


@pytest.mark.asyncio
async def test_update_missing_meeting_raises(meetings: MeetingsData, fake):
    fake.route("GET", "meetings", [])

    with pytest.raises(LookupError):
        await meetings.update_meeting("M404", {"הערות": "x"})
    assert fake.calls("PATCH", "meetings") == []


@pytest.mark.asyncio
async def test_active_plan_uses_kind_table(plans: PlansData, fake):
    fake.route("GET", "nutrition_plans", [PLAN_ROW])

    plan = await plans.fetch_active_plan(PlanKind.NUTRITION, "C1")

    assert isinstance(plan, NutritionPlan)
    assert plan.targets["calories"] == 2200
    params = fake.requests[0].url.params
    assert params["is_active"] == "eq.true"
    assert params["limit"] == "1"


@pytest.mark.asyncio
async def test_deactivating_plan_refreshes_active_plan(plans: PlansData, fake):
    fake.route("GET", "nutrition_plans", [PLAN_ROW])
    await plans.fetch_active_plan(PlanKind.NUTRITION, "C1")
    await plans.list_plans(PlanKind.NUTRITION, "C1")
    fake.route("PATCH", "nutrition_plans", [{**PLAN_ROW, "is_active": False}])

    plan = await plans.update_plan(PlanKind.NUTRITION, "P1", {"is_active": False})

    assert plan.is_active is False
    cache = plans._cache
    assert cache.get(("plans", "nutrition", "C1"))[0].is_active is False
    assert not cache.is_fresh(("plan", "nutrition", "C1"))
    assert cache.is_fresh(("plans", "nutrition", "C1"))
