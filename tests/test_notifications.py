"""Tests for the notification feed and its virtual subscription alerts."""

import json
from datetime import date

import pytest

from coach_crm.data.notifications import NotificationsData, build_subscription_alerts, is_virtual

TODAY = date(2024, 5, 10)


def _subscription(lead_id, expiration, status="פעיל", name="Dana"):
    return {
        "id": lead_id,
        "customer_id": f"C-{lead_id}",
        "subscription_data": {"expirationDate": expiration, "status": status},
        "customers": {"full_name": name},
    }


SUBSCRIPTIONS = [
    _subscription("L1", "2024-05-12"),
    _subscription("L2", "2024-05-01", name="Noa"),
    _subscription("L3", "2024-06-30"),
    _subscription("L4", "2024-05-11", status="מוקפא"),
]

STORED = [
    {"id": "N1", "user_id": "U1", "type": "lead_created", "title": "ליד חדש", "message": "Dana", "is_read": False},
    {"id": "N2", "user_id": "U1", "type": "lead_created", "title": "ליד חדש", "message": "Noa", "is_read": True},
]


@pytest.fixture
def notifications(client, reconciler) -> NotificationsData:
    return NotificationsData(client, reconciler, today=lambda: TODAY)


@pytest.fixture
def routed(fake):
    fake.route("GET", "leads", SUBSCRIPTIONS)
    fake.route("GET", "notifications", STORED)
    fake.route("POST", "rpc/get_unread_notification_count", 1)
    return fake


def test_alerts_cover_expired_and_ending_soon_most_urgent_first():
    alerts = build_subscription_alerts(SUBSCRIPTIONS, user_id="U1", today=TODAY)

    assert [alert.lead_id for alert in alerts] == ["L2", "L1"]
    expired, ending = alerts
    assert expired.title == "מנוי פג תוקף"
    assert "Noa" in expired.message
    assert ending.title == "מנוי מסתיים בקרוב"
    assert ending.metadata["daysLeft"] == 2
    assert ending.id == "sub-alert-L1-2024-05-12"
    assert is_virtual(ending.id)


def test_alerts_skip_read_and_malformed_dates():
    rows = [*SUBSCRIPTIONS, _subscription("L5", "not-a-date")]

    alerts = build_subscription_alerts(
        rows, user_id="U1", today=TODAY, read_ids={"sub-alert-L2-2024-05-01"}
    )

    assert [alert.lead_id for alert in alerts] == ["L1"]


@pytest.mark.asyncio
async def test_feed_puts_alerts_first_and_counts_them_unread(notifications: NotificationsData, routed):
    feed = await notifications.fetch_notifications("U1")

    assert [item.id for item in feed.notifications] == [
        "sub-alert-L2-2024-05-01",
        "sub-alert-L1-2024-05-12",
        "N1",
        "N2",
    ]
    assert feed.unread_count == 3
    assert routed.calls("GET", "notifications")[0].url.params["user_id"] == "eq.U1"


@pytest.mark.asyncio
async def test_unread_count_falls_back_when_rpc_fails(notifications: NotificationsData, fake):
    fake.route("GET", "leads", [])
    fake.route("GET", "notifications", STORED)
    fake.route("POST", "rpc/get_unread_notification_count", {"message": "boom"}, status=500)

    feed = await notifications.fetch_notifications("U1")

    assert feed.unread_count == 1


@pytest.mark.asyncio
async def test_mark_stored_notification_read(notifications: NotificationsData, routed):
    await notifications.fetch_notifications("U1")
    routed.route("PATCH", "notifications", [{**STORED[0], "is_read": True}])

    updated = await notifications.mark_as_read("U1", "N1")

    assert updated.is_read
    patch = json.loads(routed.calls("PATCH", "notifications")[0].content)
    assert patch["is_read"] is True
    assert "read_at" in patch
    feed = notifications._cache.get(("notifications", "U1", 50))
    assert feed.unread_count == 2
    assert next(item for item in feed.notifications if item.id == "N1").is_read


@pytest.mark.asyncio
async def test_dismissing_an_alert_is_local(notifications: NotificationsData, routed):
    await notifications.fetch_notifications("U1")
    alert_id = "sub-alert-L1-2024-05-12"
    before = len(routed.requests)

    assert await notifications.mark_as_read("U1", alert_id) is None

    assert len(routed.requests) == before
    feed = notifications._cache.get(("notifications", "U1", 50))
    assert alert_id not in [item.id for item in feed.notifications]
    assert feed.unread_count == 2
    alerts = await notifications.subscription_alerts("U1")
    assert [alert.id for alert in alerts] == ["sub-alert-L2-2024-05-01"]


@pytest.mark.asyncio
async def test_mark_all_leaves_alerts_unread(notifications: NotificationsData, routed):
    await notifications.fetch_notifications("U1")
    routed.route("PATCH", "notifications", [{**STORED[0], "is_read": True}])

    await notifications.mark_all_as_read("U1")

    params = routed.calls("PATCH", "notifications")[0].url.params
    assert params["user_id"] == "eq.U1"
    assert params["is_read"] == "eq.false"
    feed = notifications._cache.get(("notifications", "U1", 50))
    unread = [item.id for item in feed.notifications if not item.is_read]
    assert unread == ["sub-alert-L2-2024-05-01", "sub-alert-L1-2024-05-12"]
    assert not notifications._cache.is_fresh(("notifications", "U1", 50))
