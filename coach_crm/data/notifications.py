"""
Trainer notifications.

The feed merges stored notifications with virtual subscription alerts that
are computed on every fetch from the leads' subscription data. Alerts are not
rows: marking one as read only hides it for this process.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Mapping

from coach_crm.cache import CacheTarget, OptimisticReconciler
from coach_crm.core.validation import require_id
from coach_crm.data.base import DataSource, parse_first, parse_rows
from coach_crm.db.models import Notification, NotificationFeed
from coach_crm.db.supabase import SupabaseAuthError, SupabaseClient, SupabaseError, eq

logger = logging.getLogger(__name__)

NOTIFICATIONS = "notifications"
ALERT_PREFIX = "sub-alert-"
ACTIVE_SUBSCRIPTION = "פעיל"


def is_virtual(notification_id: str) -> bool:
    return notification_id.startswith(ALERT_PREFIX)


def build_subscription_alerts(
    rows: Iterable[Mapping[str, Any]],
    *,
    user_id: str,
    today: date,
    days_ahead: int = 7,
    read_ids: set[str] | None = None,
) -> list[Notification]:
    """
    Alerts for active subscriptions ending within `days_ahead` days or
    already expired, most urgent first.
    """

    read_ids = read_ids or set()
    horizon = today + timedelta(days=days_ahead)
    alerts: list[tuple[date, Notification]] = []

    for row in rows:
        sub = row.get("subscription_data") or {}
        raw_expiration = sub.get("expirationDate")
        if not raw_expiration or sub.get("status") != ACTIVE_SUBSCRIPTION:
            continue
        try:
            expiration = date.fromisoformat(str(raw_expiration)[:10])
        except ValueError:
            logger.debug("Skipping lead %s with bad expirationDate %r", row.get("id"), raw_expiration)
            continue
        if expiration > horizon:
            continue

        alert_id = f"{ALERT_PREFIX}{row['id']}-{raw_expiration}"
        if alert_id in read_ids:
            continue

        is_expired = expiration < today
        days_left = (expiration - today).days
        customer_name = (row.get("customers") or {}).get("full_name") or "לקוח"
        if is_expired:
            title = "מנוי פג תוקף"
            message = f"המנוי של {customer_name} הסתיים ב-{raw_expiration}"
        else:
            title = "מנוי מסתיים בקרוב"
            message = f"המנוי של {customer_name} מסתיים בעוד {days_left} ימים ({raw_expiration})"

        alerts.append(
            (
                expiration,
                Notification(
                    id=alert_id,
                    user_id=user_id,
                    customer_id=row.get("customer_id"),
                    lead_id=row["id"],
                    type="subscription_ending",
                    title=title,
                    message=message,
                    action_url=f"/leads/{row['id']}",
                    is_read=False,
                    created_at=datetime.now(timezone.utc),
                    metadata={
                        "expirationDate": raw_expiration,
                        "daysLeft": days_left,
                        "isVirtual": True,
                    },
                ),
            )
        )

    alerts.sort(key=lambda pair: pair[0])
    return [alert for _, alert in alerts]


def _feed_target(
    user_id: str,
    change: Callable[[Notification, Mapping[str, Any]], Notification | None],
    applies: Callable[[Notification], bool],
) -> CacheTarget:
    """
    Target every cached feed of `user_id`.

    `change` returns the new notification, or None to drop it. The unread
    count is recomputed from the items it touched.
    """

    def patch(feed: Any, updates: Mapping[str, Any]) -> Any:
        if not isinstance(feed, NotificationFeed):
            return feed
        items: list[Notification] = []
        unread = feed.unread_count
        touched = False
        for item in feed.notifications:
            if not applies(item):
                items.append(item)
                continue
            touched = True
            new = change(item, updates)
            if not item.is_read and (new is None or new.is_read):
                unread -= 1
            if new is not None:
                items.append(new)
        if not touched:
            return feed
        return NotificationFeed(notifications=items, unread_count=max(0, unread))

    def reconcile(feed: Any, rows: Any) -> Any:
        if not isinstance(feed, NotificationFeed) or not rows:
            return feed
        confirmed = {row.id: row for row in (rows if isinstance(rows, list) else [rows])}
        items = [confirmed.get(item.id, item) for item in feed.notifications]
        return feed.model_copy(update={"notifications": items})

    return CacheTarget(matcher=(NOTIFICATIONS, user_id), patch=patch, reconcile=reconcile)


class NotificationsData(DataSource):
    def __init__(
        self,
        client: SupabaseClient,
        reconciler: OptimisticReconciler,
        *,
        alert_days: int = 7,
        read_alerts: set[str] | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        super().__init__(client, reconciler)
        self._alert_days = alert_days
        self._today = today
        self.read_alerts: set[str] = read_alerts if read_alerts is not None else set()

    async def subscription_alerts(self, user_id: str) -> list[Notification]:
        try:
            result = await self._client.select(
                "leads",
                {"subscription_data": "not.is.null"},
                columns="id,subscription_data,customer_id,customers(full_name)",
            )
            rows: list[dict[str, Any]] = result.unwrap() or []
        except SupabaseAuthError:
            raise
        except SupabaseError as exc:
            logger.warning("Error fetching subscription alerts: %s", exc)
            return []
        return build_subscription_alerts(
            rows,
            user_id=user_id,
            today=self._today(),
            days_ahead=self._alert_days,
            read_ids=self.read_alerts,
        )

    async def _unread_count(self, notifications: list[Notification]) -> int:
        result = await self._client.rpc("get_unread_notification_count")
        if result.ok and isinstance(result.data, int):
            return result.data
        return sum(1 for item in notifications if not item.is_read)

    async def fetch_notifications(self, user_id: str, limit: int = 50) -> NotificationFeed:
        """
        Stored notifications newest first, with subscription alerts on top.
        """

        user_id = require_id(user_id, "user_id")

        async def load() -> NotificationFeed:
            result = await self._client.select(
                "notifications",
                {"user_id": eq(user_id)},
                ["created_at.desc"],
                limit=limit,
            )
            stored = parse_rows(Notification, result)
            alerts = await self.subscription_alerts(user_id)
            unread = await self._unread_count(stored)
            return NotificationFeed(
                notifications=[*alerts, *stored],
                unread_count=unread + len(alerts),
            )

        try:
            return await self._cache.fetch((NOTIFICATIONS, user_id, limit), load)
        except SupabaseAuthError:
            raise
        except SupabaseError as exc:
            logger.warning("Error fetching notifications: %s", exc)
            return NotificationFeed()

    async def mark_as_read(self, user_id: str, notification_id: str) -> Notification | None:
        user_id = require_id(user_id, "user_id")
        notification_id = require_id(notification_id, "notification_id")

        if is_virtual(notification_id):
            self.read_alerts.add(notification_id)

            async def hide(_: dict[str, Any]) -> None:
                return None

            await self._reconciler.remove(
                [
                    _feed_target(
                        user_id,
                        lambda item, updates: None,
                        lambda item: item.id == notification_id,
                    )
                ],
                hide,
            )
            return None

        read_at = datetime.now(timezone.utc).isoformat()

        async def remote(cleaned: dict[str, Any]) -> Notification:
            return parse_first(
                Notification,
                await self._client.update("notifications", notification_id, cleaned),
            )

        return await self._reconciler.update(
            {"is_read": True, "read_at": read_at},
            [
                _feed_target(
                    user_id,
                    lambda item, updates: item.model_copy(update=dict(updates)),
                    lambda item: item.id == notification_id,
                )
            ],
            remote,
            failure_message="נכשל בסימון ההתראה כנקראה",
        )

    async def mark_all_as_read(self, user_id: str) -> list[Notification]:
        """
        Mark every stored notification read. Subscription alerts stay until
        their subscription is renewed or they are dismissed one by one.
        """

        user_id = require_id(user_id, "user_id")
        read_at = datetime.now(timezone.utc).isoformat()

        async def remote(cleaned: dict[str, Any]) -> list[Notification]:
            result = await self._client.update_where(
                "notifications",
                {"user_id": eq(user_id), "is_read": "eq.false"},
                cleaned,
            )
            return parse_rows(Notification, result)

        return await self._reconciler.update(
            {"is_read": True, "read_at": read_at},
            [
                _feed_target(
                    user_id,
                    lambda item, updates: item.model_copy(update=dict(updates)),
                    lambda item: not item.is_read and not is_virtual(item.id),
                )
            ],
            remote,
            invalidate=((NOTIFICATIONS, user_id),),
            failure_message="נכשל בסימון ההתראות כנקראו",
        )
