from __future__ import annotations

import logging
from typing import Callable, Iterable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from coach_crm.core import get_settings
from coach_crm.data import CrmData
from coach_crm.db.supabase import SupabaseError
from coach_crm.notify import ToastLevel

logger = logging.getLogger(__name__)

SessionsProvider = Callable[[], Iterable[CrmData]]


class RefreshScheduler:
    """
    APScheduler manager for background refresh.

    Mutations already mark their dependent queries stale; this job refetches
    the stale ones somebody still observes. A second, hourly job looks for
    subscription alerts that were not delivered yet and sends them through
    each session's notifier.
    """

    def __init__(
        self,
        sessions: SessionsProvider,
        *,
        interval_seconds: int | None = None,
    ) -> None:
        self._sessions = sessions
        self.interval_seconds = interval_seconds or get_settings().refresh_interval_seconds
        self.scheduler: AsyncIOScheduler | None = None
        self._delivered_alerts: dict[str, set[str]] = {}

    async def start(self) -> None:
        self.scheduler = AsyncIOScheduler()

        self.scheduler.add_job(
            self.refresh_stale,
            IntervalTrigger(seconds=self.interval_seconds),
            id="refresh_stale",
            name="Refetch stale queries",
        )
        self.scheduler.add_job(
            self.check_subscription_alerts,
            CronTrigger(minute=0),  # Every hour at :00
            id="subscription_alerts",
            name="Hourly subscription alerts",
        )

        self.scheduler.start()
        logger.info("Refresh scheduler started (every %ss)", self.interval_seconds)

    async def stop(self) -> None:
        if self.scheduler:
            self.scheduler.shutdown()
            logger.info("Refresh scheduler stopped")

    async def refresh_stale(self) -> int:
        count = 0
        for session in list(self._sessions()):
            count += await session.cache.refetch_stale()
        if count:
            logger.debug("Refetched %d stale queries", count)
        return count

    async def check_subscription_alerts(self) -> int:
        """
        Send each subscription alert once per user and process. Returns how
        many were sent.
        """

        sent = 0
        for session in list(self._sessions()):
            delivered = self._delivered_alerts.setdefault(session.user_id, set())
            try:
                alerts = await session.notifications.subscription_alerts(session.user_id)
            except SupabaseError as exc:
                logger.error("Subscription alert check failed for %s: %s", session.user_id, exc)
                continue

            new_alerts = [alert for alert in alerts if alert.id not in delivered]
            for alert in new_alerts:
                await session.reconciler.notifier.notify(ToastLevel.INFO, alert.title, alert.message)
                delivered.add(alert.id)
            if new_alerts:
                # Feeds include the alerts, so show them on the next read
                session.cache.invalidate(("notifications", session.user_id))
            sent += len(new_alerts)

        logger.info("Subscription alert check completed, %d sent", sent)
        return sent
