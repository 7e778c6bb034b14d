"""
Per-entity data access.

Each class composes the remote client with the query cache: reads go through
`QueryCache.fetch`, writes through the `OptimisticReconciler`.
"""

from __future__ import annotations

from coach_crm.cache import OptimisticReconciler, QueryCache
from coach_crm.db.supabase import SupabaseClient
from coach_crm.notify import Notifier

from .customers import CustomersData
from .leads import LeadsData
from .meetings import MeetingsData
from .notifications import NotificationsData
from .plans import PlansData
from .saved_views import SavedViewsData


class CrmData:
    """
    Everything a signed-in user's session needs, built around one cache.
    """

    def __init__(
        self,
        client: SupabaseClient,
        *,
        user_id: str,
        cache: QueryCache | None = None,
        notifier: Notifier | None = None,
        alert_days: int = 7,
    ) -> None:
        self.cache = cache or QueryCache()
        self.reconciler = OptimisticReconciler(self.cache, notifier)
        self.user_id = user_id
        self.leads = LeadsData(client, self.reconciler)
        self.customers = CustomersData(client, self.reconciler)
        self.meetings = MeetingsData(client, self.reconciler)
        self.plans = PlansData(client, self.reconciler)
        self.saved_views = SavedViewsData(client, self.reconciler, user_id=user_id)
        self.notifications = NotificationsData(client, self.reconciler, alert_days=alert_days)

    def reset(self) -> None:
        """
        Drop every cached query (full reload or sign-out).
        """

        self.cache.clear()


__all__ = [
    "CrmData",
    "CustomersData",
    "LeadsData",
    "MeetingsData",
    "NotificationsData",
    "PlansData",
    "SavedViewsData",
]
