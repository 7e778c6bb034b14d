from __future__ import annotations

import logging
from typing import Any

from coach_crm.cache import (
    OptimisticReconciler,
    detail_target,
    list_target,
    removal_target,
)
from coach_crm.core.validation import require_id
from coach_crm.data.base import DataSource, parse_first, parse_rows
from coach_crm.db.models import SavedView
from coach_crm.db.supabase import SupabaseAuthError, SupabaseClient, SupabaseError, eq

logger = logging.getLogger(__name__)

SAVED_VIEWS = "savedViews"
SAVED_VIEW = "savedView"

_COLUMNS = (
    "id,resource_key,view_name,filter_config,icon_name,is_default,"
    "created_by,created_at,updated_at"
)


class SavedViewsData(DataSource):
    """
    Named filter/column configurations per resource, owned by one user.

    Reads feed secondary UI (view tabs, default view), so remote errors there
    degrade to an empty result. Session errors still propagate.
    """

    def __init__(
        self,
        client: SupabaseClient,
        reconciler: OptimisticReconciler,
        *,
        user_id: str,
    ) -> None:
        super().__init__(client, reconciler)
        self._user_id = require_id(user_id, "user_id")

    def _owned(self, view_id: str) -> dict[str, str]:
        return {"id": eq(view_id), "created_by": eq(self._user_id)}

    async def list_views(self, resource_key: str) -> list[SavedView]:
        async def load() -> list[SavedView]:
            result = await self._client.select(
                "saved_views",
                {"resource_key": eq(resource_key), "created_by": eq(self._user_id)},
                ["is_default.desc", "created_at.desc"],
                columns=_COLUMNS,
            )
            return parse_rows(SavedView, result)

        try:
            return await self._cache.fetch((SAVED_VIEWS, resource_key, self._user_id), load)
        except SupabaseAuthError:
            raise
        except SupabaseError as exc:
            logger.warning("Error fetching saved views for %s: %s", resource_key, exc)
            return []

    async def get_view(self, view_id: str | None) -> SavedView | None:
        if not view_id:
            return None

        async def load() -> SavedView | None:
            row = await self._client.select_one(
                "saved_views",
                self._owned(view_id),
                columns=_COLUMNS,
            )
            return SavedView.model_validate(row) if row else None

        try:
            return await self._cache.fetch((SAVED_VIEW, view_id, self._user_id), load)
        except SupabaseAuthError:
            raise
        except SupabaseError as exc:
            logger.warning("Error fetching saved view %s: %s", view_id, exc)
            return None

    async def get_default_view(self, resource_key: str) -> SavedView | None:
        for view in await self.list_views(resource_key):
            if view.is_default:
                return view
        return None

    async def _clear_defaults(self, resource_key: str) -> None:
        result = await self._client.update_where(
            "saved_views",
            {
                "resource_key": eq(resource_key),
                "created_by": eq(self._user_id),
                "is_default": "eq.true",
            },
            {"is_default": False},
        )
        result.unwrap()

    async def create_view(
        self,
        resource_key: str,
        view_name: str,
        filter_config: dict[str, Any],
        *,
        is_default: bool = False,
        icon_name: str | None = None,
    ) -> SavedView:
        if not view_name.strip():
            raise ValueError("View name is required")

        # Only one default per resource and user
        if is_default:
            await self._clear_defaults(resource_key)

        payload: dict[str, Any] = {
            "resource_key": resource_key,
            "view_name": view_name.strip(),
            "filter_config": filter_config,
            "is_default": is_default,
            "created_by": self._user_id,
        }
        if icon_name:
            payload["icon_name"] = icon_name

        view = parse_first(SavedView, await self._client.insert("saved_views", payload))
        self._cache.invalidate((SAVED_VIEWS, resource_key))
        return view

    async def update_view(self, view_id: str, updates: dict[str, Any]) -> SavedView:
        view_id = require_id(view_id, "view_id")
        targets = [
            detail_target((SAVED_VIEW, view_id, self._user_id)),
            list_target((SAVED_VIEWS,), view_id),
        ]

        async def remote(cleaned: dict[str, Any]) -> SavedView:
            if cleaned.get("is_default"):
                row = await self._client.select_one(
                    "saved_views", self._owned(view_id), columns="resource_key"
                )
                if row is not None:
                    await self._clear_defaults(row["resource_key"])
            result = await self._client.update_where("saved_views", self._owned(view_id), cleaned)
            # No row back means the view is missing or belongs to someone else
            return parse_first(SavedView, result)

        view = await self._reconciler.update(
            updates,
            targets,
            remote,
            failure_message="נכשל בעדכון התצוגה",
        )
        # Other views may have lost their default flag
        if updates.get("is_default"):
            self._cache.invalidate((SAVED_VIEWS, view.resource_key))
        return view

    async def delete_view(self, view_id: str) -> None:
        view_id = require_id(view_id, "view_id")

        async def remote(_: dict[str, Any]) -> Any:
            result = await self._client.delete(
                "saved_views", [view_id], {"created_by": eq(self._user_id)}
            )
            rows = result.unwrap()
            if not rows:
                raise SupabaseError(f"No saved view {view_id} owned by this user", status_code=404)
            return rows

        await self._reconciler.remove(
            [removal_target((SAVED_VIEWS,), [view_id])],
            remote,
            invalidate=((SAVED_VIEWS,),),
            failure_message="נכשל במחיקת התצוגה",
        )
        self._cache.remove((SAVED_VIEW, view_id, self._user_id))
