from __future__ import annotations

import logging
from typing import Any, TypeVar

from pydantic import BaseModel

from coach_crm.cache import OptimisticReconciler, QueryCache
from coach_crm.db.supabase import QueryResult, SupabaseClient, SupabaseError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_rows(model: type[ModelT], result: QueryResult) -> list[ModelT]:
    items: list[dict[str, Any]] = result.unwrap() or []
    return [model.model_validate(item) for item in items]


def parse_first(model: type[ModelT], result: QueryResult) -> ModelT:
    items: list[dict[str, Any]] = result.unwrap() or []
    if not items:
        raise SupabaseError("Write returned no rows", status_code=404)
    return model.model_validate(items[0])


class DataSource:
    """
    Shared wiring for the per-entity data classes: one remote client, the
    application's query cache and the reconciler that owns optimistic writes.
    """

    def __init__(self, client: SupabaseClient, reconciler: OptimisticReconciler) -> None:
        self._client = client
        self._reconciler = reconciler

    @property
    def _cache(self) -> QueryCache:
        return self._reconciler.cache
