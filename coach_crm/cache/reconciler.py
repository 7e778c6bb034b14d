"""
Optimistic writes against the query cache.

A mutation runs in three phases:

begin
    For every cached key a target matches, capture the current value and
    write the patched value immediately.
commit
    Overwrite the touched keys with the server-confirmed row, then mark the
    dependent prefixes stale so they refresh in the background.
abort
    Restore the touched keys, last patched first.

Several mutations may be open on the same key. Per key the reconciler keeps
the value from before the oldest open mutation (the base) and an ordered list
of open layers. The cached value is always the base with the open layers
replayed on top. Commit folds the server row into the base; abort drops the
layer. A failing mutation therefore never erases a later mutation's
optimistic write, and with no other mutation open the key returns verbatim
to its pre-mutation value.

A key removed from the cache while mutations are open is forgotten: their
commit or abort does not bring it back.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping

from pydantic import BaseModel

from coach_crm.cache.query_cache import KeyMatcher, QueryCache, QueryKey
from coach_crm.core.validation import clean_updates
from coach_crm.db.supabase import SupabaseAuthError
from coach_crm.notify import (
    TITLE_ERROR,
    TITLE_SESSION_EXPIRED,
    TITLE_SUCCESS,
    NotificationCenter,
    Notifier,
    ToastLevel,
)

logger = logging.getLogger(__name__)

Patch = Callable[[Any, Mapping[str, Any]], Any]
Reconcile = Callable[[Any, Any], Any]
Remote = Callable[[dict[str, Any]], Awaitable[Any]]

SESSION_EXPIRED_MESSAGE = "יש להתחבר מחדש"


class TransactionState(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


def merge_fields(value: Any, updates: Mapping[str, Any]) -> Any:
    if value is None:
        return value
    if isinstance(value, BaseModel):
        return value.model_copy(update=dict(updates))
    if isinstance(value, Mapping):
        return {**value, **updates}
    return value


def item_id(item: Any) -> Any:
    if isinstance(item, Mapping):
        return item.get("id")
    return getattr(item, "id", None)


def _get_field(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def _replace_field(value: Any, name: str, new: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_copy(update={name: new})
    return {**value, name: new}


def _map_items(items: Any, entity_id: Any, change: Callable[[Any], Any]) -> Any:
    """
    Apply `change` to list items with the given id.

    Returns the same list object when nothing matched so callers can tell
    "not touched" apart from "changed".
    """

    if not isinstance(items, list):
        return items
    changed = False
    result = []
    for item in items:
        if item_id(item) == entity_id:
            result.append(change(item))
            changed = True
        else:
            result.append(item)
    return result if changed else items


@dataclass(frozen=True)
class CacheTarget:
    """
    Which cached values a mutation touches and how.

    `patch(value, updates)` produces the optimistic value and must return
    `value` itself when the entry does not contain the entity.
    `reconcile(value, server_row)` folds the confirmed row into the patched
    value.
    """

    matcher: KeyMatcher
    patch: Patch
    reconcile: Reconcile


def confirmed(value: Any, row: Any, keep: tuple[str, ...] = ()) -> Any:
    """
    The server row, carrying over `keep` fields (e.g. embedded relations the
    write endpoint does not return) from the cached value.
    """

    if not keep or value is None or row is None:
        return row
    return merge_fields(row, {name: _get_field(value, name) for name in keep})


def detail_target(key: QueryKey, keep: tuple[str, ...] = ()) -> CacheTarget:
    key = tuple(key)
    return CacheTarget(
        matcher=lambda candidate: candidate == key,
        patch=merge_fields,
        reconcile=lambda value, row: confirmed(value, row, keep),
    )


def entity_target(prefix: QueryKey, entity_id: Any, keep: tuple[str, ...] = ()) -> CacheTarget:
    """
    Every single-entity value under `prefix` whose id is `entity_id`.
    """

    def patch(value: Any, updates: Mapping[str, Any]) -> Any:
        if value is None or item_id(value) != entity_id:
            return value
        return merge_fields(value, updates)

    def reconcile(value: Any, row: Any) -> Any:
        if value is None or item_id(value) != entity_id:
            return value
        return confirmed(value, row, keep)

    return CacheTarget(matcher=tuple(prefix), patch=patch, reconcile=reconcile)


def list_target(prefix: QueryKey, entity_id: Any, keep: tuple[str, ...] = ()) -> CacheTarget:
    return CacheTarget(
        matcher=tuple(prefix),
        patch=lambda value, updates: _map_items(
            value, entity_id, lambda item: merge_fields(item, updates)
        ),
        reconcile=lambda value, row: _map_items(
            value, entity_id, lambda item: confirmed(item, row, keep)
        ),
    )


def nested_list_target(prefix: QueryKey, field_name: str, entity_id: Any) -> CacheTarget:
    """
    Patch an entity inside a list field of each matching value, e.g. the
    `leads` of a cached customer.
    """

    def patch(value: Any, updates: Mapping[str, Any]) -> Any:
        if value is None:
            return value
        items = _get_field(value, field_name)
        patched = _map_items(items, entity_id, lambda item: merge_fields(item, updates))
        if patched is items:
            return value
        return _replace_field(value, field_name, patched)

    def reconcile(value: Any, row: Any) -> Any:
        if value is None:
            return value
        items = _get_field(value, field_name)
        replaced = _map_items(items, entity_id, lambda item: row)
        if replaced is items:
            return value
        return _replace_field(value, field_name, replaced)

    return CacheTarget(matcher=tuple(prefix), patch=patch, reconcile=reconcile)


def removal_target(prefix: QueryKey, ids: Iterable[Any]) -> CacheTarget:
    removed = set(ids)

    def drop(value: Any, updates: Mapping[str, Any]) -> Any:
        if not isinstance(value, list):
            return value
        kept = [item for item in value if item_id(item) not in removed]
        return kept if len(kept) != len(value) else value

    return CacheTarget(
        matcher=tuple(prefix),
        patch=drop,
        reconcile=lambda value, row: drop(value, {}),
    )


_transaction_ids = itertools.count(1)


@dataclass
class MutationTransaction:
    updates: dict[str, Any]
    id: int = field(default_factory=lambda: next(_transaction_ids))
    keys: list[QueryKey] = field(default_factory=list)
    snapshots: dict[QueryKey, Any] = field(default_factory=dict)
    targets: dict[QueryKey, CacheTarget] = field(default_factory=dict)
    state: TransactionState = TransactionState.PENDING


class OptimisticReconciler:
    def __init__(self, cache: QueryCache, notifier: Notifier | None = None) -> None:
        self._cache = cache
        self._notifier = notifier or NotificationCenter()
        self._bases: dict[QueryKey, Any] = {}
        self._layers: dict[QueryKey, list[MutationTransaction]] = {}
        cache.on_remove(self._forget)

    @property
    def cache(self) -> QueryCache:
        return self._cache

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    def open_transactions(self, key: QueryKey) -> list[MutationTransaction]:
        return list(self._layers.get(tuple(key), []))

    def _forget(self, keys: list[QueryKey]) -> None:
        # Removed keys stay gone: open mutations no longer write them back
        for key in keys:
            layers = self._layers.pop(key, None)
            if layers is None:
                continue
            self._bases.pop(key, None)
            for _ in layers:
                if self._cache.is_held(key):
                    self._cache.release(key)
            logger.debug("Dropped %d open mutations on removed key %s", len(layers), key)

    def _is_open(self, key: QueryKey, txn: MutationTransaction) -> bool:
        return any(layer is txn for layer in self._layers.get(key, ()))

    def _rewrite(self, key: QueryKey) -> None:
        value = self._bases[key]
        for txn in self._layers[key]:
            value = txn.targets[key].patch(value, txn.updates)
        self._cache.set(key, value)

    def _drop_layer(self, key: QueryKey, txn: MutationTransaction) -> bool:
        """
        Remove `txn` from the key's layers. Returns True if layers remain.
        """

        layers = self._layers[key]
        layers.remove(txn)
        self._cache.release(key)
        if layers:
            return True
        del self._layers[key]
        return False

    def begin(
        self,
        updates: Mapping[str, Any] | None,
        targets: Iterable[CacheTarget],
        *,
        require_updates: bool = True,
    ) -> MutationTransaction:
        cleaned = clean_updates(updates or {}) if require_updates else dict(updates or {})
        txn = MutationTransaction(updates=cleaned)

        for target in targets:
            self._cache.cancel(target.matcher)
            for key, value in self._cache.entries(target.matcher):
                if key in txn.targets:
                    continue
                patched = target.patch(value, cleaned)
                if patched is value:
                    continue

                self._cache.hold(key)
                layers = self._layers.setdefault(key, [])
                if not layers:
                    self._bases[key] = value
                layers.append(txn)

                # Captured now, so it already reflects earlier open mutations
                txn.snapshots[key] = value
                txn.targets[key] = target
                txn.keys.append(key)
                self._cache.set(key, patched)

        logger.debug("Mutation %s began on %d keys", txn.id, len(txn.keys))
        return txn

    def commit(
        self,
        txn: MutationTransaction,
        server_row: Any,
        invalidate: Iterable[KeyMatcher] = (),
    ) -> None:
        if txn.state is not TransactionState.PENDING:
            raise RuntimeError(f"Mutation {txn.id} is already {txn.state.value}")

        for key in txn.keys:
            if not self._is_open(key, txn):
                continue
            target = txn.targets[key]
            patched = target.patch(self._bases[key], txn.updates)
            self._bases[key] = target.reconcile(patched, server_row)
            if self._drop_layer(key, txn):
                self._rewrite(key)
            else:
                self._cache.set(key, self._bases.pop(key))

        txn.state = TransactionState.COMMITTED
        for matcher in invalidate:
            self._cache.invalidate(matcher)
        logger.debug("Mutation %s committed", txn.id)

    def abort(self, txn: MutationTransaction) -> None:
        if txn.state is not TransactionState.PENDING:
            raise RuntimeError(f"Mutation {txn.id} is already {txn.state.value}")

        for key in reversed(txn.keys):
            if not self._is_open(key, txn):
                continue
            if self._drop_layer(key, txn):
                self._rewrite(key)
            else:
                self._cache.set(key, self._bases.pop(key))

        txn.state = TransactionState.ROLLED_BACK
        logger.debug("Mutation %s rolled back", txn.id)

    async def _settle(
        self,
        txn: MutationTransaction,
        remote: Remote,
        invalidate: Iterable[KeyMatcher],
        success_message: str | None,
        failure_message: str | None,
    ) -> Any:
        try:
            server_row = await remote(txn.updates)
        except asyncio.CancelledError:
            self.abort(txn)
            raise
        except SupabaseAuthError:
            self.abort(txn)
            await self._notifier.notify(
                ToastLevel.ERROR, TITLE_SESSION_EXPIRED, SESSION_EXPIRED_MESSAGE
            )
            raise
        except Exception as exc:
            self.abort(txn)
            logger.error("Mutation %s failed: %s", txn.id, exc)
            await self._notifier.notify(
                ToastLevel.ERROR, TITLE_ERROR, failure_message or str(exc)
            )
            raise

        self.commit(txn, server_row, invalidate)
        if success_message:
            await self._notifier.notify(ToastLevel.SUCCESS, TITLE_SUCCESS, success_message)
        return server_row

    async def update(
        self,
        updates: Mapping[str, Any],
        targets: Iterable[CacheTarget],
        remote: Remote,
        *,
        invalidate: Iterable[KeyMatcher] = (),
        success_message: str | None = None,
        failure_message: str | None = None,
    ) -> Any:
        """
        Optimistically apply `updates`, then confirm them with `remote`.

        `remote` receives the cleaned updates and returns the server row.
        An empty payload raises EmptyUpdateError before anything is touched.
        Remote failures roll the cache back, produce an error toast and
        propagate to the caller.
        """

        txn = self.begin(updates, targets)
        return await self._settle(txn, remote, invalidate, success_message, failure_message)

    async def remove(
        self,
        targets: Iterable[CacheTarget],
        remote: Remote,
        *,
        invalidate: Iterable[KeyMatcher] = (),
        success_message: str | None = None,
        failure_message: str | None = None,
    ) -> Any:
        txn = self.begin(None, targets, require_updates=False)
        return await self._settle(txn, remote, invalidate, success_message, failure_message)
