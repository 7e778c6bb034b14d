"""
In-memory query cache.

Maps a query key (a tuple of primitives such as ``("lead", "L1")``) to the
last known result, its fetch time and a staleness flag. One instance is built
at application start and passed to the data layer; nothing here is a module
level singleton.

Reads go through :meth:`QueryCache.fetch`, which tags every request with a
per-key generation. A response whose generation is no longer current was
superseded (a newer fetch started, or the key was cancelled by a mutation)
and is dropped instead of written.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator, Union

logger = logging.getLogger(__name__)

QueryKey = tuple[Any, ...]
KeyMatcher = Union[QueryKey, Callable[[QueryKey], bool]]
Fetcher = Callable[[], Awaitable[Any]]
Subscriber = Callable[[QueryKey, Any], None]
RemovalListener = Callable[[list[QueryKey]], None]


def key_matches(key: QueryKey, matcher: KeyMatcher) -> bool:
    if callable(matcher):
        return bool(matcher(key))
    return key[: len(matcher)] == tuple(matcher)


@dataclass
class QueryCacheEntry:
    key: QueryKey
    value: Any = None
    has_value: bool = False
    updated_at: float | None = None
    is_stale: bool = True
    generation: int = 0
    fetcher: Fetcher | None = None
    subscribers: list[Subscriber] = field(default_factory=list)


class QueryCache:
    def __init__(
        self,
        stale_after: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._entries: dict[QueryKey, QueryCacheEntry] = {}
        self._holds: Counter[QueryKey] = Counter()
        self._removal_listeners: list[RemovalListener] = []
        self._stale_after = stale_after
        self._clock = clock

    def __contains__(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.has_value

    def __len__(self) -> int:
        return sum(1 for entry in self._entries.values() if entry.has_value)

    def _entry(self, key: QueryKey) -> QueryCacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = QueryCacheEntry(key=key)
            self._entries[key] = entry
        return entry

    def _iter_matching(self, matcher: KeyMatcher) -> Iterator[QueryCacheEntry]:
        # Copy so callbacks may add entries while we iterate
        for key, entry in list(self._entries.items()):
            if key_matches(key, matcher):
                yield entry

    def entry(self, key: QueryKey) -> QueryCacheEntry | None:
        return self._entries.get(key)

    def get(self, key: QueryKey, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None or not entry.has_value:
            return default
        return entry.value

    def set(self, key: QueryKey, value: Any) -> None:
        entry = self._entry(key)
        entry.value = value
        entry.has_value = True
        entry.updated_at = self._clock()
        entry.is_stale = False
        for callback in list(entry.subscribers):
            callback(key, value)

    def entries(self, matcher: KeyMatcher) -> list[tuple[QueryKey, Any]]:
        """
        Point-in-time (key, value) pairs for every cached key that matches.
        """

        return [
            (entry.key, entry.value)
            for entry in self._iter_matching(matcher)
            if entry.has_value
        ]

    def is_fresh(self, key: QueryKey, stale_after: float | None = None) -> bool:
        entry = self._entries.get(key)
        if entry is None or not entry.has_value or entry.is_stale:
            return False
        limit = self._stale_after if stale_after is None else stale_after
        return entry.updated_at is not None and self._clock() - entry.updated_at < limit

    def invalidate(self, matcher: KeyMatcher) -> list[QueryKey]:
        """
        Mark matching entries stale. Values stay readable until refetched.
        """

        keys: list[QueryKey] = []
        for entry in self._iter_matching(matcher):
            entry.is_stale = True
            keys.append(entry.key)
        if keys:
            logger.debug("Invalidated %d cache entries", len(keys))
        return keys

    def cancel(self, matcher: KeyMatcher) -> None:
        """
        Supersede in-flight fetches for matching keys; their results are dropped.
        """

        for entry in self._iter_matching(matcher):
            entry.generation += 1

    def remove(self, matcher: KeyMatcher) -> None:
        removed: list[QueryKey] = []
        for entry in self._iter_matching(matcher):
            entry.generation += 1
            del self._entries[entry.key]
            removed.append(entry.key)
        self._notify_removed(removed)

    def clear(self) -> None:
        removed = list(self._entries)
        for entry in self._entries.values():
            entry.generation += 1
        self._entries.clear()
        self._holds.clear()
        self._notify_removed(removed)

    def on_remove(self, listener: RemovalListener) -> Callable[[], None]:
        """
        Call `listener` with the keys dropped by every `remove` and `clear`.
        """

        self._removal_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._removal_listeners:
                self._removal_listeners.remove(listener)

        return unsubscribe

    def _notify_removed(self, keys: list[QueryKey]) -> None:
        if not keys:
            return
        for listener in list(self._removal_listeners):
            listener(keys)

    def hold(self, key: QueryKey) -> None:
        self._holds[key] += 1

    def release(self, key: QueryKey) -> None:
        self._holds[key] -= 1
        if self._holds[key] <= 0:
            del self._holds[key]

    def is_held(self, key: QueryKey) -> bool:
        return self._holds.get(key, 0) > 0

    def subscribe(self, key: QueryKey, callback: Subscriber) -> Callable[[], None]:
        entry = self._entry(key)
        entry.subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in entry.subscribers:
                entry.subscribers.remove(callback)

        return unsubscribe

    async def fetch(
        self,
        key: QueryKey,
        fetcher: Fetcher,
        *,
        stale_after: float | None = None,
    ) -> Any:
        """
        Return the cached value when fresh, otherwise run `fetcher`.

        The fetched value is always returned to the caller, but it is written
        to the cache only if no newer request for the key started meanwhile
        and no open mutation holds the key.
        """

        if self.is_fresh(key, stale_after):
            return self._entries[key].value

        entry = self._entry(key)
        entry.fetcher = fetcher
        entry.generation += 1
        generation = entry.generation

        value = await fetcher()

        if self._entries.get(key) is not entry or entry.generation != generation:
            logger.debug("Dropping superseded response for %s", key)
            return value
        if self.is_held(key):
            logger.debug("Key %s held by an open mutation, response not cached", key)
            return value

        self.set(key, value)
        return value

    async def refetch_stale(self, *, only_observed: bool = True) -> int:
        """
        Refetch stale entries with a known fetcher.

        With `only_observed`, entries nobody subscribes to are left stale and
        refetched lazily on their next read. Returns the number refetched.
        """

        count = 0
        for entry in list(self._entries.values()):
            if not entry.is_stale or entry.fetcher is None:
                continue
            if only_observed and not entry.subscribers:
                continue
            if self.is_held(entry.key):
                continue
            try:
                await self.fetch(entry.key, entry.fetcher)
            except Exception as exc:  # noqa: BLE001
                # Background reads keep the stale value and retry next round
                logger.warning("Background refetch failed for %s: %s", entry.key, exc)
                continue
            count += 1
        return count
