"""Shared fixtures: settings, a fake Supabase REST backend and the cache stack."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from coach_crm.cache import OptimisticReconciler, QueryCache
from coach_crm.core import Settings
from coach_crm.db.supabase import SupabaseClient
from coach_crm.notify import NotificationCenter


class FakeSupabase:
    """
    Routes requests to handlers registered per (method, table) and records
    every request it sees.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}

    def route(
        self,
        method: str,
        table: str,
        response: Any = None,
        *,
        status: int = 200,
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> None:
        if handler is None:
            def handler(request: httpx.Request) -> httpx.Response:
                return httpx.Response(status, json=response if response is not None else [])
        self._routes[(method, table)] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        table = request.url.path.split("/rest/v1/", 1)[-1]
        handler = self._routes.get((request.method, table))
        if handler is None:
            return httpx.Response(404, json={"message": f"no route for {request.method} {table}"})
        return handler(request)

    def calls(self, method: str, table: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and r.url.path.endswith(f"/rest/v1/{table}")
        ]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://test.supabase.co",
        supabase_anon_key="anon-key",
        supabase_service_key="service-key",
        environment="local",
    )


@pytest.fixture
def fake() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def client(settings: Settings, fake: FakeSupabase) -> SupabaseClient:
    return SupabaseClient(settings, transport=httpx.MockTransport(fake.handle))


@pytest.fixture
def cache() -> QueryCache:
    return QueryCache()


@pytest.fixture
def notifier() -> NotificationCenter:
    return NotificationCenter()


@pytest.fixture
def reconciler(cache: QueryCache, notifier: NotificationCenter) -> OptimisticReconciler:
    return OptimisticReconciler(cache, notifier)
