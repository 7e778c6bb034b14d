from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

import httpx

from coach_crm.core import Settings, get_settings
from coach_crm.core.validation import EmptyUpdateError, require_id, require_ids
from coach_crm.db.models import Session

logger = logging.getLogger(__name__)

_AUTH_ERROR_CODES = {"PGRST301", "PGRST302", "invalid_grant", "session_not_found", "bad_jwt"}


class SupabaseError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.detail = detail


class SupabaseAuthError(SupabaseError):
    """
    Session is missing, expired or rejected.

    Terminal for the current session: callers must not retry and should
    send the user back to sign-in.
    """


def _error_from_response(message: str, response: httpx.Response) -> SupabaseError:
    code: str | None = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        code = body.get("code") or body.get("error_code") or body.get("error")
        if code is not None:
            code = str(code)

    is_auth = response.status_code == 401 or code in _AUTH_ERROR_CODES
    if response.status_code == 403 and "JWT expired" in response.text:
        is_auth = True

    error_cls = SupabaseAuthError if is_auth else SupabaseError
    return error_cls(
        message,
        status_code=response.status_code,
        code=code,
        detail=response.text,
    )


@dataclass
class QueryResult:
    """
    Outcome of one REST call: either `data` or `error` is set.
    """

    data: Any = None
    error: SupabaseError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        return self.data


def eq(value: Any) -> str:
    return f"eq.{value}"


def in_(values: Iterable[Any]) -> str:
    return f"in.({','.join(str(value) for value in values)})"


class SupabaseClient:
    """
    Minimal async Supabase REST client.

    Requests carry the current session's access token when one is set,
    otherwise the anon key. With `service_role=True` the service key is used
    and RLS is bypassed, so only background jobs and webhook ingestion should
    build a client that way.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        service_role: bool = False,
        session: Session | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        if service_role:
            if not self._settings.supabase_service_key:
                raise RuntimeError("SUPABASE_SERVICE_KEY is required for a service-role client")
            self._key = self._settings.supabase_service_key
        else:
            self._key = self._settings.supabase_anon_key
        self._service_role = service_role
        self._session = session
        self._rest = httpx.AsyncClient(
            base_url=self._settings.rest_url,
            headers={
                "apikey": self._key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=10.0,
            transport=transport,
        )

    @property
    def session(self) -> Session | None:
        return self._session

    def set_session(self, session: Session | None) -> None:
        self._session = session

    async def close(self) -> None:
        await self._rest.aclose()

    def _auth_headers(self) -> dict[str, str]:
        if self._session is None:
            return {"Authorization": f"Bearer {self._key}"}
        if self._session.is_expired(time.time()):
            raise SupabaseAuthError("Session expired", status_code=401, code="session_expired")
        return {"Authorization": f"Bearer {self._session.access_token}"}

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        failure: str,
    ) -> QueryResult:
        try:
            request_headers = {**self._auth_headers(), **(headers or {})}
        except SupabaseAuthError as exc:
            return QueryResult(error=exc)

        try:
            response = await self._rest.request(
                method,
                f"/{table}",
                params=params,
                json=json,
                headers=request_headers,
            )
        except httpx.HTTPError as exc:
            logger.warning("%s: %s", failure, exc)
            return QueryResult(
                error=SupabaseError(failure, code="network_error", detail=str(exc))
            )

        if response.status_code >= 400:
            return QueryResult(error=_error_from_response(failure, response))
        if not response.content:
            return QueryResult(data=[])
        return QueryResult(data=response.json())

    async def select(
        self,
        table: str,
        filters: Mapping[str, str] | None = None,
        order: Sequence[str] | None = None,
        range: tuple[int, int] | None = None,
        *,
        columns: str = "*",
        or_: str | None = None,
        limit: int | None = None,
    ) -> QueryResult:
        """
        Read rows from a table.

        `filters` maps column to a PostgREST expression (`{"id": "eq.L1"}`),
        `order` holds `column.asc`/`column.desc` items and `range` is an
        inclusive (start, end) row window.
        """

        params: dict[str, Any] = {"select": columns, **(filters or {})}
        if order:
            params["order"] = ",".join(order)
        if or_:
            params["or"] = f"({or_})"
        if limit is not None:
            params["limit"] = limit

        headers: dict[str, str] = {}
        if range is not None:
            start, end = range
            headers["Range-Unit"] = "items"
            headers["Range"] = f"{start}-{end}"

        return await self._request(
            "GET",
            table,
            params=params,
            headers=headers,
            failure=f"Supabase REST GET failed for '{table}'",
        )

    async def select_one(
        self,
        table: str,
        filters: Mapping[str, str],
        *,
        columns: str = "*",
    ) -> dict[str, Any] | None:
        result = await self.select(table, filters, columns=columns, limit=1)
        items: list[dict[str, Any]] = result.unwrap()
        if not items:
            return None
        return items[0]

    async def insert(
        self,
        table: str,
        row: Mapping[str, Any] | Sequence[Mapping[str, Any]],
    ) -> QueryResult:
        result = await self._request(
            "POST",
            table,
            json=row,
            headers={"Prefer": "return=representation"},
            failure=f"Supabase REST INSERT failed for '{table}'",
        )
        if result.ok and not result.data:
            result.error = SupabaseError(f"Empty insert response for table '{table}'")
        return result

    async def update(
        self,
        table: str,
        id: str,
        patch: Mapping[str, Any],
    ) -> QueryResult:
        row_id = require_id(id)
        if not patch:
            raise EmptyUpdateError(f"Empty update for '{table}'")
        result = await self._request(
            "PATCH",
            table,
            params={"id": eq(row_id)},
            json=dict(patch),
            headers={"Prefer": "return=representation"},
            failure=f"Supabase REST UPDATE failed for '{table}'",
        )
        if result.ok and not result.data:
            result.error = SupabaseError(f"No row in '{table}' with id {row_id}", status_code=404)
        return result

    async def update_where(
        self,
        table: str,
        filters: Mapping[str, str],
        patch: Mapping[str, Any],
    ) -> QueryResult:
        if not patch:
            raise EmptyUpdateError(f"Empty update for '{table}'")
        return await self._request(
            "PATCH",
            table,
            params=dict(filters),
            json=dict(patch),
            headers={"Prefer": "return=representation"},
            failure=f"Supabase REST UPDATE failed for '{table}'",
        )

    async def rpc(self, function: str, params: Mapping[str, Any] | None = None) -> QueryResult:
        return await self._request(
            "POST",
            f"rpc/{function}",
            json=dict(params or {}),
            failure=f"Supabase RPC '{function}' failed",
        )

    async def delete(
        self,
        table: str,
        ids: Iterable[str],
        filters: Mapping[str, str] | None = None,
    ) -> QueryResult:
        row_ids = require_ids(ids)
        return await self._request(
            "DELETE",
            table,
            params={**(filters or {}), "id": in_(row_ids)},
            headers={"Prefer": "return=representation"},
            failure=f"Supabase REST DELETE failed for '{table}'",
        )


class SupabaseAuth:
    """
    GoTrue endpoints needed by the client layer.

    Sessions are never refreshed implicitly; an expired session surfaces as
    SupabaseAuthError and the caller decides when to call `refresh`.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._http = httpx.AsyncClient(
            base_url=self._settings.auth_url,
            headers={
                "apikey": self._settings.supabase_anon_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=10.0,
            transport=transport,
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def _token(self, grant_type: str, payload: dict[str, Any]) -> Session:
        response = await self._http.post(
            "/token",
            params={"grant_type": grant_type},
            json=payload,
        )
        if response.status_code >= 400:
            error = _error_from_response("Supabase Auth sign-in failed", response)
            if response.status_code in (400, 401):
                raise SupabaseAuthError(
                    str(error),
                    status_code=error.status_code,
                    code=error.code,
                    detail=error.detail,
                )
            raise error

        data: dict[str, Any] = response.json()
        user = data.get("user") or {}
        if not data.get("access_token") or not user.get("id"):
            raise SupabaseError("Supabase Auth response missing token or user", detail=response.text)

        expires_at = data.get("expires_at")
        if expires_at is None and data.get("expires_in") is not None:
            expires_at = int(time.time()) + int(data["expires_in"])

        return Session(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=expires_at,
            user_id=str(user["id"]),
            email=user.get("email"),
        )

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        return await self._token("password", {"email": email, "password": password})

    async def refresh(self, session: Session) -> Session:
        if not session.refresh_token:
            raise SupabaseAuthError("Session has no refresh token", code="session_not_found")
        return await self._token("refresh_token", {"refresh_token": session.refresh_token})

    async def sign_out(self, session: Session) -> None:
        response = await self._http.post(
            "/logout",
            headers={"Authorization": f"Bearer {session.access_token}"},
        )
        # An already-invalid token means the session is gone either way
        if response.status_code >= 400 and response.status_code != 401:
            raise _error_from_response("Supabase Auth sign-out failed", response)


_supabase_client: SupabaseClient | None = None


def get_supabase_client() -> SupabaseClient:
    """
    Lazy process default for the bot entry point.

    Library code takes its client as a constructor argument instead.
    """

    global _supabase_client
    if _supabase_client is None:
        _supabase_client = SupabaseClient(service_role=True)
    return _supabase_client
