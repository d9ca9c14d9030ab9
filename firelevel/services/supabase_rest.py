from __future__ import annotations

from typing import Any

import httpx

from firelevel.core.config import settings

_http: httpx.AsyncClient | None = None

# Statuses worth retrying: timeouts, throttling and upstream outages.
_TRANSIENT_STATUSES = frozenset({408, 425, 429, 500, 502, 503, 504})


class SupabaseRestError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        message: str,
        code: str | None = None,
        hint: str | None = None,
        details: Any | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.hint = hint
        self.details = details

    @property
    def is_transient(self) -> bool:
        return self.status_code in _TRANSIENT_STATUSES

    @classmethod
    def from_response(cls, resp: httpx.Response) -> "SupabaseRestError":
        try:
            payload: Any = resp.json()
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            payload = {"message": payload} if isinstance(payload, str) else {}

        def _field(key: str) -> str | None:
            value = payload.get(key)
            return value if isinstance(value, str) and value else None

        message = _field("message") or resp.text.strip()
        return cls(
            status_code=resp.status_code,
            message=message or f"Supabase request failed ({resp.status_code})",
            code=_field("code"),
            hint=_field("hint"),
            details=payload.get("details"),
        )


def get_http() -> httpx.AsyncClient:
    """Process-wide client; the pool bounds concurrent PostgREST requests."""
    global _http
    if _http is None:
        max_conn = settings.supabase_max_connections
        _http = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.supabase_timeout_seconds),
            limits=httpx.Limits(
                max_connections=max_conn,
                max_keepalive_connections=max(max_conn // 2, 1),
            ),
        )
    return _http


async def close_http() -> None:
    global _http
    if _http is not None:
        await _http.aclose()
        _http = None


class SupabaseRest:
    """PostgREST client for one API key. Every call is a single request."""

    def __init__(self, supabase_url: str, api_key: str):
        self._rest_base = supabase_url.rstrip("/") + "/rest/v1"
        self._api_key = api_key

    def _raise_for_error(self, resp: httpx.Response) -> None:
        if resp.status_code >= 400:
            raise SupabaseRestError.from_response(resp)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        bearer_token: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        headers = {
            "apikey": self._api_key,
            "authorization": f"Bearer {bearer_token}",
            "accept": "application/json",
        }
        if prefer:
            headers["prefer"] = prefer
        resp = await get_http().request(
            method,
            f"{self._rest_base}/{path}",
            headers=headers,
            params=params,
            json=json,
        )
        self._raise_for_error(resp)
        if not resp.content:
            return None
        return resp.json()

    async def select(
        self,
        table: str,
        *,
        bearer_token: str,
        params: dict[str, Any],
    ) -> list[dict[str, Any]]:
        data = await self._send("GET", table, bearer_token=bearer_token, params=params)
        if data is None:
            return []
        return data if isinstance(data, list) else [data]

    async def insert_one(
        self,
        table: str,
        *,
        bearer_token: str,
        row: dict[str, Any],
    ) -> dict[str, Any]:
        data = await self._send(
            "POST",
            table,
            bearer_token=bearer_token,
            json=row,
            prefer="return=representation",
        )
        if isinstance(data, list):
            return data[0] if data else {}
        return data or {}

    async def rpc(
        self,
        fn_name: str,
        *,
        bearer_token: str,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Call a SQL function. Scalar and void results come back as []."""
        data = await self._send(
            "POST", f"rpc/{fn_name}", bearer_token=bearer_token, json=params or {}
        )
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return [data]
        return []


def user_client() -> SupabaseRest:
    return SupabaseRest(str(settings.supabase_url), settings.supabase_anon_key)


def service_client() -> SupabaseRest:
    return SupabaseRest(str(settings.supabase_url), settings.supabase_service_role_key)
