from __future__ import annotations

import time
from collections import OrderedDict
from typing import Any

from firelevel.core.config import settings
from firelevel.services.supabase_rest import get_http

_IDENTITY_TTL_SECONDS = 30.0
_IDENTITY_MAX_ENTRIES = 2048


class _IdentityCache:
    """Token -> Supabase user, evicting the oldest entry once full."""

    def __init__(self, *, ttl: float, max_entries: int) -> None:
        self._ttl = ttl
        self._max_entries = max_entries
        self._entries: OrderedDict[str, tuple[float, dict[str, Any]]] = OrderedDict()

    def get(self, token: str) -> dict[str, Any] | None:
        hit = self._entries.get(token)
        if hit is None:
            return None
        expires_at, user = hit
        if expires_at <= time.monotonic():
            del self._entries[token]
            return None
        self._entries.move_to_end(token)
        return user

    def put(self, token: str, user: dict[str, Any]) -> None:
        self._entries[token] = (time.monotonic() + self._ttl, user)
        self._entries.move_to_end(token)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()


identity_cache = _IdentityCache(
    ttl=_IDENTITY_TTL_SECONDS, max_entries=_IDENTITY_MAX_ENTRIES
)


async def get_current_user(
    *, access_token: str, use_cache: bool = True
) -> dict[str, Any]:
    """
    Resolve the caller through Supabase Auth (`GET /auth/v1/user`).

    Every streak request authenticates, and clients poll the streak view, so
    identities are kept for a short TTL keyed by token.
    """
    if use_cache:
        cached = identity_cache.get(access_token)
        if cached is not None:
            return cached

    resp = await get_http().get(
        str(settings.supabase_url).rstrip("/") + "/auth/v1/user",
        headers={
            "apikey": settings.supabase_anon_key,
            "authorization": f"Bearer {access_token}",
            "accept": "application/json",
        },
    )
    resp.raise_for_status()
    user = resp.json()
    if not isinstance(user, dict):
        raise ValueError("Unexpected Supabase user response")

    if use_cache and isinstance(user.get("id"), str):
        identity_cache.put(access_token, user)
    return user
