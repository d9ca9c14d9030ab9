from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field

from fastapi import HTTPException, status


@dataclass
class _Window:
    opened_at: float
    hits: int = 1


@dataclass
class FixedWindowLimiter:
    """
    In-memory fixed-window limiter keyed by caller.

    Per-process only: each API worker counts on its own, which is enough to
    keep a single client from hammering recalculation or Supabase Auth.
    """

    max_keys: int = 20_000
    _windows: dict[str, _Window] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def hit(self, key: str, *, limit: int, window_seconds: int) -> float | None:
        """Count one hit. Returns seconds until the window reopens when over limit."""
        now = time.monotonic()
        async with self._lock:
            if len(self._windows) > self.max_keys:
                self._windows.clear()
            window = self._windows.get(key)
            if window is None or now - window.opened_at >= window_seconds:
                self._windows[key] = _Window(opened_at=now)
                return None
            if window.hits >= limit:
                return window_seconds - (now - window.opened_at)
            window.hits += 1
            return None

    def reset(self) -> None:
        self._windows.clear()


limiter = FixedWindowLimiter()


async def consume(
    *,
    key: str,
    limit: int,
    window_seconds: int,
    hint: str = "Please slow down and try again.",
) -> None:
    """Raise 429 with Retry-After when `key` is over `limit`; a limit <= 0 disables it."""
    if limit <= 0:
        return
    wait = await limiter.hit(key, limit=limit, window_seconds=window_seconds)
    if wait is None:
        return
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={"message": "Too many requests.", "hint": hint, "code": "RATE_LIMITED"},
        headers={"Retry-After": str(max(1, int(wait)))},
    )
