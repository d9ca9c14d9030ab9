from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from firelevel.core.config import settings
from firelevel.services.supabase_rest import SupabaseRest, service_client

_TABLE = "user_streaks"
_UPSERT_FN = "record_user_streak"


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float):
        return max(int(value), 0)
    if isinstance(value, str):
        try:
            return max(int(float(value)), 0)
        except ValueError:
            return 0
    return 0


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass(frozen=True)
class StreakRecord:
    user_id: str
    current_streak: int
    longest_streak: int
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any], *, user_id: str) -> "StreakRecord":
        current = _as_int(row.get("current_streak"))
        longest = _as_int(row.get("longest_streak"))
        raw_user = row.get("user_id")
        return cls(
            user_id=raw_user if isinstance(raw_user, str) and raw_user else user_id,
            current_streak=current,
            longest_streak=max(longest, current),
            updated_at=_as_datetime(row.get("updated_at")),
        )


class StreakRecordStore:
    """Persisted current/longest streak per user.

    Writes go through the ``record_user_streak`` SQL function, which applies
    ``longest = greatest(longest, new_longest, new_current)`` in one statement,
    so concurrent writers can never lower the longest streak.
    """

    def __init__(self, sb: SupabaseRest, *, bearer_token: str) -> None:
        self._sb = sb
        self._token = bearer_token

    async def get(self, user_id: str) -> StreakRecord | None:
        rows = await self._sb.select(
            _TABLE,
            bearer_token=self._token,
            params={
                "select": "user_id,current_streak,longest_streak,updated_at",
                "user_id": f"eq.{user_id}",
                "limit": 1,
            },
        )
        if not rows:
            return None
        return StreakRecord.from_row(rows[0], user_id=user_id)

    async def upsert(
        self, user_id: str, *, current_streak: int, longest_streak: int
    ) -> StreakRecord:
        current = max(current_streak, 0)
        longest = max(longest_streak, current)
        rows = await self._sb.rpc(
            _UPSERT_FN,
            bearer_token=self._token,
            params={
                "p_user_id": user_id,
                "p_current_streak": current,
                "p_longest_streak": longest,
            },
        )
        if rows:
            return StreakRecord.from_row(rows[0], user_id=user_id)
        return StreakRecord(
            user_id=user_id, current_streak=current, longest_streak=longest
        )

    async def current_streaks(self, user_ids: list[str]) -> dict[str, int]:
        """Current streak per user for ranking reads. Users without a record are absent."""
        ids = sorted({u for u in user_ids if isinstance(u, str) and u.strip()})
        if not ids:
            return {}
        rows = await self._sb.select(
            _TABLE,
            bearer_token=self._token,
            params={
                "select": "user_id,current_streak",
                "user_id": f"in.({','.join(ids)})",
                "limit": len(ids),
            },
        )
        out: dict[str, int] = {}
        for row in rows:
            uid = row.get("user_id")
            if isinstance(uid, str) and uid:
                out[uid] = _as_int(row.get("current_streak"))
        return out


def service_role_store() -> StreakRecordStore:
    # Server-managed table: service-role only.
    return StreakRecordStore(
        service_client(), bearer_token=settings.supabase_service_role_key
    )
