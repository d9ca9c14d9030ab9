from __future__ import annotations

from dataclasses import dataclass
from datetime import date as Date
from datetime import datetime, timedelta
from typing import Any

from firelevel.services.frequency import applies_on_date
from firelevel.services.supabase_rest import SupabaseRest

_ROW_LIMIT = 10_000


@dataclass(frozen=True)
class RoutineRecord:
    routine_id: str
    recurrence: str | None
    completed_on: frozenset[Date]


@dataclass(frozen=True)
class RoutineDue:
    routine_id: str
    recurrence: str | None
    is_completed_on_date: bool


@dataclass(frozen=True)
class TaskCounts:
    total: int = 0
    completed: int = 0


def coerce_date(value: Any) -> Date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, Date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    try:
        return Date.fromisoformat(raw)
    except ValueError:
        pass
    try:
        # PostgREST renders timestamptz with an offset; older runtimes reject "Z".
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _window_bounds(start: Date, end: Date) -> tuple[str, str]:
    return start.isoformat(), end.isoformat()


class RoutineRepository:
    def __init__(self, sb: SupabaseRest, *, bearer_token: str) -> None:
        self._sb = sb
        self._token = bearer_token

    async def list_routines(
        self, user_id: str, start: Date, end: Date
    ) -> list[RoutineRecord]:
        """All routines of the user, with completion dates inside [start, end]."""
        lo = f"{start.isoformat()}T00:00:00+00:00"
        hi = f"{(end + timedelta(days=1)).isoformat()}T00:00:00+00:00"
        rows = await self._sb.select(
            "routines",
            bearer_token=self._token,
            params={
                "select": "id,frequency,routine_completions(completed_at)",
                "user_id": f"eq.{user_id}",
                "routine_completions.and": f"(completed_at.gte.{lo},completed_at.lt.{hi})",
                "limit": _ROW_LIMIT,
            },
        )
        out: list[RoutineRecord] = []
        for row in rows:
            routine_id = row.get("id")
            if not isinstance(routine_id, str) or not routine_id:
                continue
            completions = row.get("routine_completions")
            done: set[Date] = set()
            if isinstance(completions, list):
                for item in completions:
                    if not isinstance(item, dict):
                        continue
                    day = coerce_date(item.get("completed_at"))
                    if day is not None and start <= day <= end:
                        done.add(day)
            frequency = row.get("frequency")
            out.append(
                RoutineRecord(
                    routine_id=routine_id,
                    recurrence=frequency if isinstance(frequency, str) else None,
                    completed_on=frozenset(done),
                )
            )
        return out

    async def list_routines_due(self, user_id: str, day: Date) -> list[RoutineDue]:
        routines = await self.list_routines(user_id, day, day)
        return [
            RoutineDue(
                routine_id=r.routine_id,
                recurrence=r.recurrence,
                is_completed_on_date=day in r.completed_on,
            )
            for r in routines
            if applies_on_date(r.recurrence, day)
        ]


class TaskRepository:
    def __init__(self, sb: SupabaseRest, *, bearer_token: str) -> None:
        self._sb = sb
        self._token = bearer_token

    async def count_tasks_by_date(
        self, user_id: str, start: Date, end: Date
    ) -> dict[Date, TaskCounts]:
        lo, hi = _window_bounds(start, end)
        rows = await self._sb.select(
            "tasks",
            bearer_token=self._token,
            params={
                "select": "date,status",
                "and": f"(user_id.eq.{user_id},date.gte.{lo},date.lte.{hi})",
                "limit": _ROW_LIMIT,
            },
        )
        totals: dict[Date, int] = {}
        completed: dict[Date, int] = {}
        for row in rows:
            day = coerce_date(row.get("date"))
            if day is None:
                continue
            totals[day] = totals.get(day, 0) + 1
            if row.get("status") == "completed":
                completed[day] = completed.get(day, 0) + 1
        return {
            day: TaskCounts(total=total, completed=completed.get(day, 0))
            for day, total in totals.items()
        }

    async def count_tasks(self, user_id: str, day: Date) -> TaskCounts:
        by_date = await self.count_tasks_by_date(user_id, day, day)
        return by_date.get(day, TaskCounts())


class IntentionRepository:
    def __init__(self, sb: SupabaseRest, *, bearer_token: str) -> None:
        self._sb = sb
        self._token = bearer_token

    async def intention_dates(
        self, user_id: str, start: Date, end: Date
    ) -> set[Date]:
        lo, hi = _window_bounds(start, end)
        rows = await self._sb.select(
            "daily_intentions",
            bearer_token=self._token,
            params={
                "select": "date",
                "and": f"(user_id.eq.{user_id},date.gte.{lo},date.lte.{hi})",
                "limit": _ROW_LIMIT,
            },
        )
        out: set[Date] = set()
        for row in rows:
            day = coerce_date(row.get("date"))
            if day is not None:
                out.add(day)
        return out

    async def has_intention(self, user_id: str, day: Date) -> bool:
        return day in await self.intention_dates(user_id, day, day)
