from __future__ import annotations

import logging
from collections.abc import Awaitable
from dataclasses import dataclass
from datetime import date as Date
from typing import Generic, TypeVar

import httpx

from firelevel.services.activity_repos import (
    IntentionRepository,
    RoutineDue,
    RoutineRecord,
    RoutineRepository,
    TaskCounts,
    TaskRepository,
)
from firelevel.services.frequency import applies_on_date
from firelevel.services.supabase_rest import SupabaseRestError

logger = logging.getLogger(__name__)

T = TypeVar("T")

FACT_INTENTION = "intention"
FACT_ROUTINES = "routines"
FACT_TASKS = "tasks"


@dataclass(frozen=True)
class FactResult(Generic[T]):
    """Outcome of one fact lookup.

    A failed lookup still carries a usable value (the neutral default) so the
    day can be evaluated; ``error`` records why it degraded.
    """

    value: T
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "FactResult[T]":
        return cls(value=value)

    @classmethod
    def degraded(cls, default: T, error: str) -> "FactResult[T]":
        return cls(value=default, error=error)


@dataclass(frozen=True)
class DayFacts:
    date: Date
    has_intention: bool = False
    total_routines: int = 0
    completed_routines: int = 0
    total_tasks: int = 0
    completed_tasks: int = 0
    degraded: tuple[str, ...] = ()


@dataclass(frozen=True)
class ActivityHistory:
    """Facts for a contiguous date window, fetched once and folded in memory."""

    user_id: str
    start: Date
    end: Date
    routines: FactResult[list[RoutineRecord]]
    tasks: FactResult[dict[Date, TaskCounts]]
    intentions: FactResult[set[Date]]

    @property
    def degraded(self) -> tuple[str, ...]:
        names = []
        if not self.intentions.ok:
            names.append(FACT_INTENTION)
        if not self.routines.ok:
            names.append(FACT_ROUTINES)
        if not self.tasks.ok:
            names.append(FACT_TASKS)
        return tuple(names)

    def covers(self, day: Date) -> bool:
        return self.start <= day <= self.end

    def facts_for(self, day: Date) -> DayFacts:
        if not self.covers(day):
            raise ValueError(
                f"{day.isoformat()} is outside the fetched window "
                f"{self.start.isoformat()}..{self.end.isoformat()}"
            )
        total_routines = 0
        completed_routines = 0
        for routine in self.routines.value:
            if not applies_on_date(routine.recurrence, day):
                continue
            total_routines += 1
            if day in routine.completed_on:
                completed_routines += 1
        counts = self.tasks.value.get(day, TaskCounts())
        return DayFacts(
            date=day,
            has_intention=day in self.intentions.value,
            total_routines=total_routines,
            completed_routines=completed_routines,
            total_tasks=counts.total,
            completed_tasks=counts.completed,
            degraded=self.degraded,
        )


class ActivityFactCollector:
    def __init__(
        self,
        *,
        routines: RoutineRepository,
        tasks: TaskRepository,
        intentions: IntentionRepository,
    ) -> None:
        self._routines = routines
        self._tasks = tasks
        self._intentions = intentions

    async def _guard(
        self,
        fact: str,
        lookup: Awaitable[T],
        *,
        default: T,
        user_id: str,
        window: str,
    ) -> FactResult[T]:
        try:
            return FactResult.success(await lookup)
        except (SupabaseRestError, httpx.HTTPError) as exc:
            logger.warning(
                "Fact lookup degraded to default (fact=%s user=%s window=%s): %s",
                fact,
                user_id,
                window,
                exc,
            )
            return FactResult.degraded(default, f"{type(exc).__name__}: {exc}")

    async def collect_day(self, user_id: str, day: Date) -> DayFacts:
        window = day.isoformat()
        intention = await self._guard(
            FACT_INTENTION,
            self._intentions.has_intention(user_id, day),
            default=False,
            user_id=user_id,
            window=window,
        )
        due: FactResult[list[RoutineDue]] = await self._guard(
            FACT_ROUTINES,
            self._routines.list_routines_due(user_id, day),
            default=[],
            user_id=user_id,
            window=window,
        )
        tasks = await self._guard(
            FACT_TASKS,
            self._tasks.count_tasks(user_id, day),
            default=TaskCounts(),
            user_id=user_id,
            window=window,
        )
        degraded = tuple(
            name
            for name, result in (
                (FACT_INTENTION, intention),
                (FACT_ROUTINES, due),
                (FACT_TASKS, tasks),
            )
            if not result.ok
        )
        return DayFacts(
            date=day,
            has_intention=intention.value,
            total_routines=len(due.value),
            completed_routines=sum(1 for r in due.value if r.is_completed_on_date),
            total_tasks=tasks.value.total,
            completed_tasks=tasks.value.completed,
            degraded=degraded,
        )

    async def collect_range(
        self, user_id: str, start: Date, end: Date
    ) -> ActivityHistory:
        if end < start:
            raise ValueError("end must be on or after start")
        window = f"{start.isoformat()}..{end.isoformat()}"
        routines = await self._guard(
            FACT_ROUTINES,
            self._routines.list_routines(user_id, start, end),
            default=[],
            user_id=user_id,
            window=window,
        )
        tasks = await self._guard(
            FACT_TASKS,
            self._tasks.count_tasks_by_date(user_id, start, end),
            default={},
            user_id=user_id,
            window=window,
        )
        intentions = await self._guard(
            FACT_INTENTION,
            self._intentions.intention_dates(user_id, start, end),
            default=set(),
            user_id=user_id,
            window=window,
        )
        return ActivityHistory(
            user_id=user_id,
            start=start,
            end=end,
            routines=routines,
            tasks=tasks,
            intentions=intentions,
        )
