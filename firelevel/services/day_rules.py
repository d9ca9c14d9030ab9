from __future__ import annotations

from dataclasses import dataclass
from datetime import date as Date
from typing import Protocol

from firelevel.services.activity_facts import DayFacts


@dataclass(frozen=True)
class DayValidation:
    date: Date
    rule_set: str
    has_intention: bool
    total_routines: int
    completed_routines: int
    routine_rate: int
    total_tasks: int
    completed_tasks: int
    task_rate: int
    total_items: int
    completed_items: int
    overall_rate: int
    is_valid: bool
    required_completion_rate: int
    required_min_tasks: int
    meets_completion_rate: bool
    meets_min_tasks: bool
    requires_intention: bool
    degraded_facts: tuple[str, ...] = ()


@dataclass(frozen=True)
class _Rates:
    routine_rate: int
    task_rate: int
    total_items: int
    completed_items: int
    overall_rate: int


def _pct(done: int, total: int, *, empty: int) -> int:
    if total <= 0:
        return empty
    return (done * 100) // total


def _rates(facts: DayFacts) -> _Rates:
    # An empty category never blocks on its own (100%), but an empty day has
    # nothing to complete (0%).
    total_items = facts.total_routines + facts.total_tasks
    completed_items = facts.completed_routines + facts.completed_tasks
    return _Rates(
        routine_rate=_pct(facts.completed_routines, facts.total_routines, empty=100),
        task_rate=_pct(facts.completed_tasks, facts.total_tasks, empty=100),
        total_items=total_items,
        completed_items=completed_items,
        overall_rate=_pct(completed_items, total_items, empty=0),
    )


class DayRule(Protocol):
    name: str

    def evaluate(self, facts: DayFacts) -> DayValidation: ...


class CombinedCompletionRule:
    """A day counts when enough of its routines and tasks, taken together, are done."""

    name = "combined_v2"

    def __init__(
        self, *, required_completion_rate: int = 60, required_min_items: int = 1
    ) -> None:
        self.required_completion_rate = required_completion_rate
        self.required_min_items = required_min_items

    def evaluate(self, facts: DayFacts) -> DayValidation:
        r = _rates(facts)
        meets_rate = r.overall_rate >= self.required_completion_rate
        meets_min = r.total_items >= self.required_min_items
        return DayValidation(
            date=facts.date,
            rule_set=self.name,
            has_intention=facts.has_intention,
            total_routines=facts.total_routines,
            completed_routines=facts.completed_routines,
            routine_rate=r.routine_rate,
            total_tasks=facts.total_tasks,
            completed_tasks=facts.completed_tasks,
            task_rate=r.task_rate,
            total_items=r.total_items,
            completed_items=r.completed_items,
            overall_rate=r.overall_rate,
            is_valid=meets_rate and meets_min,
            required_completion_rate=self.required_completion_rate,
            required_min_tasks=self.required_min_items,
            meets_completion_rate=meets_rate,
            meets_min_tasks=meets_min,
            requires_intention=False,
            degraded_facts=facts.degraded,
        )


class IntentionRoutineRule:
    """Earlier rule: a daily intention plus a minimum share of due routines. Tasks are ignored."""

    name = "intention_routines_v1"

    def __init__(self, *, required_routine_rate: int = 40) -> None:
        self.required_routine_rate = required_routine_rate

    def evaluate(self, facts: DayFacts) -> DayValidation:
        r = _rates(facts)
        meets_rate = r.routine_rate >= self.required_routine_rate
        return DayValidation(
            date=facts.date,
            rule_set=self.name,
            has_intention=facts.has_intention,
            total_routines=facts.total_routines,
            completed_routines=facts.completed_routines,
            routine_rate=r.routine_rate,
            total_tasks=facts.total_tasks,
            completed_tasks=facts.completed_tasks,
            task_rate=r.task_rate,
            total_items=r.total_items,
            completed_items=r.completed_items,
            overall_rate=r.overall_rate,
            is_valid=facts.has_intention and meets_rate,
            required_completion_rate=self.required_routine_rate,
            required_min_tasks=0,
            meets_completion_rate=meets_rate,
            meets_min_tasks=True,
            requires_intention=True,
            degraded_facts=facts.degraded,
        )


_RULES: dict[str, type[CombinedCompletionRule] | type[IntentionRoutineRule]] = {
    CombinedCompletionRule.name: CombinedCompletionRule,
    IntentionRoutineRule.name: IntentionRoutineRule,
}


def get_day_rule(name: str) -> DayRule:
    rule_cls = _RULES.get((name or "").strip())
    if rule_cls is None:
        raise ValueError(f"Unknown streak rule set: {name!r}")
    return rule_cls()
