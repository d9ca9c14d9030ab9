from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date as Date
from datetime import timedelta

from firelevel.services.day_rules import DayValidation

MAX_LOOKBACK_DAYS = 365


@dataclass(frozen=True)
class StreakWalk:
    current_streak: int
    streak_start: Date | None
    last_valid_date: Date | None
    reference: DayValidation
    days_evaluated: int


def walk_streak(
    reference_date: Date,
    validate: Callable[[Date], DayValidation],
    *,
    lookback_days: int = MAX_LOOKBACK_DAYS,
    reference_in_progress: bool = False,
) -> StreakWalk:
    """Count consecutive valid days ending at ``reference_date``.

    The walk goes backward one day at a time and stops at the first invalid
    day, or after ``lookback_days`` earlier days. An invalid reference day ends
    the chain unless the day is still in progress, in which case the chain
    ending yesterday still counts.
    """
    lookback_days = max(0, min(lookback_days, MAX_LOOKBACK_DAYS))

    reference = validate(reference_date)
    evaluated = 1
    current = 0
    streak_start: Date | None = None
    last_valid: Date | None = None

    if reference.is_valid:
        current = 1
        streak_start = reference_date
        last_valid = reference_date
    elif not reference_in_progress:
        return StreakWalk(
            current_streak=0,
            streak_start=None,
            last_valid_date=None,
            reference=reference,
            days_evaluated=evaluated,
        )

    for offset in range(1, lookback_days + 1):
        day = reference_date - timedelta(days=offset)
        evaluated += 1
        if not validate(day).is_valid:
            break
        current += 1
        streak_start = day
        if last_valid is None:
            last_valid = day

    return StreakWalk(
        current_streak=current,
        streak_start=streak_start,
        last_valid_date=last_valid,
        reference=reference,
        days_evaluated=evaluated,
    )


def window_start(reference_date: Date, lookback_days: int = MAX_LOOKBACK_DAYS) -> Date:
    return reference_date - timedelta(days=max(0, min(lookback_days, MAX_LOOKBACK_DAYS)))
