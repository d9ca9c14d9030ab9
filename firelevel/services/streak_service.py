from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date as Date

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from firelevel.core.user_locks import user_lock
from firelevel.services.activity_facts import ActivityFactCollector
from firelevel.services.day_rules import DayRule, DayValidation
from firelevel.services.error_log import report_error
from firelevel.services.flame import FlameLadder, flame_tier_for, map_flame_tiers
from firelevel.services.notifier import LoggingNotifier, MilestoneNotifier
from firelevel.services.streak_store import StreakRecord, StreakRecordStore
from firelevel.services.streaks import MAX_LOOKBACK_DAYS, walk_streak, window_start
from firelevel.services.supabase_rest import SupabaseRestError

logger = logging.getLogger(__name__)

_STORE_ERRORS = (SupabaseRestError, httpx.HTTPError)


@dataclass(frozen=True)
class StreakSummary:
    user_id: str
    reference_date: Date
    current_streak: int
    longest_streak: int
    streak_start: Date | None
    last_valid_date: Date | None
    today_validation: DayValidation
    flame: FlameLadder
    days_evaluated: int
    persisted: bool


def _is_retryable_store_error(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, SupabaseRestError):
        return exc.is_transient
    return False


def _before_sleep_log(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Streak record upsert retrying after %s (attempt %s)",
        type(exc).__name__ if exc else "unknown error",
        retry_state.attempt_number,
    )


class StreakService:
    def __init__(
        self,
        *,
        collector: ActivityFactCollector,
        store: StreakRecordStore,
        rule: DayRule,
        notifier: MilestoneNotifier | None = None,
        lookback_days: int = MAX_LOOKBACK_DAYS,
        persist_max_attempts: int = 3,
        persist_wait_initial: float = 0.2,
        persist_wait_max: float = 2.0,
    ) -> None:
        self._collector = collector
        self._store = store
        self._rule = rule
        self._notifier: MilestoneNotifier = notifier or LoggingNotifier()
        self._lookback_days = lookback_days
        self._persist_max_attempts = max(1, persist_max_attempts)
        self._persist_wait_initial = persist_wait_initial
        self._persist_wait_max = persist_wait_max

    @property
    def rule(self) -> DayRule:
        return self._rule

    async def validate_day(self, user_id: str, day: Date) -> DayValidation:
        facts = await self._collector.collect_day(user_id, day)
        return self._rule.evaluate(facts)

    async def compute(
        self,
        user_id: str,
        reference_date: Date,
        *,
        reference_in_progress: bool = False,
    ) -> StreakSummary:
        async with user_lock(user_id):
            previous = await self._read_record(user_id)

            history = await self._collector.collect_range(
                user_id,
                window_start(reference_date, self._lookback_days),
                reference_date,
            )
            walk = walk_streak(
                reference_date,
                lambda day: self._rule.evaluate(history.facts_for(day)),
                lookback_days=self._lookback_days,
                reference_in_progress=reference_in_progress,
            )

            stored_longest = previous.longest_streak if previous else 0
            longest = max(stored_longest, walk.current_streak)
            record = await self._persist(
                user_id, current_streak=walk.current_streak, longest_streak=longest
            )
            if record is not None:
                longest = max(longest, record.longest_streak)

            flame = map_flame_tiers(walk.current_streak)
            logger.info(
                "Streak calculated user=%s date=%s current=%s longest=%s flame=%s today_valid=%s",
                user_id,
                reference_date.isoformat(),
                walk.current_streak,
                longest,
                flame.current_level,
                walk.reference.is_valid,
            )

            await self._notify(
                user_id,
                previous=previous,
                current_streak=walk.current_streak,
                longest_streak=longest,
            )

            return StreakSummary(
                user_id=user_id,
                reference_date=reference_date,
                current_streak=walk.current_streak,
                longest_streak=longest,
                streak_start=walk.streak_start,
                last_valid_date=walk.last_valid_date,
                today_validation=walk.reference,
                flame=flame,
                days_evaluated=walk.days_evaluated,
                persisted=record is not None,
            )

    async def _read_record(self, user_id: str) -> StreakRecord | None:
        try:
            return await self._store.get(user_id)
        except _STORE_ERRORS as exc:
            # The upsert keeps longest monotonic, so a missed read cannot lower it.
            logger.warning("Streak record read failed user=%s: %s", user_id, exc)
            return None

    async def _persist(
        self, user_id: str, *, current_streak: int, longest_streak: int
    ) -> StreakRecord | None:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._persist_max_attempts),
                wait=wait_exponential_jitter(
                    initial=self._persist_wait_initial, max=self._persist_wait_max
                ),
                retry=retry_if_exception(_is_retryable_store_error),
                reraise=True,
                before_sleep=_before_sleep_log,
            ):
                with attempt:
                    return await self._store.upsert(
                        user_id,
                        current_streak=current_streak,
                        longest_streak=longest_streak,
                    )
        except _STORE_ERRORS as exc:
            await report_error(
                route="/api/streak",
                message="streak record upsert failed (non-blocking)",
                area="streak_store",
                err=exc,
                user_id=user_id,
                meta={
                    "current_streak": current_streak,
                    "longest_streak": longest_streak,
                },
            )
        return None

    async def _notify(
        self,
        user_id: str,
        *,
        previous: StreakRecord | None,
        current_streak: int,
        longest_streak: int,
    ) -> None:
        before_tier = flame_tier_for(previous.current_streak if previous else 0)
        now_tier = flame_tier_for(current_streak)
        previous_longest = previous.longest_streak if previous else 0
        try:
            if now_tier.level > before_tier.level:
                await self._notifier.flame_level_up(
                    user_id=user_id, tier=now_tier, current_streak=current_streak
                )
            if longest_streak > previous_longest and current_streak == longest_streak:
                await self._notifier.new_longest_streak(
                    user_id=user_id, longest_streak=longest_streak
                )
        except Exception:
            logger.exception("Milestone notification failed user=%s", user_id)
