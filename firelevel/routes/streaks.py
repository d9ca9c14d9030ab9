from __future__ import annotations

import asyncio
from datetime import date as Date
from typing import Annotated
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Query, status

from firelevel.core.config import settings
from firelevel.core.rate_limit import consume
from firelevel.core.security import AuthContext, AuthDep, verify_token
from firelevel.schemas.streaks import (
    DayValidationPayload,
    FlameLevelPayload,
    StreakResponse,
)
from firelevel.services.activity_facts import ActivityFactCollector
from firelevel.services.activity_repos import (
    IntentionRepository,
    RoutineRepository,
    TaskRepository,
)
from firelevel.services.day_rules import DayValidation, get_day_rule
from firelevel.services.local_date import (
    parse_timezone,
    resolve_user_timezone,
    user_today,
)
from firelevel.services.notifier import LoggingNotifier
from firelevel.services.streak_service import StreakService, StreakSummary
from firelevel.services.streak_store import service_role_store
from firelevel.services.supabase_rest import user_client

router = APIRouter()


def get_streak_service(
    auth: Annotated[AuthContext, Depends(verify_token)],
) -> StreakService:
    sb = user_client()
    collector = ActivityFactCollector(
        routines=RoutineRepository(sb, bearer_token=auth.access_token),
        tasks=TaskRepository(sb, bearer_token=auth.access_token),
        intentions=IntentionRepository(sb, bearer_token=auth.access_token),
    )
    return StreakService(
        collector=collector,
        store=service_role_store(),
        rule=get_day_rule(settings.streak_rule_set),
        notifier=LoggingNotifier(),
        lookback_days=settings.streak_lookback_days,
        persist_max_attempts=settings.streak_persist_max_attempts,
    )


StreakServiceDep = Annotated[StreakService, Depends(get_streak_service)]


def _caller_timezone(auth: AuthContext, tz: str | None) -> ZoneInfo:
    if tz:
        try:
            return parse_timezone(tz)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Unknown timezone: {tz}",
            )
    return resolve_user_timezone(auth.locale, auth.timezone)


def _day_payload(v: DayValidation) -> DayValidationPayload:
    return DayValidationPayload(
        date=v.date,
        rule_set=v.rule_set,
        has_intention=v.has_intention,
        total_routines=v.total_routines,
        completed_routines=v.completed_routines,
        routine_rate=v.routine_rate,
        total_tasks=v.total_tasks,
        completed_tasks=v.completed_tasks,
        task_rate=v.task_rate,
        total_items=v.total_items,
        completed_items=v.completed_items,
        overall_rate=v.overall_rate,
        is_valid=v.is_valid,
        required_completion_rate=v.required_completion_rate,
        required_min_tasks=v.required_min_tasks,
        meets_completion_rate=v.meets_completion_rate,
        meets_min_tasks=v.meets_min_tasks,
        requires_intention=v.requires_intention,
        degraded_facts=list(v.degraded_facts),
    )


def _streak_payload(summary: StreakSummary) -> StreakResponse:
    return StreakResponse(
        current_streak=summary.current_streak,
        longest_streak=summary.longest_streak,
        last_valid_date=summary.last_valid_date,
        streak_start=summary.streak_start,
        today_validation=_day_payload(summary.today_validation),
        flame_levels=[
            FlameLevelPayload(
                level=s.tier.level,
                name=s.tier.name,
                icon=s.tier.icon,
                days_required=s.tier.days_required,
                is_unlocked=s.is_unlocked,
                is_current=s.is_current,
            )
            for s in summary.flame.levels
        ],
        current_flame_level=summary.flame.current_level,
    )


async def _compute_bounded(
    service: StreakService, auth: AuthContext, date: Date | None, tz: str | None
) -> StreakResponse:
    today = user_today(_caller_timezone(auth, tz))
    reference = date or today
    try:
        summary = await asyncio.wait_for(
            service.compute(
                auth.user_id,
                reference,
                reference_in_progress=reference == today,
            ),
            timeout=settings.streak_compute_timeout_seconds,
        )
    except asyncio.TimeoutError:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail={
                "message": "Streak calculation timed out.",
                "hint": "Please try again in a moment.",
                "code": "STREAK_TIMEOUT",
            },
        )
    return _streak_payload(summary)


@router.get(
    "/streak", response_model=StreakResponse, response_model_exclude_none=True
)
async def get_streak(
    auth: AuthDep,
    service: StreakServiceDep,
    date: Date | None = Query(default=None, description="YYYY-MM-DD"),
    tz: str | None = Query(default=None, max_length=64, description="IANA timezone"),
) -> StreakResponse:
    return await _compute_bounded(service, auth, date, tz)


@router.get("/streak/day", response_model=DayValidationPayload)
async def get_day_validation(
    auth: AuthDep,
    service: StreakServiceDep,
    date: Date | None = Query(default=None, description="YYYY-MM-DD"),
    tz: str | None = Query(default=None, max_length=64, description="IANA timezone"),
) -> DayValidationPayload:
    day = date or user_today(_caller_timezone(auth, tz))
    validation = await service.validate_day(auth.user_id, day)
    return _day_payload(validation)


@router.post(
    "/streak/recalculate",
    response_model=StreakResponse,
    response_model_exclude_none=True,
)
async def recalculate_streak(
    auth: AuthDep,
    service: StreakServiceDep,
    date: Date | None = Query(default=None, description="YYYY-MM-DD"),
    tz: str | None = Query(default=None, max_length=64, description="IANA timezone"),
) -> StreakResponse:
    await consume(
        key=f"recalculate:{auth.user_id}",
        limit=settings.recalculate_per_minute_limit,
        window_seconds=60,
        hint="Streak recalculation is limited; try again in a minute.",
    )
    return await _compute_bounded(service, auth, date, tz)
