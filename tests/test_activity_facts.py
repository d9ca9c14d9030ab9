from __future__ import annotations

from datetime import date as Date

import httpx
import pytest

from firelevel.services.activity_facts import ActivityFactCollector, FactResult
from firelevel.services.activity_repos import (
    IntentionRepository,
    RoutineRepository,
    TaskRepository,
    coerce_date,
)
from firelevel.services.supabase_rest import SupabaseRest
from tests.fixtures.activity_tables import FakeActivityTables, daily_routine

USER_ID = "00000000-0000-4000-8000-000000000001"
MONDAY = Date(2024, 1, 1)
SATURDAY = Date(2024, 1, 6)


def _collector() -> ActivityFactCollector:
    sb = SupabaseRest("https://example.supabase.co", "anon")
    return ActivityFactCollector(
        routines=RoutineRepository(sb, bearer_token="token"),
        tasks=TaskRepository(sb, bearer_token="token"),
        intentions=IntentionRepository(sb, bearer_token="token"),
    )


def test_fact_result_success_and_degraded() -> None:
    ok = FactResult.success(3)
    bad = FactResult.degraded(0, "boom")

    assert ok.ok is True and ok.value == 3
    assert bad.ok is False and bad.value == 0 and bad.error == "boom"


def test_coerce_date_accepts_dates_and_timestamps() -> None:
    assert coerce_date("2024-01-05") == Date(2024, 1, 5)
    assert coerce_date("2024-01-05T23:10:00+00:00") == Date(2024, 1, 5)
    assert coerce_date("2024-01-05T23:10:00.123456Z") == Date(2024, 1, 5)
    assert coerce_date(Date(2024, 1, 5)) == Date(2024, 1, 5)
    assert coerce_date("not-a-date") is None
    assert coerce_date(None) is None


@pytest.mark.asyncio
async def test_collect_day_applies_frequency_and_completion(supabase_mock) -> None:
    tables = FakeActivityTables()
    tables.routines = [
        daily_routine("r-daily", completed=[SATURDAY]),
        daily_routine("r-weekdays", frequency="weekdays", completed=[SATURDAY]),
        daily_routine("r-weekends", frequency="weekends"),
        daily_routine("r-saturday", frequency="saturday", completed=[MONDAY]),
    ]
    tables.add_task(SATURDAY, status="completed")
    tables.add_task(SATURDAY)
    tables.add_task(MONDAY, status="completed")
    tables.add_intention(SATURDAY)
    tables.install(supabase_mock)

    facts = await _collector().collect_day(USER_ID, SATURDAY)

    assert facts.has_intention is True
    # Weekday routine is not due on Saturday even though a completion exists.
    assert facts.total_routines == 3
    assert facts.completed_routines == 1
    assert facts.total_tasks == 2
    assert facts.completed_tasks == 1
    assert facts.degraded == ()


@pytest.mark.asyncio
async def test_collect_day_degrades_failed_intention_lookup(supabase_mock) -> None:
    tables = FakeActivityTables()
    tables.routines = [daily_routine("r1", completed=[MONDAY])]
    tables.add_intention(MONDAY)
    tables.failing_tables.add("daily_intentions")
    tables.install(supabase_mock)

    facts = await _collector().collect_day(USER_ID, MONDAY)

    assert facts.has_intention is False
    assert facts.total_routines == 1
    assert facts.completed_routines == 1
    assert facts.degraded == ("intention",)


@pytest.mark.asyncio
async def test_collect_range_issues_one_query_per_fact(supabase_mock) -> None:
    tables = FakeActivityTables()
    tables.install(supabase_mock)

    await _collector().collect_range(USER_ID, Date(2023, 1, 6), SATURDAY)

    assert sorted(tables.select_calls) == ["daily_intentions", "routines", "tasks"]
    calls = {c.kwargs["table"]: c.kwargs for c in supabase_mock["select"].await_args_list}
    assert calls["routines"]["params"]["user_id"] == f"eq.{USER_ID}"
    assert calls["routines"]["params"]["select"] == "id,frequency,routine_completions(completed_at)"
    assert "completed_at.gte.2023-01-06T00:00:00+00:00" in calls["routines"]["params"]["routine_completions.and"]
    assert "completed_at.lt.2024-01-07T00:00:00+00:00" in calls["routines"]["params"]["routine_completions.and"]
    assert calls["tasks"]["params"]["and"] == (
        f"(user_id.eq.{USER_ID},date.gte.2023-01-06,date.lte.2024-01-06)"
    )
    assert calls["tasks"]["bearer_token"] == "token"


@pytest.mark.asyncio
async def test_history_folds_each_day_in_memory(supabase_mock) -> None:
    tables = FakeActivityTables()
    tables.routines = [
        daily_routine("r1", completed=[MONDAY, Date(2024, 1, 2)]),
        daily_routine("r2", frequency="tuesday", completed=[Date(2024, 1, 2)]),
    ]
    tables.add_task(Date(2024, 1, 3), status="completed")
    tables.install(supabase_mock)

    history = await _collector().collect_range(USER_ID, MONDAY, Date(2024, 1, 3))

    monday = history.facts_for(MONDAY)
    tuesday = history.facts_for(Date(2024, 1, 2))
    wednesday = history.facts_for(Date(2024, 1, 3))
    assert (monday.total_routines, monday.completed_routines) == (1, 1)
    assert (tuesday.total_routines, tuesday.completed_routines) == (2, 2)
    assert (wednesday.total_routines, wednesday.completed_routines) == (1, 0)
    assert (wednesday.total_tasks, wednesday.completed_tasks) == (1, 1)
    with pytest.raises(ValueError):
        history.facts_for(Date(2024, 1, 4))


@pytest.mark.asyncio
async def test_collect_range_degrades_each_fact_independently(supabase_mock) -> None:
    tables = FakeActivityTables()
    tables.routines = [daily_routine("r1", completed=[MONDAY])]
    tables.add_task(MONDAY, status="completed")
    tables.failing_tables.add("tasks")
    tables.install(supabase_mock)

    history = await _collector().collect_range(USER_ID, MONDAY, MONDAY)
    facts = history.facts_for(MONDAY)

    assert history.routines.ok is True
    assert history.tasks.ok is False
    assert facts.total_tasks == 0
    assert facts.total_routines == 1
    assert facts.degraded == ("tasks",)


@pytest.mark.asyncio
async def test_transport_errors_also_degrade(supabase_mock) -> None:
    supabase_mock["select"].side_effect = httpx.ConnectError("connection refused")

    facts = await _collector().collect_day(USER_ID, MONDAY)

    assert facts.total_routines == 0
    assert facts.total_tasks == 0
    assert facts.has_intention is False
    assert set(facts.degraded) == {"intention", "routines", "tasks"}
