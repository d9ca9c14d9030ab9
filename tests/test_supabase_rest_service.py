from __future__ import annotations

import json
from datetime import date as Date

import httpx
import pytest
import respx

from firelevel.services.activity_repos import RoutineRepository
from firelevel.services.supabase_rest import SupabaseRest, SupabaseRestError


def _response(
    status_code: int, *, json_body=None, text: str = "error"
) -> httpx.Response:
    req = httpx.Request("GET", "https://example.supabase.co/rest/v1/test")
    if json_body is not None:
        return httpx.Response(status_code, json=json_body, request=req)
    return httpx.Response(status_code, text=text, request=req)


def test_raise_for_error_extracts_supabase_payload() -> None:
    sb = SupabaseRest("https://example.supabase.co", "anon")
    resp = _response(
        403,
        json_body={
            "code": "42501",
            "message": "row-level security policy",
            "hint": "check policy",
            "details": {"table": "user_streaks"},
        },
    )

    with pytest.raises(SupabaseRestError) as exc:
        sb._raise_for_error(resp)

    assert exc.value.status_code == 403
    assert exc.value.code == "42501"
    assert "row-level security policy" in str(exc.value)


def test_raise_for_error_uses_text_when_json_missing() -> None:
    sb = SupabaseRest("https://example.supabase.co", "anon")
    resp = _response(500, text="upstream failure")

    with pytest.raises(SupabaseRestError) as exc:
        sb._raise_for_error(resp)

    assert exc.value.status_code == 500
    assert str(exc.value) == "upstream failure"


@pytest.mark.asyncio
async def test_select_wraps_single_object_as_list(monkeypatch: pytest.MonkeyPatch) -> None:
    sb = SupabaseRest("https://example.supabase.co", "anon")

    class _Client:
        async def request(self, *args, **kwargs):
            return _response(200, json_body={"id": "one"})

    monkeypatch.setattr("firelevel.services.supabase_rest.get_http", lambda: _Client())

    rows = await sb.select(
        "user_streaks",
        bearer_token="token",
        params={"select": "id"},
    )
    assert rows == [{"id": "one"}]


def test_transient_statuses() -> None:
    assert SupabaseRestError(status_code=503, message="x").is_transient is True
    assert SupabaseRestError(status_code=429, message="x").is_transient is True
    assert SupabaseRestError(status_code=404, message="x").is_transient is False
    assert SupabaseRestError(status_code=400, message="x").is_transient is False


@pytest.mark.asyncio
@respx.mock
async def test_rpc_posts_params_and_wraps_object() -> None:
    route = respx.post("https://example.supabase.co/rest/v1/rpc/record_user_streak").mock(
        return_value=httpx.Response(
            200, json={"user_id": "u1", "current_streak": 3, "longest_streak": 8}
        )
    )
    sb = SupabaseRest("https://example.supabase.co/", "service")

    rows = await sb.rpc(
        "record_user_streak",
        bearer_token="service-token",
        params={"p_user_id": "u1", "p_current_streak": 3, "p_longest_streak": 3},
    )

    assert rows == [{"user_id": "u1", "current_streak": 3, "longest_streak": 8}]
    request = route.calls.last.request
    assert request.headers["authorization"] == "Bearer service-token"
    assert request.headers["apikey"] == "service"
    assert json.loads(request.content)["p_current_streak"] == 3


@pytest.mark.asyncio
@respx.mock
async def test_rpc_missing_function_raises_with_code() -> None:
    respx.post("https://example.supabase.co/rest/v1/rpc/record_user_streak").mock(
        return_value=httpx.Response(
            404,
            json={"code": "PGRST202", "message": "Could not find the function"},
        )
    )
    sb = SupabaseRest("https://example.supabase.co", "service")

    with pytest.raises(SupabaseRestError) as exc:
        await sb.rpc("record_user_streak", bearer_token="service-token")

    assert exc.value.code == "PGRST202"
    assert exc.value.is_transient is False


@pytest.mark.asyncio
@respx.mock
async def test_routine_window_query_filters_embedded_completions() -> None:
    route = respx.get("https://example.supabase.co/rest/v1/routines").mock(
        return_value=httpx.Response(
            200,
            json=[
                {
                    "id": "r1",
                    "frequency": "weekdays",
                    "routine_completions": [{"completed_at": "2024-01-02T07:00:00+00:00"}],
                }
            ],
        )
    )
    repo = RoutineRepository(
        SupabaseRest("https://example.supabase.co", "anon"), bearer_token="user-token"
    )

    routines = await repo.list_routines("u1", Date(2024, 1, 1), Date(2024, 1, 5))

    assert [r.routine_id for r in routines] == ["r1"]
    assert routines[0].completed_on == frozenset({Date(2024, 1, 2)})
    params = route.calls.last.request.url.params
    assert params["user_id"] == "eq.u1"
    assert params["routine_completions.and"] == (
        "(completed_at.gte.2024-01-01T00:00:00+00:00,"
        "completed_at.lt.2024-01-06T00:00:00+00:00)"
    )
