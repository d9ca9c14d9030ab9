from __future__ import annotations

import os
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

# Ensure CI can import app settings without a local .env file.
_ENV_DEFAULTS = {
    "APP_ENV": "test",
    "FRONTEND_URL": "http://localhost:3000",
    "SUPABASE_URL": "https://example.supabase.co",
    "SUPABASE_ANON_KEY": "test-anon-key",
    "SUPABASE_SERVICE_ROLE_KEY": "test-service-role-key",
    "STREAK_RULE_SET": "combined_v2",
    "STREAK_LOOKBACK_DAYS": "365",
    "DEFAULT_TIMEZONE": "UTC",
}
for _key, _value in _ENV_DEFAULTS.items():
    os.environ.setdefault(_key, _value)

import firelevel.core.rate_limit as rate_limit
import firelevel.services.error_log as error_log
import firelevel.services.supabase_auth as supabase_auth
from firelevel.core.security import AuthContext, verify_token
from firelevel.main import app
from firelevel.services.supabase_rest import SupabaseRest

TEST_USER_ID = "00000000-0000-4000-8000-000000000001"
TEST_EMAIL = "pytest-user@firelevel.test"
TEST_TOKEN = "test-access-token-0123456789abcdef"


@pytest.fixture(autouse=True)
def reset_test_state() -> None:
    app.dependency_overrides.clear()
    rate_limit.limiter.reset()
    supabase_auth.identity_cache.clear()


@pytest.fixture
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {TEST_TOKEN}"}


@pytest.fixture
def fake_auth_context() -> AuthContext:
    return AuthContext(
        user_id=TEST_USER_ID,
        email=TEST_EMAIL,
        locale="en",
        timezone="UTC",
        access_token=TEST_TOKEN,
    )


@pytest.fixture
def authenticated_client(client: TestClient, fake_auth_context: AuthContext) -> TestClient:
    async def _override_verify_token() -> AuthContext:
        return fake_auth_context

    app.dependency_overrides[verify_token] = _override_verify_token
    return client


@pytest.fixture
def system_error_mock(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    mock = AsyncMock(return_value=None)
    monkeypatch.setattr(error_log, "log_system_error", mock)
    return mock


@pytest.fixture
def supabase_mock(monkeypatch: pytest.MonkeyPatch) -> dict[str, AsyncMock]:
    mocks = {
        "select": AsyncMock(return_value=[]),
        "insert_one": AsyncMock(return_value={}),
        "rpc": AsyncMock(return_value=[]),
    }

    async def _select(self: SupabaseRest, table: str, *, bearer_token: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        return await mocks["select"](table=table, bearer_token=bearer_token, params=params)

    async def _insert_one(
        self: SupabaseRest,
        table: str,
        *,
        bearer_token: str,
        row: dict[str, Any],
    ) -> dict[str, Any]:
        return await mocks["insert_one"](table=table, bearer_token=bearer_token, row=row)

    async def _rpc(
        self: SupabaseRest,
        fn_name: str,
        *,
        bearer_token: str,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        return await mocks["rpc"](fn_name=fn_name, bearer_token=bearer_token, params=params)

    monkeypatch.setattr(SupabaseRest, "select", _select)
    monkeypatch.setattr(SupabaseRest, "insert_one", _insert_one)
    monkeypatch.setattr(SupabaseRest, "rpc", _rpc)
    return mocks
