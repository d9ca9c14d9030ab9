from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration

from firelevel.core.config import settings
from firelevel.core.security import peek_user_id
from firelevel.routes.streaks import router as streaks_router
from firelevel.services.error_log import log_system_error
from firelevel.services.supabase_rest import SupabaseRestError, close_http

logging.getLogger("firelevel").setLevel(settings.log_level.upper())

if settings.sentry_dsn:
    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        integrations=[FastApiIntegration()],
        traces_sample_rate=max(0.0, min(settings.sentry_traces_sample_rate, 1.0)),
        send_default_pii=False,
        environment=settings.app_env,
    )


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    await close_http()


app = FastAPI(title="Firelevel Streak API", version="0.1.0", lifespan=lifespan)


def _origin(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme and parsed.netloc:
        return f"{parsed.scheme}://{parsed.netloc}"
    return url.rstrip("/")


app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(
        {_origin(str(settings.frontend_url)), "http://localhost:3000"}
    ),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.middleware("http")
async def record_server_errors(request: Request, call_next):
    response = await call_next(request)
    # 500s from unhandled exceptions are recorded by their handler with the stack.
    if response.status_code > 500:
        await log_system_error(
            route=request.url.path,
            message=f"Server response status {response.status_code}",
            user_id=await peek_user_id(request),
            meta={"status_code": response.status_code, "method": request.method},
        )
    return response


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


def _storage_failure(exc: SupabaseRestError) -> tuple[int, dict[str, str | None]]:
    message = str(exc).lower()
    if exc.code == "42501" and "row-level security" in message:
        return 503, {
            "message": "Streak storage rejected the request (RLS).",
            "hint": "Check the row-level security policies and the configured Supabase keys.",
            "code": exc.code,
        }
    if exc.code == "PGRST202":
        return 503, {
            "message": "Streak storage function is missing.",
            "hint": "Apply supabase/patches/user_streaks.sql to the database.",
            "code": exc.code,
        }
    # Caller mistakes keep their 4xx; upstream failures become 502.
    status_code = exc.status_code if 400 <= exc.status_code < 500 else 502
    return status_code, {
        "message": "Activity data request failed.",
        "hint": exc.hint,
        "code": exc.code,
    }


@app.exception_handler(SupabaseRestError)
async def supabase_rest_error_handler(request: Request, exc: SupabaseRestError):
    status_code, detail = _storage_failure(exc)
    await log_system_error(
        route=request.url.path,
        message="Supabase request failed",
        user_id=await peek_user_id(request),
        err=exc,
        meta={"status_code": exc.status_code, "code": exc.code},
    )
    return JSONResponse(status_code=status_code, content={"detail": detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    await log_system_error(
        route=request.url.path,
        message="Unhandled server error",
        user_id=await peek_user_id(request),
        err=exc,
        meta={"method": request.method},
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(streaks_router, prefix="/api")
