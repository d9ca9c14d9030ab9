from __future__ import annotations

import logging
import re
import traceback
from typing import Any

import sentry_sdk

from firelevel.core.config import settings
from firelevel.services.supabase_rest import service_client

logger = logging.getLogger(__name__)

_REDACTIONS = (
    (re.compile(r"(?i)\bBearer\s+[A-Za-z0-9\-._~+/]+=*"), "Bearer [REDACTED]"),
    (
        re.compile(r"\b[A-Za-z0-9\-_]{20,}\.[A-Za-z0-9\-_]{20,}\.[A-Za-z0-9\-_]{20,}\b"),
        "[REDACTED_JWT]",
    ),
    (re.compile(r"(?i)(apikey[\"'=:\s]+)[A-Za-z0-9\-._]{16,}"), r"\1[REDACTED]"),
    (
        re.compile(r"\b[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}\b"),
        "[REDACTED_EMAIL]",
    ),
)
_MAX_TEXT = 1200


def redact(text: str) -> str:
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def _scrub(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, dict):
        return {str(k)[:128]: _scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]
    return redact(str(value))[:_MAX_TEXT]


async def log_system_error(
    *,
    route: str,
    message: str,
    user_id: str | None = None,
    err: BaseException | None = None,
    meta: dict[str, Any] | None = None,
) -> None:
    # Best-effort logging; never raise.
    try:
        stack = None
        if err is not None:
            raw_stack = "".join(
                traceback.format_exception(type(err), err, err.__traceback__)
            )[:8000]
            stack = redact(raw_stack)

        row: dict[str, Any] = {
            "route": _scrub(route),
            "message": _scrub(message),
            "stack": stack,
            "user_id": user_id,
            "meta": _scrub(meta or {}),
        }
        # Server-managed audit table write: service-role only.
        await service_client().insert_one(
            "system_errors", bearer_token=settings.supabase_service_role_key, row=row
        )
    except Exception:
        logger.debug("system_errors write failed", exc_info=True)
        return


async def report_error(
    *,
    route: str,
    message: str,
    area: str,
    err: BaseException,
    user_id: str | None = None,
    meta: dict[str, Any] | None = None,
) -> None:
    """Send one failure to every sink: app log, Sentry and the system_errors table."""
    logger.error(
        "%s (area=%s user=%s): %s",
        message,
        area,
        user_id,
        redact(str(err)),
    )
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("area", area)
        scope.set_tag("route", route)
        if user_id:
            scope.set_user({"id": user_id})
        sentry_sdk.capture_exception(err)

    await log_system_error(
        route=route,
        message=message,
        user_id=user_id,
        err=err,
        meta={"area": area, **(meta or {})},
    )
