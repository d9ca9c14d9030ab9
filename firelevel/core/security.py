from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status

from firelevel.core.config import settings
from firelevel.core.rate_limit import consume
from firelevel.services.supabase_auth import get_current_user

_MIN_TOKEN_LENGTH = 20


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    email: str | None
    locale: str | None
    # IANA name from the profile; resolved lazily so a bad value only
    # affects the fallback, never authentication.
    timezone: str | None
    access_token: str


def _unauthorized(detail: str = "Unauthorized") -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _text(value: object, *, max_len: int = 64) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value[:max_len] or None


def bearer_token(request: Request) -> str | None:
    scheme, _, token = (request.headers.get("authorization") or "").partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or " " in token or len(token) < _MIN_TOKEN_LENGTH:
        return None
    return token


async def verify_token(request: Request) -> AuthContext:
    token = bearer_token(request)
    if token is None:
        raise _unauthorized("Missing token")

    # Throttle by IP before the Supabase Auth round trip.
    ip = request.client.host if request.client else "unknown"
    await consume(
        key=f"ip:{ip}", limit=settings.auth_per_minute_limit, window_seconds=60
    )

    try:
        user = await get_current_user(access_token=token)
    except Exception:
        # Expired, tampered and revoked tokens all look the same to callers.
        raise _unauthorized()

    user_id = _text(user.get("id"), max_len=64)
    if user_id is None:
        raise _unauthorized()

    await consume(
        key=f"user:{user_id}", limit=settings.auth_per_minute_limit, window_seconds=60
    )

    metadata: dict[str, Any] = user.get("user_metadata") or {}
    if not isinstance(metadata, dict):
        metadata = {}

    return AuthContext(
        user_id=user_id,
        email=_text(user.get("email"), max_len=320),
        locale=_text(metadata.get("locale"), max_len=16),
        timezone=_text(metadata.get("timezone")),
        access_token=token,
    )


async def peek_user_id(request: Request) -> str | None:
    """User id for error attribution only; never raises."""
    token = bearer_token(request)
    if token is None:
        return None
    try:
        user = await get_current_user(access_token=token)
    except Exception:
        return None
    return _text(user.get("id"))


AuthDep = Annotated[AuthContext, Depends(verify_token)]
