from __future__ import annotations

from datetime import date as Date
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from firelevel.core.config import settings

_DEFAULT_TZ_BY_LOCALE: dict[str, str] = {
    "ko": "Asia/Seoul",
    "ja": "Asia/Tokyo",
    "zh": "Asia/Shanghai",
    "es": "Europe/Madrid",
    "fr": "Europe/Paris",
    "de": "Europe/Berlin",
}


def parse_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name!r}") from exc


def resolve_user_timezone(locale: str | None, timezone_name: str | None) -> ZoneInfo:
    if timezone_name:
        try:
            return parse_timezone(timezone_name)
        except ValueError:
            pass
    key = (locale or "").strip().lower()
    fallback = _DEFAULT_TZ_BY_LOCALE.get(key) or settings.default_timezone
    try:
        return parse_timezone(fallback)
    except ValueError:
        return ZoneInfo("UTC")


def user_today(tz: ZoneInfo, *, now_utc: datetime | None = None) -> Date:
    now = now_utc or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz).date()
