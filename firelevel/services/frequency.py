from __future__ import annotations

from datetime import date as Date

# Python weekday numbering: Monday=0 .. Sunday=6.
_WEEKDAY_NAMES: dict[str, int] = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

_WEEKDAYS = frozenset(range(0, 5))
_WEEKENDS = frozenset({5, 6})
_EVERY_DAY = frozenset(range(0, 7))


def due_weekdays(descriptor: str | None) -> frozenset[int]:
    """Weekdays a routine with this recurrence descriptor is due on.

    Unknown or missing descriptors fall back to every day.
    """
    key = descriptor.strip().lower() if isinstance(descriptor, str) else ""
    if key == "weekdays":
        return _WEEKDAYS
    if key == "weekends":
        return _WEEKENDS
    weekday = _WEEKDAY_NAMES.get(key)
    if weekday is not None:
        return frozenset({weekday})
    return _EVERY_DAY


def applies_on(descriptor: str | None, weekday: int) -> bool:
    """`weekday` wraps modulo 7, so 7 is Monday again."""
    return weekday % 7 in due_weekdays(descriptor)


def applies_on_date(descriptor: str | None, day: Date) -> bool:
    return applies_on(descriptor, day.weekday())
