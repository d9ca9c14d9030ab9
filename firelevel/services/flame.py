from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FlameTier:
    level: int
    name: str
    icon: str
    days_required: int


@dataclass(frozen=True)
class FlameLevelStatus:
    tier: FlameTier
    is_unlocked: bool
    is_current: bool


@dataclass(frozen=True)
class FlameLadder:
    levels: list[FlameLevelStatus]
    current_level: int


FLAME_TIERS: tuple[FlameTier, ...] = (
    FlameTier(level=1, name="Spark", icon="🔥", days_required=0),
    FlameTier(level=2, name="Ember", icon="🔥🔥", days_required=3),
    FlameTier(level=3, name="Blaze", icon="🔥🔥🔥", days_required=7),
    FlameTier(level=4, name="Inferno", icon="🌟🔥", days_required=14),
    FlameTier(level=5, name="Phoenix", icon="🌟🔥🔥", days_required=30),
    FlameTier(level=6, name="Supernova", icon="🌟🔥🔥🔥", days_required=60),
    FlameTier(level=7, name="Legend", icon="👑🔥", days_required=100),
)


def validate_tiers(tiers: tuple[FlameTier, ...]) -> None:
    if not tiers:
        raise ValueError("Flame tier table must not be empty")
    if tiers[0].days_required != 0:
        raise ValueError("The first flame tier must be unlocked from day 0")
    for prev, nxt in zip(tiers, tiers[1:]):
        if nxt.level <= prev.level or nxt.days_required <= prev.days_required:
            raise ValueError(
                f"Flame tiers must be strictly increasing (level {prev.level} -> {nxt.level})"
            )


validate_tiers(FLAME_TIERS)


def flame_tier_for(
    current_streak: int, tiers: tuple[FlameTier, ...] = FLAME_TIERS
) -> FlameTier:
    streak = max(0, current_streak)
    current = tiers[0]
    for tier in tiers:
        if tier.days_required <= streak:
            current = tier
    return current


def map_flame_tiers(
    current_streak: int, tiers: tuple[FlameTier, ...] = FLAME_TIERS
) -> FlameLadder:
    streak = max(0, current_streak)
    current = flame_tier_for(streak, tiers)
    return FlameLadder(
        levels=[
            FlameLevelStatus(
                tier=tier,
                is_unlocked=tier.days_required <= streak,
                is_current=tier.level == current.level,
            )
            for tier in tiers
        ],
        current_level=current.level,
    )
