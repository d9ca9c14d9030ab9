from __future__ import annotations

import logging
from typing import Protocol

from firelevel.services.flame import FlameTier

logger = logging.getLogger(__name__)


class MilestoneNotifier(Protocol):
    async def flame_level_up(
        self, *, user_id: str, tier: FlameTier, current_streak: int
    ) -> None: ...

    async def new_longest_streak(self, *, user_id: str, longest_streak: int) -> None: ...


class LoggingNotifier:
    """Default notifier: records milestones in the application log only."""

    async def flame_level_up(
        self, *, user_id: str, tier: FlameTier, current_streak: int
    ) -> None:
        logger.info(
            "Flame level up user=%s level=%s name=%s streak=%s",
            user_id,
            tier.level,
            tier.name,
            current_streak,
        )

    async def new_longest_streak(self, *, user_id: str, longest_streak: int) -> None:
        logger.info("New longest streak user=%s longest=%s", user_id, longest_streak)
