from __future__ import annotations

from datetime import date as Date

from pydantic import BaseModel, Field


class DayValidationPayload(BaseModel):
    date: Date
    rule_set: str
    has_intention: bool
    total_routines: int = Field(ge=0)
    completed_routines: int = Field(ge=0)
    routine_rate: int = Field(ge=0, le=100, description="percentage")
    total_tasks: int = Field(ge=0)
    completed_tasks: int = Field(ge=0)
    task_rate: int = Field(ge=0, le=100, description="percentage")
    total_items: int = Field(ge=0, description="tasks + routines")
    completed_items: int = Field(ge=0)
    overall_rate: int = Field(ge=0, le=100, description="combined percentage")
    is_valid: bool
    required_completion_rate: int
    required_min_tasks: int
    meets_completion_rate: bool
    meets_min_tasks: bool
    requires_intention: bool
    degraded_facts: list[str] = Field(default_factory=list)


class FlameLevelPayload(BaseModel):
    level: int
    name: str
    icon: str
    days_required: int
    is_unlocked: bool
    is_current: bool


class StreakResponse(BaseModel):
    current_streak: int = Field(ge=0)
    longest_streak: int = Field(ge=0)
    last_valid_date: Date | None = None
    streak_start: Date | None = None
    today_validation: DayValidationPayload | None = None
    flame_levels: list[FlameLevelPayload]
    current_flame_level: int
