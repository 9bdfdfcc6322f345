"""
Account usage records and per-plan limits.

UsageRecord is owned by the external account store; the pipeline only
reads it for the quota decision and asks the store for an increment after
a successful job. Period rollover is not handled here.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from schemas.render_request import ComplexityTier, PlanTier


class PlanLimits(BaseModel):
    max_videos_per_period: int
    max_complexity: ComplexityTier
    max_duration_seconds: int


PLAN_LIMITS: dict[PlanTier, PlanLimits] = {
    PlanTier.BASIC: PlanLimits(
        max_videos_per_period=5,
        max_complexity=ComplexityTier.BASIC,
        max_duration_seconds=30,
    ),
    PlanTier.INTERMEDIATE: PlanLimits(
        max_videos_per_period=20,
        max_complexity=ComplexityTier.INTERMEDIATE,
        max_duration_seconds=60,
    ),
    PlanTier.ADVANCED: PlanLimits(
        max_videos_per_period=100,
        max_complexity=ComplexityTier.ADVANCED,
        max_duration_seconds=120,
    ),
}


class UsageRecord(BaseModel):
    plan_tier: PlanTier = PlanTier.BASIC
    videos_generated_this_period: int = Field(default=0, ge=0)
    max_videos_per_period: int = Field(default=5, ge=0)
    active: bool = True
    updated_at: Optional[str] = None   # ISO 8601, touched on every increment

    @classmethod
    def for_plan(cls, plan: PlanTier) -> "UsageRecord":
        return cls(
            plan_tier=plan,
            max_videos_per_period=PLAN_LIMITS[plan].max_videos_per_period,
        )


class EligibilityDecision(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    remaining: Optional[int] = None
