"""
RenderRequest — one immutable request to turn raw model output into a video.

Tier ordering is total: basic < intermediate < advanced. The same three
names are used for complexity tiers (what the caller asks for) and plan
tiers (what the account pays for), so both enums share TIER_ORDER.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ComplexityTier(str, Enum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class PlanTier(str, Enum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class QualityProfile(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


TIER_ORDER: tuple[str, ...] = ("basic", "intermediate", "advanced")


def tier_rank(tier: "ComplexityTier | PlanTier | str") -> int:
    """Position of *tier* in TIER_ORDER; raises ValueError for unknown names."""
    value = tier.value if isinstance(tier, Enum) else str(tier)
    return TIER_ORDER.index(value)


class RenderRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_text: str                          # raw generative-model output (untrusted)
    complexity: ComplexityTier = ComplexityTier.BASIC
    quality: QualityProfile = QualityProfile.MEDIUM
    account_id: str = Field(min_length=1)
    plan_tier: PlanTier = PlanTier.BASIC
    prompt: Optional[str] = None              # user prompt, kept for artifact metadata only
