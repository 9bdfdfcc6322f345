"""
Quota gate — may this account start a render job at this complexity?

Pure function of (UsageRecord, requested tier); no I/O. Rules, in order:

  1. inactive subscription                     → denied
  2. generated > max                           → denied, remaining 0
  3. requested tier above the plan's maximum   → denied, names both tiers
  4. otherwise                                 → allowed, remaining = max - generated

Rule 2 compares with ">" so an account sitting exactly at its limit is still
allowed one more video (remaining 0). Kept as-is; see DESIGN.md.
"""
from __future__ import annotations

from schemas.render_request import ComplexityTier, tier_rank
from schemas.usage import PLAN_LIMITS, EligibilityDecision, UsageRecord

REASON_INACTIVE = "subscription inactive"
REASON_LIMIT = "monthly limit reached"


def check_eligibility(usage: UsageRecord, requested: "ComplexityTier | str") -> EligibilityDecision:
    if not usage.active:
        return EligibilityDecision(allowed=False, reason=REASON_INACTIVE)

    generated = usage.videos_generated_this_period
    maximum = usage.max_videos_per_period
    if generated > maximum:
        return EligibilityDecision(allowed=False, reason=REASON_LIMIT, remaining=0)

    requested = ComplexityTier(requested)
    plan_max = PLAN_LIMITS[usage.plan_tier].max_complexity
    if tier_rank(requested) > tier_rank(plan_max):
        return EligibilityDecision(
            allowed=False,
            reason=f"complexity {requested.value} not allowed for {usage.plan_tier.value} plan "
                   f"(maximum {plan_max.value})",
        )

    return EligibilityDecision(allowed=True, remaining=maximum - generated)
