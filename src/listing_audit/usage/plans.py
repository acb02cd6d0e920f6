"""Plan tiers and their monthly entitlements."""

from __future__ import annotations

from listing_audit.schemas.usage import EntitlementLimits, PlanTier, UsageFeature

PLAN_ENTITLEMENTS: dict[PlanTier, EntitlementLimits] = {
    PlanTier.FREE: EntitlementLimits(
        score_monthly=5,
        reasoning_monthly=0,  # unavailable
        improve_monthly=0,  # unavailable
    ),
    PlanTier.SIMPLE: EntitlementLimits(
        score_monthly=None,  # unlimited
        reasoning_monthly=10,
        improve_monthly=3,
    ),
    PlanTier.PRO: EntitlementLimits(
        score_monthly=None,  # unlimited
        reasoning_monthly=30,
        improve_monthly=20,
    ),
}

# Keys reported to callers in denial responses.
LIMIT_KEYS: dict[UsageFeature, str] = {
    UsageFeature.SCORE: "scoreMonthly",
    UsageFeature.REASONING: "reasoningMonthly",
    UsageFeature.IMPROVE: "improveMonthly",
}

FEATURE_LABELS: dict[UsageFeature, str] = {
    UsageFeature.SCORE: "rule score",
    UsageFeature.REASONING: "reasoning score",
    UsageFeature.IMPROVE: "improvement plan",
}


def resolve_entitlements(
    overrides: dict[PlanTier, EntitlementLimits] | None = None,
) -> dict[PlanTier, EntitlementLimits]:
    """Merge configured overrides onto the built-in table.

    Only fields explicitly set in an override replace the default, so a
    partial override never turns a limited feature into an unlimited one.
    """
    merged = dict(PLAN_ENTITLEMENTS)
    for tier, override in (overrides or {}).items():
        base = merged.get(tier, EntitlementLimits())
        updates = {name: getattr(override, name) for name in override.model_fields_set}
        merged[tier] = base.model_copy(update=updates)
    return merged
