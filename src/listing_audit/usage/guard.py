"""Usage Entitlement Guard: monthly quota checks per account and feature.

``check`` and ``record`` are deliberately separate calls: the caller checks,
runs the billable operation, and records only if it succeeded.  The pair is
not atomic, so two concurrent requests from one account can both pass
``check`` at ``limit - 1`` and both be recorded.  That double-spend window is
accepted; closing it needs a transactional increment-and-compare in the
store, which is a product decision.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from listing_audit.schemas.usage import (
    EntitlementLimits,
    GuardResult,
    PlanTier,
    UsageEvent,
    UsageFeature,
    UsagePeriodState,
    UsageStatus,
)
from listing_audit.usage.periods import start_of_next_utc_month, start_of_utc_month, utc_now
from listing_audit.usage.plans import FEATURE_LABELS, LIMIT_KEYS, resolve_entitlements
from listing_audit.usage.store import PlanSource, UsageEventStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class UsageGuard:
    """Gates billable operations on the account's monthly entitlement."""

    def __init__(
        self,
        store: UsageEventStore,
        plans: PlanSource,
        *,
        entitlements: dict[PlanTier, EntitlementLimits] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._plans = plans
        self._entitlements = resolve_entitlements(entitlements)
        self._clock = clock

    def limit_for(self, plan: PlanTier, feature: UsageFeature) -> int | None:
        return self._entitlements[plan].limit_for(feature)

    async def check(self, account_id: str, feature: UsageFeature) -> GuardResult:
        """Decide whether ``account_id`` may use ``feature`` right now.

        Never raises for a denial; inspect ``GuardResult.allowed``.
        """
        now = self._clock()
        plan = await self._plans.plan_for(account_id)
        limit = self.limit_for(plan, feature)
        period_start = start_of_utc_month(now)
        reset_at = start_of_next_utc_month(now)
        label = FEATURE_LABELS[feature]

        if limit == 0:
            logger.info(
                "Usage denied: account=%s feature=%s unavailable on %s",
                account_id, feature.value, plan.value,
            )
            return GuardResult(
                allowed=False,
                plan=plan,
                feature=feature,
                reason="limit",
                code="FEATURE_UNAVAILABLE",
                limit_key=LIMIT_KEYS[feature],
                message=f"The {label} is not available on the {plan.value} plan.",
                used=0,
                limit=0,
                reset_at=reset_at,
            )

        if limit is None:
            return GuardResult(allowed=True, plan=plan, feature=feature)

        used = await self._store.count_since(account_id, feature, period_start)
        if used >= limit:
            logger.info(
                "Usage denied: account=%s feature=%s used=%d limit=%d",
                account_id, feature.value, used, limit,
            )
            return GuardResult(
                allowed=False,
                plan=plan,
                feature=feature,
                reason="limit",
                code="LIMIT_EXCEEDED",
                limit_key=LIMIT_KEYS[feature],
                message=f"The {plan.value} plan allows the {label} {limit} time(s) per month.",
                used=used,
                limit=limit,
                reset_at=reset_at,
            )

        return GuardResult(allowed=True, plan=plan, feature=feature, used=used, limit=limit)

    async def record(
        self, account_id: str, feature: UsageFeature, *, asin: str | None = None,
    ) -> None:
        """Append one usage event stamped with the current time."""
        event = UsageEvent(
            account_id=account_id, feature=feature, created_at=self._clock(), asin=asin,
        )
        await self._store.append(event)
        logger.debug("Recorded usage: account=%s feature=%s", account_id, feature.value)

    async def period_state(self, account_id: str, feature: UsageFeature) -> UsagePeriodState:
        """Usage of ``feature`` in the current UTC month."""
        now = self._clock()
        start = start_of_utc_month(now)
        count = await self._store.count_since(account_id, feature, start)
        return UsagePeriodState(
            account_id=account_id,
            feature=feature,
            count=count,
            period_start=start,
            period_end=start_of_next_utc_month(now),
        )

    async def status(self, account_id: str) -> UsageStatus:
        """Plan, limits, used and remaining counts for every feature."""
        plan = await self._plans.plan_for(account_id)
        limits: dict[UsageFeature, int | None] = {}
        used: dict[UsageFeature, int] = {}
        remaining: dict[UsageFeature, int | None] = {}
        resets_at = start_of_next_utc_month(self._clock())

        for feature in UsageFeature:
            state = await self.period_state(account_id, feature)
            limit = self.limit_for(plan, feature)
            limits[feature] = limit
            used[feature] = state.count
            remaining[feature] = None if limit is None else max(0, limit - state.count)

        return UsageStatus(
            plan=plan, limits=limits, used=used, remaining=remaining, resets_at=resets_at,
        )
