"""Pydantic models for plan tiers, entitlements and usage state."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class PlanTier(str, Enum):
    FREE = "FREE"
    SIMPLE = "SIMPLE"
    PRO = "PRO"


class UsageFeature(str, Enum):
    SCORE = "SCORE"
    REASONING = "REASONING"
    IMPROVE = "IMPROVE"


class EntitlementLimits(BaseModel):
    """Monthly limits per feature.  ``None`` = unlimited, ``0`` = unavailable."""

    score_monthly: int | None = Field(default=None, ge=0)
    reasoning_monthly: int | None = Field(default=None, ge=0)
    improve_monthly: int | None = Field(default=None, ge=0)

    def limit_for(self, feature: UsageFeature) -> int | None:
        match feature:
            case UsageFeature.SCORE:
                return self.score_monthly
            case UsageFeature.REASONING:
                return self.reasoning_monthly
            case UsageFeature.IMPROVE:
                return self.improve_monthly


class UsageEvent(BaseModel):
    """One append-only usage record."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    feature: UsageFeature
    created_at: datetime
    asin: str | None = None


class UsagePeriodState(BaseModel):
    """Usage of one feature by one account within one UTC calendar month."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    feature: UsageFeature
    count: int = Field(ge=0)
    period_start: datetime
    period_end: datetime


class GuardResult(BaseModel):
    """Outcome of an entitlement check.  A denial is data, not an exception."""

    model_config = ConfigDict(frozen=True)

    allowed: bool
    plan: PlanTier
    feature: UsageFeature
    reason: Literal["limit"] | None = None
    code: Literal["LIMIT_EXCEEDED", "FEATURE_UNAVAILABLE"] | None = None
    limit_key: str = ""  # e.g. "reasoningMonthly"
    message: str = ""
    used: int = 0
    limit: int | None = None
    reset_at: datetime | None = None


class UsageStatus(BaseModel):
    """Plan, limits, consumption and reset time for one account."""

    plan: PlanTier
    limits: dict[UsageFeature, int | None]
    used: dict[UsageFeature, int]
    remaining: dict[UsageFeature, int | None]  # None = unlimited
    resets_at: datetime
