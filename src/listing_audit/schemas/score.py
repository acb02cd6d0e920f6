"""Pydantic models for the rule-based score."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CategoryScore(BaseModel):
    """One breakdown entry: ``0 <= score <= max``."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=0)
    max: int = Field(ge=0)
    details: dict[str, Any] = {}

    @model_validator(mode="after")
    def check_within_max(self) -> "CategoryScore":
        if self.score > self.max:
            raise ValueError(f"score {self.score} exceeds max {self.max}")
        return self


class RuleScoreResult(BaseModel):
    """Deterministic 0–100 score.  Write-once; the caller persists it."""

    model_config = ConfigDict(frozen=True)

    total: int = Field(ge=0, le=100)
    breakdown: dict[str, CategoryScore]
    missing_signals: list[str] = []
    notes: list[str] = []

    @model_validator(mode="after")
    def check_total_matches_breakdown(self) -> "RuleScoreResult":
        summed = sum(c.score for c in self.breakdown.values())
        if summed != self.total:
            raise ValueError(f"total {self.total} != sum of breakdown {summed}")
        return self
