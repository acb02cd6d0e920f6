"""Pydantic models for the improvement plan."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

MAX_COMBINED_TOTAL = 200

Priority = Literal["P0", "P1", "P2"]
ActionCategory = Literal["rule", "reasoning", "both"]


class SectionReason(BaseModel):
    """Why one section scored what it did, and what is missing."""

    model_config = ConfigDict(frozen=True)

    section: str
    score: int = Field(ge=0)
    max: int = Field(ge=0)
    reason: str = Field(default="", max_length=200)
    gap_analysis: str = Field(default="", max_length=100)


class ImprovementAction(BaseModel):
    """One remediation step with its estimated score deltas."""

    model_config = ConfigDict(frozen=True)

    priority: Priority
    category: ActionCategory = "both"
    section: str = ""
    action: str = Field(max_length=80)
    estimated_rule_score_delta: int = Field(default=0, ge=0, le=100)
    estimated_reasoning_score_delta: int = Field(default=0, ge=0, le=100)
    cvr_impact: str = Field(default="", max_length=50)
    ctr_impact: str = Field(default="", max_length=50)
    revenue_impact: str = Field(default="", max_length=50)
    rationale: str = Field(default="", max_length=150)
    implementation_hint: str | None = Field(default=None, max_length=80)

    @property
    def total_delta(self) -> int:
        return self.estimated_rule_score_delta + self.estimated_reasoning_score_delta


class PlanContext(BaseModel):
    """Extra inputs the synthesizer may use besides the two score results."""

    product_title: str | None = None
    negative_reviews: list[str] | None = None


class ImprovementPlan(BaseModel):
    """Prioritized action list with a recomputed post-improvement estimate.

    ``estimated_total_after`` and ``score_gap`` are always derived from the
    clamped action deltas, never taken from the model.
    """

    model_config = ConfigDict(frozen=True)

    current_total: int = Field(ge=0, le=MAX_COMBINED_TOTAL)
    estimated_total_after: int = Field(ge=0, le=MAX_COMBINED_TOTAL)
    score_gap: int = Field(ge=0)
    section_reasons: list[SectionReason] = []
    priority_actions: list[ImprovementAction] = Field(default_factory=list, max_length=3)
    secondary_actions: list[ImprovementAction] = Field(default_factory=list, max_length=5)
    quick_wins: list[ImprovementAction] = Field(default_factory=list, max_length=5)
    degraded: bool = False
    degraded_sections: list[str] = []

    @property
    def actions(self) -> list[ImprovementAction]:
        return [*self.priority_actions, *self.secondary_actions, *self.quick_wins]

    @model_validator(mode="after")
    def check_consistency(self) -> "ImprovementPlan":
        for bucket, priority in (
            (self.priority_actions, "P0"),
            (self.secondary_actions, "P1"),
            (self.quick_wins, "P2"),
        ):
            for action in bucket:
                if action.priority != priority:
                    raise ValueError(f"action {action.action!r} is {action.priority} in the {priority} bucket")

        expected = min(MAX_COMBINED_TOTAL, self.current_total + sum(a.total_delta for a in self.actions))
        if self.estimated_total_after != expected:
            raise ValueError(
                f"estimated_total_after {self.estimated_total_after} != {expected} "
                f"(current_total + action deltas, capped at {MAX_COMBINED_TOTAL})"
            )
        if self.score_gap != self.estimated_total_after - self.current_total:
            raise ValueError(f"score_gap {self.score_gap} != estimated_total_after - current_total")
        return self
