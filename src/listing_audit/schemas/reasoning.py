"""Pydantic models for the model-derived reasoning score."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

# Fixed category maxima; not configuration.
REASONING_MAXIMA: dict[str, int] = {
    "main_image": 20,
    "title": 10,
    "sub_images": 30,
    "reviews": 10,
    "rich_brand": 30,
}

VisionStatus = Literal["used", "unavailable", "skipped"]


class DimensionDetail(BaseModel):
    """Why a dimension got its score and what to change."""

    model_config = ConfigDict(frozen=True)

    reason: str = ""
    improvement: str = ""


class CategoryAnalysis(BaseModel):
    """Coerced result of one category's observe-then-score sequence.

    ``degraded`` marks a fallback placeholder; downstream consumers must not
    treat its subscores as a real judgment.
    """

    model_config = ConfigDict(frozen=True)

    category: str
    subscores: dict[str, int]
    maxima: dict[str, int]
    rationale: str = ""
    details: dict[str, DimensionDetail] = {}
    degraded: bool = False
    fallback_reason: str | None = None
    vision: VisionStatus = "skipped"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> int:
        return sum(self.subscores.values())

    @model_validator(mode="after")
    def check_subscores_in_bounds(self) -> "CategoryAnalysis":
        if set(self.subscores) != set(self.maxima):
            raise ValueError(
                f"{self.category}: subscores {sorted(self.subscores)} "
                f"do not match dimensions {sorted(self.maxima)}"
            )
        for key, value in self.subscores.items():
            if not 0 <= value <= self.maxima[key]:
                raise ValueError(
                    f"{self.category}.{key}={value} outside [0, {self.maxima[key]}]"
                )
        return self


class ImprovementSummary(BaseModel):
    """Optional short digest produced after all categories are scored."""

    most_critical_issue: str | None = None
    quick_wins: list[str] = Field(default_factory=list, max_length=3)
    high_impact_actions: list[str] = Field(default_factory=list, max_length=3)


class ReasoningScoreResult(BaseModel):
    """Reasoning score: 0–100 across five fixed categories."""

    model_config = ConfigDict(frozen=True)

    total: int = Field(ge=0, le=100)
    breakdown: dict[str, int]
    analyses: dict[str, CategoryAnalysis]
    observations: dict[str, list[str]] = {}
    improvement_summary: ImprovementSummary = ImprovementSummary()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def degraded_categories(self) -> list[str]:
        return [name for name, a in self.analyses.items() if a.degraded]

    @model_validator(mode="after")
    def check_breakdown(self) -> "ReasoningScoreResult":
        if set(self.breakdown) != set(REASONING_MAXIMA):
            raise ValueError(f"breakdown categories {sorted(self.breakdown)} are not the fixed set")
        for name, value in self.breakdown.items():
            if not 0 <= value <= REASONING_MAXIMA[name]:
                raise ValueError(f"{name}={value} outside [0, {REASONING_MAXIMA[name]}]")
            analysis = self.analyses.get(name)
            if analysis is not None and analysis.total != value:
                raise ValueError(f"{name}: breakdown {value} != analysis total {analysis.total}")
        summed = sum(self.breakdown.values())
        if summed != self.total:
            raise ValueError(f"total {self.total} != sum of breakdown {summed}")
        return self
