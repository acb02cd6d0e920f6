"""Output contracts returned to the caller."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from listing_audit.schemas.plan import ImprovementPlan
from listing_audit.schemas.reasoning import ReasoningScoreResult
from listing_audit.schemas.score import RuleScoreResult
from listing_audit.schemas.usage import UsageStatus


class ScoreResponse(BaseModel):
    """Rule score only."""

    model_config = ConfigDict(frozen=True)

    asin: str
    score: RuleScoreResult
    dry_run: bool = False
    usage: UsageStatus | None = None


class AnalysisResponse(BaseModel):
    """Rule score plus reasoning score for one run."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    asin: str
    score: RuleScoreResult
    reasoning: ReasoningScoreResult
    total_score: int = Field(ge=0, le=200)
    dry_run: bool = False
    usage: UsageStatus | None = None
    message: str = ""

    @model_validator(mode="after")
    def check_total(self) -> "AnalysisResponse":
        expected = self.score.total + self.reasoning.total
        if self.total_score != expected:
            raise ValueError(f"total_score {self.total_score} != rule + reasoning ({expected})")
        return self


class ImprovementPlanResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    request_id: str
    improvement_plan: ImprovementPlan
    dry_run: bool = False
