"""Response Assembler: validates results against the output contract.

Every bound is re-checked here.  A failure is an invariant violation, fatal
to the request, and is raised before anything is recorded or written.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

from pydantic import BaseModel, ValidationError

from listing_audit.errors import InvariantViolation
from listing_audit.schemas.plan import ImprovementPlan
from listing_audit.schemas.reasoning import ReasoningScoreResult
from listing_audit.schemas.response import AnalysisResponse, ImprovementPlanResponse, ScoreResponse
from listing_audit.schemas.score import RuleScoreResult
from listing_audit.schemas.usage import UsageStatus

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


def _assemble(model: type[BaseModel], **fields: object) -> BaseModel:
    try:
        # Re-validate nested results from their dumped form so a bound broken
        # after construction is still caught.
        dumped = {
            k: v.model_dump() if isinstance(v, BaseModel) else v for k, v in fields.items()
        }
        return model.model_validate(dumped)
    except ValidationError as exc:
        logger.exception("%s failed validation", model.__name__)
        raise InvariantViolation(f"{model.__name__} failed validation: {exc}") from exc


def assemble_score_response(
    asin: str,
    rule: RuleScoreResult,
    *,
    dry_run: bool = False,
    usage: UsageStatus | None = None,
) -> ScoreResponse:
    return _assemble(ScoreResponse, asin=asin, score=rule, dry_run=dry_run, usage=usage)  # type: ignore[return-value]


def assemble_analysis_response(
    asin: str,
    rule: RuleScoreResult,
    reasoning: ReasoningScoreResult,
    *,
    dry_run: bool = False,
    usage: UsageStatus | None = None,
) -> AnalysisResponse:
    """Combine both scores; ``total_score`` is rule + reasoning in [0, 200]."""
    message = ""
    if reasoning.degraded_categories:
        message = (
            "Some categories used fallback scores: "
            + ", ".join(reasoning.degraded_categories)
        )
    return _assemble(  # type: ignore[return-value]
        AnalysisResponse,
        run_id=_new_id(),
        asin=asin,
        score=rule,
        reasoning=reasoning,
        total_score=rule.total + reasoning.total,
        dry_run=dry_run,
        usage=usage,
        message=message,
    )


def assemble_plan_response(plan: ImprovementPlan, *, dry_run: bool = False) -> ImprovementPlanResponse:
    return _assemble(  # type: ignore[return-value]
        ImprovementPlanResponse, request_id=_new_id(), improvement_plan=plan, dry_run=dry_run,
    )


def write_response(response: BaseModel, out_dir: str | Path, filename: str) -> Path:
    """Write a response as indented JSON and return the path."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / filename
    path.write_text(response.model_dump_json(indent=2))
    logger.info("Wrote %s", path)
    return path
