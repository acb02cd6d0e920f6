"""Improvement Plan Synthesizer.

One holistic model call turns both score results into per-section reasons
and a prioritized action list.  Post-processing clamps every delta into
[0, 100], truncates text to fixed budgets, caps the buckets at 3/5/5 and
recomputes ``estimated_total_after`` / ``score_gap`` from the clamped
deltas.  The model's own arithmetic is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from listing_audit.errors import InvariantViolation
from listing_audit.improvement.prompts import PLAN_SYSTEM_PROMPT, build_plan_user_prompt
from listing_audit.reasoning.base import MODEL_FAILURES, CompletionClient, clamp, coerce_score, extract_json
from listing_audit.schemas.config import ServiceConfig
from listing_audit.schemas.plan import (
    MAX_COMBINED_TOTAL,
    ImprovementAction,
    ImprovementPlan,
    PlanContext,
    Priority,
    SectionReason,
)
from listing_audit.schemas.reasoning import REASONING_MAXIMA, ReasoningScoreResult
from listing_audit.schemas.score import RuleScoreResult
from listing_audit.shared.llm_client import TokensCallback

logger = logging.getLogger(__name__)

# (response key, priority, max actions)
BUCKETS: tuple[tuple[str, Priority, int], ...] = (
    ("priority_actions", "P0", 3),
    ("secondary_actions", "P1", 5),
    ("quick_wins", "P2", 5),
)

MAX_DELTA = 100

_CATEGORY_ALIASES = {
    "rule": "rule",
    "score": "rule",
    "reasoning": "reasoning",
    "super": "reasoning",
    "both": "both",
}


def _text(value: Any, limit: int) -> str:
    if value is None:
        return ""
    return str(value).strip()[:limit]


def _delta(raw: dict[str, Any], *keys: str) -> int:
    for key in keys:
        value = coerce_score(raw.get(key))
        if value is not None:
            return clamp(value, MAX_DELTA)
    return 0


def coerce_action(raw: Any, priority: Priority) -> ImprovementAction | None:
    """Build a bounded action from one untyped reply entry; ``None`` if unusable."""
    if not isinstance(raw, dict):
        return None
    action = _text(raw.get("action"), 80)
    if not action:
        return None
    hint = _text(raw.get("implementation_hint"), 80)
    return ImprovementAction(
        priority=priority,
        category=_CATEGORY_ALIASES.get(str(raw.get("category", "")).lower(), "both"),
        section=_text(raw.get("section"), 40),
        action=action,
        estimated_rule_score_delta=_delta(raw, "estimated_rule_score_delta", "estimated_score_increase"),
        estimated_reasoning_score_delta=_delta(
            raw, "estimated_reasoning_score_delta", "estimated_super_increase",
        ),
        cvr_impact=_text(raw.get("cvr_impact"), 50),
        ctr_impact=_text(raw.get("ctr_impact"), 50),
        revenue_impact=_text(raw.get("revenue_impact"), 50),
        rationale=_text(raw.get("rationale") or raw.get("why"), 150),
        implementation_hint=hint or None,
    )


def coerce_section_reason(raw: Any) -> SectionReason | None:
    if not isinstance(raw, dict) or not raw.get("section"):
        return None
    return SectionReason(
        section=_text(raw.get("section"), 40),
        score=max(0, coerce_score(raw.get("score")) or 0),
        max=max(0, coerce_score(raw.get("max")) or 0),
        reason=_text(raw.get("reason"), 200),
        gap_analysis=_text(raw.get("gap_analysis"), 100),
    )


def _is_review_section(section: str) -> bool:
    """Match "reviews", "Reviews", " review " and similar model spellings."""
    return section.strip().lower().rstrip("s") == "review"


def _has_no_negative_reviews(reasoning: ReasoningScoreResult, context: PlanContext) -> bool:
    return (
        not context.negative_reviews
        and reasoning.breakdown.get("reviews") == REASONING_MAXIMA["reviews"]
    )


def build_plan(
    data: dict[str, Any],
    current_total: int,
    *,
    drop_review_actions: bool = False,
    degraded_sections: list[str] | None = None,
) -> ImprovementPlan:
    """Coerce a decoded plan reply and recompute the totals."""
    buckets: dict[str, list[ImprovementAction]] = {}
    for key, priority, limit in BUCKETS:
        entries = data.get(key)
        actions = []
        for raw in entries if isinstance(entries, list) else []:
            action = coerce_action(raw, priority)
            if action is None:
                continue
            if drop_review_actions and _is_review_section(action.section):
                logger.info("Dropping review action with no negative reviews: %s", action.action)
                continue
            actions.append(action)
        if len(actions) > limit:
            logger.info("Truncating %s from %d to %d actions", key, len(actions), limit)
        buckets[key] = actions[:limit]

    raw_reasons = data.get("section_reasons")
    reasons = [
        r for r in (coerce_section_reason(x) for x in (raw_reasons if isinstance(raw_reasons, list) else []))
        if r is not None
    ]

    total_delta = sum(a.total_delta for bucket in buckets.values() for a in bucket)
    estimated = min(MAX_COMBINED_TOTAL, current_total + total_delta)
    return ImprovementPlan(
        current_total=current_total,
        estimated_total_after=estimated,
        score_gap=estimated - current_total,
        section_reasons=reasons,
        degraded_sections=degraded_sections or [],
        **buckets,
    )


async def generate_improvement_plan(
    rule: RuleScoreResult,
    reasoning: ReasoningScoreResult,
    context: PlanContext | None,
    client: CompletionClient,
    config: ServiceConfig | None = None,
    *,
    on_tokens: TokensCallback | None = None,
) -> ImprovementPlan:
    """Synthesize a plan from a (possibly previously persisted) score pair.

    Gated by the ``IMPROVE`` usage feature, independently of the two score
    calls.  An unparsable reply yields an empty plan with ``degraded=True``.
    """
    config = config or ServiceConfig()
    context = context or PlanContext()
    current_total = rule.total + reasoning.total
    degraded_sections = reasoning.degraded_categories

    try:
        raw = await asyncio.wait_for(
            client.simple_completion(
                system=PLAN_SYSTEM_PROMPT,
                user_message=build_plan_user_prompt(rule, reasoning, context),
                max_tokens=config.models.plan_max_tokens,
                on_tokens=on_tokens,
            ),
            timeout=config.timeouts.plan,
        )
        logger.debug("Improvement plan raw reply:\n%s", raw[:500])
        data = extract_json(raw)
    except MODEL_FAILURES as exc:
        logger.warning("Improvement plan generation failed, returning empty plan: %s", exc or type(exc).__name__)
        return ImprovementPlan(
            current_total=current_total,
            estimated_total_after=current_total,
            score_gap=0,
            degraded=True,
            degraded_sections=degraded_sections,
        )

    try:
        plan = build_plan(
            data,
            current_total,
            drop_review_actions=_has_no_negative_reviews(reasoning, context),
            degraded_sections=degraded_sections,
        )
    except ValidationError as exc:
        logger.exception("Improvement plan violates its invariants")
        raise InvariantViolation(f"improvement plan out of bounds: {exc}") from exc

    logger.info(
        "Improvement plan: %d -> %d (%d action(s))",
        plan.current_total, plan.estimated_total_after, len(plan.actions),
    )
    return plan
