"""Prompt for the Improvement Plan synthesizer."""

from __future__ import annotations

import json

from listing_audit.schemas.plan import PlanContext
from listing_audit.schemas.reasoning import REASONING_MAXIMA, ReasoningScoreResult
from listing_audit.schemas.score import RuleScoreResult

PLAN_SYSTEM_PROMPT = """\
You are a world-class consultant for marketplace product pages.

## Improvement Plan
You receive two finished analyses of one listing: a rule-based score \
(0-100, threshold checks) and a reasoning score (0-100, model and vision \
judgment). Do NOT re-analyze the listing. Produce:

1. One "why this score" reason per section, for both analyses.
2. Concrete improvement actions derived from those reasons.

## Rules
- Before proposing any action, ask: "will this raise CVR, CTR or revenue \
compared to today?" Output only actions where the answer is clearly yes.
- No image or copy generation. No abstract advice ("improve", "make better").
- Actions must be implementable ("make the main image a 1500x1500 square").
- Estimate score increases realistically; a single action rarely adds more \
than 10 points.
- P0: critical, fix now (10+ combined points). At most 3.
- P1: important (5-9 combined points). At most 5.
- P2: small and quick (1-4 combined points). At most 5.
- Sections marked DEGRADED were scored with placeholder values; do not treat \
their numbers as a real judgment.
- If the listing has no negative reviews, do not propose review actions.

## Output format
Respond with a single JSON object:

{
  "section_reasons": [
    {"section": "title|main_image|sub_images|description|reviews|rich_brand",
     "score": 0, "max": 0,
     "reason": "why this score (max 200 chars)",
     "gap_analysis": "what is missing (max 100 chars)"}
  ],
  "priority_actions": [
    {"category": "rule|reasoning|both",
     "section": "title|main_image|sub_images|description|reviews|rich_brand",
     "action": "concrete action (max 80 chars)",
     "estimated_rule_score_delta": 0,
     "estimated_reasoning_score_delta": 0,
     "cvr_impact": "max 50 chars",
     "ctr_impact": "max 50 chars",
     "revenue_impact": "max 50 chars",
     "rationale": "why this works (max 150 chars)",
     "implementation_hint": "optional, max 80 chars"}
  ],
  "secondary_actions": [],
  "quick_wins": []
}
"""


def build_plan_user_prompt(
    rule: RuleScoreResult,
    reasoning: ReasoningScoreResult,
    context: PlanContext,
) -> str:
    current_total = rule.total + reasoning.total
    parts = [
        f"Product title: {context.product_title or 'unknown'}",
        f"Current combined score: {current_total}/200",
        "",
        f"## Rule-based score: {rule.total}/100",
    ]
    parts.extend(f"- {name}: {c.score}/{c.max}" for name, c in rule.breakdown.items())
    parts.append(f"Missing signals: {', '.join(rule.missing_signals) or 'none'}")

    parts.append("")
    parts.append(f"## Reasoning score: {reasoning.total}/100")
    degraded = set(reasoning.degraded_categories)
    for name, score in reasoning.breakdown.items():
        marker = "  (DEGRADED: placeholder scores)" if name in degraded else ""
        parts.append(f"- {name}: {score}/{REASONING_MAXIMA[name]}{marker}")

    parts.append("")
    parts.append("## Reasoning details")
    details = {
        name: a.model_dump(include={"subscores", "maxima", "rationale", "details"})
        for name, a in reasoning.analyses.items()
        if name not in degraded
    }
    parts.append(json.dumps(details, indent=2, ensure_ascii=False))

    for name, observations in reasoning.observations.items():
        if observations:
            parts.append("")
            parts.append(f"## Visual observations: {name}")
            parts.extend(f"{i}. {obs}" for i, obs in enumerate(observations, 1))

    parts.append("")
    parts.append("## Negative reviews (up to 10)")
    negatives = (context.negative_reviews or [])[:10]
    if negatives:
        parts.extend(f"{i}. {text}" for i, text in enumerate(negatives, 1))
    else:
        parts.append("none")

    return "\n".join(parts)
