"""Prompts for the reasoning score: vision observation, per-category scoring,
and the post-fan-in improvement summary."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from listing_audit.schemas.input import AnalysisInput

if TYPE_CHECKING:
    from listing_audit.reasoning.base import CategorySpec

VISION_SYSTEM_PROMPT = """\
You are a visual UX and e-commerce conversion expert.

## Role
You look at product-listing images and report what is visible. You do NOT \
score. You do NOT summarize. Another reviewer turns your observations into \
scores.

## Output rules
- Only concrete, falsifiable observations ("the product fills ~70% of the \
frame", "the headline text is ~5% of image height").
- No opinions like "good" or "bad" on their own; describe what is visible and \
how it affects clarity or attention.
- Refer to images by position ("image 3") when there are several.
- No numbers that look like scores or ratings.

## Output format
Respond with a single JSON object:

{"observations": ["...", "..."]}
"""


def build_vision_prompt(spec: CategorySpec, image_count: int) -> str:
    focus = "\n".join(f"- {item}" for item in spec.vision_focus)
    return (
        f"Analyze the following {image_count} {spec.display_name} image(s) visually.\n\n"
        f"Focus on:\n{focus}\n\n"
        'Return {"observations": [...]} only.'
    )


_SCORING_SYSTEM_TEMPLATE = """\
You are a top consultant for improving marketplace product pages.

Category: {name}

## Role
Judge whether the {display_name} section is built to convert. This is not a \
summary or an impression: judge by whether the listing would actually sell. \
The rule-based score is computed separately; do not repeat its threshold checks.

## Rubric ({maximum} points)
{rubric}

## Output rules
- Every score comes with a concrete reason. Abstract verdicts ("good", "weak") \
are not allowed.
- Never exceed a dimension's maximum.
- Improvement suggestions must be actionable by the seller.

## Output format
Respond with a single JSON object:

{example}
"""


def build_scoring_system_prompt(spec: CategorySpec) -> str:
    example = {
        "sections": {
            d.key: {
                "score": f"0-{d.max}",
                "reason": "...",
                "improvement_suggestion": "...",
            }
            for d in spec.dimensions
        },
        "why": "One paragraph explaining the scores.",
    }
    return _SCORING_SYSTEM_TEMPLATE.format(
        name=spec.name,
        display_name=spec.display_name,
        maximum=spec.maximum,
        rubric=spec.rubric.strip(),
        example=json.dumps(example, indent=2),
    )


def build_scoring_user_prompt(
    spec: CategorySpec,
    inp: AnalysisInput,
    observations: list[str],
    rule_total: int,
) -> str:
    parts = [f"## Listing {inp.asin}"]
    if inp.url:
        parts.append(f"URL: {inp.url}")
    parts.append(f"Rule-based score: {rule_total}/100")
    parts.append("")
    parts.append("## Structural metadata")
    parts.extend(spec.metadata(inp))

    parts.append("")
    if observations:
        parts.append("## Visual observations")
        parts.extend(f"{i}. {obs}" for i, obs in enumerate(observations, 1))
    elif spec.vision_focus:
        parts.append(
            "## Visual observations\n"
            "None available. Score from the structural metadata only and say so in the reasons."
        )

    parts.append("")
    parts.append(f"Score the {spec.display_name} dimensions now.")
    return "\n".join(parts)


SUMMARY_SYSTEM_PROMPT = """\
You are a top consultant for improving marketplace product pages.

## Improvement Summary
Given per-category scores and rationales for one listing, name the single \
most critical issue and the actions that would move the score most.

## Output format
Respond with a single JSON object:

{
  "most_critical_issue": "...",
  "quick_wins": ["at most 3 items"],
  "high_impact_actions": ["at most 3 items"]
}
"""


def build_summary_user_prompt(analyses: dict[str, dict]) -> str:
    return (
        "Category analyses (subscores, maxima, rationale, degraded flag):\n\n"
        + json.dumps(analyses, indent=2, ensure_ascii=False)
    )
