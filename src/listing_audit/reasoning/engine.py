"""Reasoning Score Engine. Fans the five category analyzers out, joins them,
and assembles a bounded ``ReasoningScoreResult``.

Categories share no mutable state and never read each other's partial
results.  The fan-out runs in a ``TaskGroup``: a model-call failure is
absorbed inside its own category (fallback + ``degraded``), so anything that
escapes a task is a real error and cancels the siblings.  Cancelling the
caller cancels every in-flight model call; a partially scored result is
never returned.
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import ValidationError

from listing_audit.errors import InvariantViolation
from listing_audit.reasoning.base import (
    MODEL_FAILURES,
    CategoryAnalyzer,
    CategorySpec,
    CompletionClient,
    EventCallback,
    extract_json,
)
from listing_audit.reasoning.categories import CATEGORIES
from listing_audit.reasoning.prompts import SUMMARY_SYSTEM_PROMPT, build_summary_user_prompt
from listing_audit.schemas.config import ReasoningSettings, ServiceConfig, TimeoutSettings
from listing_audit.schemas.input import AnalysisInput
from listing_audit.schemas.reasoning import (
    REASONING_MAXIMA,
    CategoryAnalysis,
    ImprovementSummary,
    ReasoningScoreResult,
)
from listing_audit.shared.llm_client import TokensCallback

logger = logging.getLogger(__name__)


class ReasoningScoreEngine:
    """Computes the 0–100 reasoning score for one listing."""

    def __init__(
        self,
        client: CompletionClient,
        *,
        timeouts: TimeoutSettings | None = None,
        settings: ReasoningSettings | None = None,
        categories: tuple[CategorySpec, ...] = CATEGORIES,
    ) -> None:
        self.client = client
        self.timeouts = timeouts or TimeoutSettings()
        self.settings = settings or ReasoningSettings()
        self.categories = categories

        for spec in categories:
            if spec.maximum != REASONING_MAXIMA.get(spec.name):
                raise InvariantViolation(
                    f"{spec.name}: dimension maxima sum to {spec.maximum}, "
                    f"expected {REASONING_MAXIMA.get(spec.name)}"
                )

    async def compute(
        self,
        inp: AnalysisInput,
        rule_total: int,
        *,
        on_event: EventCallback | None = None,
        on_tokens: TokensCallback | None = None,
    ) -> ReasoningScoreResult:
        analyzers = [
            CategoryAnalyzer(
                spec, self.client,
                timeouts=self.timeouts, settings=self.settings,
                on_event=on_event, on_tokens=on_tokens,
            )
            for spec in self.categories
        ]

        async with asyncio.TaskGroup() as tg:
            tasks = {
                a.spec.name: tg.create_task(a.analyze(inp, rule_total), name=f"reasoning:{a.spec.name}")
                for a in analyzers
            }

        analyses: dict[str, CategoryAnalysis] = {}
        observations: dict[str, list[str]] = {}
        for name, task in tasks.items():
            analysis, seen = task.result()
            analyses[name] = analysis
            if seen:
                observations[name] = seen

        summary = ImprovementSummary()
        if self.settings.summarize:
            summary = await self._summarize(analyses, on_tokens=on_tokens)

        breakdown = {name: a.total for name, a in analyses.items()}
        try:
            result = ReasoningScoreResult(
                total=sum(breakdown.values()),
                breakdown=breakdown,
                analyses=analyses,
                observations=observations,
                improvement_summary=summary,
            )
        except ValidationError as exc:
            logger.exception("Reasoning score for %s violates its bounds", inp.asin)
            raise InvariantViolation(f"reasoning score out of bounds: {exc}") from exc

        if result.degraded_categories:
            logger.warning(
                "Reasoning score for %s is degraded in: %s",
                inp.asin, ", ".join(result.degraded_categories),
            )
        return result

    async def _summarize(
        self,
        analyses: dict[str, CategoryAnalysis],
        *,
        on_tokens: TokensCallback | None = None,
    ) -> ImprovementSummary:
        """One optional call after fan-in.  Failure yields an empty summary."""
        digest = {
            name: a.model_dump(include={"subscores", "maxima", "rationale", "degraded"})
            for name, a in analyses.items()
        }
        try:
            raw = await asyncio.wait_for(
                self.client.simple_completion(
                    system=SUMMARY_SYSTEM_PROMPT,
                    user_message=build_summary_user_prompt(digest),
                    on_tokens=on_tokens,
                ),
                timeout=self.timeouts.summary,
            )
            data = extract_json(raw)
        except MODEL_FAILURES as exc:
            logger.warning("Improvement summary failed, omitting it: %s", exc or type(exc).__name__)
            return ImprovementSummary()

        def _strings(value: object) -> list[str]:
            if not isinstance(value, list):
                return []
            return [str(v).strip() for v in value if str(v).strip()][:3]

        critical = data.get("most_critical_issue")
        return ImprovementSummary(
            most_critical_issue=str(critical).strip() if critical else None,
            quick_wins=_strings(data.get("quick_wins")),
            high_impact_actions=_strings(data.get("high_impact_actions")),
        )


async def compute_reasoning_score(
    inp: AnalysisInput,
    rule_total: int,
    client: CompletionClient,
    config: ServiceConfig | None = None,
    *,
    on_event: EventCallback | None = None,
    on_tokens: TokensCallback | None = None,
) -> ReasoningScoreResult:
    """Score ``inp`` with the five reasoning categories.

    Must be called only after a successful usage check for ``REASONING``
    (unless the caller is in dry-run mode).  Model-call failures degrade
    individual categories; only an invariant violation raises.
    """
    config = config or ServiceConfig()
    engine = ReasoningScoreEngine(client, timeouts=config.timeouts, settings=config.reasoning)
    return await engine.compute(inp, rule_total, on_event=on_event, on_tokens=on_tokens)
