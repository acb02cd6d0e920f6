"""Pipeline orchestration: guard -> engines -> assembler -> record.

Each billable operation follows the same strict order: ``check`` the
entitlement, run the operation, assemble and validate the response, and only
then ``record`` the usage.  A denial is returned as a ``GuardResult``; an
invariant violation propagates before anything is recorded.  Dry-run mode
bypasses the guard entirely and returns results of the same shape.
"""

from __future__ import annotations

import logging
from typing import Any

from listing_audit.improvement.planner import generate_improvement_plan
from listing_audit.normalizer import normalize
from listing_audit.output.response import (
    assemble_analysis_response,
    assemble_plan_response,
    assemble_score_response,
)
from listing_audit.reasoning.base import CompletionClient, EventCallback
from listing_audit.reasoning.engine import compute_reasoning_score
from listing_audit.schemas.config import ServiceConfig, UsageSettings
from listing_audit.schemas.payload import ListingPayload
from listing_audit.schemas.plan import PlanContext
from listing_audit.schemas.response import AnalysisResponse, ImprovementPlanResponse, ScoreResponse
from listing_audit.schemas.usage import GuardResult, UsageFeature
from listing_audit.scoring.rules import compute_rule_score
from listing_audit.shared.llm_client import TokensCallback
from listing_audit.usage.guard import UsageGuard
from listing_audit.usage.store import InMemoryUsageStore, JsonlUsageStore, StaticPlanSource

logger = logging.getLogger(__name__)


def build_guard(settings: UsageSettings) -> UsageGuard:
    """Usage guard backed by the configured store and plan table."""
    store = JsonlUsageStore(settings.store_path) if settings.store_path else InMemoryUsageStore()
    plans = StaticPlanSource(settings.accounts, default=settings.default_tier)
    return UsageGuard(store, plans, entitlements=settings.entitlements)


class AnalysisPipeline:
    """Runs the three billable operations for one service configuration."""

    def __init__(
        self,
        client: CompletionClient,
        config: ServiceConfig | None = None,
        *,
        guard: UsageGuard | None = None,
    ) -> None:
        self.client = client
        self.config = config or ServiceConfig()
        self.guard = guard or build_guard(self.config.usage)

    async def _check(self, account_id: str, feature: UsageFeature, dry_run: bool) -> GuardResult | None:
        if dry_run:
            logger.info("Dry run: usage guard bypassed for %s", feature.value)
            return None
        result = await self.guard.check(account_id, feature)
        return None if result.allowed else result

    async def run_score(
        self,
        payload: ListingPayload | dict[str, Any],
        account_id: str,
        *,
        dry_run: bool = False,
    ) -> ScoreResponse | GuardResult:
        inp = normalize(payload)
        if denial := await self._check(account_id, UsageFeature.SCORE, dry_run):
            return denial

        rule = compute_rule_score(inp)
        response = assemble_score_response(inp.asin, rule, dry_run=dry_run)
        if dry_run:
            return response

        await self.guard.record(account_id, UsageFeature.SCORE, asin=inp.asin)
        return response.model_copy(update={"usage": await self.guard.status(account_id)})

    async def run_analysis(
        self,
        payload: ListingPayload | dict[str, Any],
        account_id: str,
        *,
        dry_run: bool = False,
        on_event: EventCallback | None = None,
        on_tokens: TokensCallback | None = None,
    ) -> AnalysisResponse | GuardResult:
        inp = normalize(payload)
        if denial := await self._check(account_id, UsageFeature.REASONING, dry_run):
            return denial

        rule = compute_rule_score(inp)
        reasoning = await compute_reasoning_score(
            inp, rule.total, self.client, self.config, on_event=on_event, on_tokens=on_tokens,
        )
        response = assemble_analysis_response(inp.asin, rule, reasoning, dry_run=dry_run)
        if dry_run:
            return response

        await self.guard.record(account_id, UsageFeature.REASONING, asin=inp.asin)
        return response.model_copy(update={"usage": await self.guard.status(account_id)})

    async def run_improvement_plan(
        self,
        analysis: AnalysisResponse,
        account_id: str,
        *,
        context: PlanContext | None = None,
        dry_run: bool = False,
        on_tokens: TokensCallback | None = None,
    ) -> ImprovementPlanResponse | GuardResult:
        """Plan against a previously produced analysis (possibly from disk)."""
        if denial := await self._check(account_id, UsageFeature.IMPROVE, dry_run):
            return denial

        plan = await generate_improvement_plan(
            analysis.score, analysis.reasoning, context, self.client, self.config,
            on_tokens=on_tokens,
        )
        response = assemble_plan_response(plan, dry_run=dry_run)
        if not dry_run:
            await self.guard.record(account_id, UsageFeature.IMPROVE, asin=analysis.asin)
        return response
