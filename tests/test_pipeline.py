"""Tests for pipeline orchestration: guard -> engines -> assembler -> record."""

from __future__ import annotations

from typing import Any

import pytest

from listing_audit.errors import InvariantViolation
from listing_audit.pipeline import AnalysisPipeline, build_guard
from listing_audit.schemas.config import ServiceConfig, UsageSettings
from listing_audit.schemas.plan import PlanContext
from listing_audit.schemas.response import AnalysisResponse, ImprovementPlanResponse, ScoreResponse
from listing_audit.schemas.usage import GuardResult, PlanTier, UsageFeature
from listing_audit.usage.guard import UsageGuard
from listing_audit.usage.store import InMemoryUsageStore, JsonlUsageStore, StaticPlanSource


def _pipeline(client, accounts: dict[str, PlanTier], clock) -> tuple[AnalysisPipeline, InMemoryUsageStore]:
    store = InMemoryUsageStore()
    guard = UsageGuard(store, StaticPlanSource(accounts), clock=clock)
    return AnalysisPipeline(client, ServiceConfig(), guard=guard), store


class TestScore:
    @pytest.mark.asyncio
    async def test_records_and_attaches_usage(
        self, scripted_client, listing_payload: dict[str, Any], fixed_clock,
    ) -> None:
        pipeline, store = _pipeline(scripted_client(), {}, fixed_clock)
        result = await pipeline.run_score(listing_payload, "free-user")

        assert isinstance(result, ScoreResponse)
        assert result.score.total == 100
        assert [e.feature for e in store.events] == [UsageFeature.SCORE]
        assert store.events[0].asin == "B0TEST0001"
        assert result.usage.used[UsageFeature.SCORE] == 1
        assert result.usage.remaining[UsageFeature.SCORE] == 4

    @pytest.mark.asyncio
    async def test_sixth_free_score_denied(
        self, scripted_client, listing_payload: dict[str, Any], fixed_clock,
    ) -> None:
        pipeline, store = _pipeline(scripted_client(), {}, fixed_clock)
        for _ in range(5):
            assert isinstance(await pipeline.run_score(listing_payload, "free-user"), ScoreResponse)

        denied = await pipeline.run_score(listing_payload, "free-user")
        assert isinstance(denied, GuardResult)
        assert denied.code == "LIMIT_EXCEEDED"
        assert len(store.events) == 5


class TestAnalysis:
    @pytest.mark.asyncio
    async def test_free_plan_denied_without_model_calls(
        self, scripted_client, listing_payload: dict[str, Any], fixed_clock,
    ) -> None:
        client = scripted_client()
        pipeline, store = _pipeline(client, {}, fixed_clock)

        result = await pipeline.run_analysis(listing_payload, "free-user")

        assert isinstance(result, GuardResult)
        assert result.code == "FEATURE_UNAVAILABLE"
        assert client.text_calls == []
        assert client.vision_calls == []
        assert store.events == []

    @pytest.mark.asyncio
    async def test_dry_run_bypasses_guard(
        self, scripted_client, listing_payload: dict[str, Any], fixed_clock,
    ) -> None:
        pipeline, store = _pipeline(scripted_client(), {}, fixed_clock)

        result = await pipeline.run_analysis(listing_payload, "free-user", dry_run=True)

        assert isinstance(result, AnalysisResponse)
        assert result.dry_run is True
        assert result.usage is None
        assert store.events == []

    @pytest.mark.asyncio
    async def test_records_once_after_success(
        self, scripted_client, listing_payload: dict[str, Any], fixed_clock,
    ) -> None:
        pipeline, store = _pipeline(scripted_client(), {"acme": PlanTier.PRO}, fixed_clock)
        events: list[tuple[str, str]] = []

        result = await pipeline.run_analysis(
            listing_payload, "acme", on_event=lambda name, msg: events.append((name, msg)),
        )

        assert isinstance(result, AnalysisResponse)
        assert result.total_score == result.score.total + result.reasoning.total
        assert [e.feature for e in store.events] == [UsageFeature.REASONING]
        assert result.usage.remaining[UsageFeature.REASONING] == 29
        assert any(name == "main_image" for name, _ in events)

    @pytest.mark.asyncio
    async def test_degraded_result_still_recorded(
        self, scripted_client, listing_payload: dict[str, Any], fixed_clock,
    ) -> None:
        pipeline, store = _pipeline(scripted_client({"title": "nope"}), {"acme": PlanTier.PRO}, fixed_clock)
        result = await pipeline.run_analysis(listing_payload, "acme")
        assert result.reasoning.degraded_categories == ["title"]
        assert len(store.events) == 1

    @pytest.mark.asyncio
    async def test_invariant_violation_records_nothing(
        self, scripted_client, listing_payload: dict[str, Any], fixed_clock, monkeypatch,
    ) -> None:
        def _broken(*args, **kwargs):
            raise InvariantViolation("total out of bounds")

        monkeypatch.setattr("listing_audit.pipeline.assemble_analysis_response", _broken)
        pipeline, store = _pipeline(scripted_client(), {"acme": PlanTier.PRO}, fixed_clock)

        with pytest.raises(InvariantViolation):
            await pipeline.run_analysis(listing_payload, "acme")
        assert store.events == []


class TestImprovementPlan:
    @pytest.mark.asyncio
    async def test_plan_is_gated_independently(
        self, scripted_client, listing_payload: dict[str, Any], fixed_clock,
    ) -> None:
        pipeline, store = _pipeline(scripted_client(), {"shop": PlanTier.SIMPLE}, fixed_clock)
        analysis = await pipeline.run_analysis(listing_payload, "shop")
        assert isinstance(analysis, AnalysisResponse)

        for _ in range(3):
            result = await pipeline.run_improvement_plan(analysis, "shop", context=PlanContext())
            assert isinstance(result, ImprovementPlanResponse)

        denied = await pipeline.run_improvement_plan(analysis, "shop")
        assert isinstance(denied, GuardResult)
        assert denied.limit_key == "improveMonthly"
        features = [e.feature for e in store.events]
        assert features.count(UsageFeature.IMPROVE) == 3
        assert features.count(UsageFeature.REASONING) == 1

    @pytest.mark.asyncio
    async def test_plan_from_saved_analysis(
        self, scripted_client, listing_payload: dict[str, Any], fixed_clock,
    ) -> None:
        pipeline, _ = _pipeline(scripted_client(), {}, fixed_clock)
        analysis = await pipeline.run_analysis(listing_payload, "x", dry_run=True)
        reloaded = AnalysisResponse.model_validate_json(analysis.model_dump_json())

        result = await pipeline.run_improvement_plan(reloaded, "x", dry_run=True)

        assert isinstance(result, ImprovementPlanResponse)
        assert result.improvement_plan.current_total == analysis.total_score


class TestBuildGuard:
    def test_memory_store_by_default(self) -> None:
        guard = build_guard(UsageSettings())
        assert isinstance(guard._store, InMemoryUsageStore)

    def test_jsonl_store_when_configured(self, tmp_path) -> None:
        guard = build_guard(UsageSettings(store_path=str(tmp_path / "usage.jsonl")))
        assert isinstance(guard._store, JsonlUsageStore)
