"""Tests for the Response Assembler."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from listing_audit.errors import InvariantViolation
from listing_audit.output.response import (
    assemble_analysis_response,
    assemble_plan_response,
    assemble_score_response,
    write_response,
)
from listing_audit.reasoning.engine import compute_reasoning_score
from listing_audit.schemas.input import AnalysisInput
from listing_audit.schemas.plan import ImprovementPlan
from listing_audit.schemas.response import AnalysisResponse
from listing_audit.scoring.rules import compute_rule_score
from listing_audit.shared.llm_client import DryRunClient


class TestAnalysisResponse:
    @pytest.mark.asyncio
    async def test_total_is_sum_of_both_scores(self, analysis_input: AnalysisInput) -> None:
        rule = compute_rule_score(analysis_input)
        reasoning = await compute_reasoning_score(analysis_input, rule.total, DryRunClient())

        response = assemble_analysis_response(analysis_input.asin, rule, reasoning, dry_run=True)

        assert response.total_score == rule.total + reasoning.total
        assert 0 <= response.total_score <= 200
        assert len(response.run_id) == 32
        assert response.dry_run is True
        assert response.message == ""

    @pytest.mark.asyncio
    async def test_degraded_categories_named_in_message(
        self, scripted_client, analysis_input: AnalysisInput,
    ) -> None:
        rule = compute_rule_score(analysis_input)
        reasoning = await compute_reasoning_score(
            analysis_input, rule.total, scripted_client({"rich_brand": "???"}),
        )
        response = assemble_analysis_response(analysis_input.asin, rule, reasoning)
        assert "rich_brand" in response.message

    @pytest.mark.asyncio
    async def test_out_of_bounds_result_is_invariant_violation(self, analysis_input: AnalysisInput) -> None:
        rule = compute_rule_score(analysis_input)
        reasoning = await compute_reasoning_score(analysis_input, rule.total, DryRunClient())
        # model_copy skips validation, so the broken bound reaches the assembler.
        broken = reasoning.model_copy(update={"total": 150})

        with pytest.raises(InvariantViolation):
            assemble_analysis_response(analysis_input.asin, rule, broken)

    @pytest.mark.asyncio
    async def test_mismatched_total_rejected(self, analysis_input: AnalysisInput) -> None:
        rule = compute_rule_score(analysis_input)
        reasoning = await compute_reasoning_score(analysis_input, rule.total, DryRunClient())
        with pytest.raises(ValidationError, match="total_score"):
            AnalysisResponse(
                run_id="x", asin="A1", score=rule, reasoning=reasoning,
                total_score=rule.total + reasoning.total - 1,
            )


class TestOtherResponses:
    def test_score_response(self, analysis_input: AnalysisInput) -> None:
        rule = compute_rule_score(analysis_input)
        response = assemble_score_response("B0TEST0001", rule)
        assert response.score.total == rule.total
        assert response.usage is None

    def test_plan_response(self) -> None:
        plan = ImprovementPlan(current_total=120, estimated_total_after=120, score_gap=0)
        response = assemble_plan_response(plan)
        assert response.improvement_plan == plan
        assert len(response.request_id) == 32


class TestWriteResponse:
    def test_writes_json(self, tmp_path: Path, analysis_input: AnalysisInput) -> None:
        response = assemble_score_response("B0TEST0001", compute_rule_score(analysis_input))
        path = write_response(response, tmp_path / "out", "score.json")

        assert path == tmp_path / "out" / "score.json"
        data = json.loads(path.read_text())
        assert data["asin"] == "B0TEST0001"
        assert data["score"]["total"] == 100
