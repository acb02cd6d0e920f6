"""Tests for the decode-then-validate boundary of model replies."""

from __future__ import annotations

import json

import pytest

from listing_audit.reasoning.base import (
    coerce_score,
    extract_json,
    parse_category_reply,
    parse_observations,
)
from listing_audit.reasoning.categories import MAIN_IMAGE, REVIEWS, SUB_IMAGES, TITLE


class TestExtractJson:
    def test_clean_json(self) -> None:
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_nested_json(self) -> None:
        text = json.dumps({"a": {"b": [1, 2, 3]}})
        assert extract_json(text)["a"]["b"] == [1, 2, 3]

    def test_fenced_block(self) -> None:
        text = 'Here you go:\n```json\n{"score": 4}\n```\nThanks'
        assert extract_json(text) == {"score": 4}

    def test_trailing_text(self) -> None:
        assert extract_json('{"a": 1} and some commentary') == {"a": 1}

    def test_leading_prose(self) -> None:
        assert extract_json('Sure! {"a": 2}') == {"a": 2}

    def test_no_json_raises(self) -> None:
        with pytest.raises(ValueError, match="Could not extract JSON"):
            extract_json("I cannot help with that.")

    def test_top_level_array_rejected(self) -> None:
        with pytest.raises(ValueError):
            extract_json("[1, 2, 3]")


class TestCoerceScore:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (3, 3),
            (3.6, 4),
            ("7", 7),
            ("7/8", 7),
            ("about 6.5 points", 6),
            ({"score": 2}, 2),
            (-4, -4),
        ],
    )
    def test_numbers(self, value: object, expected: int) -> None:
        assert coerce_score(value) == expected

    @pytest.mark.parametrize("value", [None, True, False, "n/a", [3], float("nan"), {"reason": "x"}])
    def test_missing(self, value: object) -> None:
        assert coerce_score(value) is None

    @pytest.mark.parametrize("value", ["9" * 400, "-" + "9" * 400, {"score": "9" * 400}])
    def test_too_large_for_float(self, value: object) -> None:
        assert coerce_score(value) is None


class TestParseCategoryReply:
    def test_sections_shape_with_details(self) -> None:
        data = {
            "sections": {
                "seo_structure": {"score": 3, "reason": "KW first", "improvement_suggestion": "none"},
                "ctr_design": {"score": 4, "reason": "clear benefit"},
                "readability": {"score": 1},
            },
            "why": "solid",
        }
        parsed = parse_category_reply(data, TITLE)
        assert parsed.subscores == {"seo_structure": 3, "ctr_design": 4, "readability": 1}
        assert parsed.details["seo_structure"].reason == "KW first"
        assert parsed.details["seo_structure"].improvement == "none"
        assert parsed.rationale == "solid"
        assert parsed.defaulted == []

    def test_flat_camel_case_keys(self) -> None:
        data = {"listVisibility": 7, "visualImpact": 4, "instantUnderstanding": 3, "cvrBlockers": 2}
        parsed = parse_category_reply(data, MAIN_IMAGE)
        assert sum(parsed.subscores.values()) == 16

    def test_values_are_clamped(self) -> None:
        data = {"list_visibility": 99, "visual_impact": "-3", "instant_understanding": 2.6, "cvr_blockers": 3}
        parsed = parse_category_reply(data, MAIN_IMAGE)
        assert parsed.subscores == {
            "list_visibility": 8,
            "visual_impact": 0,
            "instant_understanding": 3,
            "cvr_blockers": 3,
        }

    def test_missing_dimension_defaults_to_zero(self) -> None:
        parsed = parse_category_reply({"sections": {"benefit_design": {"score": 9}}}, SUB_IMAGES)
        assert parsed.subscores["benefit_design"] == 9
        assert parsed.subscores["world_view"] == 0
        assert "world_view" in parsed.defaulted

    def test_alias_keys(self) -> None:
        parsed = parse_category_reply({"sections": {"design_worldview": {"score": 4}}}, SUB_IMAGES)
        assert parsed.subscores["world_view"] == 4

    def test_reviews_missing_dimension_defaults_to_max(self) -> None:
        parsed = parse_category_reply({"sections": {"fatal_content": {"score": 0}}}, REVIEWS)
        assert parsed.subscores == {"negative_visibility": 4, "negative_severity": 0, "reassurance_path": 3}

    def test_no_dimensions_raises(self) -> None:
        with pytest.raises(ValueError, match="none of the title dimensions"):
            parse_category_reply({"verdict": "great"}, TITLE)


class TestParseObservations:
    def test_observations_key(self) -> None:
        assert parse_observations('{"observations": ["a", " b ", ""]}') == ["a", "b"]

    def test_legacy_key(self) -> None:
        assert parse_observations('{"main_image_observations": ["x"]}') == ["x"]

    def test_no_list_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_observations('{"score": 5}')
