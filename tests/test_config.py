"""Tests for config loading and validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from listing_audit.config import load_config
from listing_audit.schemas.config import ServiceConfig, TimeoutSettings
from listing_audit.schemas.usage import PlanTier


class TestServiceConfig:
    """Test the ServiceConfig Pydantic model directly."""

    def test_defaults(self) -> None:
        cfg = ServiceConfig()
        assert cfg.models.text_model == "gpt-4o"
        assert cfg.models.plan_max_tokens == 3000
        assert cfg.timeouts.vision < cfg.timeouts.reasoning
        assert cfg.reasoning.max_sub_images == 6
        assert cfg.usage.store_path == ""
        assert cfg.usage.default_tier == PlanTier.FREE
        assert cfg.output_directory == "./output"

    def test_vision_timeout_must_be_shortest(self) -> None:
        with pytest.raises(ValidationError, match="vision timeout"):
            TimeoutSettings(vision=30, reasoning=45, summary=20, plan=90)

    def test_timeouts_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            TimeoutSettings(vision=0)

    def test_unknown_tier_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ServiceConfig(usage={"accounts": {"acme": "ENTERPRISE"}})


class TestLoadConfig:
    """Test YAML file loading."""

    def test_none_gives_defaults(self) -> None:
        assert load_config(None) == ServiceConfig()

    def test_load_valid_file(self, tmp_config: Path) -> None:
        cfg = load_config(tmp_config)
        assert cfg.usage.accounts == {"acme": PlanTier.PRO, "shop": PlanTier.SIMPLE}
        assert cfg.output_directory.endswith("output")

    def test_file_not_found(self) -> None:
        with pytest.raises(FileNotFoundError):
            load_config("/nonexistent/listing-audit.yml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.yml"
        bad.write_text("just a string")
        with pytest.raises(ValueError, match="YAML mapping"):
            load_config(bad)

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        empty = tmp_path / "empty.yml"
        empty.write_text("# nothing configured yet\n")
        assert load_config(empty) == ServiceConfig()

    def test_null_sections_become_defaults(self, tmp_path: Path) -> None:
        """YAML sections whose keys are all commented out load as None."""
        cfg_file = tmp_path / "config.yml"
        cfg_file.write_text(
            """\
models:
  # text_model: gpt-4o
timeouts:
usage:
  store_path: usage.jsonl
  accounts:
  entitlements:
"""
        )
        cfg = load_config(cfg_file)
        assert cfg.models == ServiceConfig().models
        assert cfg.usage.store_path == "usage.jsonl"
        assert cfg.usage.accounts == {}

    def test_entitlement_overrides(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "config.yml"
        cfg_file.write_text(
            """\
usage:
  entitlements:
    FREE:
      reasoning_monthly: 2
"""
        )
        cfg = load_config(cfg_file)
        override = cfg.usage.entitlements[PlanTier.FREE]
        assert override.reasoning_monthly == 2
        assert override.model_fields_set == {"reasoning_monthly"}
