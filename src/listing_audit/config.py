"""YAML config loader: reads listing-audit.yml into ServiceConfig."""

from pathlib import Path

import yaml

from listing_audit.schemas.config import ServiceConfig


def load_config(path: str | Path | None = None) -> ServiceConfig:
    """Load and validate a service config file.

    ``None`` returns the defaults.  Raises ``FileNotFoundError`` if the path
    doesn't exist and ``pydantic.ValidationError`` if the YAML content is
    invalid.
    """
    if path is None:
        return ServiceConfig()

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    raw = yaml.safe_load(path.read_text())
    if raw is None:
        return ServiceConfig()
    if not isinstance(raw, dict):
        raise ValueError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    # Sections with every key commented out load as None; treat as defaults.
    for key in ("models", "timeouts", "reasoning", "usage"):
        if key in raw and raw[key] is None:
            del raw[key]
    usage = raw.get("usage")
    if isinstance(usage, dict):
        for key in ("accounts", "entitlements"):
            if key in usage and usage[key] is None:
                usage[key] = {}

    return ServiceConfig(**raw)
