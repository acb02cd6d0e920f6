"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable
from unittest.mock import AsyncMock

import pytest

from listing_audit.normalizer import normalize
from listing_audit.schemas.input import AnalysisInput
from listing_audit.shared.llm_client import _DRY_RUN_JSON, DryRunClient, LLMClient


class ScriptedClient:
    """Completion client whose replies are chosen per call type.

    ``replies`` maps a call key (``main_image``, ``title``, ..., ``summary``,
    ``plan``) to a reply string or an exception to raise.  ``vision`` is the
    reply (or exception) for every vision call.  Unlisted keys fall back to
    the dry-run canned JSON.
    """

    def __init__(
        self,
        replies: dict[str, Any] | None = None,
        *,
        vision: Any = None,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.replies = replies or {}
        self.vision = vision if vision is not None else _DRY_RUN_JSON["vision"]
        self.delays = delays or {}
        self.text_calls: list[dict[str, Any]] = []
        self.vision_calls: list[dict[str, Any]] = []

    async def simple_completion(self, *, system: str, user_message: str, **kwargs: Any) -> str:
        key = DryRunClient._detect_call(system)
        self.text_calls.append({"key": key, "system": system, "user_message": user_message, **kwargs})
        if key in self.delays:
            await asyncio.sleep(self.delays[key])
        reply = self.replies.get(key, _DRY_RUN_JSON.get(key, "{}"))
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def vision_completion(self, *, system: str, prompt: str, images: list[str], **kwargs: Any) -> str:
        self.vision_calls.append({"prompt": prompt, "images": images})
        if "vision" in self.delays:
            await asyncio.sleep(self.delays["vision"])
        if isinstance(self.vision, BaseException):
            raise self.vision
        return self.vision

    def keys_called(self) -> list[str]:
        return [c["key"] for c in self.text_calls]


@pytest.fixture
def scripted_client() -> Callable[..., ScriptedClient]:
    """Factory for ``ScriptedClient`` instances."""
    return ScriptedClient


@pytest.fixture
def mock_llm_client() -> LLMClient:
    """Return an LLMClient with a mocked OpenAI SDK underneath."""
    client = LLMClient.__new__(LLMClient)
    client._client = AsyncMock()
    client.text_model = "gpt-4o"
    client.vision_model = "gpt-4o"
    client.max_tokens = 2000
    client.temperature = 0.7
    return client


@pytest.fixture
def listing_payload() -> dict[str, Any]:
    """A complete structured listing payload."""
    return {
        "asin": "B0TEST0001",
        "url": "https://www.example.com/dp/B0TEST0001",
        "title": "【新品】高性能 防水 トレーニング グリップ 強化 素材 セット",
        "bullets": [
            "Waterproof coating",
            "Reinforced grip",
            "Machine washable",
            "Two sizes included",
            "One-year warranty",
        ],
        "images": {
            "main": {
                "url": "https://img.example.com/main.jpg",
                "width": 2000,
                "height": 2000,
                "bgIsWhite": True,
            },
            "subs": [
                {"url": f"https://img.example.com/sub{i}.jpg", "width": 1600, "height": 1600}
                for i in range(1, 7)
            ],
            "hasVideo": True,
        },
        "reviews": {
            "averageRating": 4.4,
            "totalCount": 1200,
            "negativeReviews": ["Arrived a day late", "Smaller than expected"],
        },
        "aplus": {
            "hasAPlus": True,
            "moduleCount": 6,
            "isPremium": True,
            "imageUrls": ["https://img.example.com/aplus1.jpg"],
        },
        "brand": {"hasBrandStory": True},
    }


@pytest.fixture
def analysis_input(listing_payload: dict[str, Any]) -> AnalysisInput:
    return normalize(listing_payload)


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    """A clock frozen at 2026-03-15 12:00 UTC."""
    moment = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
    return lambda: moment


@pytest.fixture
def tmp_config(tmp_path: Path) -> Path:
    """Write a minimal valid config YAML and return its path."""
    cfg = tmp_path / "listing-audit.yml"
    cfg.write_text(
        """\
usage:
  accounts:
    acme: PRO
    shop: SIMPLE
output_directory: "{out}"
""".format(out=str(tmp_path / "output"))
    )
    return cfg
