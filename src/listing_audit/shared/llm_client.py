"""Async OpenAI wrapper for the text and vision model calls.

Both calls share one contract: ``(system, prompt, images[]) -> text``.  The
returned text is untrusted; callers parse and validate it themselves.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import re
from typing import Any, Callable

from openai import AsyncOpenAI, APIConnectionError, APITimeoutError, RateLimitError

from listing_audit.errors import ModelCallError

logger = logging.getLogger(__name__)

TEXT_MODEL = "gpt-4o"
VISION_MODEL = "gpt-4o"
MAX_TOKENS = 2_000
TEMPERATURE = 0.7

# Retry settings for rate-limit (429) errors
_RATE_LIMIT_MAX_RETRIES = 5
_RATE_LIMIT_BASE_DELAY = 2  # seconds, floor for exponential backoff


def _parse_retry_after(exc: RateLimitError) -> float | None:
    """Extract the suggested retry delay from an OpenAI rate limit error.

    Checks the ``Retry-After`` header first, then falls back to parsing
    the "Please try again in Xs / Xms" substring from the error message.
    Returns seconds as a float, or None if not found.
    """
    try:
        headers = exc.response.headers  # type: ignore[union-attr]
        if retry_after := headers.get("retry-after"):
            return float(retry_after)
    except (AttributeError, TypeError, ValueError):
        pass

    m = re.search(r"try again in (\d+(?:\.\d+)?)\s*(ms|s)\b", str(exc), re.IGNORECASE)
    if m:
        value = float(m.group(1))
        return value / 1000 if m.group(2).lower() == "ms" else value

    return None


TokensCallback = Callable[[int, int], None]
"""Called with (input_tokens, output_tokens) when a completion finishes."""


class LLMClient:
    """Thin async wrapper around the OpenAI SDK.

    Provides two methods:
    - ``simple_completion``: text-only request/response.
    - ``vision_completion``: prompt plus image URLs (or data URLs).
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        text_model: str = TEXT_MODEL,
        vision_model: str = VISION_MODEL,
        max_tokens: int = MAX_TOKENS,
        temperature: float = TEMPERATURE,
    ) -> None:
        self._client = AsyncOpenAI(api_key=api_key)
        self.text_model = text_model
        self.vision_model = vision_model
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def _call_with_retry(self, **kwargs: Any) -> Any:
        """Call chat.completions.create with exponential backoff on 429 errors.

        Waits at least as long as OpenAI's suggested retry-after time (parsed
        from the error message or header), uses exponential backoff as a floor,
        and adds ±25% jitter so concurrent category calls don't retry in sync.

        Fails immediately if the error indicates the request itself exceeds
        the token limit (the payload must shrink).
        """
        for attempt in range(_RATE_LIMIT_MAX_RETRIES):
            try:
                return await self._client.chat.completions.create(**kwargs)
            except RateLimitError as exc:
                msg = str(exc).lower()
                if "request too large" in msg or "context_length_exceeded" in msg:
                    logger.error(
                        "Request exceeds token limit (not retryable): %s", exc,
                    )
                    raise
                if attempt == _RATE_LIMIT_MAX_RETRIES - 1:
                    raise

                backoff = _RATE_LIMIT_BASE_DELAY * (2 ** attempt)
                suggested = _parse_retry_after(exc)
                base_delay = max(suggested or 0.0, backoff)
                jitter = random.uniform(-0.25 * base_delay, 0.25 * base_delay)
                delay = max(1.0, base_delay + jitter)

                logger.warning(
                    "Rate limited (429), retrying in %.1fs (attempt %d/%d, "
                    "suggested=%.1fs, backoff=%ds): %s",
                    delay, attempt + 1, _RATE_LIMIT_MAX_RETRIES,
                    suggested or 0.0, backoff, exc,
                )
                await asyncio.sleep(delay)
            except (APIConnectionError, APITimeoutError) as exc:
                if attempt == _RATE_LIMIT_MAX_RETRIES - 1:
                    raise
                backoff = _RATE_LIMIT_BASE_DELAY * (2 ** min(attempt, 3))
                jitter = random.uniform(-0.25 * backoff, 0.25 * backoff)
                delay = max(1.0, backoff + jitter)
                logger.warning(
                    "Connection error, retrying in %.1fs (attempt %d/%d): %s",
                    delay, attempt + 1, _RATE_LIMIT_MAX_RETRIES, exc,
                )
                await asyncio.sleep(delay)

    def _content_of(self, response: Any, on_tokens: TokensCallback | None) -> str:
        usage = getattr(response, "usage", None)
        if on_tokens and usage:
            on_tokens(getattr(usage, "prompt_tokens", 0), getattr(usage, "completion_tokens", 0))
        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ModelCallError("Model returned an empty completion")
        return content

    async def simple_completion(
        self,
        *,
        system: str,
        user_message: str,
        json_mode: bool = True,
        max_tokens: int | None = None,
        temperature: float | None = None,
        on_tokens: TokensCallback | None = None,
    ) -> str:
        """Single text request/response.

        ``json_mode`` asks the API for a JSON object, but the text is still
        parsed and validated by the caller.
        """
        kwargs: dict[str, Any] = {
            "model": self.text_model,
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": self.temperature if temperature is None else temperature,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user_message},
            ],
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self._call_with_retry(**kwargs)
        return self._content_of(response, on_tokens)

    async def vision_completion(
        self,
        *,
        system: str,
        prompt: str,
        images: list[str],
        json_mode: bool = True,
        on_tokens: TokensCallback | None = None,
    ) -> str:
        """Single request/response with a text prompt and images.

        ``images`` are http(s) URLs or ``data:`` URLs.  Raises ``ValueError``
        if no image is supplied.
        """
        if not images:
            raise ValueError("vision_completion requires at least one image")

        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        for i, url in enumerate(images):
            content.append({"type": "text", "text": f"[Image {i + 1}/{len(images)}]"})
            content.append({"type": "image_url", "image_url": {"url": url, "detail": "low"}})

        kwargs: dict[str, Any] = {
            "model": self.vision_model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": content},
            ],
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self._call_with_retry(**kwargs)
        return self._content_of(response, on_tokens)


# ======================================================================
# Dry-run mock client: zero API calls
# ======================================================================

_DRY_RUN_JSON: dict[str, str] = {
    "vision": json.dumps({
        "observations": [
            "Product occupies roughly 80% of the frame on a plain white background",
            "No overlaid text is visible on the first image",
        ],
    }),
    "main_image": json.dumps({
        "sections": {
            "list_visibility": {"score": 6, "reason": "Product fills most of the frame", "improvement_suggestion": "Crop tighter"},
            "visual_impact": {"score": 3, "reason": "Flat lighting", "improvement_suggestion": "Add a soft shadow"},
            "instant_understanding": {"score": 3, "reason": "Product type is recognizable", "improvement_suggestion": ""},
            "cvr_blockers": {"score": 2, "reason": "Small watermark in corner", "improvement_suggestion": "Remove watermark"},
        },
        "why": "Clear product shot with weak depth.",
    }),
    "title": json.dumps({
        "sections": {
            "seo_structure": {"score": 3, "reason": "Main keyword appears in the first 20 characters", "improvement_suggestion": ""},
            "ctr_design": {"score": 2, "reason": "No concrete reason to click", "improvement_suggestion": "State the key benefit"},
            "readability": {"score": 2, "reason": "Reads cleanly", "improvement_suggestion": ""},
        },
        "why": "Keyword placement is good; the click hook is missing.",
    }),
    "sub_images": json.dumps({
        "sections": {
            "benefit_design": {"score": 6, "reason": "Half the images state benefits", "improvement_suggestion": "Lead with outcomes"},
            "world_view": {"score": 3, "reason": "Mixed colour palettes", "improvement_suggestion": "Unify palette"},
            "information_design": {"score": 3, "reason": "Sequence jumps from specs to lifestyle", "improvement_suggestion": "Reorder"},
            "text_visibility": {"score": 3, "reason": "Body text too small on mobile", "improvement_suggestion": "Enlarge headline"},
            "cvr_blockers": {"score": 4, "reason": "No alarming claims", "improvement_suggestion": ""},
        },
        "why": "Benefits exist but the sequence lacks a story.",
    }),
    "reviews": json.dumps({
        "sections": {
            "negative_visibility": {"score": 3, "reason": "One 3-star review near the top", "improvement_suggestion": ""},
            "negative_severity": {"score": 2, "reason": "Complaints are about delivery speed", "improvement_suggestion": ""},
            "reassurance_path": {"score": 2, "reason": "No seller reply", "improvement_suggestion": "Reply to critical reviews"},
        },
        "why": "Minor, non-quality complaints.",
    }),
    "rich_brand": json.dumps({
        "sections": {
            "composition_design": {"score": 5, "reason": "Modules follow a logical order", "improvement_suggestion": ""},
            "benefit_appeal": {"score": 5, "reason": "Benefits stated but generic", "improvement_suggestion": "Quantify benefits"},
            "world_view": {"score": 4, "reason": "Consistent brand colours", "improvement_suggestion": ""},
            "visual_design": {"score": 3, "reason": "Dense text blocks", "improvement_suggestion": "Split text"},
            "comparison_reassurance": {"score": 1, "reason": "No comparison chart", "improvement_suggestion": "Add a comparison chart"},
        },
        "why": "Solid structure, weak comparison content.",
    }),
    "summary": json.dumps({
        "most_critical_issue": "Sub-image sequence does not tell a benefit story",
        "quick_wins": ["Remove main image watermark", "Add benefit to title"],
        "high_impact_actions": ["Rebuild sub-images around outcomes"],
    }),
    "plan": json.dumps({
        "section_reasons": [
            {"section": "sub_images", "score": 19, "max": 30, "reason": "Benefits exist but sequence is unclear", "gap_analysis": "No story order"},
        ],
        "priority_actions": [
            {"category": "both", "section": "sub_images", "action": "Reorder sub-images: benefit, use case, specs",
             "estimated_rule_score_delta": 0, "estimated_reasoning_score_delta": 4,
             "cvr_impact": "Clearer purchase reasons", "ctr_impact": "", "revenue_impact": "Higher conversion",
             "rationale": "Shoppers scan images in order", "implementation_hint": "Put benefit image second"},
        ],
        "secondary_actions": [],
        "quick_wins": [
            {"category": "reasoning", "section": "main_image", "action": "Remove corner watermark",
             "estimated_rule_score_delta": 0, "estimated_reasoning_score_delta": 1,
             "cvr_impact": "", "ctr_impact": "Cleaner thumbnail", "revenue_impact": "",
             "rationale": "Watermarks reduce trust"},
        ],
    }),
}


class DryRunClient:
    """Drop-in replacement for LLMClient that makes zero API calls.

    Returns canned JSON chosen from the system prompt, so the whole pipeline
    runs offline with realistic shapes.
    """

    async def simple_completion(
        self,
        *,
        system: str,
        user_message: str,
        json_mode: bool = True,
        max_tokens: int | None = None,
        temperature: float | None = None,
        on_tokens: TokensCallback | None = None,
    ) -> str:
        key = self._detect_call(system)
        logger.info("[dry-run] text completion for %s", key)
        return _DRY_RUN_JSON.get(key, "{}")

    async def vision_completion(
        self,
        *,
        system: str,
        prompt: str,
        images: list[str],
        json_mode: bool = True,
        on_tokens: TokensCallback | None = None,
    ) -> str:
        logger.info("[dry-run] vision completion with %d image(s)", len(images))
        return _DRY_RUN_JSON["vision"]

    @staticmethod
    def _detect_call(system: str) -> str:
        """Guess which call this is from the system prompt.

        The plan prompt mentions categories, so it is checked first.
        """
        if "Improvement Plan" in system:
            return "plan"
        if "Improvement Summary" in system:
            return "summary"
        m = re.search(r"Category: (\w+)", system)
        if m:
            return m.group(1)
        return "summary"
