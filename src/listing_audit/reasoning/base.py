"""Generic category analyzer: the observe-then-score sequence shared by all
five reasoning categories.

Model output is untrusted free text.  Every reply goes through the same
decode-then-validate boundary: ``extract_json`` turns text into an untyped
dict, then ``coerce_score`` turns each value into a bounded int.  Nothing the
model says about ranges or totals is believed.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import re
from typing import Any, Callable, Literal, NamedTuple, Protocol

import httpx
from openai import OpenAIError
from pydantic import BaseModel, ConfigDict

from listing_audit.errors import ModelCallError
from listing_audit.reasoning.prompts import (
    VISION_SYSTEM_PROMPT,
    build_scoring_system_prompt,
    build_scoring_user_prompt,
    build_vision_prompt,
)
from listing_audit.schemas.config import ReasoningSettings, TimeoutSettings
from listing_audit.schemas.input import AnalysisInput
from listing_audit.schemas.reasoning import CategoryAnalysis, DimensionDetail, VisionStatus
from listing_audit.shared.images import fetch_images
from listing_audit.shared.llm_client import TokensCallback

logger = logging.getLogger(__name__)

MAX_OBSERVATIONS = 12

# Failures that degrade a category instead of failing the request.
MODEL_FAILURES = (
    ModelCallError, OpenAIError, httpx.HTTPError, TimeoutError, ValueError, OverflowError,
)

_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


class CompletionClient(Protocol):
    """What the analyzers need from ``LLMClient`` / ``DryRunClient``."""

    async def simple_completion(
        self, *, system: str, user_message: str, json_mode: bool = True,
        max_tokens: int | None = None, temperature: float | None = None,
        on_tokens: TokensCallback | None = None,
    ) -> str: ...

    async def vision_completion(
        self, *, system: str, prompt: str, images: list[str], json_mode: bool = True,
        on_tokens: TokensCallback | None = None,
    ) -> str: ...


EventCallback = Callable[[str, str], None]
"""Called with (category, message) for persistent progress log lines."""


def extract_json(text: str) -> dict[str, Any]:
    """Extract a JSON object from text that may contain markdown fences."""
    text = text.strip()

    # 1. Try direct parse (clean JSON response)
    if text.startswith("{"):
        try:
            obj = json.loads(text)
            if isinstance(obj, dict):
                return obj
        except json.JSONDecodeError:
            # Might have trailing text; try raw_decode
            try:
                obj, _ = json.JSONDecoder().raw_decode(text)
                if isinstance(obj, dict):
                    return obj
            except json.JSONDecodeError:
                pass

    # 2. Look for ```json ... ``` or ``` ... ``` fenced blocks
    match = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL)
    if match:
        obj = json.loads(match.group(1).strip())
        if isinstance(obj, dict):
            return obj

    # 3. Find the first { and try to parse a JSON object starting there
    try:
        start = text.index("{")
        obj, _ = json.JSONDecoder().raw_decode(text, idx=start)
        if isinstance(obj, dict):
            return obj
    except (ValueError, json.JSONDecodeError):
        pass

    raise ValueError(
        f"Could not extract JSON from model response (length={len(text)}). "
        f"First 300 chars: {text[:300]!r}"
    )


def coerce_score(value: Any) -> int | None:
    """Best-effort conversion of a model-supplied score to an int.

    Accepts ints, floats (rounded), numeric strings ("7", "7/8", "about 6.5")
    and ``{"score": ...}`` objects.  Booleans, ``None`` and anything without a
    number are treated as missing.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return round(value) if math.isfinite(value) else None
    if isinstance(value, str):
        m = _NUMBER.search(value)
        if m is None:
            return None
        number = float(m.group())
        return round(number) if math.isfinite(number) else None
    if isinstance(value, dict) and "score" in value:
        return coerce_score(value["score"])
    return None


def clamp(value: int, maximum: int) -> int:
    return max(0, min(maximum, value))


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


class Dimension(NamedTuple):
    """One scored dimension of a category."""

    key: str
    max: int
    label: str
    aliases: tuple[str, ...] = ()

    @property
    def lookup_keys(self) -> tuple[str, ...]:
        return (self.key, _camel(self.key), *self.aliases)


class ShortCircuit(NamedTuple):
    """A structural answer that needs no model call."""

    rationale: str
    at_max: bool


class CategorySpec(BaseModel):
    """Everything that distinguishes one category analyzer from another."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    display_name: str
    dimensions: tuple[Dimension, ...]
    fallback: dict[str, int]
    missing_default: Literal["zero", "max"] = "zero"
    rubric: str
    vision_focus: tuple[str, ...] = ()
    image_urls: Callable[[AnalysisInput, ReasoningSettings], list[str]]
    metadata: Callable[[AnalysisInput], list[str]]
    short_circuit: Callable[[AnalysisInput], ShortCircuit | None]

    @property
    def maximum(self) -> int:
        return sum(d.max for d in self.dimensions)

    @property
    def maxima(self) -> dict[str, int]:
        return {d.key: d.max for d in self.dimensions}


class ParsedReply(NamedTuple):
    subscores: dict[str, int]
    details: dict[str, DimensionDetail]
    rationale: str
    defaulted: list[str]


def parse_observations(raw: str) -> list[str]:
    """Pull the observation list out of a vision reply.

    Accepts ``{"observations": [...]}`` or any single list-of-strings value
    (e.g. ``main_image_observations``).
    """
    data = extract_json(raw)
    candidates = [data.get("observations")] + [
        v for k, v in data.items() if k != "observations"
    ]
    for value in candidates:
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return [v.strip() for v in value if v.strip()][:MAX_OBSERVATIONS]
    raise ValueError("vision reply contained no observation list")


def _lookup(container: dict[str, Any], dim: Dimension) -> Any:
    for key in dim.lookup_keys:
        if key in container:
            return container[key]
    return None


def parse_category_reply(data: dict[str, Any], spec: CategorySpec) -> ParsedReply:
    """Coerce a decoded scoring reply into bounded subscores.

    Dimensions are read from ``data["sections"][key]`` (an object with
    ``score`` / ``reason`` / ``improvement_suggestion``) or from flat keys.
    A dimension the model omitted takes the category's missing default.
    Raises ``ValueError`` if no dimension could be read at all.
    """
    sections = data.get("sections")
    if not isinstance(sections, dict):
        sections = {}

    subscores: dict[str, int] = {}
    details: dict[str, DimensionDetail] = {}
    defaulted: list[str] = []

    for dim in spec.dimensions:
        section = _lookup(sections, dim)
        raw_value = section if section is not None else _lookup(data, dim)
        value = coerce_score(raw_value)
        if value is None:
            defaulted.append(dim.key)
            value = dim.max if spec.missing_default == "max" else 0
        subscores[dim.key] = clamp(value, dim.max)

        if isinstance(section, dict):
            details[dim.key] = DimensionDetail(
                reason=str(section.get("reason") or ""),
                improvement=str(
                    section.get("improvement_suggestion") or section.get("improvement") or ""
                ),
            )

    if len(defaulted) == len(spec.dimensions):
        raise ValueError(f"reply had none of the {spec.name} dimensions")

    rationale = data.get("why") or data.get("rationale") or ""
    return ParsedReply(subscores, details, str(rationale), defaulted)


class CategoryAnalyzer:
    """Runs one category: optional vision observation, then a scoring call.

    A vision failure never fails the category; scoring proceeds from
    structural metadata alone.  A scoring failure yields the category's
    fixed fallback scores with ``degraded=True``.
    """

    def __init__(
        self,
        spec: CategorySpec,
        client: CompletionClient,
        *,
        timeouts: TimeoutSettings,
        settings: ReasoningSettings,
        on_event: EventCallback | None = None,
        on_tokens: TokensCallback | None = None,
    ) -> None:
        self.spec = spec
        self.client = client
        self.timeouts = timeouts
        self.settings = settings
        self.on_event = on_event
        self.on_tokens = on_tokens

    def _event(self, message: str) -> None:
        if self.on_event:
            self.on_event(self.spec.name, message)

    async def analyze(
        self, inp: AnalysisInput, rule_total: int,
    ) -> tuple[CategoryAnalysis, list[str]]:
        """Return the category analysis and the vision observations used."""
        spec = self.spec

        shortcut = spec.short_circuit(inp)
        if shortcut is not None:
            self._event(f"Scored without model call: {shortcut.rationale}")
            subscores = spec.maxima if shortcut.at_max else {d.key: 0 for d in spec.dimensions}
            return CategoryAnalysis(
                category=spec.name,
                subscores=subscores,
                maxima=spec.maxima,
                rationale=shortcut.rationale,
            ), []

        observations, vision = await self._observe(inp)

        try:
            raw = await asyncio.wait_for(
                self.client.simple_completion(
                    system=build_scoring_system_prompt(spec),
                    user_message=build_scoring_user_prompt(spec, inp, observations, rule_total),
                    on_tokens=self.on_tokens,
                ),
                timeout=self.timeouts.reasoning,
            )
            logger.debug("%s raw scoring reply:\n%s", spec.name, raw[:500])
            parsed = parse_category_reply(extract_json(raw), spec)
        except MODEL_FAILURES as exc:
            reason = f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__
            logger.warning("%s: scoring failed, using fallback scores: %s", spec.name, reason)
            self._event(f"[yellow]Scoring failed — using fallback scores[/] ({reason[:80]})")
            return CategoryAnalysis(
                category=spec.name,
                subscores=dict(spec.fallback),
                maxima=spec.maxima,
                rationale="Model analysis failed; conservative default scores were used.",
                degraded=True,
                fallback_reason=reason,
                vision=vision,
            ), observations

        if parsed.defaulted:
            logger.info("%s: reply omitted %s; defaulted", spec.name, ", ".join(parsed.defaulted))

        return CategoryAnalysis(
            category=spec.name,
            subscores=parsed.subscores,
            maxima=spec.maxima,
            rationale=parsed.rationale,
            details=parsed.details,
            vision=vision,
        ), observations

    async def _observe(self, inp: AnalysisInput) -> tuple[list[str], VisionStatus]:
        spec = self.spec
        urls = spec.image_urls(inp, self.settings)
        if not urls or not spec.vision_focus:
            return [], "skipped"

        async def _call() -> str:
            images = await fetch_images(urls) if self.settings.inline_images else urls
            if not images:
                raise ValueError("none of the images could be fetched")
            return await self.client.vision_completion(
                system=VISION_SYSTEM_PROMPT,
                prompt=build_vision_prompt(spec, len(images)),
                images=images,
                on_tokens=self.on_tokens,
            )

        try:
            raw = await asyncio.wait_for(_call(), timeout=self.timeouts.vision)
            observations = parse_observations(raw)
        except MODEL_FAILURES as exc:
            logger.warning(
                "%s: vision observation failed, scoring from metadata only: %s",
                spec.name, exc or type(exc).__name__,
            )
            self._event("[yellow]Vision unavailable — scoring from metadata only[/]")
            return [], "unavailable"

        self._event(f"{len(observations)} visual observation(s)")
        return observations, "used"
