"""Tests for the LLMClient; mock the OpenAI SDK underneath."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
from openai import RateLimitError

from listing_audit.errors import ModelCallError
from listing_audit.improvement.prompts import PLAN_SYSTEM_PROMPT
from listing_audit.reasoning.categories import TITLE
from listing_audit.reasoning.prompts import SUMMARY_SYSTEM_PROMPT, build_scoring_system_prompt
from listing_audit.shared.llm_client import DryRunClient, LLMClient, _parse_retry_after


def _make_text_response(text: str | None, usage=None):
    """Create a mock OpenAI response with text only."""
    message = SimpleNamespace(content=text, tool_calls=None)
    choice = SimpleNamespace(message=message)
    return SimpleNamespace(choices=[choice], usage=usage)


def _rate_limit(message: str, headers: dict[str, str] | None = None) -> RateLimitError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(429, headers=headers or {}, request=request)
    return RateLimitError(message, response=response, body=None)


class TestSimpleCompletion:
    @pytest.mark.asyncio
    async def test_returns_text(self, mock_llm_client: LLMClient) -> None:
        create = AsyncMock(return_value=_make_text_response('{"ok": true}'))
        mock_llm_client._client.chat.completions.create = create

        result = await mock_llm_client.simple_completion(system="sys", user_message="hi")

        assert result == '{"ok": true}'
        kwargs = create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["max_tokens"] == 2000
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}

    @pytest.mark.asyncio
    async def test_plain_text_and_overrides(self, mock_llm_client: LLMClient) -> None:
        create = AsyncMock(return_value=_make_text_response("plain"))
        mock_llm_client._client.chat.completions.create = create

        await mock_llm_client.simple_completion(
            system="sys", user_message="hi", json_mode=False, max_tokens=3000, temperature=0,
        )

        kwargs = create.call_args.kwargs
        assert "response_format" not in kwargs
        assert kwargs["max_tokens"] == 3000
        assert kwargs["temperature"] == 0

    @pytest.mark.asyncio
    async def test_empty_completion_raises(self, mock_llm_client: LLMClient) -> None:
        mock_llm_client._client.chat.completions.create = AsyncMock(
            return_value=_make_text_response("")
        )
        with pytest.raises(ModelCallError):
            await mock_llm_client.simple_completion(system="sys", user_message="hi")

    @pytest.mark.asyncio
    async def test_token_callback(self, mock_llm_client: LLMClient) -> None:
        usage = SimpleNamespace(prompt_tokens=120, completion_tokens=30)
        mock_llm_client._client.chat.completions.create = AsyncMock(
            return_value=_make_text_response("{}", usage=usage)
        )
        seen: list[tuple[int, int]] = []

        await mock_llm_client.simple_completion(
            system="sys", user_message="hi", on_tokens=lambda i, o: seen.append((i, o)),
        )
        assert seen == [(120, 30)]


class TestVisionCompletion:
    @pytest.mark.asyncio
    async def test_requires_images(self, mock_llm_client: LLMClient) -> None:
        with pytest.raises(ValueError, match="at least one image"):
            await mock_llm_client.vision_completion(system="sys", prompt="look", images=[])

    @pytest.mark.asyncio
    async def test_images_become_content_parts(self, mock_llm_client: LLMClient) -> None:
        create = AsyncMock(return_value=_make_text_response('{"observations": []}'))
        mock_llm_client._client.chat.completions.create = create

        await mock_llm_client.vision_completion(
            system="sys", prompt="look", images=["https://a/1.jpg", "data:image/png;base64,AAAA"],
        )

        content = create.call_args.kwargs["messages"][1]["content"]
        urls = [part["image_url"]["url"] for part in content if part["type"] == "image_url"]
        assert urls == ["https://a/1.jpg", "data:image/png;base64,AAAA"]
        assert content[0] == {"type": "text", "text": "look"}


class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_rate_limit(self, mock_llm_client: LLMClient, monkeypatch) -> None:
        sleep = AsyncMock()
        monkeypatch.setattr("listing_audit.shared.llm_client.asyncio.sleep", sleep)
        mock_llm_client._client.chat.completions.create = AsyncMock(
            side_effect=[_rate_limit("Please try again in 3s"), _make_text_response("{}")]
        )

        result = await mock_llm_client.simple_completion(system="sys", user_message="hi")

        assert result == "{}"
        assert sleep.await_count == 1
        assert sleep.await_args.args[0] >= 2.25

    @pytest.mark.asyncio
    async def test_request_too_large_not_retried(self, mock_llm_client: LLMClient, monkeypatch) -> None:
        sleep = AsyncMock()
        monkeypatch.setattr("listing_audit.shared.llm_client.asyncio.sleep", sleep)
        mock_llm_client._client.chat.completions.create = AsyncMock(
            side_effect=_rate_limit("Request too large for gpt-4o")
        )

        with pytest.raises(RateLimitError):
            await mock_llm_client.simple_completion(system="sys", user_message="hi")
        sleep.assert_not_awaited()

    def test_retry_after_header(self) -> None:
        assert _parse_retry_after(_rate_limit("slow down", {"retry-after": "4"})) == 4.0

    def test_retry_after_message_ms(self) -> None:
        assert _parse_retry_after(_rate_limit("Please try again in 350ms.")) == pytest.approx(0.35)

    def test_retry_after_absent(self) -> None:
        assert _parse_retry_after(_rate_limit("slow down")) is None


class TestDryRunClient:
    @pytest.mark.parametrize(
        ("system", "expected"),
        [
            (PLAN_SYSTEM_PROMPT, "plan"),
            (SUMMARY_SYSTEM_PROMPT, "summary"),
            (build_scoring_system_prompt(TITLE), "title"),
            ("anything else", "summary"),
        ],
    )
    def test_detects_call(self, system: str, expected: str) -> None:
        assert DryRunClient._detect_call(system) == expected

    @pytest.mark.asyncio
    async def test_vision_reply_has_observations(self) -> None:
        reply = await DryRunClient().vision_completion(system="s", prompt="p", images=["x"])
        assert '"observations"' in reply
