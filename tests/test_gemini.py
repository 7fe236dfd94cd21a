"""Tests for GeminiProvider request building and error mapping."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from google.genai import errors

from kaapi.config import KaapiConfig
from kaapi.memory.history import Role, Turn
from kaapi.providers.base import (
    GenerationSettings,
    ProviderError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RateLimitError,
)
from kaapi.providers.llm.gemini import GeminiProvider, _build_contents, _parse_retry_after


def _api_error(cls, code: int, message: str, status: str):
    return cls(code, {"error": {"code": code, "message": message, "status": status}})


@pytest.fixture()
def gemini_provider():
    """Create a GeminiProvider with a mocked client."""
    config = KaapiConfig(gemini_api_key="test-key", llm_timeout=5.0)
    provider = GeminiProvider(config)
    provider._client = MagicMock()
    return provider


def _respond_with(provider, text):
    response = MagicMock()
    response.text = text
    provider._client.aio.models.generate_content = AsyncMock(return_value=response)
    return provider._client.aio.models.generate_content


class TestBuildContents:
    def test_maps_roles_and_appends_prompt(self):
        context = [Turn.user("hi"), Turn.assistant("hello")]
        contents = _build_contents("menu?", context)

        assert [c.role for c in contents] == ["user", "model", "user"]
        assert contents[-1].parts[0].text == "menu?"

    def test_each_segment_becomes_a_part(self):
        contents = _build_contents("x", [Turn(Role.USER, ("a", "b"))])
        assert [p.text for p in contents[0].parts] == ["a", "b"]


class TestGenerate:
    @pytest.mark.asyncio
    async def test_returns_text(self, gemini_provider):
        _respond_with(gemini_provider, "Filter coffee is ₹40")
        text = await gemini_provider.generate("price?", [], GenerationSettings())
        assert text == "Filter coffee is ₹40"

    @pytest.mark.asyncio
    async def test_sends_generation_settings(self, gemini_provider):
        mock_call = _respond_with(gemini_provider, "ok")
        await gemini_provider.generate(
            "hi", [], GenerationSettings(max_output_tokens=123, temperature=0.2),
        )

        config = mock_call.call_args.kwargs["config"]
        assert config.max_output_tokens == 123
        assert config.temperature == 0.2
        assert mock_call.call_args.kwargs["model"] == "gemini-2.0-flash"

    @pytest.mark.asyncio
    async def test_empty_text_raises_provider_error(self, gemini_provider):
        _respond_with(gemini_provider, "")
        with pytest.raises(ProviderError, match="empty"):
            await gemini_provider.generate("hi", [], GenerationSettings())

    @pytest.mark.asyncio
    async def test_missing_key_raises(self):
        provider = GeminiProvider(KaapiConfig(gemini_api_key=""))
        with pytest.raises(ProviderError, match="not configured"):
            await provider.generate("hi", [], GenerationSettings())


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_429_is_rate_limit(self, gemini_provider):
        gemini_provider._client.aio.models.generate_content = AsyncMock(
            side_effect=_api_error(
                errors.ClientError, 429, "Quota exceeded. Please retry in 12s.",
                "RESOURCE_EXHAUSTED",
            ),
        )
        with pytest.raises(RateLimitError):
            await gemini_provider.generate("hi", [], GenerationSettings())

    @pytest.mark.asyncio
    async def test_server_error_is_backend_error(self, gemini_provider):
        gemini_provider._client.aio.models.generate_content = AsyncMock(
            side_effect=_api_error(errors.ServerError, 500, "Internal", "INTERNAL"),
        )
        with pytest.raises(ProviderError) as exc_info:
            await gemini_provider.generate("hi", [], GenerationSettings())
        assert not isinstance(exc_info.value, ProviderUnavailableError)

    @pytest.mark.asyncio
    async def test_connect_error_is_unavailable(self, gemini_provider):
        gemini_provider._client.aio.models.generate_content = AsyncMock(
            side_effect=httpx.ConnectError("refused"),
        )
        with pytest.raises(ProviderUnavailableError):
            await gemini_provider.generate("hi", [], GenerationSettings())

    @pytest.mark.asyncio
    async def test_read_timeout_is_timeout(self, gemini_provider):
        gemini_provider._client.aio.models.generate_content = AsyncMock(
            side_effect=httpx.ReadTimeout("slow"),
        )
        with pytest.raises(ProviderTimeoutError):
            await gemini_provider.generate("hi", [], GenerationSettings())


class TestParseRetryAfter:
    def test_extracts_seconds(self):
        assert _parse_retry_after("Please retry in 12.5s.") == 12.5

    def test_none_when_absent(self):
        assert _parse_retry_after("quota exceeded") is None
