"""Gemini LLM provider: primary text generation via the Google GenAI SDK."""

import asyncio
import logging
import re

import httpx
from google import genai
from google.genai import errors, types

from kaapi.config import KaapiConfig, get_config
from kaapi.memory.history import Role, Turn
from kaapi.providers.base import (
    GenerationSettings,
    LLMProvider,
    ProviderError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RateLimitError,
)

logger = logging.getLogger(__name__)


def _build_contents(prompt: str, context: list[Turn]) -> list[types.Content]:
    """Build the contents list from conversation context and current prompt.

    Args:
        prompt: The message to answer.
        context: Prior turns, oldest first.

    Returns:
        List of Content objects suitable for generate_content.
    """
    contents: list[types.Content] = []
    for turn in context:
        # Gemini calls the assistant side "model"
        role = "model" if turn.role is Role.ASSISTANT else "user"
        contents.append(
            types.Content(
                role=role,
                parts=[types.Part(text=segment) for segment in turn.content],
            )
        )
    contents.append(types.Content(role="user", parts=[types.Part(text=prompt)]))
    return contents


class GeminiProvider(LLMProvider):
    """LLM provider using Google Gemini via the google-genai SDK."""

    name = "gemini"

    def __init__(self, config: KaapiConfig | None = None) -> None:
        config = config or get_config()
        self._api_key = config.gemini_api_key
        self._timeout = config.llm_timeout
        self._model_name = config.gemini_model
        self._client: genai.Client | None = None

        if self._api_key:
            self._client = genai.Client(api_key=self._api_key, vertexai=False)

    def _get_client(self) -> genai.Client:
        """Get the GenAI client, raising if not configured."""
        if self._client is None:
            raise ProviderError(self.name, "Gemini API key not configured")
        return self._client

    def _get_config(self, settings: GenerationSettings) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            temperature=settings.temperature,
            max_output_tokens=settings.max_output_tokens,
        )

    async def generate(
        self,
        prompt: str,
        context: list[Turn],
        settings: GenerationSettings,
    ) -> str:
        """Generate a single, non-streamed response.

        Raises:
            RateLimitError: On HTTP 429.
            ProviderTimeoutError: When the request exceeds llm_timeout.
            ProviderUnavailableError: On transport failures.
            ProviderError: On server errors, rejected requests or empty output.
        """
        client = self._get_client()
        contents = _build_contents(prompt, context)

        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=self._model_name,
                    contents=contents,
                    config=self._get_config(settings),
                ),
                timeout=self._timeout,
            )
        except TimeoutError as e:
            raise ProviderTimeoutError(self.name, self._timeout) from e
        except Exception as e:
            self._handle_error(e)

        try:
            text = response.text
        except (AttributeError, ValueError) as e:
            raise ProviderError(self.name, f"Unparseable response: {e}") from e
        if not text:
            raise ProviderError(self.name, "Gemini returned empty response")
        logger.debug("Gemini: generated %d chars", len(text))
        return text

    async def is_available(self) -> bool:
        """Check if the Gemini API key is configured and valid."""
        if self._client is None:
            return False
        try:
            await self._client.aio.models.get(model=self._model_name)
            return True
        except Exception:
            logger.warning("Gemini: API key validation failed", exc_info=True)
            return False

    def _handle_error(self, exc: Exception) -> None:
        """Map SDK exceptions to provider errors. Always raises."""
        if isinstance(exc, errors.APIError):
            if exc.code == 429:
                raise RateLimitError(
                    self.name, retry_after=_parse_retry_after(str(exc)),
                ) from exc
            if exc.code in (408, 504):
                raise ProviderTimeoutError(self.name, self._timeout) from exc
            if isinstance(exc, errors.ServerError):
                raise ProviderError(self.name, f"Server error: {exc}") from exc
            raise ProviderError(self.name, f"Request rejected: {exc}") from exc

        if isinstance(exc, httpx.TimeoutException):
            raise ProviderTimeoutError(self.name, self._timeout) from exc
        if isinstance(exc, (httpx.TransportError, OSError)):
            raise ProviderUnavailableError(self.name, f"Connection failed: {exc}") from exc

        raise ProviderError(self.name, f"Generation failed: {exc}") from exc


def _parse_retry_after(msg: str) -> float | None:
    """Try to extract retry-after seconds from an error message."""
    match = re.search(r"retry in (\d+(?:\.\d+)?)\s*s", msg, re.IGNORECASE)
    if match:
        return float(match.group(1))
    return None
