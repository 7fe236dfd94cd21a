"""Groq LLM provider: fallback text generation over the Groq chat API."""

import logging

import httpx

from kaapi.config import KaapiConfig, get_config
from kaapi.memory.history import Turn
from kaapi.providers.base import (
    GenerationSettings,
    LLMProvider,
    ProviderError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

_GROQ_BASE_URL = "https://api.groq.com/openai/v1"
_MODEL = "llama-3.3-70b-versatile"


def _build_messages(prompt: str, context: list[Turn]) -> list[dict]:
    """Build the messages list for the chat completions API."""
    messages: list[dict] = [turn.to_dict() for turn in context]
    messages.append({"role": "user", "content": prompt})
    return messages


def _parse_retry_after_header(response: httpx.Response) -> float | None:
    """Extract retry-after seconds from response headers."""
    value = response.headers.get("retry-after")
    if value:
        try:
            return float(value)
        except ValueError:
            pass
    return None


class GroqLLMProvider(LLMProvider):
    """LLM provider using the Groq API with Llama models."""

    name = "groq_llm"

    def __init__(
        self,
        config: KaapiConfig | None = None,
        base_url: str = _GROQ_BASE_URL,
    ) -> None:
        config = config or get_config()
        self._api_key = config.groq_api_key
        self._timeout = config.llm_timeout
        self._base_url = base_url

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def generate(
        self,
        prompt: str,
        context: list[Turn],
        settings: GenerationSettings,
    ) -> str:
        """Generate a response given a prompt and conversation context.

        Raises:
            RateLimitError: On HTTP 429.
            ProviderTimeoutError: When request exceeds llm_timeout.
            ProviderUnavailableError: On connection failures.
            ProviderError: On server or API errors, or an unusable body.
        """
        if not self._api_key:
            raise ProviderError(self.name, "Groq API key not configured")

        payload = {
            "model": _MODEL,
            "messages": _build_messages(prompt, context),
            "temperature": settings.temperature,
            "max_tokens": settings.max_output_tokens,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    f"{self._base_url}/chat/completions",
                    headers=self._headers(),
                    json=payload,
                )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(self.name, self._timeout) from e
        except httpx.TransportError as e:
            raise ProviderUnavailableError(self.name, f"Connection failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitError(self.name, retry_after=_parse_retry_after_header(response))

        if response.status_code >= 500:
            raise ProviderError(
                self.name, f"Server error {response.status_code}: {response.text}",
            )

        if response.status_code != 200:
            raise ProviderError(
                self.name, f"API error {response.status_code}: {response.text}",
            )

        try:
            data = response.json()
            text = (data["choices"][0]["message"]["content"] or "").strip()
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(self.name, f"Unparseable response: {e}") from e

        if not text:
            raise ProviderError(self.name, "Groq returned empty response")

        logger.debug("Groq LLM: generated %d chars", len(text))
        return text

    async def is_available(self) -> bool:
        """Check that the key is set and the models endpoint accepts it."""
        if not self._api_key:
            return False
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(
                    f"{self._base_url}/models", headers=self._headers(),
                )
            return response.status_code == 200
        except httpx.HTTPError:
            logger.warning("Groq: availability check failed", exc_info=True)
            return False
