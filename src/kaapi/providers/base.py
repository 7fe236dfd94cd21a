"""Abstract base class for text-generation providers and custom exceptions."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from kaapi.memory.history import Turn

# --- Exceptions ---


class ProviderError(Exception):
    """Base exception for all provider errors.

    Raised directly when the backend answered but reported an error or
    returned content that could not be used.
    """

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class ProviderUnavailableError(ProviderError):
    """Raised when the backend could not be reached (network/transport)."""


class RateLimitError(ProviderUnavailableError):
    """Raised when a provider hits its rate limit (HTTP 429)."""

    def __init__(self, provider_name: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        msg = "Rate limit exceeded"
        if retry_after is not None:
            msg += f" (retry after {retry_after}s)"
        super().__init__(provider_name, msg)


class ProviderTimeoutError(ProviderUnavailableError):
    """Raised when a provider request times out."""

    def __init__(self, provider_name: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(provider_name, f"Request timed out after {timeout}s")


class AllProvidersFailedError(Exception):
    """Raised when every provider in the chain has failed."""

    def __init__(self, provider_type: str, errors: list[ProviderError]) -> None:
        self.provider_type = provider_type
        self.errors = errors
        names = [e.provider_name for e in errors]
        super().__init__(
            f"All {provider_type} providers failed: {', '.join(names) or 'none tried'}"
        )

    @property
    def transport_only(self) -> bool:
        """True if every underlying error was a reachability problem."""
        return all(isinstance(e, ProviderUnavailableError) for e in self.errors)


# --- Generation settings ---


@dataclass(frozen=True)
class GenerationSettings:
    """Fixed per-call generation configuration."""

    max_output_tokens: int = 1000
    temperature: float = 0.7


# --- Abstract Base Class ---


class LLMProvider(ABC):
    """Abstract base class for Large Language Model providers."""

    name: str

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        context: list[Turn],
        settings: GenerationSettings,
    ) -> str:
        """Generate a response given a prompt and conversation context.

        Args:
            prompt: The message to answer.
            context: Prior turns, oldest first.
            settings: Output length and sampling temperature.

        Returns:
            Generated response text.

        Raises:
            ProviderError: On backend-reported failure or empty output.
            ProviderUnavailableError: When the backend cannot be reached.
            RateLimitError: When rate limit is hit.
            ProviderTimeoutError: When request exceeds timeout.
        """

    @abstractmethod
    async def is_available(self) -> bool:
        """Check if this provider is configured and reachable."""
