"""Provider router with failover logic and exponential backoff."""

import asyncio
import logging
import time

from kaapi.providers.base import (
    AllProvidersFailedError,
    ProviderError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

MAX_BACKOFF = 16.0
_BACKOFF_RESET = 60.0


class ProviderRouter:
    """Routes requests through an ordered list of providers with automatic failover.

    Tries each provider in priority order. A provider that failed recently is
    skipped until its backoff window (1s, 2s, 4s ... capped at 16s, or the
    server's retry-after hint) has passed. Backoff resets after 60s without
    failures.
    """

    def __init__(self, provider_type: str, providers: list) -> None:
        """Initialize the router.

        Args:
            provider_type: Human-readable type name (e.g. "LLM").
            providers: Ordered list of provider instances (highest priority first).
        """
        if not providers:
            raise ValueError(f"At least one {provider_type} provider is required")
        self.provider_type = provider_type
        self.providers = providers
        # {name: (fail_count, last_fail_time, min_delay)}
        self._backoff: dict[str, tuple[int, float, float]] = {}

    @property
    def name(self) -> str:
        return "+".join(p.name for p in self.providers)

    def _get_backoff_delay(self, provider_name: str) -> float:
        """Remaining backoff for a provider, 0 if none is active."""
        if provider_name not in self._backoff:
            return 0.0
        fail_count, last_fail_time, min_delay = self._backoff[provider_name]
        elapsed = time.monotonic() - last_fail_time
        if elapsed > _BACKOFF_RESET:
            del self._backoff[provider_name]
            return 0.0
        delay = max(min(2 ** (fail_count - 1), MAX_BACKOFF), min_delay)
        return max(delay - elapsed, 0.0)

    def _record_failure(self, provider_name: str, error: ProviderError) -> None:
        fail_count = self._backoff.get(provider_name, (0, 0.0, 0.0))[0]
        min_delay = 0.0
        if isinstance(error, RateLimitError) and error.retry_after:
            min_delay = error.retry_after
        self._backoff[provider_name] = (fail_count + 1, time.monotonic(), min_delay)

    def _record_success(self, provider_name: str) -> None:
        self._backoff.pop(provider_name, None)

    async def _call(self, provider, method_name: str, *args, **kwargs):
        method = getattr(provider, method_name)
        result = await method(*args, **kwargs)
        self._record_success(provider.name)
        return result

    async def execute(self, method_name: str, *args, **kwargs):
        """Execute a method on providers with failover.

        Args:
            method_name: The provider method to call (e.g. "generate").
            *args: Positional arguments to pass to the method.
            **kwargs: Keyword arguments to pass to the method.

        Returns:
            The result from the first successful provider.

        Raises:
            AllProvidersFailedError: When all providers have failed.
        """
        errors: list[ProviderError] = []

        for provider in self.providers:
            name = provider.name

            delay = self._get_backoff_delay(name)
            if delay > 0:
                logger.debug(
                    "[%s] %s is in backoff (%.1fs remaining), skipping",
                    self.provider_type, name, delay,
                )
                continue

            try:
                logger.info("[%s] Trying %s", self.provider_type, name)
                result = await self._call(provider, method_name, *args, **kwargs)
                logger.info("[%s] %s succeeded", self.provider_type, name)
                return result
            except ProviderError as e:
                logger.warning("[%s] %s failed: %s", self.provider_type, name, e)
                self._record_failure(name, e)
                errors.append(e)

        # Everything left was in backoff: wait out the shortest and retry once
        failed = {e.provider_name for e in errors}
        waiting = sorted(
            (
                (self._get_backoff_delay(p.name), p)
                for p in self.providers
                if p.name not in failed
            ),
            key=lambda pair: pair[0],
        )
        if waiting:
            delay, provider = waiting[0]
            if delay > 0:
                logger.info(
                    "[%s] All providers exhausted, waiting %.1fs for %s",
                    self.provider_type, delay, provider.name,
                )
                await asyncio.sleep(delay)
            try:
                logger.info("[%s] Retrying %s after backoff", self.provider_type, provider.name)
                return await self._call(provider, method_name, *args, **kwargs)
            except ProviderError as e:
                self._record_failure(provider.name, e)
                errors.append(e)

        raise AllProvidersFailedError(self.provider_type, errors)
