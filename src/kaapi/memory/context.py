"""Conversation context manager in front of the text-generation backend.

The backend is stateless, so every call resends the retained history as
context. The history is bounded (oldest turns evicted first) to cap request
size and memory. One manager represents one conversation; independent
conversations must use independent managers (see ``SessionRegistry``).

A single manager does not serialize access: two ``submit`` calls in flight
at once interleave their appends, and one of them may be answered with an
incomplete context.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from kaapi.memory.history import MAX_TURNS, ConversationHistory, Turn
from kaapi.providers.base import (
    AllProvidersFailedError,
    GenerationSettings,
    ProviderError,
    ProviderUnavailableError,
)

logger = logging.getLogger(__name__)

# (prompt, context, settings) -> reply text
GenerateFn = Callable[[str, list[Turn], GenerationSettings], Awaitable[str]]

FALLBACK_TEXT = (
    "I apologize, but I'm having trouble processing your request right now. "
    "Please try again later."
)


class FailureReason(str, Enum):
    UNAVAILABLE = "unavailable"      # transport, timeout, rate limit
    BACKEND_ERROR = "backend_error"  # backend error or unusable content


@dataclass(frozen=True)
class Failure:
    reason: FailureReason
    detail: str


@dataclass(frozen=True)
class Reply:
    """Outcome of one submit: either reply text or a typed failure."""

    text: str | None = None
    failure: Failure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def display_text(self) -> str:
        """Text safe to show an end user."""
        return self.text if self.ok and self.text else FALLBACK_TEXT


def classify_failure(exc: BaseException) -> FailureReason:
    """Map a backend exception onto the failure taxonomy."""
    if isinstance(exc, AllProvidersFailedError):
        if exc.errors and exc.transport_only:
            return FailureReason.UNAVAILABLE
        return FailureReason.BACKEND_ERROR
    if isinstance(exc, (ProviderUnavailableError, TimeoutError, ConnectionError)):
        return FailureReason.UNAVAILABLE
    return FailureReason.BACKEND_ERROR


class ConversationContextManager:
    """Owns one bounded conversation history and talks to the backend."""

    def __init__(
        self,
        generate_fn: GenerateFn,
        settings: GenerationSettings | None = None,
        capacity: int = MAX_TURNS,
        timeout: float | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            generate_fn: Async callable producing the reply text.
            settings: Generation config sent on every call.
            capacity: Maximum number of retained turns.
            timeout: Upper bound in seconds on one backend call, or None.
        """
        self._generate_fn = generate_fn
        self._settings = settings or GenerationSettings()
        self._history = ConversationHistory(capacity)
        self._timeout = timeout
        self.last_failure: Failure | None = None
        self.failure_count = 0

    @property
    def settings(self) -> GenerationSettings:
        return self._settings

    @property
    def turn_count(self) -> int:
        return len(self._history)

    def get_history(self) -> list[Turn]:
        """Return a copy of the retained turns, oldest first."""
        return self._history.turns()

    async def submit(self, user_message: str) -> Reply:
        """Record the user's turn, ask the backend, record its answer.

        ``user_message`` is expected to be non-empty; that is the caller's
        responsibility. On failure the user's turn stays in the history
        without an answer and will be resent as context next time.

        Returns:
            A Reply carrying either the text or the failure reason.
        """
        self._history.append(Turn.user(user_message))
        context = self._history.turns()

        try:
            call = self._generate_fn(user_message, context, self._settings)
            if self._timeout is not None:
                text = await asyncio.wait_for(call, timeout=self._timeout)
            else:
                text = await call
            if not isinstance(text, str) or not text.strip():
                raise ProviderError("backend", "Backend returned no text")
        except Exception as e:
            failure = Failure(classify_failure(e), str(e) or type(e).__name__)
            self.last_failure = failure
            self.failure_count += 1
            logger.warning(
                "Backend call failed (%s): %s", failure.reason.value, failure.detail,
                exc_info=True,
            )
            return Reply(failure=failure)

        self._history.append(Turn.assistant(text))
        logger.debug(
            "Exchange recorded: %d chars in, %d chars out, %d turns retained",
            len(user_message), len(text), len(self._history),
        )
        return Reply(text=text)

    async def submit_message(self, user_message: str) -> str:
        """Submit a message and return display text; never raises on backend failure."""
        reply = await self.submit(user_message)
        return reply.display_text()

    def reset_history(self) -> None:
        """Start a fresh conversation."""
        self._history.clear()
        logger.debug("Conversation history reset")
