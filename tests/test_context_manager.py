"""Tests for ConversationContextManager: bounded context in front of the LLM."""

import asyncio

import pytest

from kaapi.memory.context import (
    FALLBACK_TEXT,
    ConversationContextManager,
    FailureReason,
    Reply,
    classify_failure,
)
from kaapi.memory.history import Role, Turn
from kaapi.providers.base import (
    AllProvidersFailedError,
    GenerationSettings,
    ProviderError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RateLimitError,
)


class FakeBackend:
    """Records every call; replies "reply-N" or raises a queued error."""

    def __init__(self, errors: list | None = None) -> None:
        self.calls: list[tuple[str, list[Turn], GenerationSettings]] = []
        self._errors = list(errors or [])

    async def __call__(self, prompt, context, settings) -> str:
        self.calls.append((prompt, context, settings))
        if self._errors:
            error = self._errors.pop(0)
            if error is not None:
                raise error
        return f"reply-{len(self.calls)}"


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def manager(backend):
    return ConversationContextManager(generate_fn=backend)


class TestSubmitSuccess:
    @pytest.mark.asyncio
    async def test_returns_reply_text(self, manager):
        assert await manager.submit_message("hello") == "reply-1"

    @pytest.mark.asyncio
    async def test_appends_user_then_assistant(self, manager):
        await manager.submit_message("hello")
        history = manager.get_history()
        assert history == [Turn.user("hello"), Turn.assistant("reply-1")]

    @pytest.mark.asyncio
    async def test_context_includes_new_user_turn(self, manager, backend):
        await manager.submit_message("first")
        await manager.submit_message("second")

        prompt, context, _ = backend.calls[1]
        assert prompt == "second"
        assert [t.text for t in context] == ["first", "reply-1", "second"]

    @pytest.mark.asyncio
    async def test_passes_fixed_settings(self, backend):
        settings = GenerationSettings(max_output_tokens=200, temperature=0.0)
        manager = ConversationContextManager(generate_fn=backend, settings=settings)
        await manager.submit_message("a")
        await manager.submit_message("b")
        assert all(call[2] is settings for call in backend.calls)

    @pytest.mark.asyncio
    async def test_submit_returns_typed_reply(self, manager):
        reply = await manager.submit("hello")
        assert reply == Reply(text="reply-1")
        assert reply.ok


class TestCapacity:
    @pytest.mark.asyncio
    async def test_six_exchanges_keep_last_five_pairs(self, manager):
        for i in range(1, 7):
            await manager.submit_message(f"msg{i}")

        history = manager.get_history()
        assert len(history) == 10
        assert [t.text for t in history] == [
            text
            for i in range(2, 7)
            for text in (f"msg{i}", f"reply-{i}")
        ]

    @pytest.mark.asyncio
    async def test_count_never_exceeds_capacity(self, backend):
        manager = ConversationContextManager(generate_fn=backend, capacity=4)
        for i in range(10):
            await manager.submit_message(f"m{i}")
            assert manager.turn_count <= 4

    @pytest.mark.asyncio
    async def test_newest_turn_is_never_evicted(self, backend):
        manager = ConversationContextManager(generate_fn=backend, capacity=3)
        for i in range(5):
            await manager.submit_message(f"m{i}")
        assert manager.get_history()[-1] == Turn.assistant("reply-5")

    @pytest.mark.asyncio
    async def test_roles_alternate_for_single_caller(self, manager):
        for i in range(7):
            await manager.submit_message(f"m{i}")
        roles = [t.role for t in manager.get_history()]
        assert roles == [Role.USER, Role.ASSISTANT] * 5


class TestFailure:
    @pytest.mark.asyncio
    async def test_failure_returns_fallback_and_keeps_user_turn(self):
        backend = FakeBackend(errors=[ProviderError("gemini", "boom")])
        manager = ConversationContextManager(generate_fn=backend)

        text = await manager.submit_message("hello")

        assert text == FALLBACK_TEXT
        assert manager.get_history() == [Turn.user("hello")]

    @pytest.mark.asyncio
    async def test_orphaned_user_turn_sent_as_context_next_time(self):
        backend = FakeBackend(errors=[ProviderUnavailableError("gemini", "down"), None])
        manager = ConversationContextManager(generate_fn=backend)

        await manager.submit_message("lost")
        assert manager.turn_count == 1

        text = await manager.submit_message("again")
        assert text == "reply-2"
        _, context, _ = backend.calls[1]
        assert [t.text for t in context] == ["lost", "again"]
        assert [t.text for t in manager.get_history()] == ["lost", "again", "reply-2"]

    @pytest.mark.asyncio
    async def test_fallback_is_constant_and_hides_detail(self):
        backend = FakeBackend(errors=[
            ProviderError("gemini", "secret stack trace"),
            ProviderTimeoutError("gemini", timeout=1.0),
            RuntimeError("unexpected"),
        ])
        manager = ConversationContextManager(generate_fn=backend)

        texts = [await manager.submit_message(f"m{i}") for i in range(3)]

        assert texts == [FALLBACK_TEXT] * 3
        assert "secret" not in FALLBACK_TEXT

    @pytest.mark.asyncio
    async def test_unavailable_reason(self):
        backend = FakeBackend(errors=[ProviderUnavailableError("gemini", "refused")])
        manager = ConversationContextManager(generate_fn=backend)

        reply = await manager.submit("hi")

        assert not reply.ok
        assert reply.text is None
        assert reply.failure.reason is FailureReason.UNAVAILABLE
        assert "refused" in reply.failure.detail

    @pytest.mark.asyncio
    async def test_backend_error_reason(self):
        backend = FakeBackend(errors=[ProviderError("gemini", "bad request")])
        manager = ConversationContextManager(generate_fn=backend)

        reply = await manager.submit("hi")

        assert reply.failure.reason is FailureReason.BACKEND_ERROR

    @pytest.mark.asyncio
    async def test_empty_reply_is_backend_error(self):
        async def empty(prompt, context, settings):
            return "   "

        manager = ConversationContextManager(generate_fn=empty)
        reply = await manager.submit("hi")

        assert reply.failure.reason is FailureReason.BACKEND_ERROR
        assert manager.turn_count == 1

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        async def slow(prompt, context, settings):
            await asyncio.sleep(1)
            return "late"

        manager = ConversationContextManager(generate_fn=slow, timeout=0.01)
        reply = await manager.submit("hi")

        assert reply.failure.reason is FailureReason.UNAVAILABLE
        assert manager.get_history() == [Turn.user("hi")]

    @pytest.mark.asyncio
    async def test_failure_is_recorded(self):
        backend = FakeBackend(errors=[ProviderError("gemini", "x"), ProviderError("gemini", "y")])
        manager = ConversationContextManager(generate_fn=backend)

        await manager.submit("a")
        await manager.submit("b")

        assert manager.failure_count == 2
        assert "y" in manager.last_failure.detail


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_clears_history(self, manager):
        await manager.submit_message("a")
        manager.reset_history()
        assert manager.turn_count == 0

    def test_reset_on_empty_is_noop(self, manager):
        manager.reset_history()
        manager.reset_history()
        assert manager.get_history() == []

    @pytest.mark.asyncio
    async def test_reset_drops_context_for_next_call(self, manager, backend):
        await manager.submit_message("old")
        manager.reset_history()
        await manager.submit_message("new")
        _, context, _ = backend.calls[-1]
        assert [t.text for t in context] == ["new"]


class TestClassifyFailure:
    def test_all_transport_errors_are_unavailable(self):
        exc = AllProvidersFailedError("LLM", [
            RateLimitError("gemini"),
            ProviderTimeoutError("groq_llm", timeout=5.0),
        ])
        assert classify_failure(exc) is FailureReason.UNAVAILABLE

    def test_mixed_errors_are_backend_error(self):
        exc = AllProvidersFailedError("LLM", [
            RateLimitError("gemini"),
            ProviderError("groq_llm", "500"),
        ])
        assert classify_failure(exc) is FailureReason.BACKEND_ERROR

    def test_connection_error_is_unavailable(self):
        assert classify_failure(ConnectionError()) is FailureReason.UNAVAILABLE

    def test_unknown_error_is_backend_error(self):
        assert classify_failure(KeyError("text")) is FailureReason.BACKEND_ERROR
