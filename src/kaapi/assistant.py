"""Coffee-shop chat assistant: keyword routing in front of the LLM.

Cheap questions (hours, location, menu prices, greetings) are answered
locally; everything else goes to the LLM through the conversation context
manager together with a store-aware instruction block.
"""

import logging

from kaapi.config import KaapiConfig, get_config
from kaapi.memory.context import ConversationContextManager
from kaapi.providers.base import GenerationSettings
from kaapi.providers.llm.gemini import GeminiProvider
from kaapi.providers.llm.groq_llm import GroqLLMProvider
from kaapi.providers.router import MAX_BACKOFF, ProviderRouter
from kaapi.shop.menu import MenuItem, MenuStore, MenuStoreError, describe_item, match_item

logger = logging.getLogger(__name__)

_TIMING_WORDS = ("timing", "hours", "open")
_LOCATION_WORDS = ("location", "address", "where")
_MENU_WORDS = ("menu", "item", "coffee", "price", "cost")
_GREETING_WORDS = ("hello", "hi", "hey")
_THANKS_WORDS = ("thank", "thanks")

APOLOGY_TEXT = (
    "I apologize, but I'm having trouble processing your request right now. "
    "Please try again later. 😔"
)
MENU_UNAVAILABLE_TEXT = (
    "Sorry, I'm having trouble accessing our menu right now. "
    "Please try again in a moment! ☕"
)
MENU_EMPTY_TEXT = (
    "I'm sorry, I couldn't find our menu items at the moment. Please try again "
    "later, or feel free to ask about our store timings and location! ☕"
)
THANKS_TEXT = (
    "You're most welcome! 😊 It's our pleasure to help. Is there anything else "
    "you'd like to know about our coffee shop? ☕"
)

_LLM_PROVIDER_FACTORIES = {
    "gemini": GeminiProvider,
    "groq": GroqLLMProvider,
}


def _mentions(message: str, words: tuple[str, ...]) -> bool:
    return any(word in message for word in words)


def build_llm_router(config: KaapiConfig) -> ProviderRouter:
    """Create the LLM failover chain from configured priorities and keys."""
    keys = {"gemini": config.gemini_api_key, "groq": config.groq_api_key}
    providers = []
    for name in config.llm_providers:
        factory = _LLM_PROVIDER_FACTORIES.get(name)
        if factory is None:
            logger.warning("Unknown LLM provider in config: %s", name)
            continue
        if keys.get(name):
            providers.append(factory(config))
    if not providers:
        # Fails at call time with a clear "not configured" error
        providers.append(GeminiProvider(config))
    return ProviderRouter("LLM", providers)


def chain_timeout(config: KaapiConfig, router: ProviderRouter) -> float:
    """Time budget for one reply across the whole failover chain.

    Every provider gets its own llm_timeout, plus one backoff wait and the
    router's final retry.
    """
    if config.context_timeout is not None:
        return config.context_timeout
    return config.llm_timeout * (len(router.providers) + 1) + MAX_BACKOFF


def build_context_manager(
    config: KaapiConfig, router: ProviderRouter | None = None,
) -> ConversationContextManager:
    """Create a fresh conversation bound to the LLM router."""
    router = router or build_llm_router(config)

    async def generate(prompt, context, settings):
        return await router.execute("generate", prompt, context, settings)

    return ConversationContextManager(
        generate_fn=generate,
        settings=GenerationSettings(
            max_output_tokens=config.max_output_tokens,
            temperature=config.temperature,
        ),
        capacity=config.max_context_turns,
        timeout=chain_timeout(config, router),
    )


class CoffeeShopAssistant:
    """Answers one customer's chat messages."""

    def __init__(
        self,
        context: ConversationContextManager | None = None,
        menu_store: MenuStore | None = None,
        config: KaapiConfig | None = None,
    ) -> None:
        self._config = config or get_config()
        self._context = context or build_context_manager(self._config)
        self._menu_store = menu_store or MenuStore(self._config)

    @property
    def context(self) -> ConversationContextManager:
        return self._context

    @property
    def welcome_text(self) -> str:
        return (
            f"Hello! I'm your {self._config.store_name} assistant. "
            "How can I help you today? ☕"
        )

    def reset(self) -> None:
        """Forget the conversation so far."""
        self._context.reset_history()

    async def handle_message(self, text: str) -> str:
        """Answer a customer message. Blank input is ignored and returns ''."""
        message = text.strip()
        if not message:
            return ""
        try:
            return await self._route(message.lower())
        except Exception:
            logger.exception("Error processing message")
            return APOLOGY_TEXT

    async def _route(self, message: str) -> str:
        cfg = self._config

        if _mentions(message, _TIMING_WORDS):
            return (
                f"⏰ Our store hours are: {cfg.store_timings}\n\n"
                "We're open every day to serve you the best coffee in Thanjavur! ☕"
            )

        if _mentions(message, _LOCATION_WORDS):
            return (
                f"📍 We are located at: {cfg.store_location}\n\n"
                "Come visit us for an authentic South Indian coffee experience! 🏪"
            )

        if _mentions(message, _MENU_WORDS):
            return await self._answer_menu_query(message)

        if _mentions(message, _GREETING_WORDS):
            return (
                f"Hello there! 👋 Welcome to {cfg.store_name}! How can I make your "
                "day better with our delicious coffee? ☕✨"
            )

        if _mentions(message, _THANKS_WORDS):
            return THANKS_TEXT

        return await self._context.submit_message(
            f"{self._store_instructions()}\n\nCustomer query: {message}"
        )

    async def _answer_menu_query(self, message: str) -> str:
        try:
            items = await self._menu_store.fetch_menu()
        except MenuStoreError as e:
            logger.error("Error fetching menu items: %s", e)
            return MENU_UNAVAILABLE_TEXT

        if not items:
            return MENU_EMPTY_TEXT

        match = match_item(message, items)
        if match.found:
            item = match.item
            return (
                f"☕ {item.name} is {item.display_price}\n\n"
                f"{describe_item(item.name)} Would you like to know about any "
                "other items? 😊"
            )

        if ("show" in message and "menu" in message) or "all" in message or "full menu" in message:
            return _format_menu(items)

        return await self._context.submit_message(
            f"{self._store_instructions(items)}\n\nCustomer query: {message}"
        )

    def _store_instructions(self, items: list[MenuItem] | None = None) -> str:
        cfg = self._config
        lines = [
            f"You are a helpful assistant for {cfg.store_name}, "
            "a traditional South Indian coffee shop.",
        ]
        if items:
            lines.append(
                "Available menu items: "
                + ", ".join(f"{i.name} ({i.display_price})" for i in items)
            )
            focus = "menu items, prices, or recommendations"
        else:
            lines.append(
                "You can help customers with information about our store timings, "
                "location, and menu items."
            )
            focus = "coffee shop queries"
        lines += [
            f"Store timings: {cfg.store_timings}",
            f"Store location: {cfg.store_location}",
            "Please provide helpful and friendly responses while maintaining a "
            "professional tone.",
            f"Keep responses concise and relevant to {focus}.",
        ]
        return "\n".join(lines)


def _format_menu(items: list[MenuItem]) -> str:
    listing = "\n".join(f"• {i.name} - {i.display_price}" for i in items)
    return (
        "☕ Here are our delicious offerings:\n\n"
        f"{listing}\n\n"
        "All our beverages are made with love and traditional methods! 💕\n\n"
        "Would you like to know more about any specific item?"
    )
