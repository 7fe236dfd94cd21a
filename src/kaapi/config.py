"""KAAPI configuration system: typed settings loaded from .env."""

import logging

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_config_instance: "KaapiConfig | None" = None


class KaapiConfig(BaseSettings):
    """All KAAPI settings, loaded from environment variables with KAAPI_ prefix."""

    # API Keys
    gemini_api_key: str = ""
    groq_api_key: str = ""

    # Menu store (Supabase PostgREST)
    supabase_url: str = ""
    supabase_anon_key: str = ""

    # Provider priorities
    llm_providers: list[str] = ["gemini", "groq"]
    gemini_model: str = "gemini-2.0-flash"

    # Timeouts (seconds)
    llm_timeout: float = 15.0
    menu_timeout: float = 10.0
    # Whole failover chain for one reply; derived from llm_timeout when unset
    context_timeout: float | None = None

    # Conversation
    max_context_turns: int = 10  # Retained entries, user and assistant counted separately
    max_output_tokens: int = 1000
    temperature: float = 0.7

    # Store
    store_name: str = "Tanjore Degree Coffee"
    store_timings: str = "Monday - Sunday: 6:00 AM - 10:00 PM"
    store_location: str = "123 Temple Street, Thanjavur, Tamil Nadu, India - 613001"

    # System
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="KAAPI_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def validate_api_keys(self) -> None:
        """Validate that at least one LLM API key is configured.

        Raises:
            ValueError: If no LLM API key is set.
        """
        configured = []
        if self.gemini_api_key:
            configured.append("Gemini")
        if self.groq_api_key:
            configured.append("Groq")

        if not configured:
            raise ValueError(
                "No LLM API key configured. Set at least one of: "
                "KAAPI_GEMINI_API_KEY or KAAPI_GROQ_API_KEY"
            )
        logger.info("Configured LLM providers: %s", ", ".join(configured))

    @property
    def menu_store_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)


def get_config() -> KaapiConfig:
    """Get the singleton KaapiConfig instance.

    Returns:
        The shared KaapiConfig loaded from environment.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = KaapiConfig()
    return _config_instance
