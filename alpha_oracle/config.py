# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# Pydantic V2 `BaseSettings` loads values in this priority order (highest
# first):
#   1. Environment variables (e.g., `FMP_API_KEY=...`)
#   2. Values from the .env file
#   3. Default values defined below
#
# Only the completion provider key is required, and it can also arrive per
# request (`openrouterKey`). Every data/search provider key is optional:
# a missing key removes that provider from the executor's fallback chains
# instead of failing requests.
#
# USAGE:
#   from alpha_oracle.config import settings
#   print(settings.llm_model)
# =============================================================================

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Defaults are suitable for local development. In production, override
    via environment variables or a .env file.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "Alpha Oracle Research Assistant"
    app_version: str = "0.1.0"
    debug: bool = True
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # LLM Configuration: Multi-Provider
    # -------------------------------------------------------------------------
    # Two provider types share one interface (see services/llm.py):
    #   - "openai_compatible": OpenRouter by default, or any API following
    #     the OpenAI chat-completions spec
    #   - "anthropic": Claude via the native Anthropic SDK
    #
    # Model identifiers follow the provider's own naming. For OpenRouter
    # that is "vendor/model" (e.g. "anthropic/claude-sonnet-4").
    # -------------------------------------------------------------------------
    llm_provider: str = "openai_compatible"  # "openai_compatible" or "anthropic"
    llm_base_url: str = "https://openrouter.ai/api/v1"
    llm_model: str = "anthropic/claude-sonnet-4"
    llm_timeout_seconds: float = 120.0

    # Server-side fallback when a request carries no `openrouterKey`
    openrouter_api_key: str = ""
    anthropic_api_key: str = ""

    # OpenRouter attribution headers
    openrouter_app_url: str = "https://alpha-oracle.ai"
    openrouter_app_title: str = "The Alpha Oracle"

    # -------------------------------------------------------------------------
    # Data & Search Providers (all optional)
    # -------------------------------------------------------------------------
    # FMP:     quotes, quote-short, intraday candles, market movers
    # Polygon: per-ticker news (preferred over Brave when configured)
    # Brave:   news search and web search
    # -------------------------------------------------------------------------
    fmp_api_key: str = ""
    fmp_base_url: str = "https://financialmodelingprep.com"

    polygon_api_key: str = ""
    polygon_base_url: str = "https://api.polygon.io"

    brave_search_api_key: str = ""
    brave_base_url: str = "https://api.search.brave.com/res/v1"

    # -------------------------------------------------------------------------
    # Provider HTTP transport
    # -------------------------------------------------------------------------
    # Retries apply to 5xx responses and transport errors only. Backoff is
    # linear: retry N waits N * http_retry_delay_seconds.
    # -------------------------------------------------------------------------
    http_timeout_seconds: float = 4.0
    http_retries: int = 2
    http_retry_delay_seconds: float = 0.5

    # -------------------------------------------------------------------------
    # Research Pipeline
    # -------------------------------------------------------------------------
    # default_max_steps: plan size when the request does not set maxSteps
    # max_plan_steps: ceiling that larger request values are clamped to
    # max_history_messages: conversation messages carried into LLM calls
    # heartbeat_interval_seconds: stepProgress cadence while a step runs
    # answer_block_char_limit: per-result cap on final-answer context
    # -------------------------------------------------------------------------
    default_max_steps: int = 7
    max_plan_steps: int = 15
    max_history_messages: int = 10
    heartbeat_interval_seconds: float = 1.0
    answer_block_char_limit: int = 2000

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Create and cache the process-wide Settings instance."""
    return Settings()


# ---------------------------------------------------------------------------
# Module-level convenience instance
# ---------------------------------------------------------------------------
settings = get_settings()
