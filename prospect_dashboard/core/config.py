"""
Settings and environment management module for the Prospect Dashboard backend.

This module provides centralized configuration management using pydantic-settings,
which automatically loads settings from environment variables and .env files.

Key Features:
- Environment variable validation and type coercion
- Sensible defaults for local development (file-backed document store)
- Singleton pattern via @lru_cache for efficient access
- Optional credentials for the LLM classification providers
- Processing defaults (batch size, fan-out, wall-clock budget, retry limit)

Environment Variables:
- STORE_BACKEND: 'file' (default) or 'memory'
- DATA_DIR: Root directory for JSON documents (default: data)
- INGEST_API_KEY: Bearer token required by POST /ingest/daily
- USE_OPENAI: Use OpenAI instead of DeepSeek via OpenRouter
- OPENAI_API_KEY / OPENROUTER_API_KEY: Classification credentials

Usage:
    from prospect_dashboard.core.config import get_settings

    settings = get_settings()
    batch_size = settings.process_batch_size
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        store_backend: Document store implementation ('file' or 'memory').
        data_dir: Directory holding the JSON documents of the file store.
        ingest_api_key: Static bearer token for the ingest endpoint.
        use_openai: Route classification to OpenAI instead of OpenRouter.
        openai_api_key: OpenAI API key.
        openrouter_api_key: OpenRouter API key (DeepSeek model).
        classification_concurrency: Maximum in-flight classification calls.
        process_batch_size: Default number of records claimed per processing call.
        processing_budget_seconds: Wall-clock budget for one processing task.
        max_retries: Classification attempts before a record fails terminally.
        lock_ttl_seconds: Age after which a per-date processing lock is stale;
            must exceed the budget plus the classification timeout.
        sale_window_months: Calendar-month window of one sale period.
        message_char_limit: Transcript length sent to the classifier.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    # =========================================================================
    # Storage
    # =========================================================================

    store_backend: str = 'file'
    data_dir: str = 'data'

    # =========================================================================
    # Authentication
    # =========================================================================

    # Ingest is refused outright while this is unset
    ingest_api_key: Optional[str] = None

    # =========================================================================
    # Classification Provider
    # =========================================================================

    use_openai: bool = False
    openai_api_key: Optional[str] = None
    openai_base_url: str = 'https://api.openai.com/v1'
    openai_model: str = 'gpt-4o-mini'
    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = 'https://openrouter.ai/api/v1'
    openrouter_model: str = 'deepseek/deepseek-chat'
    classification_timeout_seconds: float = 60.0

    # =========================================================================
    # Processing Defaults
    # =========================================================================

    classification_concurrency: int = 10
    process_batch_size: int = 50
    processing_budget_seconds: float = 300.0
    max_retries: int = 3
    lock_ttl_seconds: float = 420.0

    # Same contract+client+housemaid within this many months is one sale
    sale_window_months: int = 3

    # Longer transcripts are cut and suffixed with "\n...[truncated]"
    message_char_limit: int = 8000

    # =========================================================================
    # Service
    # =========================================================================

    log_level: str = 'INFO'
    cors_origins: List[str] = [
        'http://localhost:3000',
        'http://127.0.0.1:3000',
    ]

    @model_validator(mode='after')
    def check_lock_outlives_batch(self) -> 'Settings':
        """
        A batch keeps its lease until it has applied its results: the lease
        must outlast the budget with one classification timeout of slack for
        the apply step.
        """
        minimum = self.processing_budget_seconds + self.classification_timeout_seconds
        if self.lock_ttl_seconds <= minimum:
            raise ValueError(
                f"lock_ttl_seconds ({self.lock_ttl_seconds}) must exceed "
                f"processing_budget_seconds + classification_timeout_seconds ({minimum})"
            )
        return self


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The cached settings instance.

    Note:
        To refresh settings in tests, clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
