# config.py
"""Configuration settings for the Fine Format dataset generator.
Uses Pydantic BaseSettings for automatic environment variable loading.
"""

from __future__ import annotations

import structlog
from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

logger = structlog.get_logger()

PROVIDERS = ("gemini", "openrouter")


class FineFormatSettings(BaseSettings):
    """Full configuration for the dataset generation service."""

    # Provider credentials, tried in declaration order
    GEMINI_API_KEY: str = ""
    GEMINI_API_KEY_2: str = ""
    GEMINI_API_KEY_3: str = ""
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_API_KEY_2: str = ""
    OPENROUTER_API_KEY_3: str = ""

    # Provider endpoints and models
    GEMINI_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_MODEL: str = "gemini-2.0-flash-exp"
    GEMINI_FALLBACK_MODELS: list[str] = Field(default_factory=list)
    OPENROUTER_API_BASE: str = "https://openrouter.ai/api/v1"
    OPENROUTER_MODEL: str = "nvidia/llama-3.1-nemotron-ultra-253b-v1:free"
    OPENROUTER_FALLBACK_MODELS: list[str] = Field(default_factory=list)
    OPENROUTER_REFERER: str = "https://fine-format.netlify.app"
    OPENROUTER_APP_TITLE: str = "Fine Format - AI Dataset Generator"
    LLM_TOP_P: float = 0.95
    GEMINI_TOP_K: int = 40
    OPENROUTER_FREQUENCY_PENALTY: float = 0.1
    OPENROUTER_PRESENCE_PENALTY: float = 0.1
    GEMINI_MAX_OUTPUT_TOKENS: int = 20000

    # Timeouts (seconds)
    HTTPX_TIMEOUT: float = 120.0
    GEMINI_TIMEOUT_SECONDS: float = 30.0
    GEMINI_BINARY_TIMEOUT_SECONDS: float = 45.0
    OPENROUTER_TIMEOUT_SECONDS: float = 25.0
    GENERATION_TIMEOUT_SECONDS: float = 90.0

    # Failover
    FAILOVER_TRIES_PER_TARGET: int = 2
    FAILOVER_MAX_BACKOFF_ROUNDS: int = 3
    FAILOVER_BACKOFF_CAP_SECONDS: float = 5.0
    QUOTA_COOLDOWN_SECONDS: float = 60.0
    MAX_CONCURRENT_LLM_CALLS: int = 4

    # Generation parameters
    SYNTHETIC_QA_TARGET: int = 75
    QA_PAIR_COUNT_TARGET: int = 100
    INCORRECT_ANSWER_RATIO: float = 0.08
    MAX_PAIRS_PER_GAP: int = 15
    INTER_GAP_DELAY_SECONDS: float = 1.5
    MAX_KNOWLEDGE_GAPS: int = 10
    DEFAULT_DOMAIN_PROFILE: str = "knowledge"

    # Prompt content limits (characters)
    GENERATION_CONTENT_CHARS: int = 6000
    ANALYSIS_CONTENT_CHARS: int = 8000
    VALIDATION_CONTENT_CHARS: int = 8000
    THEME_CONTENT_CHARS: int = 1500
    DIRECT_QA_CONTENT_CHARS: int = 12000
    AUGMENTATION_CONTENT_CHARS: int = 20000

    # Temperature and token settings per call type
    TEMPERATURE_GENERATION: float = 0.6
    MAX_TOKENS_GENERATION: int = 5000
    TEMPERATURE_GAP_ANALYSIS: float = 0.3
    MAX_TOKENS_GAP_ANALYSIS: int = 4000
    TEMPERATURE_VALIDATION_CONTEXT: float = 0.3
    MAX_TOKENS_VALIDATION_CONTEXT: int = 3500
    TEMPERATURE_VALIDATION: float = 0.2
    MAX_TOKENS_VALIDATION: int = 1000
    TEMPERATURE_CLEANING: float = 0.1
    MAX_TOKENS_CLEANING: int = 8000
    TEMPERATURE_THEMES: float = 0.3
    MAX_TOKENS_THEMES: int = 1000
    TEMPERATURE_DIRECT_QA: float = 0.5
    MAX_TOKENS_DIRECT_QA: int = 8000
    TEMPERATURE_AUGMENTATION: float = 0.4
    MAX_TOKENS_AUGMENTATION: int = 8000
    DEFAULT_TEMPERATURE: float = 0.7
    DEFAULT_MAX_TOKENS: int = 4096

    # Payload ceilings
    GEMINI_MAX_BINARY_BYTES: int = 10 * 1024 * 1024
    PREPROCESS_MAX_BINARY_BYTES: int = 4 * 1024 * 1024
    PREPROCESS_MIN_TEXT_CHARS: int = 50

    # HTTP surface
    SERVER_HOST: str = "127.0.0.1"
    SERVER_PORT: int = 8000
    RATE_LIMIT_REQUESTS: int = 10
    RATE_LIMIT_WINDOW_SECONDS: float = 60.0

    # Output and logging
    BASE_OUTPUT_DIR: str = "dataset_output"
    LOG_LEVEL_STR: str = Field("INFO", alias="FINE_FORMAT_LOG_LEVEL")
    LOG_FORMAT: str = (
        "%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] - %(message)s"
    )
    LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    LOG_FILE: str | None = None
    ENABLE_RICH_PROGRESS: bool = True

    @model_validator(mode="after")
    def check_generation_bounds(self) -> FineFormatSettings:
        if not 0.0 < self.INCORRECT_ANSWER_RATIO < 1.0:
            raise ValueError("INCORRECT_ANSWER_RATIO must be between 0 and 1")
        if self.MAX_PAIRS_PER_GAP <= 0:
            raise ValueError("MAX_PAIRS_PER_GAP must be positive")
        if self.FAILOVER_TRIES_PER_TARGET <= 0:
            raise ValueError("FAILOVER_TRIES_PER_TARGET must be positive")
        if self.RATE_LIMIT_REQUESTS < 0:
            logger.warning(
                "RATE_LIMIT_REQUESTS is negative; request limiting disabled.",
                value=self.RATE_LIMIT_REQUESTS,
            )
            self.RATE_LIMIT_REQUESTS = 0
        return self

    def provider_keys(self, provider: str) -> list[str]:
        """Return the configured keys for ``provider`` in trial order."""
        prefix = provider.upper()
        if provider not in PROVIDERS:
            raise ValueError(f"Unknown provider: {provider}")
        names = [f"{prefix}_API_KEY", f"{prefix}_API_KEY_2", f"{prefix}_API_KEY_3"]
        return [
            value.strip()
            for value in (getattr(self, name) for name in names)
            if value and value.strip()
        ]

    def provider_models(self, provider: str) -> list[str]:
        """Return the primary model followed by its fallback chain."""
        if provider == "gemini":
            chain = [self.GEMINI_MODEL, *self.GEMINI_FALLBACK_MODELS]
        elif provider == "openrouter":
            chain = [self.OPENROUTER_MODEL, *self.OPENROUTER_FALLBACK_MODELS]
        else:
            raise ValueError(f"Unknown provider: {provider}")
        seen: list[str] = []
        for model in chain:
            if model and model not in seen:
                seen.append(model)
        return seen

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", extra="ignore", populate_by_name=True
    )


settings = FineFormatSettings()
