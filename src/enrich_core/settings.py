from __future__ import annotations

import structlog
from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from enrich_core.circuit_breaker import CircuitBreakerConfig
from enrich_core.logging import configure_structlog, get_log_level_value
from enrich_core.provider import (
    DEFAULT_OLLAMA_BASE_URL,
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_OLLAMA_TIMEOUT_SECONDS,
)
from enrich_core.segmenter import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_OVERLAP_TOKENS,
    TextSegmenter,
)


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class EnrichSettings(BaseSettings):
    """Settings for processes that call text-generation providers.

    The core itself takes plain constructor values; this class only maps
    ``ENRICH_*`` environment variables onto them.
    """

    model_config = prefixed_settings_config("ENRICH_")

    log_level: str = "INFO"

    breaker_max_failures: int = 3
    breaker_open_timeout_seconds: float = 30.0
    breaker_half_open_max_successes: int = 2

    chunk_max_tokens: int = DEFAULT_MAX_TOKENS
    chunk_overlap_tokens: int = DEFAULT_OVERLAP_TOKENS

    ollama_base_url: str = DEFAULT_OLLAMA_BASE_URL
    ollama_model: str = DEFAULT_OLLAMA_MODEL
    ollama_timeout_seconds: float = DEFAULT_OLLAMA_TIMEOUT_SECONDS

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            normalized = value.strip().upper()
            get_log_level_value(normalized)
            return normalized
        return value

    @field_validator("ollama_base_url", "ollama_model", mode="before")
    @classmethod
    def _validate_required_string(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip()
        if not normalized:
            raise ValueError(f"{info.field_name} must be non-empty")
        return normalized

    @model_validator(mode="after")
    def _validate_enrich_settings(self) -> EnrichSettings:
        if self.breaker_max_failures < 1:
            raise ValueError("breaker_max_failures must be >= 1")
        if self.breaker_open_timeout_seconds < 0:
            raise ValueError("breaker_open_timeout_seconds must be >= 0")
        if self.breaker_half_open_max_successes < 1:
            raise ValueError("breaker_half_open_max_successes must be >= 1")
        if self.chunk_max_tokens < 1:
            raise ValueError("chunk_max_tokens must be >= 1")
        if self.chunk_overlap_tokens < 0:
            raise ValueError("chunk_overlap_tokens must be >= 0")
        if self.chunk_overlap_tokens >= self.chunk_max_tokens:
            raise ValueError("chunk_overlap_tokens must be < chunk_max_tokens")
        if self.ollama_timeout_seconds <= 0:
            raise ValueError("ollama_timeout_seconds must be > 0")
        return self

    def configure_logging(self) -> structlog.stdlib.BoundLogger:
        """Configure process logging at the configured level."""
        return configure_structlog(log_level=self.log_level)

    def breaker_config(self) -> CircuitBreakerConfig:
        """Build the circuit breaker configuration."""
        return CircuitBreakerConfig(
            max_failures=self.breaker_max_failures,
            open_timeout=self.breaker_open_timeout_seconds,
            half_open_max_successes=self.breaker_half_open_max_successes,
        )

    def segmenter(self) -> TextSegmenter:
        """Build a segmenter with the configured token budgets."""
        return TextSegmenter(
            max_tokens=self.chunk_max_tokens,
            overlap_tokens=self.chunk_overlap_tokens,
        )
