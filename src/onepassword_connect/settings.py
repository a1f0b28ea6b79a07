from __future__ import annotations

from urllib.parse import urlsplit

from pydantic import SecretStr, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from onepassword_connect.circuit_breaker import CircuitBreakerConfig
from onepassword_connect.classify import (
    StatusPredicate,
    is_retryable_outcome,
    retryable_status_predicate,
)
from onepassword_connect.logging import get_log_level_value
from onepassword_connect.retry import RetryBackoffPolicy

ENV_PREFIX = "OP_CONNECT_"
DEFAULT_BASE_URL = "http://localhost:8080"


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class ConnectSettings(BaseSettings):
    """Connection, retry and circuit breaker settings for the Connect API.

    Values are read from ``OP_CONNECT_*`` environment variables unless passed
    explicitly, and validated once at construction.
    """

    model_config = prefixed_settings_config(ENV_PREFIX)

    base_url: str = DEFAULT_BASE_URL
    api_token: SecretStr
    timeout_seconds: float = 30.0
    retry_count: int = 3
    circuit_breaker_failure_threshold: int = 5
    circuit_breaker_break_duration_seconds: float = 30.0
    retry_on_too_many_requests: bool = False
    log_level: str = "INFO"

    @field_validator("base_url", mode="before")
    @classmethod
    def _validate_base_url(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip()
        parsed = urlsplit(normalized)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError("base_url must be an absolute http(s) URL")
        return normalized.rstrip("/")

    @field_validator("api_token", mode="after")
    @classmethod
    def _validate_api_token(cls, value: SecretStr) -> SecretStr:
        token = value.get_secret_value().strip()
        if not token:
            raise ValueError("api_token must be non-empty")
        return SecretStr(token)

    @field_validator(
        "timeout_seconds",
        "circuit_breaker_failure_threshold",
        "circuit_breaker_break_duration_seconds",
    )
    @classmethod
    def _validate_positive(cls, value: float, info: ValidationInfo) -> float:
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("retry_count")
    @classmethod
    def _validate_retry_count(cls, value: int) -> int:
        if value < 0:
            raise ValueError("retry_count must be >= 0")
        return value

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        get_log_level_value(value)
        return value.strip().upper()

    def retry_policy(self) -> RetryBackoffPolicy:
        """Build the retry policy: 2s, 4s, 8s... for ``retry_count`` retries."""
        return RetryBackoffPolicy(max_retries=self.retry_count)

    def breaker_config(self) -> CircuitBreakerConfig:
        """Build the breaker config counting exhausted transient failures."""
        return CircuitBreakerConfig(
            failure_threshold=self.circuit_breaker_failure_threshold,
            recovery_timeout=self.circuit_breaker_break_duration_seconds,
            failure_predicate=is_retryable_outcome,
        )

    def retryable_status(self) -> StatusPredicate:
        return retryable_status_predicate(
            include_too_many_requests=self.retry_on_too_many_requests
        )
