"""Verifier settings and logging configuration."""

from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from oidc_verify.cache import DEFAULT_MAX_AGE_SECONDS, DEFAULT_MAX_ENTRIES
from oidc_verify.rate_limit import DEFAULT_REQUESTS_PER_MINUTE
from oidc_verify.verifier import DEFAULT_ALLOWED_ALGORITHMS, check_allowed_algorithms

_LOG_CONTEXT: dict[str, str] = {"environment": "development", "service": "oidc-verify"}


class AppSettings(BaseModel):
    """Process identity and logging settings."""

    environment: Literal["development", "staging", "production"] = "development"
    service: str = "oidc-verify"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"


class JWKSSettings(BaseModel):
    """Identity provider key-set and verification policy settings."""

    uri: str | None = Field(default=None, description="Provider JWKS endpoint URL.")
    allowed_algorithms: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_ALGORITHMS))
    cache_max_age_seconds: float = Field(default=DEFAULT_MAX_AGE_SECONDS, gt=0)
    cache_max_entries: int = Field(default=DEFAULT_MAX_ENTRIES, ge=1)
    requests_per_minute: int = Field(default=DEFAULT_REQUESTS_PER_MINUTE, ge=1)
    fetch_timeout_seconds: float = Field(default=5.0, gt=0, le=30)
    leeway_seconds: float = Field(default=0, ge=0)
    issuer: str | None = None
    audience: str | None = None

    @field_validator("uri")
    @classmethod
    def validate_http_uri(cls, value: str | None) -> str | None:
        """Ensure the JWKS endpoint uses http or https."""
        if value is not None and not value.startswith(("https://", "http://")):
            raise ValueError("jwks.uri must start with 'https://' or 'http://'.")
        return value

    @field_validator("allowed_algorithms")
    @classmethod
    def validate_algorithms(cls, value: list[str]) -> list[str]:
        """Reject empty, unsigned and symmetric algorithm allow-lists."""
        return list(check_allowed_algorithms(value))


class Settings(BaseSettings):
    """Root settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=AppSettings)
    jwks: JWKSSettings = Field(default_factory=JWKSSettings)


def _standard_log_fields(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Inject required structured logging fields."""
    event_dict.setdefault("environment", _LOG_CONTEXT["environment"])
    event_dict.setdefault("service", _LOG_CONTEXT["service"])
    event_dict.setdefault("timestamp", datetime.now(UTC).isoformat())
    return event_dict


def configure_structlog(settings: Settings) -> None:
    """Configure structlog for JSON output on stderr with required fields."""
    _LOG_CONTEXT["environment"] = settings.app.environment
    _LOG_CONTEXT["service"] = settings.app.service

    log_level = getattr(logging, settings.app.log_level, logging.WARNING)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _standard_log_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Load and cache settings from environment variables."""
    return Settings()
