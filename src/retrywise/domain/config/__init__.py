"""Configuration models with Pydantic validation."""

from retrywise.domain.config.app import AppConfig
from retrywise.domain.config.http import HttpConfig
from retrywise.domain.config.retry import RetryConfig, RetryProfilesConfig

__all__ = [
    "AppConfig",
    "HttpConfig",
    "RetryConfig",
    "RetryProfilesConfig",
]
