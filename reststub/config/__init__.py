"""Configuration for reststub."""

from .settings import (
    ConfigurationError,
    HTTPSettings,
    LoggingSettings,
    RetrySettings,
    ServiceSettings,
    Settings,
)


__all__ = [
    "ConfigurationError",
    "HTTPSettings",
    "LoggingSettings",
    "RetrySettings",
    "ServiceSettings",
    "Settings",
]
