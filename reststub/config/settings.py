"""Settings for reststub, loaded from environment, ``.env`` and TOML files."""

import os
import tomllib
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from reststub.core.logging import get_logger
from reststub.core.models import HttpMethod
from reststub.transport.retry import BackoffStrategy, RetryPolicy


__all__ = [
    "ConfigurationError",
    "HTTPSettings",
    "LoggingSettings",
    "RetrySettings",
    "ServiceSettings",
    "Settings",
]


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


class HTTPSettings(BaseModel):
    """HTTP client configuration settings."""

    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-attempt timeout in seconds",
    )

    connect_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Connection establishment timeout in seconds",
    )

    max_connections: int = Field(
        default=100,
        ge=1,
        description="Max total concurrent connections",
    )

    max_keepalive_connections: int = Field(
        default=20,
        ge=0,
        description="Max keep-alive connections kept for reuse",
    )

    http2: bool = Field(
        default=False,
        description="Enable HTTP/2 (requires the h2 package)",
    )

    verify: bool | str = Field(
        default=True,
        description="SSL verification (True/False or path to CA bundle)",
    )

    default_headers: dict[str, str] = Field(
        default_factory=lambda: {"User-Agent": "reststub"},
        description="Headers sent with every request",
    )


class RetrySettings(BaseModel):
    """Retry configuration turned into a :class:`RetryPolicy`."""

    max_attempts: int = Field(default=3, ge=1)
    backoff: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    initial_delay: float = Field(default=0.1, ge=0)
    max_delay: float = Field(default=2.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    jitter: bool = False
    retryable_status_codes: list[int] = Field(default_factory=lambda: [502, 503, 504])
    retry_on_connection_error: bool = True
    retry_on_timeout: bool = True
    idempotent_methods: list[HttpMethod] = Field(
        default_factory=lambda: [HttpMethod.GET, HttpMethod.PUT, HttpMethod.DELETE]
    )
    retry_non_idempotent: bool = Field(
        default=False,
        description="Allow automatic retries of POST/PATCH requests",
    )

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            backoff=self.backoff,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            multiplier=self.multiplier,
            jitter=self.jitter,
            retryable_status_codes=frozenset(self.retryable_status_codes),
            retry_on_connection_error=self.retry_on_connection_error,
            retry_on_timeout=self.retry_on_timeout,
            idempotent_methods=frozenset(self.idempotent_methods),
            retry_non_idempotent=self.retry_non_idempotent,
        )


class LoggingSettings(BaseModel):
    level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    format: str = Field(
        default="console",
        description="Logging output format: 'console' or 'json'",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        lower = v.lower()
        if lower not in {"console", "json"}:
            raise ValueError(f"Invalid log format: {v}")
        return lower


class ServiceSettings(BaseModel):
    """Per-service overrides keyed by service name."""

    base_url: str = Field(description="Base URL replacing the interface's declared one")


class Settings(BaseSettings):
    """
    Configuration settings for reststub.

    Settings are loaded from environment variables, .env files, and an optional
    TOML configuration file. Keyword overrides take precedence over environment
    variables and `.env` entries, which take precedence over TOML values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    http: HTTPSettings = Field(
        default_factory=HTTPSettings,
        description="HTTP client configuration settings",
    )

    retry: RetrySettings = Field(
        default_factory=RetrySettings,
        description="Retry policy configuration",
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration",
    )

    services: dict[str, ServiceSettings] = Field(
        default_factory=dict,
        description="Per-service settings keyed by service name",
    )

    def base_url_for(self, service_name: str, declared: str) -> str:
        """Configured base URL for ``service_name``, falling back to ``declared``."""
        service = self.services.get(service_name)
        return service.base_url if service else declared

    @classmethod
    def load_toml_config(cls, toml_path: Path) -> dict[str, Any]:
        """Load configuration from a TOML file."""
        try:
            with toml_path.open("rb") as f:
                return tomllib.load(f)
        except OSError as e:
            raise ConfigurationError(f"Cannot read TOML config file {toml_path}: {e}") from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML syntax in {toml_path}: {e}") from e

    @classmethod
    def from_config(
        cls,
        config_path: Path | str | None = None,
        **kwargs: Any,
    ) -> "Settings":
        """Create Settings from a TOML file, the environment and overrides."""
        if config_path is None:
            config_path_env = os.environ.get("RESTSTUB_CONFIG")
            if config_path_env:
                config_path = Path(config_path_env)

        if isinstance(config_path, str):
            config_path = Path(config_path)

        config_data: dict[str, Any] = {}
        if config_path is not None:
            if not config_path.exists():
                raise ConfigurationError(f"Config file not found: {config_path}")
            config_data = cls.load_toml_config(config_path)
            get_logger(__name__).info("config_file_loaded", path=str(config_path))

        try:
            settings = cls()
            merged = _merge_without_env(
                settings.model_dump(), config_data, _environment_keys(cls), prefix=""
            )
            merged = _deep_merge(merged, kwargs)
            return cls.model_validate(merged)
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e


def _environment_keys(settings_cls: type[BaseSettings]) -> set[str]:
    """Upper-cased names set by the process environment or the ``.env`` file."""
    keys = {key.upper() for key in os.environ}
    env_file = settings_cls.model_config.get("env_file")
    if isinstance(env_file, str | Path) and Path(env_file).is_file():
        keys.update(key.upper() for key in dotenv_values(env_file))
    return keys


def _merge_without_env(
    base: dict[str, Any], overlay: dict[str, Any], env_keys: set[str], prefix: str
) -> dict[str, Any]:
    """Merge ``overlay`` into ``base`` unless the environment sets the key."""
    result = dict(base)
    for key, value in overlay.items():
        env_key = f"{prefix}{key}".upper()
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge_without_env(
                result[key], value, env_keys, f"{env_key}__"
            )
        elif env_key not in env_keys:
            result[key] = value
    return result


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
