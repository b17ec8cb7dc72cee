"""Structured logging setup built on structlog."""

import logging
import sys
from typing import Any

import structlog


_NOISY_LOGGERS = ("httpx", "httpcore", "hpack")
_REDACTED_KEYS = frozenset({"authorization", "token", "auth_token"})


def _redact_credentials(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    for key in list(event_dict):
        if key.lower() in _REDACTED_KEYS and event_dict[key] is not None:
            event_dict[key] = "***"
    return event_dict


def setup_logging(
    json_logs: bool = False,
    log_level_name: str = "INFO",
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        json_logs: Render events as JSON lines instead of console output
        log_level_name: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = getattr(logging, log_level_name.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_credentials,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        processors.append(structlog.processors.format_exc_info)
    processors.append(renderer)

    # Rendered events are emitted through the stdlib root handler.
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]
