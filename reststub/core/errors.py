"""Error taxonomy for reststub.

Every failure surfaced to a caller is a :class:`ServiceError`. Callers tell
failures apart through ``kind`` and ``status_code`` rather than by matching
on messages.
"""

from enum import Enum
from typing import Any


__all__ = [
    "ErrorKind",
    "ServiceError",
    "MetadataError",
    "BindingError",
    "TransportError",
    "TimeoutError",
    "ApiError",
    "DeserializationError",
]


class ErrorKind(str, Enum):
    """Category of a dispatch failure."""

    METADATA = "metadata"
    BINDING = "binding"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    API = "api"
    DESERIALIZATION = "deserialization"


class ServiceError(Exception):
    """Base exception for every reststub failure.

    Args:
        message: Human-readable description
        kind: Error category
        status_code: HTTP status code, when a response was received
        body: Decoded response body, when a response was received
        method: Identity of the interface method being dispatched
        url: URL of the attempted request
        details: Extra diagnostic context
    """

    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        status_code: int | None = None,
        body: Any = None,
        method: str | None = None,
        url: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.status_code = status_code
        self.body = body
        self.method = method
        self.url = url
        self.details = details or {}

    def with_context(
        self, *, method: str | None = None, url: str | None = None
    ) -> "ServiceError":
        """Attach call diagnostics without overwriting values already set."""
        if self.method is None:
            self.method = method
        if self.url is None:
            self.url = url
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "status_code": self.status_code,
            "body": self.body,
            "method": self.method,
            "url": self.url,
            "details": self.details,
        }

    def __str__(self) -> str:
        parts = [self.message]
        if self.method:
            parts.append(f"method={self.method}")
        if self.url:
            parts.append(f"url={self.url}")
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        return " ".join(parts)


class MetadataError(ServiceError):
    """Raised when an interface definition is malformed."""

    kind = ErrorKind.METADATA


class BindingError(ServiceError):
    """Raised when a call-time argument is missing or cannot be bound."""

    kind = ErrorKind.BINDING


class TransportError(ServiceError):
    """Raised when the request could not be delivered."""

    kind = ErrorKind.TRANSPORT


class TimeoutError(ServiceError):  # noqa: A001
    """Raised when an attempt exceeded its timeout."""

    kind = ErrorKind.TIMEOUT


class ApiError(ServiceError):
    """Raised when the endpoint answered with an error status (>= 400)."""

    kind = ErrorKind.API

    def __init__(self, status_code: int, body: Any = None, **kwargs: Any) -> None:
        message = kwargs.pop("message", None) or f"HTTP {status_code}"
        super().__init__(message, status_code=status_code, body=body, **kwargs)

    @property
    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500

    @property
    def is_server_error(self) -> bool:
        return self.status_code is not None and self.status_code >= 500


class DeserializationError(ServiceError):
    """Raised when a response body does not match the declared return shape."""

    kind = ErrorKind.DESERIALIZATION
