"""Retry policy for the transport executor."""

import random
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from reststub.core.models import HttpMethod


class BackoffStrategy(str, Enum):
    CONSTANT = "constant"
    EXPONENTIAL = "exponential"


class RetryPolicy(BaseModel):
    """Process-wide retry configuration, read-only during dispatch.

    Defaults: three attempts, exponential backoff starting at 100ms capped
    at 2s, retries on connection failures, timeouts and 502/503/504.
    POST and PATCH are never retried unless ``retry_non_idempotent`` is set
    or the endpoint is declared idempotent.
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    backoff: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    initial_delay: float = Field(default=0.1, ge=0)
    max_delay: float = Field(default=2.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    jitter: bool = False
    retryable_status_codes: frozenset[int] = frozenset({502, 503, 504})
    retry_on_connection_error: bool = True
    retry_on_timeout: bool = True
    idempotent_methods: frozenset[HttpMethod] = frozenset(
        {HttpMethod.GET, HttpMethod.PUT, HttpMethod.DELETE}
    )
    retry_non_idempotent: bool = False

    @classmethod
    def no_retry(cls) -> "RetryPolicy":
        return cls(max_attempts=1)

    def allows_retry(self, method: HttpMethod | str, idempotent: bool | None = None) -> bool:
        """Whether a request with this verb may be sent more than once."""
        if self.max_attempts <= 1:
            return False
        if idempotent is not None:
            return idempotent
        if self.retry_non_idempotent:
            return True
        return HttpMethod(method) in self.idempotent_methods

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in self.retryable_status_codes

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following ``attempt`` (1-based)."""
        if self.backoff is BackoffStrategy.CONSTANT:
            delay = self.initial_delay
        else:
            delay = self.initial_delay * (self.multiplier ** (attempt - 1))
        delay = min(delay, self.max_delay)
        if self.jitter and delay > 0:
            delay = random.uniform(0, delay)
        return delay
