"""Transport executor: sends requests with per-attempt timeouts and retries."""

import asyncio
import builtins
import time
from collections.abc import Awaitable, Callable

import httpx

from reststub.core import errors
from reststub.core.logging import get_logger
from reststub.core.models import HttpRequest, HttpResponse
from reststub.transport.retry import RetryPolicy


logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class TransportExecutor:
    """Executes :class:`HttpRequest` objects through an ``httpx.AsyncClient``.

    Any delivered response, whatever its status, is a success here. Status
    interpretation belongs to the response transformer. Independent calls
    share only the client's connection pool, so concurrent callers never
    wait on each other, and backoff only suspends the calling task.

    Args:
        client: Shared async HTTP client (owns connection pooling)
        sleep: Awaitable used for backoff, replaceable in tests
    """

    def __init__(self, client: httpx.AsyncClient, *, sleep: Sleep | None = None) -> None:
        self.client = client
        self._sleep = sleep or asyncio.sleep

    async def execute(
        self,
        request: HttpRequest,
        retry_policy: RetryPolicy,
        timeout: float | None,
        *,
        idempotent: bool | None = None,
    ) -> HttpResponse:
        """Send ``request``, retrying per ``retry_policy``.

        Args:
            request: Fully built request
            retry_policy: Retry and backoff configuration
            timeout: Seconds allowed for each attempt, ``None`` for no limit
            idempotent: Endpoint-level override of the policy's verb rules

        Returns:
            The delivered response, carrying the number of attempts made

        Raises:
            TransportError: Network failure on the last permitted attempt
            TimeoutError: The last permitted attempt timed out
        """
        retry_allowed = retry_policy.allows_retry(request.method, idempotent)
        max_attempts = retry_policy.max_attempts if retry_allowed else 1

        attempt = 0
        while True:
            attempt += 1
            started = time.perf_counter()
            try:
                async with asyncio.timeout(timeout):
                    raw = await self.client.request(
                        request.method,
                        request.url,
                        headers=request.headers,
                        content=request.content,
                        timeout=httpx.USE_CLIENT_DEFAULT
                        if timeout is None
                        else httpx.Timeout(timeout),
                    )
            except (builtins.TimeoutError, httpx.TimeoutException) as e:
                failure: errors.ServiceError = errors.TimeoutError(
                    f"Request timed out after {timeout}s",
                    url=request.url,
                    details={"attempts": attempt},
                )
                failure.__cause__ = e
                retryable = retry_policy.retry_on_timeout
            except httpx.TransportError as e:
                failure = errors.TransportError(
                    f"Transport failure: {e.__class__.__name__}: {e}",
                    url=request.url,
                    details={"attempts": attempt},
                )
                failure.__cause__ = e
                retryable = retry_policy.retry_on_connection_error
            except (httpx.RequestError, httpx.InvalidURL) as e:
                failure = errors.TransportError(
                    f"Request failed: {e.__class__.__name__}: {e}",
                    url=request.url,
                    details={"attempts": attempt},
                )
                failure.__cause__ = e
                retryable = False
            else:
                elapsed_ms = (time.perf_counter() - started) * 1000
                response = HttpResponse(
                    status_code=raw.status_code,
                    headers={k.lower(): v for k, v in raw.headers.items()},
                    content=raw.content,
                    url=str(raw.request.url),
                    attempts=attempt,
                    elapsed_ms=elapsed_ms,
                )
                if (
                    retry_policy.is_retryable_status(raw.status_code)
                    and attempt < max_attempts
                ):
                    await self._backoff(
                        request, retry_policy, attempt, status_code=raw.status_code
                    )
                    continue

                logger.debug(
                    "transport_response_received",
                    http_method=request.method,
                    url=request.url,
                    status_code=raw.status_code,
                    attempts=attempt,
                    elapsed_ms=round(elapsed_ms, 2),
                )
                return response

            if not retryable or attempt >= max_attempts:
                logger.warning(
                    "transport_failed",
                    http_method=request.method,
                    url=request.url,
                    error_kind=failure.kind.value,
                    attempts=attempt,
                    retry_allowed=retry_allowed,
                )
                raise failure
            await self._backoff(request, retry_policy, attempt, error=failure)

    async def _backoff(
        self,
        request: HttpRequest,
        retry_policy: RetryPolicy,
        attempt: int,
        *,
        status_code: int | None = None,
        error: errors.ServiceError | None = None,
    ) -> None:
        delay = retry_policy.delay_for(attempt)
        logger.info(
            "transport_attempt_retrying",
            http_method=request.method,
            url=request.url,
            attempt=attempt,
            status_code=status_code,
            error_kind=error.kind.value if error else None,
            delay=delay,
        )
        await self._sleep(delay)

