"""Dispatch engine: runs every interface-method call through the pipeline.

RESOLVING -> BUILDING -> EXECUTING -> TRANSFORMING -> DONE, or FAILED from
any state. Only the resolved templates outlive a call.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any, TypeVar

import httpx
import structlog

from reststub.config.settings import Settings
from reststub.core.errors import MetadataError, ServiceError
from reststub.core.logging import get_logger
from reststub.core.models import HttpRequest, RequestTemplate
from reststub.dispatch.context import CallContext, TokenSource
from reststub.dispatch.registry import ServiceDescriptor, ServiceRegistry
from reststub.metadata.resolver import MetadataResolver
from reststub.request.builder import RequestBuilder
from reststub.request.encoders import BodyEncoder
from reststub.response.converters import ConverterRegistry
from reststub.response.transformer import ResponseTransformer
from reststub.transport.client import HTTPClientFactory
from reststub.transport.executor import Sleep, TransportExecutor
from reststub.transport.retry import RetryPolicy


logger = get_logger(__name__)

S = TypeVar("S")

DEFAULT_TIMEOUT = 30.0


class DispatchState(str, Enum):
    RESOLVING = "resolving"
    BUILDING = "building"
    EXECUTING = "executing"
    TRANSFORMING = "transforming"
    DONE = "done"
    FAILED = "failed"


class DispatchEngine:
    """Orchestrates resolver, builder, executor and transformer.

    Args:
        client: Async HTTP client used as transport
        retry_policy: Retry configuration shared by every call
        timeout: Default per-attempt timeout in seconds
        token_source: Credential source used when a call context has none
        converters: Converters for CUSTOM return shapes
        encoder: Body encoder (JSON by default)
        settings: Settings providing per-service base URL overrides
        sleep: Backoff sleep, replaceable in tests
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = DEFAULT_TIMEOUT,
        token_source: TokenSource | None = None,
        converters: ConverterRegistry | None = None,
        encoder: BodyEncoder | None = None,
        settings: Settings | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self.token_source = token_source
        self.converters = converters or ConverterRegistry()
        self.settings = settings
        self.resolver = MetadataResolver(self.converters)
        self.builder = RequestBuilder(encoder)
        self.executor = TransportExecutor(client, sleep=sleep)
        self.transformer = ResponseTransformer(self.converters)
        self._owns_client = False
        self.registry = ServiceRegistry(self)

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        **kwargs: Any,
    ) -> "DispatchEngine":
        """Build an engine (and, unless given, its HTTP client) from settings."""
        settings = settings or Settings()
        owns_client = client is None
        if client is None:
            client = HTTPClientFactory.create_client(settings.http)
        engine = cls(
            client,
            retry_policy=settings.retry.to_policy(),
            timeout=settings.http.timeout,
            settings=settings,
            **kwargs,
        )
        engine._owns_client = owns_client
        return engine

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "DispatchEngine":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def register(
        self, interface: type, *, base_url: str | None = None, name: str | None = None
    ) -> ServiceDescriptor:
        """Register ``interface``; see :meth:`ServiceRegistry.register`."""
        return self.registry.register(interface, base_url=base_url, name=name)

    def create(
        self,
        interface: type[S],
        *,
        context: CallContext | None = None,
        base_url: str | None = None,
    ) -> S:
        """Return a stub implementing ``interface``, registering it if needed."""
        return self.registry.create(interface, context=context, base_url=base_url)

    async def invoke(
        self,
        descriptor: ServiceDescriptor,
        method_name: str,
        arguments: Mapping[str, Any],
        context: CallContext | None = None,
    ) -> Any:
        """Dispatch one interface-method call.

        Args:
            descriptor: Registered :class:`ServiceDescriptor`
            method_name: Name of the interface method
            arguments: Call-time values keyed by parameter name
            context: Caller's logical request context

        Returns:
            The transformed result for the method's declared return shape

        Raises:
            ServiceError: The most specific error kind for the failing stage
        """
        context = context or CallContext()
        method_id = f"{descriptor.name}.{method_name}"
        log = logger.bind(method=method_id)
        state = DispatchState.RESOLVING
        request: HttpRequest | None = None

        with structlog.contextvars.bound_contextvars(
            request_id=context.request_id, **context.metadata
        ):
            log.debug("dispatch_started", service=descriptor.name)
            try:
                template = self._resolve(descriptor, method_name)

                state = DispatchState.BUILDING
                token = await context.resolve_token(self.token_source)
                request = self.builder.build(
                    template, arguments, descriptor.base_url, token
                )
                log.debug(
                    "dispatch_request_built",
                    http_method=request.method,
                    url=request.url,
                    authenticated=token is not None,
                )

                state = DispatchState.EXECUTING
                response = await self.executor.execute(
                    request,
                    self.retry_policy,
                    self._timeout_for(template, context),
                    idempotent=template.idempotent,
                )

                state = DispatchState.TRANSFORMING
                result = self.transformer.transform(response, template)

                state = DispatchState.DONE
                log.debug(
                    "dispatch_completed",
                    status_code=response.status_code,
                    attempts=response.attempts,
                    shape=template.return_shape.value,
                )
                return result
            except ServiceError as e:
                e.with_context(
                    method=method_id, url=request.url if request else None
                )
                e.details.setdefault("failed_at", state.value)
                state = DispatchState.FAILED
                log.warning(
                    "dispatch_failed",
                    state=state.value,
                    failed_at=e.details["failed_at"],
                    error_kind=e.kind.value,
                    status_code=e.status_code,
                    url=e.url,
                    error=e.message,
                )
                raise

    def _resolve(self, descriptor: ServiceDescriptor, method_name: str) -> RequestTemplate:
        template = descriptor.templates.get(method_name)
        if template is None:
            raise MetadataError(
                f"'{method_name}' is not an endpoint of service '{descriptor.name}'"
            )
        return template

    def _timeout_for(
        self, template: RequestTemplate, context: CallContext
    ) -> float | None:
        if context.timeout is not None:
            return context.timeout
        if template.timeout is not None:
            return template.timeout
        return self.timeout
