"""Service registration and stub generation.

Registering an interface resolves every endpoint eagerly so a malformed
definition fails before any call is attempted. Each registered interface
gets a generated ``<Interface>Stub`` class whose methods forward to the
dispatch engine with their own identity and bound arguments.
"""

import functools
import inspect
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeVar

from reststub.core.errors import BindingError, MetadataError
from reststub.core.logging import get_logger
from reststub.core.models import RequestTemplate
from reststub.dispatch.context import CallContext
from reststub.metadata.annotations import ENDPOINT_ATTR, SERVICE_ATTR, ServiceSpec


if TYPE_CHECKING:
    from reststub.dispatch.engine import DispatchEngine


logger = get_logger(__name__)

S = TypeVar("S")


@dataclass(frozen=True)
class ServiceDescriptor:
    """One registered interface: its base URL and per-method templates."""

    name: str
    interface: type
    base_url: str
    templates: Mapping[str, RequestTemplate]
    stub_class: type


class ServiceStub:
    """Base class of generated stubs."""

    _descriptor: ServiceDescriptor
    _engine: "DispatchEngine"

    def __init__(
        self,
        engine: "DispatchEngine",
        descriptor: ServiceDescriptor,
        context: CallContext | None = None,
    ) -> None:
        self._engine = engine
        self._descriptor = descriptor
        self._context = context

    @property
    def service_descriptor(self) -> ServiceDescriptor:
        return self._descriptor

    def with_context(self, context: CallContext) -> "ServiceStub":
        """Return a stub of the same service bound to ``context``."""
        return type(self)(self._engine, self._descriptor, context)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} base_url={self._descriptor.base_url!r}>"


class ServiceRegistry:
    """Process-wide registry of service descriptors owned by an engine."""

    def __init__(self, engine: "DispatchEngine") -> None:
        self.engine = engine
        self._descriptors: dict[tuple[type, str], ServiceDescriptor] = {}
        self._lock = threading.Lock()

    def register(
        self,
        interface: type,
        *,
        base_url: str | None = None,
        name: str | None = None,
    ) -> ServiceDescriptor:
        """Register ``interface`` and resolve all of its endpoints.

        Args:
            interface: Class declaring endpoint methods
            base_url: Base URL overriding configuration and the declared one
            name: Service name, defaults to the declared or class name

        Returns:
            The immutable descriptor for the interface

        Raises:
            MetadataError: If the interface definition is malformed
        """
        spec: ServiceSpec | None = getattr(interface, SERVICE_ATTR, None)
        service_name = name or (spec.name if spec else interface.__name__)
        resolved_url = self._base_url(service_name, spec, base_url)

        key = (interface, resolved_url)
        existing = self._descriptors.get(key)
        if existing is not None:
            return existing

        endpoints = endpoint_methods(interface, service_name)
        templates = {
            method_name: self.engine.resolver.resolve(func)
            for method_name, func in endpoints.items()
        }

        descriptor = ServiceDescriptor(
            name=service_name,
            interface=interface,
            base_url=resolved_url,
            templates=MappingProxyType(templates),
            stub_class=_build_stub_class(interface, endpoints),
        )

        with self._lock:
            descriptor = self._descriptors.setdefault(key, descriptor)

        logger.info(
            "service_registered",
            service=service_name,
            base_url=resolved_url,
            endpoints=len(templates),
        )
        return descriptor

    def create(
        self,
        interface: type[S],
        *,
        context: CallContext | None = None,
        base_url: str | None = None,
    ) -> S:
        """Instantiate the generated stub for ``interface``."""
        descriptor = self.register(interface, base_url=base_url)
        stub: S = descriptor.stub_class(self.engine, descriptor, context)
        return stub

    def descriptors(self) -> list[ServiceDescriptor]:
        return list(self._descriptors.values())

    def _base_url(
        self, service_name: str, spec: ServiceSpec | None, explicit: str | None
    ) -> str:
        if explicit:
            return explicit
        declared = spec.base_url if spec else ""
        settings = self.engine.settings
        resolved = settings.base_url_for(service_name, declared) if settings else declared
        if not resolved:
            raise MetadataError(
                f"Service '{service_name}' has no base URL: declare one with "
                "@service(base_url=...), configure services.<name>.base_url, "
                "or pass base_url when registering"
            )
        return resolved


def endpoint_methods(interface: type, service_name: str) -> dict[str, Callable[..., Any]]:
    """Collect endpoint methods, failing on public async methods with no verb."""
    endpoints: dict[str, Callable[..., Any]] = {}
    for klass in reversed(interface.__mro__):
        if klass is object:
            continue
        for attr_name, attr in vars(klass).items():
            if not inspect.isfunction(attr):
                continue
            if hasattr(attr, ENDPOINT_ATTR):
                endpoints[attr_name] = attr
            elif inspect.iscoroutinefunction(attr) and not attr_name.startswith("_"):
                raise MetadataError(
                    f"Async method '{attr_name}' has no HTTP verb/path declaration",
                    method=f"{service_name}.{attr_name}",
                )
    if not endpoints:
        raise MetadataError(f"Service '{service_name}' declares no endpoints")
    return endpoints


def _build_stub_class(
    interface: type, endpoints: Mapping[str, Callable[..., Any]]
) -> type:
    namespace: dict[str, Any] = {
        name: _make_stub_method(name, func) for name, func in endpoints.items()
    }
    namespace["__module__"] = interface.__module__
    namespace["__qualname__"] = f"{interface.__qualname__}Stub"
    return type(f"{interface.__name__}Stub", (ServiceStub, interface), namespace)


def _make_stub_method(name: str, func: Callable[..., Any]) -> Callable[..., Any]:
    signature = inspect.signature(func)
    self_name = next(iter(signature.parameters), None)

    async def stub_method(self: ServiceStub, *args: Any, **kwargs: Any) -> Any:
        try:
            bound = signature.bind(self, *args, **kwargs)
        except TypeError as e:
            raise BindingError(
                f"Invalid arguments: {e}",
                method=f"{self._descriptor.name}.{name}",
            ) from e
        bound.apply_defaults()
        arguments = dict(bound.arguments)
        arguments.pop(self_name, None)
        return await self._engine.invoke(
            self._descriptor, name, arguments, self._context
        )

    functools.update_wrapper(stub_method, func)
    return stub_method
