"""Declarative markers attached to service interfaces.

Interfaces are plain classes whose ``async def`` methods carry a verb
decorator. Parameters are bound with ``typing.Annotated`` markers::

    @service(base_url="https://api.example.com")
    class UsersApi:
        @get("/users/{id}")
        async def get_user(self, id: int) -> User: ...

        @get("/users")
        async def list_users(
            self,
            page: Annotated[int, Query()] = 0,
            active: Annotated[bool | None, Query()] = None,
        ) -> Page[User]: ...

        @post("/users")
        async def create_user(self, user: Annotated[User, Body()]) -> User: ...
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from reststub.core.models import UNSET, BindingKind, HttpMethod, ReturnShape


__all__ = [
    "EndpointSpec",
    "ServiceSpec",
    "Path",
    "Query",
    "Body",
    "Header",
    "route",
    "get",
    "post",
    "put",
    "patch",
    "delete",
    "service",
    "ENDPOINT_ATTR",
    "SERVICE_ATTR",
]

ENDPOINT_ATTR = "__reststub_endpoint__"
SERVICE_ATTR = "__reststub_service__"

F = TypeVar("F", bound=Callable[..., Any])
C = TypeVar("C", bound=type)


@dataclass(frozen=True)
class EndpointSpec:
    method: HttpMethod
    path: str
    timeout: float | None = None
    idempotent: bool | None = None
    shape: ReturnShape | None = None


@dataclass(frozen=True)
class ServiceSpec:
    base_url: str
    name: str


@dataclass(frozen=True)
class ParamMarker:
    """Base for parameter binding markers used inside ``Annotated``."""

    kind: BindingKind
    name: str | None = None
    required: bool | None = None
    default: Any = UNSET


def Path(name: str | None = None) -> ParamMarker:  # noqa: N802
    return ParamMarker(BindingKind.PATH, name=name, required=True)


def Query(  # noqa: N802
    name: str | None = None,
    *,
    default: Any = UNSET,
    required: bool | None = None,
) -> ParamMarker:
    """Bind a parameter to a query-string pair.

    Args:
        name: Wire name, defaults to the parameter name
        default: Value sent when the call passes ``None`` or omits the argument
        required: Fail with ``BindingError`` when no value is available
    """
    return ParamMarker(BindingKind.QUERY, name=name, required=required, default=default)


def Body() -> ParamMarker:  # noqa: N802
    return ParamMarker(BindingKind.BODY, required=False)


def Header(name: str, *, default: Any = UNSET, required: bool = False) -> ParamMarker:  # noqa: N802
    return ParamMarker(BindingKind.HEADER, name=name, required=required, default=default)


def route(
    method: HttpMethod | str,
    path: str,
    *,
    timeout: float | None = None,
    idempotent: bool | None = None,
    shape: ReturnShape | None = None,
) -> Callable[[F], F]:
    """Attach HTTP verb and path metadata to an interface method.

    Args:
        method: HTTP verb
        path: Path pattern with ``{name}`` placeholders
        timeout: Per-attempt timeout overriding the engine default
        idempotent: Override whether the call may be retried automatically
        shape: Force a return shape instead of inferring it from the annotation
    """
    spec = EndpointSpec(
        method=HttpMethod(method.upper() if isinstance(method, str) else method),
        path=path,
        timeout=timeout,
        idempotent=idempotent,
        shape=shape,
    )

    def decorator(func: F) -> F:
        setattr(func, ENDPOINT_ATTR, spec)
        return func

    return decorator


def get(path: str, **kwargs: Any) -> Callable[[F], F]:
    return route(HttpMethod.GET, path, **kwargs)


def post(path: str, **kwargs: Any) -> Callable[[F], F]:
    return route(HttpMethod.POST, path, **kwargs)


def put(path: str, **kwargs: Any) -> Callable[[F], F]:
    return route(HttpMethod.PUT, path, **kwargs)


def patch(path: str, **kwargs: Any) -> Callable[[F], F]:
    return route(HttpMethod.PATCH, path, **kwargs)


def delete(path: str, **kwargs: Any) -> Callable[[F], F]:
    return route(HttpMethod.DELETE, path, **kwargs)


def service(base_url: str, *, name: str | None = None) -> Callable[[C], C]:
    """Record the base URL of a service interface."""

    def decorator(cls: C) -> C:
        setattr(cls, SERVICE_ATTR, ServiceSpec(base_url=base_url, name=name or cls.__name__))
        return cls

    return decorator
