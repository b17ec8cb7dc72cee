"""Data model shared by the resolver, builder, executor and transformer."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, RootModel


T = TypeVar("T")


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class BindingKind(str, Enum):
    """Part of the HTTP request a method parameter is bound to."""

    PATH = "path"
    QUERY = "query"
    BODY = "body"
    HEADER = "header"


class ReturnShape(str, Enum):
    """How a response body is turned into the method's return value."""

    OBJECT = "object"
    LIST = "list"
    PAGE = "page"
    AGGREGATE = "aggregate"
    CUSTOM = "custom"
    VOID = "void"


class _Unset:
    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class ParameterBinding:
    """Maps one method parameter onto one part of the request.

    ``parameter`` is the Python parameter name, ``name`` the wire name
    (placeholder, query key or header name).
    """

    kind: BindingKind
    name: str
    parameter: str
    required: bool = True
    default: Any = UNSET

    @property
    def has_default(self) -> bool:
        return self.default is not UNSET


@dataclass(frozen=True)
class RequestTemplate:
    """Resolved, immutable description of how to call one endpoint."""

    method_id: str
    http_method: HttpMethod
    path: str
    bindings: tuple[ParameterBinding, ...]
    return_shape: ReturnShape
    result_type: Any = None
    timeout: float | None = None
    idempotent: bool | None = None
    placeholders: tuple[str, ...] = ()

    def bindings_of(self, kind: BindingKind) -> tuple[ParameterBinding, ...]:
        return tuple(b for b in self.bindings if b.kind is kind)

    @property
    def body_binding(self) -> ParameterBinding | None:
        bodies = self.bindings_of(BindingKind.BODY)
        return bodies[0] if bodies else None


@dataclass(frozen=True)
class HttpRequest:
    """A fully concrete request, built fresh for every call."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes | None = None


@dataclass
class HttpResponse:
    """Raw response as delivered by the transport."""

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""
    url: str | None = None
    attempts: int = 1
    elapsed_ms: float = 0.0

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")


class Page(BaseModel, Generic[T]):
    """A slice of items plus pagination metadata.

    Wire field names are fixed: ``items``, ``totalCount``, ``page``, ``size``.
    """

    model_config = ConfigDict(frozen=True)

    items: list[T]
    total_count: int = Field(alias="totalCount", ge=0)
    page: int = Field(ge=0)
    size: int = Field(ge=0)

    def __len__(self) -> int:
        return len(self.items)

    @property
    def total_pages(self) -> int:
        if self.size == 0:
            return 0
        return -(-self.total_count // self.size)

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages


class Aggregate(RootModel[dict[str, int | float]]):
    """Mapping from group key to count or value."""

    def __getitem__(self, key: str) -> int | float:
        return self.root[key]

    def __contains__(self, key: object) -> bool:
        return key in self.root

    def __len__(self) -> int:
        return len(self.root)

    def keys(self) -> list[str]:
        return list(self.root)

    @property
    def total(self) -> int | float:
        return sum(self.root.values())
