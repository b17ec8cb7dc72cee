"""reststub - declarative HTTP client engine.

Declare a service interface with annotated ``async def`` methods, register
it with a :class:`DispatchEngine`, and call the generated stub.
"""

from ._version import __version__
from .config.settings import Settings
from .core.errors import (
    ApiError,
    BindingError,
    DeserializationError,
    ErrorKind,
    MetadataError,
    ServiceError,
    TimeoutError,
    TransportError,
)
from .core.models import (
    Aggregate,
    BindingKind,
    HttpMethod,
    HttpRequest,
    HttpResponse,
    Page,
    ParameterBinding,
    RequestTemplate,
    ReturnShape,
)
from .dispatch.context import CallContext
from .dispatch.engine import DispatchEngine, DispatchState
from .dispatch.registry import ServiceDescriptor, ServiceStub
from .metadata.annotations import (
    Body,
    Header,
    Path,
    Query,
    delete,
    get,
    patch,
    post,
    put,
    route,
    service,
)
from .request.encoders import FormEncoder, JsonEncoder
from .response.converters import ConverterRegistry
from .transport.retry import BackoffStrategy, RetryPolicy


__all__ = [
    "__version__",
    "Aggregate",
    "ApiError",
    "BackoffStrategy",
    "BindingError",
    "BindingKind",
    "Body",
    "CallContext",
    "ConverterRegistry",
    "DeserializationError",
    "DispatchEngine",
    "DispatchState",
    "ErrorKind",
    "FormEncoder",
    "Header",
    "HttpMethod",
    "HttpRequest",
    "HttpResponse",
    "JsonEncoder",
    "MetadataError",
    "Page",
    "ParameterBinding",
    "Path",
    "Query",
    "RequestTemplate",
    "RetryPolicy",
    "ReturnShape",
    "ServiceDescriptor",
    "ServiceError",
    "ServiceStub",
    "Settings",
    "TimeoutError",
    "TransportError",
    "delete",
    "get",
    "patch",
    "post",
    "put",
    "route",
    "service",
]
