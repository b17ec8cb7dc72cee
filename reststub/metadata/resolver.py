"""Metadata resolution: interface method -> :class:`RequestTemplate`."""

import inspect
import re
import threading
import types
import typing
from collections.abc import Callable, Hashable, Sequence
from typing import Annotated, Any, Union, get_args, get_origin

from pydantic import PydanticUserError, TypeAdapter

from reststub.core.errors import MetadataError
from reststub.core.logging import get_logger
from reststub.core.models import (
    UNSET,
    Aggregate,
    BindingKind,
    Page,
    ParameterBinding,
    RequestTemplate,
    ReturnShape,
)
from reststub.metadata.annotations import ENDPOINT_ATTR, EndpointSpec, ParamMarker
from reststub.response.converters import ConverterRegistry


logger = get_logger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{([^{}]*)\}")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_SELF_NAMES = ("self", "cls")


class TemplateCache:
    """Read-mostly cache computing each key at most once.

    Lookups of resolved keys take no lock. A miss takes a per-key lock so
    concurrent first callers for the same method wait for a single
    computation instead of racing.
    """

    def __init__(self) -> None:
        self._values: dict[Hashable, RequestTemplate] = {}
        self._locks: dict[Hashable, threading.Lock] = {}
        self._guard = threading.Lock()

    def get_or_compute(
        self, key: Hashable, factory: Callable[[], RequestTemplate]
    ) -> RequestTemplate:
        value = self._values.get(key)
        if value is not None:
            return value

        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())

        with lock:
            value = self._values.get(key)
            if value is None:
                value = factory()
                self._values[key] = value
                logger.debug("template_cached", method=value.method_id)
        return value

    def get(self, key: Hashable) -> RequestTemplate | None:
        return self._values.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)


class MetadataResolver:
    """Turns decorated interface methods into request templates.

    Resolution is pure and deterministic; results are cached by method
    identity for the lifetime of the resolver.
    """

    def __init__(
        self,
        converters: ConverterRegistry | None = None,
        cache: TemplateCache | None = None,
    ) -> None:
        self.converters = converters or ConverterRegistry()
        self.cache = cache or TemplateCache()

    def resolve(self, method: Callable[..., Any]) -> RequestTemplate:
        """Return the cached template for ``method``, resolving it on first use.

        Raises:
            MetadataError: If the method definition is malformed
        """
        func = inspect.unwrap(method)
        return self.cache.get_or_compute(func, lambda: self.build_template(func))

    def build_template(self, func: Callable[..., Any]) -> RequestTemplate:
        method_id = f"{func.__module__}.{func.__qualname__}"
        spec: EndpointSpec | None = getattr(func, ENDPOINT_ATTR, None)
        if spec is None or not spec.path:
            raise MetadataError(
                "Interface method has no HTTP verb/path declaration",
                method=method_id,
            )
        if not inspect.iscoroutinefunction(func):
            raise MetadataError(
                "Interface methods must be declared with 'async def'",
                method=method_id,
            )

        placeholders = _parse_placeholders(spec.path, method_id)

        try:
            hints = typing.get_type_hints(func, include_extras=True)
        except (NameError, TypeError) as e:
            raise MetadataError(
                f"Cannot evaluate type annotations: {e}", method=method_id
            ) from e

        bindings = tuple(_bindings_for(func, hints, placeholders, method_id))
        _validate_bindings(bindings, placeholders, method_id)

        return_shape, result_type = self._infer_shape(
            hints.get("return", inspect.Signature.empty), spec
        )
        _check_result_schema(return_shape, result_type, method_id)

        template = RequestTemplate(
            method_id=method_id,
            http_method=spec.method,
            path=spec.path,
            bindings=bindings,
            return_shape=return_shape,
            result_type=result_type,
            timeout=spec.timeout,
            idempotent=spec.idempotent,
            placeholders=placeholders,
        )
        logger.debug(
            "template_resolved",
            method=method_id,
            http_method=spec.method.value,
            path=spec.path,
            shape=return_shape.value,
            bindings=len(bindings),
        )
        return template

    def _infer_shape(
        self, annotation: Any, spec: EndpointSpec
    ) -> tuple[ReturnShape, Any]:
        if annotation is inspect.Signature.empty:
            return spec.shape or ReturnShape.OBJECT, Any

        annotation = _strip_annotated(annotation)

        if spec.shape is not None:
            if spec.shape is ReturnShape.PAGE:
                return spec.shape, _page_item_type(annotation)
            if spec.shape is ReturnShape.LIST and get_origin(annotation) is not None:
                return spec.shape, _first_arg(annotation)
            return spec.shape, annotation

        if annotation is None or annotation is type(None):
            return ReturnShape.VOID, None
        if self.converters.has(annotation):
            return ReturnShape.CUSTOM, annotation

        origin = get_origin(annotation)
        if origin in (list, tuple, Sequence):
            return ReturnShape.LIST, _first_arg(annotation)
        if origin is dict and _is_numeric(get_args(annotation)[1:]):
            return ReturnShape.AGGREGATE, annotation
        if origin is None and inspect.isclass(annotation):
            if issubclass(annotation, Page):
                return ReturnShape.PAGE, _page_item_type(annotation)
            if issubclass(annotation, Aggregate):
                return ReturnShape.AGGREGATE, Aggregate
        return ReturnShape.OBJECT, annotation


def _check_result_schema(
    shape: ReturnShape, result_type: Any, method_id: str
) -> None:
    if shape not in (ReturnShape.OBJECT, ReturnShape.LIST, ReturnShape.PAGE):
        return
    try:
        if shape is ReturnShape.LIST:
            TypeAdapter(list[result_type])  # type: ignore[valid-type]
        elif shape is ReturnShape.PAGE:
            TypeAdapter(Page[result_type])  # type: ignore[valid-type]
        else:
            TypeAdapter(result_type)
    except PydanticUserError as e:
        raise MetadataError(
            f"Return type {result_type!r} has no validation schema; "
            "register a converter for it",
            method=method_id,
        ) from e


def _parse_placeholders(path: str, method_id: str) -> tuple[str, ...]:
    names: list[str] = []
    for name in _PLACEHOLDER_RE.findall(path):
        if not _IDENTIFIER_RE.match(name):
            raise MetadataError(
                f"Invalid path placeholder '{{{name}}}' in '{path}'", method=method_id
            )
        if name not in names:
            names.append(name)
    stripped = _PLACEHOLDER_RE.sub("", path)
    if "{" in stripped or "}" in stripped:
        raise MetadataError(f"Unbalanced braces in path '{path}'", method=method_id)
    return tuple(names)


def _bindings_for(
    func: Callable[..., Any],
    hints: dict[str, Any],
    placeholders: tuple[str, ...],
    method_id: str,
) -> list[ParameterBinding]:
    params = list(inspect.signature(func).parameters.values())
    if params and params[0].name in _SELF_NAMES:
        params = params[1:]

    bindings: list[ParameterBinding] = []
    for param in params:
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            raise MetadataError(
                f"Variadic parameter '{param.name}' cannot be bound",
                method=method_id,
            )
        marker = _find_marker(hints.get(param.name))
        bindings.append(_binding_for(param, marker, placeholders, method_id))
    return bindings


def _binding_for(
    param: inspect.Parameter,
    marker: ParamMarker | None,
    placeholders: tuple[str, ...],
    method_id: str,
) -> ParameterBinding:
    python_default = (
        param.default
        if param.default is not param.empty and param.default is not None
        else UNSET
    )
    has_python_default = param.default is not param.empty

    if marker is None:
        kind = BindingKind.PATH if param.name in placeholders else BindingKind.QUERY
        marker = ParamMarker(kind)

    if marker.kind is BindingKind.PATH:
        return ParameterBinding(
            kind=BindingKind.PATH,
            name=marker.name or param.name,
            parameter=param.name,
            required=True,
        )

    if marker.kind is BindingKind.BODY:
        return ParameterBinding(
            kind=BindingKind.BODY,
            name=param.name,
            parameter=param.name,
            required=False,
        )

    if marker.kind is BindingKind.HEADER and not marker.name:
        raise MetadataError(
            f"Header binding for '{param.name}' needs a header name",
            method=method_id,
        )

    default = marker.default if marker.default is not UNSET else python_default
    required = (
        marker.required
        if marker.required is not None
        else (not has_python_default and default is UNSET)
    )
    return ParameterBinding(
        kind=marker.kind,
        name=marker.name or param.name,
        parameter=param.name,
        required=required,
        default=default,
    )


def _validate_bindings(
    bindings: tuple[ParameterBinding, ...],
    placeholders: tuple[str, ...],
    method_id: str,
) -> None:
    path_names = [b.name for b in bindings if b.kind is BindingKind.PATH]
    for name in placeholders:
        count = path_names.count(name)
        if count == 0:
            raise MetadataError(
                f"Path placeholder '{{{name}}}' has no PATH-bound parameter",
                method=method_id,
            )
        if count > 1:
            raise MetadataError(
                f"Path placeholder '{{{name}}}' is bound more than once",
                method=method_id,
            )
    for name in path_names:
        if name not in placeholders:
            raise MetadataError(
                f"PATH-bound parameter '{name}' has no placeholder in the path",
                method=method_id,
            )
    if sum(1 for b in bindings if b.kind is BindingKind.BODY) > 1:
        raise MetadataError("More than one BODY binding declared", method=method_id)


def _find_marker(annotation: Any) -> ParamMarker | None:
    if get_origin(annotation) is Annotated:
        for extra in annotation.__metadata__:
            if isinstance(extra, ParamMarker):
                return extra
    return None


def _strip_annotated(annotation: Any) -> Any:
    if get_origin(annotation) is Annotated:
        return get_args(annotation)[0]
    return annotation


def _first_arg(annotation: Any) -> Any:
    args = get_args(annotation)
    return args[0] if args else Any


def _page_item_type(annotation: Any) -> Any:
    metadata = getattr(annotation, "__pydantic_generic_metadata__", None) or {}
    args = metadata.get("args") or ()
    return args[0] if args else Any


def _is_numeric(args: tuple[Any, ...]) -> bool:
    if not args:
        return False
    value_type = args[0]
    if get_origin(value_type) in (Union, types.UnionType):
        return all(t in (int, float) for t in get_args(value_type))
    return value_type in (int, float)
