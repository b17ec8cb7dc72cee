"""Response transformer: raw :class:`HttpResponse` -> declared return shape."""

import json
import threading
import types
from typing import Any, Union, get_args, get_origin

from pydantic import TypeAdapter, ValidationError

from reststub.core.errors import ApiError, DeserializationError, ServiceError
from reststub.core.logging import get_logger
from reststub.core.models import (
    Aggregate,
    HttpResponse,
    Page,
    RequestTemplate,
    ReturnShape,
)
from reststub.response.converters import ConverterRegistry


logger = get_logger(__name__)

AGGREGATE_KEY_FIELD = "key"
AGGREGATE_VALUE_FIELDS = ("count", "value")


class ResponseTransformer:
    """Converts responses into the shape declared by a request template.

    Args:
        converters: Registry consulted for CUSTOM return shapes
    """

    def __init__(self, converters: ConverterRegistry | None = None) -> None:
        self.converters = converters or ConverterRegistry()
        self._adapters: dict[Any, TypeAdapter[Any]] = {}
        self._lock = threading.Lock()

    def transform(self, response: HttpResponse, template: RequestTemplate) -> Any:
        """Convert ``response`` according to ``template``.

        Raises:
            ApiError: If the status code is 400 or above
            DeserializationError: If the body does not fit the declared shape
        """
        if response.is_error:
            raise ApiError(
                response.status_code,
                body=decode_error_body(response.content),
                url=response.url,
                details={"headers": response.headers, "raw_body": response.content},
            )

        shape = template.return_shape
        if shape is ReturnShape.VOID:
            return None
        if shape is ReturnShape.CUSTOM:
            return self._convert_custom(response, template)

        if not response.content.strip():
            if shape is ReturnShape.OBJECT and _admits_none(template.result_type):
                return None
            raise DeserializationError(
                f"Empty response body cannot be read as {shape.value}",
                status_code=response.status_code,
                url=response.url,
            )

        if shape is ReturnShape.OBJECT:
            return self._validate(template.result_type, response)
        if shape is ReturnShape.LIST:
            return self._validate(list[template.result_type], response)  # type: ignore[name-defined]
        if shape is ReturnShape.PAGE:
            return self._validate(Page[template.result_type], response)  # type: ignore[name-defined]
        if shape is ReturnShape.AGGREGATE:
            return self._transform_aggregate(response, template)

        raise DeserializationError(f"Unsupported return shape {shape!r}")

    def _adapter(self, target: Any) -> TypeAdapter[Any]:
        try:
            adapter = self._adapters.get(target)
        except TypeError:
            # unhashable annotation
            return TypeAdapter(target)
        if adapter is None:
            adapter = TypeAdapter(target)
            with self._lock:
                self._adapters.setdefault(target, adapter)
        return adapter

    def _validate(self, target: Any, response: HttpResponse) -> Any:
        try:
            return self._adapter(target).validate_json(response.content)
        except ValidationError as e:
            raise DeserializationError(
                f"Response body does not match {_type_name(target)}",
                status_code=response.status_code,
                body=_preview(response.content),
                url=response.url,
                details={"errors": e.errors(include_url=False)},
            ) from e

    def _transform_aggregate(
        self, response: HttpResponse, template: RequestTemplate
    ) -> Any:
        try:
            data = json.loads(response.content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DeserializationError(
                f"Aggregate body is not valid JSON: {e}",
                status_code=response.status_code,
                url=response.url,
            ) from e

        if isinstance(data, list):
            data = _groups_to_mapping(data, response)

        target = template.result_type or Aggregate
        try:
            return self._adapter(target).validate_python(data)
        except ValidationError as e:
            raise DeserializationError(
                "Response body is not a group-key to number mapping",
                status_code=response.status_code,
                body=_preview(response.content),
                url=response.url,
                details={"errors": e.errors(include_url=False)},
            ) from e

    def _convert_custom(
        self, response: HttpResponse, template: RequestTemplate
    ) -> Any:
        converter = self.converters.get(template.result_type)
        if converter is None:
            raise DeserializationError(
                f"No converter registered for {_type_name(template.result_type)}",
                url=response.url,
            )
        try:
            return converter(response)
        except ServiceError:
            raise
        except Exception as e:
            raise DeserializationError(
                f"Converter for {_type_name(template.result_type)} failed: {e}",
                status_code=response.status_code,
                body=_preview(response.content),
                url=response.url,
            ) from e


def _admits_none(annotation: Any) -> bool:
    if annotation is Any or annotation is None or annotation is type(None):
        return True
    if get_origin(annotation) in (Union, types.UnionType):
        return type(None) in get_args(annotation)
    return False


def decode_error_body(content: bytes) -> Any:
    """Decode an error body as JSON when possible, otherwise as text."""
    if not content:
        return None
    try:
        return json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return content.decode("utf-8", errors="replace")


def _groups_to_mapping(groups: list[Any], response: HttpResponse) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for group in groups:
        if not isinstance(group, dict) or AGGREGATE_KEY_FIELD not in group:
            raise DeserializationError(
                "Aggregate list entries must be objects with a 'key' field",
                status_code=response.status_code,
                url=response.url,
            )
        value_field = next((f for f in AGGREGATE_VALUE_FIELDS if f in group), None)
        if value_field is None:
            raise DeserializationError(
                "Aggregate list entries need a 'count' or 'value' field",
                status_code=response.status_code,
                url=response.url,
            )
        mapping[str(group[AGGREGATE_KEY_FIELD])] = group[value_field]
    return mapping


def _preview(content: bytes, limit: int = 512) -> str:
    return content[:limit].decode("utf-8", errors="replace")


def _type_name(target: Any) -> str:
    return getattr(target, "__name__", None) or repr(target)
