"""Body encoders selectable per engine."""

from collections.abc import Mapping
from dataclasses import asdict, is_dataclass
from datetime import date, time
from enum import Enum
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote, urlencode

from pydantic import BaseModel
from pydantic_core import PydanticSerializationError, to_json, to_jsonable_python

from reststub.core.errors import BindingError


def format_scalar(value: Any) -> str:
    """Canonical string form for path segments, query values and form fields."""
    if isinstance(value, Enum):
        return format_scalar(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, bytes):
        return value.decode("utf-8")
    if isinstance(value, date | time):
        return value.isoformat()
    return str(value)


@runtime_checkable
class BodyEncoder(Protocol):
    """Serializes a BODY-bound argument."""

    content_type: str

    def encode(self, value: Any) -> bytes:
        """Encode ``value`` into request body bytes.

        Raises:
            BindingError: If the value cannot be serialized
        """
        ...


class JsonEncoder:
    """Compact, deterministic JSON. Pydantic models and dataclasses are supported."""

    content_type = "application/json"

    def encode(self, value: Any) -> bytes:
        try:
            return to_json(value, by_alias=True)
        except (PydanticSerializationError, TypeError, ValueError) as e:
            raise BindingError(
                f"Cannot serialize body of type {type(value).__name__}: {e}"
            ) from e


class FormEncoder:
    """``application/x-www-form-urlencoded`` bodies from mappings or models."""

    content_type = "application/x-www-form-urlencoded"

    def encode(self, value: Any) -> bytes:
        if isinstance(value, BaseModel):
            fields = value.model_dump(mode="json", by_alias=True, exclude_none=True)
        elif is_dataclass(value) and not isinstance(value, type):
            fields = to_jsonable_python(asdict(value))
        elif isinstance(value, Mapping):
            fields = dict(value)
        else:
            raise BindingError(
                f"Form bodies need a mapping or model, got {type(value).__name__}"
            )

        pairs: list[tuple[str, str]] = []
        for key, item in fields.items():
            if item is None:
                continue
            if isinstance(item, list | tuple):
                pairs.extend((str(key), format_scalar(v)) for v in item)
            else:
                pairs.append((str(key), format_scalar(item)))
        return urlencode(pairs, quote_via=quote).encode("ascii")
