"""Registry of user-supplied converters for CUSTOM return shapes."""

import threading
from collections.abc import Callable
from typing import Any, TypeVar

from reststub.core.logging import get_logger
from reststub.core.models import HttpResponse


logger = get_logger(__name__)

T = TypeVar("T")

Converter = Callable[[HttpResponse], Any]


class ConverterRegistry:
    """Maps a declared return type to the function that builds it from a response."""

    def __init__(self) -> None:
        self._converters: dict[Any, Converter] = {}
        self._lock = threading.Lock()

    def register(self, result_type: Any, converter: Converter) -> None:
        with self._lock:
            self._converters[result_type] = converter
        logger.debug(
            "converter_registered",
            result_type=getattr(result_type, "__name__", repr(result_type)),
        )

    def converter(self, result_type: type[T]) -> Callable[[Converter], Converter]:
        """Decorator form of :meth:`register`."""

        def decorator(func: Converter) -> Converter:
            self.register(result_type, func)
            return func

        return decorator

    def has(self, result_type: Any) -> bool:
        try:
            return result_type in self._converters
        except TypeError:
            return False

    def get(self, result_type: Any) -> Converter | None:
        try:
            return self._converters.get(result_type)
        except TypeError:
            return None
