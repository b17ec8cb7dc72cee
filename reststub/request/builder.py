"""Request builder: template + arguments -> concrete :class:`HttpRequest`."""

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote, urlencode

from reststub.core.errors import BindingError
from reststub.core.logging import get_logger
from reststub.core.models import (
    UNSET,
    BindingKind,
    HttpRequest,
    ParameterBinding,
    RequestTemplate,
)
from reststub.request.encoders import BodyEncoder, JsonEncoder, format_scalar


logger = get_logger(__name__)


class RequestBuilder:
    """Builds a fresh request for every call. Performs no I/O.

    Args:
        encoder: Serializer for BODY-bound arguments (JSON by default)
        default_headers: Headers added to every request before bindings
    """

    def __init__(
        self,
        encoder: BodyEncoder | None = None,
        default_headers: Mapping[str, str] | None = None,
    ) -> None:
        self.encoder = encoder or JsonEncoder()
        self.default_headers = dict(default_headers or {"Accept": "application/json"})

    def build(
        self,
        template: RequestTemplate,
        arguments: Mapping[str, Any],
        base_url: str,
        auth_token: str | None = None,
    ) -> HttpRequest:
        """Build the concrete request for one call.

        Args:
            template: Resolved request template
            arguments: Call-time values keyed by Python parameter name
            base_url: Service base URL, already substituted
            auth_token: Bearer token from the credential source, if any

        Returns:
            The request to hand to the transport

        Raises:
            BindingError: If a required argument is missing or cannot be encoded
        """
        path = self._substitute_path(template, arguments)
        url = _join_url(base_url, path)
        query = self._assemble_query(template, arguments)
        if query:
            url = f"{url}{'&' if '?' in url else '?'}{query}"

        headers = dict(self.default_headers)
        headers.update(self._collect_headers(template, arguments))

        content = self._encode_body(template, arguments)
        if content is not None:
            headers["Content-Type"] = self.encoder.content_type

        if auth_token:
            _check_header_value(auth_token, "bearer token", template)
            headers["Authorization"] = f"Bearer {auth_token}"

        return HttpRequest(
            method=template.http_method.value,
            url=url,
            headers=headers,
            content=content,
        )

    def _substitute_path(
        self, template: RequestTemplate, arguments: Mapping[str, Any]
    ) -> str:
        path = template.path
        for binding in template.bindings_of(BindingKind.PATH):
            value = arguments.get(binding.parameter)
            if value is None:
                raise BindingError(
                    f"Missing required path argument '{binding.parameter}'",
                    method=template.method_id,
                )
            segment = _stringify(value, binding, template)
            if not segment:
                raise BindingError(
                    f"Path argument '{binding.parameter}' is empty",
                    method=template.method_id,
                )
            path = path.replace("{" + binding.name + "}", quote(segment, safe=""))
        return path

    def _assemble_query(
        self, template: RequestTemplate, arguments: Mapping[str, Any]
    ) -> str:
        pairs: list[tuple[str, str]] = []
        for binding in template.bindings_of(BindingKind.QUERY):
            value = _value_or_default(binding, arguments, template)
            if value is UNSET:
                continue
            if isinstance(value, list | tuple):
                pairs.extend(
                    (binding.name, _stringify(v, binding, template)) for v in value
                )
            elif isinstance(value, set | frozenset):
                pairs.extend(
                    (binding.name, s)
                    for s in sorted(_stringify(v, binding, template) for v in value)
                )
            else:
                pairs.append((binding.name, _stringify(value, binding, template)))
        return urlencode(pairs, quote_via=quote)

    def _collect_headers(
        self, template: RequestTemplate, arguments: Mapping[str, Any]
    ) -> dict[str, str]:
        headers: dict[str, str] = {}
        for binding in template.bindings_of(BindingKind.HEADER):
            value = _value_or_default(binding, arguments, template)
            if value is UNSET:
                continue
            text = _stringify(value, binding, template)
            _check_header_value(text, f"argument '{binding.parameter}'", template)
            headers[binding.name] = text
        return headers

    def _encode_body(
        self, template: RequestTemplate, arguments: Mapping[str, Any]
    ) -> bytes | None:
        binding = template.body_binding
        if binding is None:
            return None
        value = arguments.get(binding.parameter)
        if value is None:
            return None
        try:
            return self.encoder.encode(value)
        except BindingError as e:
            raise e.with_context(method=template.method_id)


def _value_or_default(
    binding: ParameterBinding,
    arguments: Mapping[str, Any],
    template: RequestTemplate,
) -> Any:
    value = arguments.get(binding.parameter)
    if value is not None:
        return value
    if binding.has_default:
        return binding.default
    if binding.required:
        raise BindingError(
            f"Missing required {binding.kind.value} argument '{binding.parameter}'",
            method=template.method_id,
        )
    return UNSET


def _stringify(
    value: Any, binding: ParameterBinding, template: RequestTemplate
) -> str:
    try:
        return format_scalar(value)
    except Exception as e:
        raise BindingError(
            f"Cannot convert argument '{binding.parameter}' to a string: {e}",
            method=template.method_id,
        ) from e


def _check_header_value(
    text: str, label: str, template: RequestTemplate
) -> None:
    try:
        text.encode("ascii")
    except UnicodeEncodeError as e:
        raise BindingError(
            f"Header value from {label} contains non-ASCII characters",
            method=template.method_id,
        ) from e


def _join_url(base_url: str, path: str) -> str:
    if not base_url:
        return path
    if not path:
        return base_url
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"
