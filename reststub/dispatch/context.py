"""Per-call context passed explicitly into the dispatch engine."""

import inspect
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any

from reststub.core.errors import BindingError


TokenSource = Callable[[], str | None | Awaitable[str | None]]


@dataclass(frozen=True)
class CallContext:
    """Logical request context of the caller.

    Carries the credential used for outgoing calls. Templates are cached
    across contexts, so the token is read when the request is built,
    never at resolution time.

    Attributes:
        token: Bearer token to send, takes precedence over ``token_source``
        token_source: Zero-argument callable (sync or async) returning a token
        timeout: Per-attempt timeout overriding the engine default
        request_id: Correlation id bound to every log event of the call
        metadata: Free-form values bound to log events
    """

    token: str | None = None
    token_source: TokenSource | None = None
    timeout: float | None = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    metadata: dict[str, Any] = field(default_factory=dict)

    def with_token(self, token: str | None) -> "CallContext":
        return replace(self, token=token)

    async def resolve_token(self, fallback: TokenSource | None = None) -> str | None:
        """Consult the credential source once. A missing token is not an error."""
        if self.token:
            return self.token
        source = self.token_source or fallback
        if source is None:
            return None
        try:
            token = source()
            if inspect.isawaitable(token):
                token = await token
        except Exception as e:
            raise BindingError(f"Credential source failed: {e}") from e
        return token or None
