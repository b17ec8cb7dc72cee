"""HTTP client construction for the transport executor.

The engine does not pool connections itself; it relies on one shared
``httpx.AsyncClient`` built here.
"""

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import httpx

from reststub.config.settings import HTTPSettings
from reststub.core.logging import get_logger


logger = get_logger(__name__)


class HTTPClientFactory:
    """Factory for the async HTTP clients used by reststub."""

    @staticmethod
    def create_client(
        settings: HTTPSettings | None = None,
        **kwargs: Any,
    ) -> httpx.AsyncClient:
        """Create an ``httpx.AsyncClient`` configured from ``settings``.

        Args:
            settings: HTTP settings; defaults are used when omitted
            **kwargs: Additional ``httpx.AsyncClient`` arguments (e.g. ``transport``)

        Returns:
            Configured client
        """
        settings = settings or HTTPSettings()

        timeout = httpx.Timeout(
            settings.timeout,
            connect=settings.connect_timeout,
        )
        limits = httpx.Limits(
            max_keepalive_connections=settings.max_keepalive_connections,
            max_connections=settings.max_connections,
        )

        if "transport" not in kwargs:
            verify: bool | str = settings.verify
            if verify is True:
                verify = _get_ssl_context()
            kwargs["transport"] = httpx.AsyncHTTPTransport(
                limits=limits,
                http2=settings.http2,
                verify=verify,
                proxy=_get_proxy_url(),
            )

        headers = dict(settings.default_headers)
        if "headers" in kwargs:
            headers.update(kwargs.pop("headers"))

        logger.info(
            "http_client_created",
            timeout=settings.timeout,
            connect_timeout=settings.connect_timeout,
            max_connections=settings.max_connections,
            max_keepalive_connections=settings.max_keepalive_connections,
            http2=settings.http2,
        )
        return httpx.AsyncClient(timeout=timeout, headers=headers, **kwargs)

    @staticmethod
    @asynccontextmanager
    async def managed_client(
        settings: HTTPSettings | None = None, **kwargs: Any
    ) -> AsyncGenerator[httpx.AsyncClient, None]:
        """Create a client and close it on exit.

        Example:
            async with HTTPClientFactory.managed_client() as client:
                engine = DispatchEngine(client)
        """
        client = HTTPClientFactory.create_client(settings, **kwargs)
        try:
            yield client
        finally:
            await client.aclose()
            logger.debug("http_client_closed")


def _get_proxy_url() -> str | None:
    """Proxy URL from the standard environment variables, if any."""
    https_proxy = os.environ.get("HTTPS_PROXY") or os.environ.get("https_proxy")
    all_proxy = os.environ.get("ALL_PROXY")
    http_proxy = os.environ.get("HTTP_PROXY") or os.environ.get("http_proxy")

    proxy_url = https_proxy or all_proxy or http_proxy
    if proxy_url:
        logger.debug("proxy_configured", proxy_url=proxy_url)
    return proxy_url


def _get_ssl_context() -> str | bool:
    """SSL verification setting: CA bundle path, True, or False when disabled."""
    ca_bundle = os.environ.get("REQUESTS_CA_BUNDLE") or os.environ.get("SSL_CERT_FILE")
    ssl_verify = os.environ.get("SSL_VERIFY", "true").lower()

    if ca_bundle and Path(ca_bundle).exists():
        logger.info("ssl_ca_bundle_configured", ca_bundle_path=ca_bundle)
        return ca_bundle
    if ssl_verify in ("false", "0", "no"):
        logger.warning("ssl_verification_disabled", ssl_verify_value=ssl_verify)
        return False
    return True
