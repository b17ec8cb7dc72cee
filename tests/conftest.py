"""Shared test configuration for reststub tests.

Fixtures work with real components and replace only the network: the
transport is an ``httpx.MockTransport`` or pytest-httpx.
"""

import pytest

from reststub.core.logging import setup_logging


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom settings."""
    config.option.asyncio_mode = "auto"

    # Reuse the application logging pipeline so structlog processors behave
    # identically in tests.
    setup_logging(json_logs=False, log_level_name="DEBUG")
