"""CLI test configuration."""

from collections.abc import Generator

import pytest

from reststub.core.logging import setup_logging


@pytest.fixture(autouse=True)
def restore_logging() -> Generator[None, None, None]:
    """Reattach logging to the real stderr after ``CliRunner`` swaps it."""
    yield
    setup_logging(json_logs=False, log_level_name="DEBUG")
