import logging

import pytest
from rich.console import Console
from typer.testing import CliRunner

from reststub import __version__
from reststub.cli import main as cli_main
from reststub.cli.main import app
from reststub.core.logging import get_logger


runner = CliRunner()

USERS = "tests.helpers.sample_services:UsersApi"


@pytest.fixture
def wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_main, "console", Console(width=200))
    monkeypatch.setattr(cli_main, "err_console", Console(width=200, stderr=True))


@pytest.mark.unit
def test_version() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"reststub {__version__}" in result.output


@pytest.mark.unit
def test_check_valid_interface(wide_console: None) -> None:
    result = runner.invoke(app, ["check", USERS])

    assert result.exit_code == 0, result.output
    assert f"OK {USERS}: 11 endpoint(s)" in result.output


@pytest.mark.unit
@pytest.mark.parametrize(
    "target",
    [
        "tests.helpers.sample_services:BrokenPlaceholderApi",
        "tests.helpers.sample_services:TwoBodiesApi",
        "tests.helpers.sample_services:MissingVerbApi",
    ],
)
def test_check_invalid_interface(wide_console: None, target: str) -> None:
    result = runner.invoke(app, ["check", target])

    assert result.exit_code == 1
    assert "Invalid interface" in result.output


@pytest.mark.unit
@pytest.mark.parametrize(
    "target",
    [
        "no_colon_here",
        "tests.helpers.does_not_exist:Api",
        "tests.helpers.sample_services:Nope",
        "tests.helpers.sample_services:BASE_URL",
    ],
)
def test_check_bad_target(target: str) -> None:
    result = runner.invoke(app, ["check", target])

    assert result.exit_code == 2


@pytest.mark.unit
def test_inspect_lists_templates(wide_console: None) -> None:
    result = runner.invoke(app, ["inspect", USERS])

    assert result.exit_code == 0, result.output
    assert "users (https://api.example.test/v1)" in result.output
    assert "/teams/{team}/members/{member_id}" in result.output
    assert "path:member_id" in result.output
    assert "query:tag?" in result.output
    assert "page [User]" in result.output


@pytest.mark.unit
def test_inspect_uses_configured_base_url(wide_console: None, tmp_path) -> None:
    cfg = tmp_path / "config.toml"
    cfg.write_text('[services.users]\nbase_url = "https://staging.test"\n')

    result = runner.invoke(app, ["--config", str(cfg), "inspect", USERS])

    assert result.exit_code == 0, result.output
    assert "users (https://staging.test)" in result.output


@pytest.mark.unit
def test_invalid_config_file(wide_console: None, tmp_path) -> None:
    cfg = tmp_path / "config.toml"
    cfg.write_text("[http\n")

    result = runner.invoke(app, ["--config", str(cfg), "check", USERS])

    assert result.exit_code == 2
    assert "Configuration error" in result.output


@pytest.mark.unit
def test_logging_usable_after_invocation() -> None:
    result = runner.invoke(app, ["--log-level", "debug", "check", USERS])
    assert result.exit_code == 0, result.output

    bound = get_logger("reststub.tests").bind()
    assert isinstance(bound._logger, logging.Logger)
    bound.info("after_cli_invocation")
