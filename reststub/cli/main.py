"""Command line interface for inspecting and validating service interfaces."""

import importlib
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from reststub._version import __version__
from reststub.config.settings import ConfigurationError, Settings
from reststub.core.errors import MetadataError
from reststub.core.logging import get_logger, setup_logging
from reststub.core.models import RequestTemplate
from reststub.dispatch.registry import endpoint_methods
from reststub.metadata.annotations import SERVICE_ATTR
from reststub.metadata.resolver import MetadataResolver


console = Console()
err_console = Console(stderr=True)

logger = get_logger(__name__)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"reststub {__version__}")
        raise typer.Exit()


app = typer.Typer(
    rich_markup_mode="rich",
    add_completion=False,
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)


@app.callback()
def app_main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a TOML configuration file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    log_level: str | None = typer.Option(
        None, "--log-level", help="Override the configured log level"
    ),
) -> None:
    """reststub - declarative HTTP client engine."""
    try:
        overrides = {"logging": {"level": log_level}} if log_level else {}
        settings = Settings.from_config(config_path=config, **overrides)
    except ConfigurationError as e:
        err_console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(2) from e

    setup_logging(
        json_logs=settings.logging.format == "json",
        log_level_name=settings.logging.level,
    )
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


def load_interface(target: str) -> type:
    """Import ``module:Attribute`` and return the interface class."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise typer.BadParameter(f"Expected MODULE:ATTR, got '{target}'")
    if "" not in sys.path:
        sys.path.insert(0, "")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise typer.BadParameter(f"Cannot import '{module_name}': {e}") from e
    obj = module
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise typer.BadParameter(f"'{module_name}' has no attribute '{attr}'") from e
    if not isinstance(obj, type):
        raise typer.BadParameter(f"'{target}' is not a class")
    return obj


def resolve_interface(interface: type) -> dict[str, RequestTemplate]:
    spec = getattr(interface, SERVICE_ATTR, None)
    name = spec.name if spec else interface.__name__
    resolver = MetadataResolver()
    return {
        method_name: resolver.resolve(func)
        for method_name, func in endpoint_methods(interface, name).items()
    }


def _describe_bindings(template: RequestTemplate) -> str:
    parts = []
    for b in template.bindings:
        label = f"{b.kind.value}:{b.name}"
        if not b.required:
            label += "?"
        if b.has_default:
            label += f"={b.default!r}"
        parts.append(label)
    return ", ".join(parts) or "-"


@app.command()
def inspect(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Interface as MODULE:ATTR"),
) -> None:
    """Print the resolved request templates of an interface."""
    interface = load_interface(target)
    try:
        templates = resolve_interface(interface)
    except MetadataError as e:
        err_console.print(f"[red]Invalid interface:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    settings: Settings = ctx.obj["settings"]
    spec = getattr(interface, SERVICE_ATTR, None)
    name = spec.name if spec else interface.__name__
    base_url = settings.base_url_for(name, spec.base_url if spec else "")

    table = Table(title=f"{name} ({base_url or 'no base URL'})")
    table.add_column("Method", style="cyan")
    table.add_column("Verb", style="magenta")
    table.add_column("Path")
    table.add_column("Bindings")
    table.add_column("Returns", style="green")
    for method_name, template in templates.items():
        result = getattr(template.result_type, "__name__", None) or str(
            template.result_type
        )
        table.add_row(
            method_name,
            template.http_method.value,
            escape(template.path),
            escape(_describe_bindings(template)),
            escape(f"{template.return_shape.value} [{result}]"),
        )
    console.print(table)


@app.command()
def check(
    target: str = typer.Argument(..., help="Interface as MODULE:ATTR"),
) -> None:
    """Validate an interface definition; exit 1 if it is malformed."""
    interface = load_interface(target)
    try:
        templates = resolve_interface(interface)
    except MetadataError as e:
        logger.error("interface_invalid", target=target, error=str(e))
        err_console.print(f"[red]Invalid interface:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e
    console.print(f"[green]OK[/green] {target}: {len(templates)} endpoint(s)")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
