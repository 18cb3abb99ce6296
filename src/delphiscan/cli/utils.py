"""CLI utilities."""

import json
from pathlib import Path
from typing import Any

import click
from rich.markup import escape

from delphiscan.config import DelphiScanConfig, load_config
from delphiscan.core.errors import ConfigError
from delphiscan.core.logging import configure_logging
from delphiscan.core.progress import get_console
from delphiscan.core.results import ScanWarning
from delphiscan.project.sources import LocalSourceReader


def load_cli_config(ctx: click.Context, root: Path, **overrides: Any) -> DelphiScanConfig:
    """Load config for ``root`` and apply its logging section.

    With ``--verbose`` the debug logging set up by the group is kept.

    Raises:
        click.ClickException: If the config files or overrides are invalid.
    """
    try:
        config = load_config(root, **overrides)
    except ConfigError as e:
        raise click.ClickException(e.message) from e
    if not ctx.obj.get("verbose"):
        configure_logging(config=config.logging)
    return config


def project_root(path: Path) -> Path:
    """Directory whose .delphiscan/config.yaml applies to ``path``."""
    path = path.resolve()
    return path if path.is_dir() else path.parent


def read_source(path: Path, config: DelphiScanConfig) -> str:
    try:
        return LocalSourceReader(config.scanner.fallback_encoding).read_text(path)
    except OSError as e:
        raise click.ClickException(f"Cannot read {path}: {e.strerror or e}") from e


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2))


def print_warnings(warnings: list[ScanWarning], *, limit: int = 20) -> None:
    """Print scan warnings to stderr, at most ``limit`` of them."""
    console = get_console()
    for warning in warnings[:limit]:
        console.print(f"  [yellow]![/yellow] {escape(warning.message)}", highlight=False)
    if len(warnings) > limit:
        console.print(f"  [dim]... and {len(warnings) - limit} more[/dim]")
