"""dscan scan / batch commands - scan whole projects."""

from pathlib import Path
from typing import Any

import click
from rich.markup import escape

from delphiscan.cli.utils import echo_json, load_cli_config, print_warnings, project_root
from delphiscan.core.errors import DelphiScanError
from delphiscan.core.progress import get_console, pluralize, status
from delphiscan.scan.pipeline import ProjectScanner, ProjectScanReport, scan_many


def _print_report(report: ProjectScanReport, *, show_queries: bool = True) -> None:
    summary = report.summary()
    status(
        f"{summary['project']} ({summary['framework']}): "
        f"{pluralize(summary['units'], 'unit')}, "
        f"{pluralize(summary['methods'], 'method')}, "
        f"{pluralize(summary['queries'], 'query', 'queries')} "
        f"({summary['dynamic_queries']} dynamic) "
        f"in {summary['elapsed_seconds']:.2f}s",
        style="success",
    )
    if show_queries:
        console = get_console()
        for unit_name, queries in report.queries.items():
            console.print(f"  [bold]{escape(unit_name)}[/bold]", highlight=False)
            for query in queries:
                where = query.method_name or "?"
                if query.class_name:
                    where = f"{query.class_name}.{where}"
                console.print(
                    f"    {escape(where)}:{query.line}  "
                    f"[cyan]{query.operation.value}[/cyan]  {escape(query.sql_text)}",
                    highlight=False,
                )
    if report.warnings:
        status(pluralize(len(report.warnings), "warning"), style="warning")
        print_warnings(report.warnings)


@click.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Output the full report as JSON")
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=None,
    help="Parallel unit workers (default: scanner.max_workers)",
)
@click.option("--quote", is_flag=True, help="Quote reserved words in reconstructed SQL")
@click.option("--source", "include_source", is_flag=True, help="Include method bodies in JSON")
@click.pass_context
def scan_command(
    ctx: click.Context,
    path: Path,
    as_json: bool,
    workers: int | None,
    quote: bool,
    include_source: bool,
) -> None:
    """Scan a Delphi project and report its units, methods and SQL.

    PATH is a .dproj, a .dpr, or a directory.
    """
    overrides: dict[str, Any] = {}
    if workers is not None:
        overrides["scanner"] = {"max_workers": workers}
    if quote:
        overrides["sql"] = {"quote_reserved_words": True}
    config = load_cli_config(ctx, project_root(path), **overrides)

    if not as_json:
        status(f"Scanning {path}...")
    try:
        report = ProjectScanner(config).scan(path, show_progress=not as_json)
    except DelphiScanError as e:
        raise click.ClickException(e.message) from e

    if as_json:
        echo_json(report.to_dict(include_source=include_source))
    else:
        _print_report(report)


@click.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Output all reports as JSON")
@click.option(
    "--workers",
    type=click.IntRange(min=1),
    default=None,
    help="Projects scanned concurrently (default: scanner.max_projects)",
)
@click.pass_context
def batch_command(
    ctx: click.Context,
    paths: tuple[Path, ...],
    as_json: bool,
    workers: int | None,
) -> None:
    """Scan several projects.

    Each PATH is a .dproj, a .dpr, or a directory.
    """
    config = load_cli_config(ctx, Path.cwd())

    def on_project(report: ProjectScanReport) -> None:
        if not as_json:
            _print_report(report, show_queries=False)

    if not as_json:
        status(f"Scanning {pluralize(len(paths), 'project')}...")
    try:
        reports = scan_many(paths, max_workers=workers, config=config, on_project=on_project)
    except DelphiScanError as e:
        raise click.ClickException(e.message) from e

    if as_json:
        echo_json([r.to_dict() for r in reports])
    else:
        total = sum(r.query_count for r in reports)
        status(f"Done: {pluralize(total, 'query', 'queries')} found", style="success")
