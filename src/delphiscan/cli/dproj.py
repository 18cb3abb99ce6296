"""dscan dproj command - show project-file metadata."""

from pathlib import Path

import click
from rich.markup import escape

from delphiscan.cli.utils import echo_json, load_cli_config, print_warnings, project_root
from delphiscan.core.progress import get_console, pluralize, status
from delphiscan.models import to_jsonable
from delphiscan.project.dproj import DprojParser


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Output metadata as JSON")
@click.pass_context
def dproj_command(ctx: click.Context, file: Path, as_json: bool) -> None:
    """Show what a .dproj FILE declares: configurations, paths and sources."""
    config = load_cli_config(ctx, project_root(file))
    parser = DprojParser(
        config.project_file.variables,
        platform=config.project_file.default_platform,
        config=config.project_file.default_config,
    )
    outcome = parser.parse(file.resolve())
    metadata = outcome.value

    if as_json:
        data = to_jsonable(metadata)
        data["active_defines"] = metadata.active_defines()
        echo_json({"metadata": data, "warnings": [w.to_dict() for w in outcome.warnings]})
        return

    console = get_console()
    rows = [
        ("Project", metadata.project_name),
        ("Main source", metadata.main_source or "-"),
        ("Framework", metadata.framework.value),
        ("Platform", metadata.platform),
        ("Configuration", metadata.active_configuration),
        ("Configurations", ", ".join(c.name for c in metadata.configurations)),
        ("Defines", ", ".join(metadata.active_defines()) or "-"),
        ("Search paths", ", ".join(metadata.search_paths) or "-"),
        ("Unit scopes", ", ".join(metadata.unit_scope_names) or "-"),
        ("Version", metadata.version_info.version_string),
    ]
    for label, value in rows:
        console.print(f"  [bold]{label}:[/bold] {escape(value)}", highlight=False)

    missing = [f for f in metadata.source_files if not f.exists]
    status(
        f"{pluralize(len(metadata.source_files), 'source file')} "
        f"({len(missing)} missing), {pluralize(len(metadata.form_files), 'form')}",
        style="warning" if missing else "success",
    )
    for source in missing:
        console.print(f"    [dim]missing:[/dim] {escape(source.file_name)}", highlight=False)
    print_warnings(outcome.warnings)
