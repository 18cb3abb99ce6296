"""dscan methods / sql / quote commands - inspect single files."""

import sys
from pathlib import Path

import click
from rich.markup import escape
from rich.table import Table

from delphiscan.cli.utils import (
    echo_json,
    load_cli_config,
    print_warnings,
    project_root,
    read_source,
)
from delphiscan.core.progress import get_console, pluralize, status
from delphiscan.extraction.methods import extract_methods
from delphiscan.extraction.quoting import quote_reserved_words
from delphiscan.extraction.sql import extract_queries
from delphiscan.models import QueryDescriptor, to_jsonable
from delphiscan.scan.pipeline import quote_query


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Output methods as JSON")
@click.option("--source", "include_source", is_flag=True, help="Include method bodies in JSON")
@click.pass_context
def methods_command(ctx: click.Context, file: Path, as_json: bool, include_source: bool) -> None:
    """List the methods implemented in a .pas or .dpr FILE."""
    config = load_cli_config(ctx, project_root(file))
    outcome = extract_methods(read_source(file, config))

    if as_json:
        methods = to_jsonable(outcome.value)
        if not include_source:
            for method in methods:
                method.pop("source_code", None)
        echo_json({"methods": methods, "warnings": [w.to_dict() for w in outcome.warnings]})
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Line", justify="right")
    table.add_column("Kind")
    table.add_column("Method")
    table.add_column("Returns")
    for method in outcome.value:
        name = method.qualified_name
        if not method.is_terminated:
            name += " (unterminated)"
        table.add_row(
            str(method.start_line),
            method.kind.value,
            escape(name),
            escape(method.return_type or ""),
        )
    get_console().print(table)
    status(pluralize(len(outcome.value), "method"), style="success")
    print_warnings(outcome.warnings)


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Output queries as JSON")
@click.option("--quote", is_flag=True, help="Quote reserved words in reconstructed SQL")
@click.pass_context
def sql_command(ctx: click.Context, file: Path, as_json: bool, quote: bool) -> None:
    """Reconstruct the SQL built in a .pas or .dpr FILE.

    A file without method headers (a code fragment) is read as one block of
    statements.
    """
    config = load_cli_config(ctx, project_root(file))
    text = read_source(file, config)
    outcome = extract_methods(text)

    queries: list[QueryDescriptor] = []
    if outcome.value:
        for method in outcome.value:
            queries += extract_queries(
                method.source_code, line_offset=method.start_line - 1, method=method
            )
    else:
        queries = extract_queries(text)
    if quote or config.sql.quote_reserved_words:
        queries = [quote_query(q) for q in queries]

    if as_json:
        warnings = [w.to_dict() for w in outcome.warnings]
        echo_json({"queries": to_jsonable(queries), "warnings": warnings})
        return

    console = get_console()
    for query in queries:
        where = query.method_name or file.name
        if query.class_name:
            where = f"{query.class_name}.{where}"
        flag = " [yellow](dynamic)[/yellow]" if query.is_dynamic else ""
        operation = query.operation.value
        console.print(
            f"[bold]{escape(where)}[/bold]:{query.line}  [cyan]{operation}[/cyan]{flag}",
            highlight=False,
        )
        console.print(f"    {escape(query.sql_text)}", highlight=False)
        if query.parameters:
            params = escape(", ".join(query.parameters))
            console.print(f"    [dim]params: {params}[/dim]", highlight=False)
    status(pluralize(len(queries), "query", "queries"), style="success")
    print_warnings(outcome.warnings)


@click.command()
@click.argument("sql", required=False)
def quote_command(sql: str | None) -> None:
    """Quote Firebird reserved words used as identifiers in SQL.

    SQL is read from standard input when omitted or given as '-'.
    """
    if sql is None or sql == "-":
        sql = sys.stdin.read()
    click.echo(quote_reserved_words(sql.rstrip("\n")))
