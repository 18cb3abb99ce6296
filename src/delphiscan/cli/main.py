"""delphiscan CLI - dscan command."""

import click

from delphiscan.cli.dproj import dproj_command
from delphiscan.cli.extract import methods_command, quote_command, sql_command
from delphiscan.cli.scan import batch_command, scan_command
from delphiscan.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="dscan")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """delphiscan - extract units, methods and SQL from Delphi projects."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "WARNING")


cli.add_command(scan_command, name="scan")
cli.add_command(batch_command, name="batch")
cli.add_command(methods_command, name="methods")
cli.add_command(sql_command, name="sql")
cli.add_command(dproj_command, name="dproj")
cli.add_command(quote_command, name="quote")


if __name__ == "__main__":
    cli()
