"""sqlshape CLI."""

import click

from sqlshape.cli.check import check_command
from sqlshape.cli.generate import generate_command
from sqlshape.cli.ping import ping_command
from sqlshape.cli.watch import watch_command
from sqlshape.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="sqlshape")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """sqlshape - typed results for the SQL in your f-strings."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(level="DEBUG" if verbose else "INFO")


cli.add_command(generate_command, name="generate")
cli.add_command(check_command, name="check")
cli.add_command(watch_command, name="watch")
cli.add_command(ping_command, name="ping")


if __name__ == "__main__":
    cli()
