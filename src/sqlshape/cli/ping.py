"""sqlshape ping command - check the schema database is reachable."""

from pathlib import Path

import click
from sqlalchemy.exc import SQLAlchemyError

from sqlshape.cli.utils import find_project_root, load_project_config
from sqlshape.compiler.prober import check_connection
from sqlshape.config import require_connection_string
from sqlshape.core.errors import ConfigError
from sqlshape.core.progress import status


@click.command()
@click.argument(
    "path",
    default=None,
    required=False,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
def ping_command(path: Path | None) -> None:
    """Run SELECT 1 against the configured database."""
    root = find_project_root(path)
    config = load_project_config(root)
    try:
        connection_string = require_connection_string(config)
    except ConfigError as e:
        raise click.ClickException(e.message) from e

    try:
        backend = check_connection(connection_string)
    except SQLAlchemyError as e:
        raise click.ClickException(f"Database unreachable: {e}") from e
    except ImportError as e:
        raise click.ClickException(f"Database driver not installed: {e}") from e
    status(f"Connected ({backend})", style="success")
