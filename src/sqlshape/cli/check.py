"""sqlshape check command - validate queries without writing files."""

from pathlib import Path

import click

from sqlshape.cli.generate import report, run_generation
from sqlshape.cli.utils import find_project_root


@click.command()
@click.argument(
    "path",
    default=None,
    required=False,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
def check_command(path: Path | None) -> None:
    """Validate every query call site against the database.

    Runs a full pass but keeps the output in memory. Exits with status 1
    if any diagnostic was reported.
    """
    root = find_project_root(path)
    result = run_generation(root, dry_run=True)
    report(result, verb="")
    if result.has_errors:
        raise SystemExit(1)
