"""sqlshape generate command - write the generated package."""

from pathlib import Path

import click

from sqlshape.cli.utils import find_project_root, load_project_config, print_diagnostics
from sqlshape.compiler.pipeline import CompilationPipeline, PassResult, project_sources
from sqlshape.compiler.sinks import MemorySink
from sqlshape.core.progress import pluralize, spinner, status


def run_generation(root: Path, *, dry_run: bool = False) -> PassResult:
    """One generation pass over the project at root."""
    config = load_project_config(root)
    sources = project_sources(root, config)
    sink = MemorySink() if dry_run else None
    pipeline = CompilationPipeline.from_config(config, root, sink=sink)
    with spinner(f"Compiling queries in {pluralize(len(sources), 'file')}"):
        return pipeline.run(sources)


def report(result: PassResult, *, verb: str) -> None:
    print_diagnostics(result.diagnostics)
    stats = result.stats
    summary = (
        f"{pluralize(stats.call_sites, 'call site')}: "
        f"{stats.probed} probed, {stats.reused} reused, {stats.failed} failed"
    )
    if result.has_errors:
        status(f"{summary} ({pluralize(len(result.diagnostics), 'error')})", style="error")
    else:
        status(summary, style="success")
    if verb:
        status(f"{pluralize(stats.units_changed, 'file')} {verb}")


@click.command()
@click.argument(
    "path",
    default=None,
    required=False,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
def generate_command(path: Path | None) -> None:
    """Generate result types and dispatchers for every query call site.

    PATH is the project root. If not specified, auto-detects by walking up
    from the current directory. Exits with status 1 if any diagnostic was
    reported; files for the call sites that compiled are still written.
    """
    root = find_project_root(path)
    result = run_generation(root)
    report(result, verb="updated")
    if result.has_errors:
        raise SystemExit(1)
