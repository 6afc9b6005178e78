"""CLI utilities."""

from pathlib import Path

import click

from sqlshape.compiler.diagnostics import Diagnostic
from sqlshape.config import SqlShapeConfig, load_config
from sqlshape.config.constants import CONFIG_DIR_NAME
from sqlshape.core.errors import ConfigError
from sqlshape.core.logging import configure_logging
from sqlshape.core.progress import get_console

_ROOT_MARKERS = (CONFIG_DIR_NAME, "pyproject.toml", ".git")


def find_project_root(start_path: Path | None = None) -> Path:
    """Find the project root from the given path.

    Walks up the directory tree looking for a .sqlshape directory, a
    pyproject.toml or a .git directory, in that order of preference at
    each level. Falls back to the starting directory.
    """
    if start_path is None:
        start_path = Path.cwd()

    start = start_path.resolve()
    current = start
    while True:
        if any((current / marker).exists() for marker in _ROOT_MARKERS):
            return current
        if current == current.parent:
            return start
        current = current.parent


def load_project_config(root: Path, **overrides: object) -> SqlShapeConfig:
    """load_config() with ConfigError turned into a CLI error.

    The loaded logging section is applied right away, so every command logs
    to the configured outputs from here on.
    """
    try:
        config = load_config(root, **{k: v for k, v in overrides.items() if v is not None})
    except ConfigError as e:
        raise click.ClickException(e.message) from e
    apply_logging_config(config)
    return config


def apply_logging_config(config: SqlShapeConfig) -> None:
    """Configure logging from config; the group's --verbose flag forces DEBUG."""
    ctx = click.get_current_context(silent=True)
    obj = ctx.find_root().obj if ctx is not None else None
    logging_config = config.logging
    if isinstance(obj, dict) and obj.get("verbose"):
        logging_config = logging_config.model_copy(update={"level": "DEBUG"})
    configure_logging(config=logging_config)


def print_diagnostics(diagnostics: list[Diagnostic]) -> None:
    console = get_console()
    for diagnostic in diagnostics:
        style = "red" if diagnostic.severity.value == "error" else "yellow"
        console.print(diagnostic.render(), style=style, highlight=False, markup=False)
