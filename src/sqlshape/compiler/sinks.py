"""Destinations for generated source units."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Protocol

import structlog

from sqlshape.config.constants import GENERATED_MARKER

log = structlog.get_logger(__name__)


class SourceSink(Protocol):
    """Receives every unit of one pass, then commit() once.

    Units not emitted before commit() are considered stale.
    """

    def emit(self, name: str, text: str) -> None: ...

    def commit(self) -> int:
        """Finish the pass; returns the number of units that changed."""
        ...


class MemorySink:
    """Keeps the latest complete pass in memory."""

    def __init__(self) -> None:
        self.units: dict[str, str] = {}
        self._pending: dict[str, str] = {}

    def emit(self, name: str, text: str) -> None:
        self._pending[name] = text

    def commit(self) -> int:
        changed = sum(1 for name, text in self._pending.items() if self.units.get(name) != text)
        changed += len(self.units.keys() - self._pending.keys())
        self.units = dict(sorted(self._pending.items()))
        self._pending = {}
        return changed


class DirectorySink:
    """Writes units into a package directory.

    Unchanged files are left alone so their mtimes stay put; changed files
    are written to a temporary file beside the target and renamed over it,
    so an importer never reads a half-written unit. On commit,
    ``*.py`` files in the directory that start with the generated-file
    marker and were not emitted this pass are removed; other files are
    never touched.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self._pending: dict[str, str] = {}

    def emit(self, name: str, text: str) -> None:
        self._pending[name] = text

    def commit(self) -> int:
        self.directory.mkdir(parents=True, exist_ok=True)
        changed = 0

        for name, text in sorted(self._pending.items()):
            path = self.directory / name
            if path.exists() and path.read_text(encoding="utf-8") == text:
                continue
            _replace_atomically(path, text)
            changed += 1
            log.debug("unit_written", unit=name)

        for path in sorted(self.directory.glob("*.py")):
            if path.name in self._pending or not _is_generated(path):
                continue
            path.unlink()
            changed += 1
            log.debug("stale_unit_removed", unit=path.name)

        self._pending = {}
        return changed


def _replace_atomically(path: Path, text: str) -> None:
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as f:
        f.write(text)
        tmp_name = f.name
    try:
        os.replace(tmp_name, path)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _is_generated(path: Path) -> bool:
    try:
        with path.open(encoding="utf-8") as f:
            return f.readline().rstrip("\n") == GENERATED_MARKER
    except (OSError, UnicodeDecodeError):
        return False
