"""sqlshape watch command - regenerate on every source change.

One CompilationPipeline (and so one OutcomeCache) lives for the whole
session, so a change to one file only re-probes the call sites whose
descriptors changed. A change arriving while a pass runs cancels that
pass and starts a new one.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path

import click
import structlog
from watchfiles import Change, DefaultFilter, watch

from sqlshape.cli.generate import report
from sqlshape.cli.utils import find_project_root, load_project_config
from sqlshape.compiler.cache import OutcomeCache
from sqlshape.compiler.pipeline import CompilationPipeline, project_sources
from sqlshape.config import SqlShapeConfig
from sqlshape.config.constants import CONFIG_DIR_NAME
from sqlshape.core.errors import CompileError, ErrorCode
from sqlshape.core.progress import status

log = structlog.get_logger(__name__)


class SourceFilter(DefaultFilter):
    """Python sources and the project config, outside the generated package."""

    def __init__(self, root: Path, output_dir: str) -> None:
        super().__init__()
        self.root = root
        self._config_path = str(root / CONFIG_DIR_NAME / "config.yaml")
        self.set_output_dir(output_dir)

    def set_output_dir(self, output_dir: str) -> None:
        """Ignore the generated package at its new place after a config reload."""
        self._output_path = str(self.root / output_dir)

    def __call__(self, change: Change, path: str) -> bool:
        if not super().__call__(change, path):
            return False
        if path == self._output_path or path.startswith(self._output_path + os.sep):
            return False
        return path.endswith(".py") or path == self._config_path


class WatchSession:
    """Runs passes in a background thread, at most one at a time."""

    def __init__(self, root: Path, config: SqlShapeConfig) -> None:
        self.root = root
        self.config = config
        self.cache = OutcomeCache()
        self._thread: threading.Thread | None = None
        self._cancel = threading.Event()

    def reload_config(self) -> None:
        self.config = load_project_config(self.root)
        log.info("config_reloaded")

    def restart(self) -> None:
        """Cancel the running pass (if any) and start a new one."""
        self.stop()
        self._cancel = threading.Event()
        self._thread = threading.Thread(
            target=self._run_pass,
            args=(self.config, self._cancel),
            name="sqlshape-watch-pass",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        if self._thread is not None:
            self._cancel.set()
            self._thread.join()
            self._thread = None

    def _run_pass(self, config: SqlShapeConfig, cancel: threading.Event) -> None:
        pipeline = CompilationPipeline.from_config(config, self.root, cache=self.cache)
        try:
            result = pipeline.run(project_sources(self.root, config), cancel)
        except CompileError as e:
            if e.code != ErrorCode.GENERATION_CANCELLED:
                raise
            log.info("watch_pass_cancelled", pending=e.details.get("pending"))
            return
        report(result, verb="updated")


@click.command()
@click.argument(
    "path",
    default=None,
    required=False,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
)
def watch_command(path: Path | None) -> None:
    """Regenerate whenever a Python source or the config changes.

    PATH is the project root. If not specified, auto-detects by walking up
    from the current directory. Stop with Ctrl+C.
    """
    root = find_project_root(path)
    session = WatchSession(root, load_project_config(root))
    config_path = str(root / CONFIG_DIR_NAME / "config.yaml")

    source_filter = SourceFilter(root, session.config.generate.output_dir)

    status(f"Watching {root}")
    session.restart()
    try:
        for changes in watch(
            root,
            watch_filter=source_filter,
            ignore_permission_denied=True,
        ):
            log.debug("changes_detected", count=len(changes))
            if any(changed_path == config_path for _change, changed_path in changes):
                session.reload_config()
                source_filter.set_output_dir(session.config.generate.output_dir)
            session.restart()
    except KeyboardInterrupt:
        pass
    finally:
        session.stop()
        status("Stopped watching")
