"""Tests for CLI utilities and the watch command helpers.

Covers:
- find_project_root() function
- load_project_config() error mapping
- SourceFilter / WatchSession
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import click
import pytest
import structlog
from click.testing import CliRunner
from watchfiles import Change

from sqlshape.cli.utils import find_project_root, load_project_config
from sqlshape.cli.watch import SourceFilter, WatchSession, watch_command
from sqlshape.config.models import DatabaseConfig, GenerateConfig, SqlShapeConfig


class TestFindProjectRoot:
    """Tests for find_project_root function."""

    def test_finds_root_from_subdirectory(self, tmp_path: Path) -> None:
        """Walks up to the directory holding pyproject.toml."""
        (tmp_path / "pyproject.toml").write_text("[project]\nname = 'x'\n")
        nested = tmp_path / "a" / "b" / "c"
        nested.mkdir(parents=True)

        assert find_project_root(nested) == tmp_path

    def test_prefers_nearest_marker(self, tmp_path: Path) -> None:
        """The innermost directory with any marker wins."""
        (tmp_path / ".git").mkdir()
        inner = tmp_path / "service"
        (inner / ".sqlshape").mkdir(parents=True)

        assert find_project_root(inner / ".sqlshape") == inner

    def test_falls_back_to_start(self, tmp_path: Path) -> None:
        """Without markers anywhere the starting directory is used."""
        start = tmp_path / "plain"
        start.mkdir()

        with patch.object(Path, "exists", return_value=False):
            assert find_project_root(start) == start.resolve()


class TestLoadProjectConfig:
    def test_given_invalid_yaml_when_loaded_then_click_exception(self, tmp_path: Path) -> None:
        (tmp_path / ".sqlshape").mkdir()
        (tmp_path / ".sqlshape" / "config.yaml").write_text("generate: [unclosed\n")

        with (
            patch("sqlshape.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "none.yaml"),
            pytest.raises(click.ClickException),
        ):
            load_project_config(tmp_path)


class TestSourceFilter:
    @pytest.fixture
    def source_filter(self, tmp_path: Path) -> SourceFilter:
        return SourceFilter(tmp_path, "gen")

    def test_python_source_passes(self, source_filter: SourceFilter, tmp_path: Path) -> None:
        assert source_filter(Change.modified, str(tmp_path / "app" / "users.py"))

    def test_config_passes(self, source_filter: SourceFilter, tmp_path: Path) -> None:
        assert source_filter(Change.modified, str(tmp_path / ".sqlshape" / "config.yaml"))

    def test_generated_package_ignored(self, source_filter: SourceFilter, tmp_path: Path) -> None:
        assert not source_filter(Change.added, str(tmp_path / "gen" / "result_User.py"))

    def test_other_files_ignored(self, source_filter: SourceFilter, tmp_path: Path) -> None:
        assert not source_filter(Change.modified, str(tmp_path / "README.md"))
        assert not source_filter(Change.added, str(tmp_path / "__pycache__" / "app.cpython.pyc"))

    def test_sibling_sharing_output_prefix_passes(
        self, source_filter: SourceFilter, tmp_path: Path
    ) -> None:
        assert source_filter(Change.modified, str(tmp_path / "generator.py"))

    def test_given_moved_output_dir_when_updated_then_new_package_ignored(
        self, source_filter: SourceFilter, tmp_path: Path
    ) -> None:
        # When
        source_filter.set_output_dir("typed")

        # Then
        assert not source_filter(Change.added, str(tmp_path / "typed" / "result_User.py"))
        assert source_filter(Change.modified, str(tmp_path / "gen" / "users.py"))

    def test_given_config_reload_when_watching_then_filter_follows_output_dir(
        self, tmp_path: Path
    ) -> None:
        # Given
        root = tmp_path.resolve()
        config_path = root / ".sqlshape" / "config.yaml"
        config_path.parent.mkdir()
        config_path.write_text("generate:\n  output_dir: gen\n")
        filters: list[SourceFilter] = []

        def fake_watch(
            path: Path, watch_filter: SourceFilter, **kwargs: object
        ) -> Iterator[set[tuple[Change, str]]]:
            filters.append(watch_filter)
            config_path.write_text("generate:\n  output_dir: typed\n")
            yield {(Change.modified, str(config_path))}

        # When
        try:
            with (
                patch("sqlshape.config.loader.GLOBAL_CONFIG_PATH", root / "none.yaml"),
                patch("sqlshape.cli.watch.watch", fake_watch),
                patch.object(WatchSession, "restart"),
            ):
                result = CliRunner().invoke(watch_command, [str(root)])
        finally:
            for handler in logging.getLogger().handlers:
                handler.close()
            logging.getLogger().handlers.clear()
            structlog.reset_defaults()

        # Then
        assert result.exit_code == 0, result.output
        assert not filters[0](Change.added, str(root / "typed" / "result_User.py"))
        assert filters[0](Change.modified, str(root / "gen" / "users.py"))


class TestWatchSession:
    def test_given_cancelled_pass_when_run_then_swallowed(self, tmp_path: Path) -> None:
        # Given
        (tmp_path / "app.py").write_text(
            "from sqlshape.runtime import execute\n\n"
            "execute(connection, f'DELETE FROM users')\n"
        )
        config = SqlShapeConfig(
            database=DatabaseConfig(connection_string=f"sqlite:///{tmp_path / 'db.sqlite'}"),
            generate=GenerateConfig(output_dir="gen"),
        )
        session = WatchSession(tmp_path, config)
        cancel = threading.Event()
        cancel.set()

        # When
        session._run_pass(config, cancel)

        # Then
        assert not (tmp_path / "gen").exists()

    def test_given_pass_when_restarted_and_stopped_then_no_thread_left(
        self, tmp_path: Path
    ) -> None:
        session = WatchSession(tmp_path, SqlShapeConfig())

        session.restart()
        session.stop()

        assert session._thread is None
