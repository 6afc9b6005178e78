"""Tests for the sqlshape CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path
from textwrap import dedent
from unittest.mock import patch

import pytest
import structlog
from click.testing import CliRunner

from sqlshape.cli.main import cli

runner = CliRunner()

APP = """
from sqlshape.runtime import query


def find(connection, email: str):
    return query[User](connection, f"SELECT id, email FROM users WHERE email = {email}")
"""


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    monkeypatch.delenv("SQLSHAPE__DATABASE__CONNECTION_STRING", raising=False)
    with patch("sqlshape.config.loader.GLOBAL_CONFIG_PATH", tmp_path / "none.yaml"):
        yield
    # cli() points logging at the runner's stderr
    for handler in logging.getLogger().handlers:
        handler.close()
    logging.getLogger().handlers.clear()
    structlog.reset_defaults()


@pytest.fixture
def project(tmp_path: Path, sqlite_url: str) -> Path:
    root = tmp_path / "project"
    (root / ".sqlshape").mkdir(parents=True)
    (root / ".sqlshape" / "config.yaml").write_text(
        f"database:\n  connection_string: {sqlite_url}\ngenerate:\n  output_dir: gen\n"
    )
    (root / "app.py").write_text(dedent(APP).lstrip())
    return root


class TestVersion:
    def test_version_option(self) -> None:
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "sqlshape, version 0.1.0" in result.output


class TestGenerate:
    def test_given_valid_project_when_generate_then_package_written(self, project: Path) -> None:
        # When
        result = runner.invoke(cli, ["generate", str(project)])

        # Then
        assert result.exit_code == 0, result.output
        assert "1 call site: 1 probed, 0 reused, 0 failed" in result.output
        assert (project / "gen" / "__init__.py").exists()
        assert (project / "gen" / "result_User.py").exists()

    def test_given_bad_query_when_generate_then_diagnostic_and_exit_1(
        self, project: Path
    ) -> None:
        # Given
        (project / "app.py").write_text(
            (project / "app.py").read_text().replace("FROM users", "FROM userz")
        )

        # When
        result = runner.invoke(cli, ["generate", str(project)])

        # Then
        assert result.exit_code == 1
        assert "app.py:5:12: error SQS002: sqlite: no such table: userz" in result.output
        assert "Code omitted" in (project / "gen" / "result_User.py").read_text()

    def test_given_no_connection_string_when_generate_then_sqs001(self, project: Path) -> None:
        (project / ".sqlshape" / "config.yaml").write_text("generate:\n  output_dir: gen\n")

        result = runner.invoke(cli, ["generate", str(project)])

        assert result.exit_code == 1
        assert "error SQS001" in result.output
        assert not (project / "gen").exists()

    def test_given_invalid_config_when_generate_then_click_error(self, project: Path) -> None:
        (project / ".sqlshape" / "config.yaml").write_text("database:\n  max_workers: 0\n")

        result = runner.invoke(cli, ["generate", str(project)])

        assert result.exit_code == 1
        assert "database.max_workers" in result.output


class TestLoggingSection:
    """The project's logging section drives where command logs go."""

    @staticmethod
    def _log_to(project: Path, log_file: Path, level: str) -> None:
        config = project / ".sqlshape" / "config.yaml"
        config.write_text(
            config.read_text()
            + f"logging:\n  level: {level}\n  outputs:\n"
            + f"    - destination: {log_file}\n      format: json\n"
        )

    def test_given_file_output_when_generate_then_events_in_file_not_terminal(
        self, project: Path, tmp_path: Path
    ) -> None:
        # Given
        log_file = tmp_path / "logs" / "sqlshape.jsonl"
        self._log_to(project, log_file, "INFO")
        (project / "app.py").write_text(
            (project / "app.py").read_text().replace("FROM users", "FROM userz")
        )

        # When
        result = runner.invoke(cli, ["generate", str(project)])

        # Then
        assert result.exit_code == 1
        assert '"event": "probe_rejected"' in log_file.read_text()
        assert "probe_rejected" not in result.output
        assert "error SQS002" in result.output

    def test_given_configured_level_when_generate_then_debug_events_dropped(
        self, project: Path, tmp_path: Path
    ) -> None:
        # Given
        log_file = tmp_path / "sqlshape.jsonl"
        self._log_to(project, log_file, "WARNING")

        # When
        result = runner.invoke(cli, ["generate", str(project)])

        # Then
        assert result.exit_code == 0, result.output
        assert "probe_started" not in log_file.read_text()

    def test_given_verbose_flag_when_generate_then_level_forced_to_debug(
        self, project: Path, tmp_path: Path
    ) -> None:
        # Given
        log_file = tmp_path / "sqlshape.jsonl"
        self._log_to(project, log_file, "WARNING")

        # When
        result = runner.invoke(cli, ["--verbose", "generate", str(project)])

        # Then
        assert result.exit_code == 0, result.output
        assert '"event": "probe_started"' in log_file.read_text()


class TestCheck:
    def test_given_valid_project_when_check_then_nothing_written(self, project: Path) -> None:
        result = runner.invoke(cli, ["check", str(project)])

        assert result.exit_code == 0, result.output
        assert not (project / "gen").exists()

    def test_given_bad_query_when_check_then_exit_1(self, project: Path) -> None:
        (project / "app.py").write_text(
            (project / "app.py").read_text().replace("email FROM", "emial FROM")
        )

        result = runner.invoke(cli, ["check", str(project)])

        assert result.exit_code == 1
        assert "SQS002" in result.output


class TestPing:
    def test_given_reachable_database_when_ping_then_connected(self, project: Path) -> None:
        result = runner.invoke(cli, ["ping", str(project)])

        assert result.exit_code == 0, result.output
        assert "Connected (sqlite)" in result.output

    def test_given_no_connection_string_when_ping_then_error(self, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["ping", str(tmp_path)])

        assert result.exit_code == 1
        assert "database.connection_string" in result.output
