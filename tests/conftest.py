"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import sqlite3
import sys
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local sqlshape package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of sqlshape modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("sqlshape"):
        del sys.modules[module_name]

from sqlshape.compiler.models import ColumnSchema  # noqa: E402
from sqlshape.compiler.prober import ProbeFailure, ProbeResult, ProbeSuccess  # noqa: E402
from sqlshape.runtime import registry  # noqa: E402

USERS_SCHEMA = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY,
    email TEXT NOT NULL,
    date_of_birth DATE
);
INSERT INTO users (id, email, date_of_birth) VALUES (1, 'a@example.com', '1990-01-01');
INSERT INTO users (id, email, date_of_birth) VALUES (2, 'b@example.com', NULL);
"""


class FakeProbe:
    """SchemaProbe double: one fixed column per statement, failing on 'missing'."""

    def __init__(self, columns: tuple[ColumnSchema, ...] | None = None) -> None:
        self.columns = columns or (
            ColumnSchema(ordinal=0, name="id", native_type="int4", nullable=False),
            ColumnSchema(ordinal=1, name="email", native_type="text", nullable=True),
        )
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.interrupted = 0

    def probe(
        self,
        connection_string: str,  # noqa: ARG002
        statement: str,
        parameters: Mapping[str, Any],
        bind_types: Mapping[str, Any],  # noqa: ARG002
    ) -> ProbeResult:
        self.calls.append((statement, dict(parameters)))
        if "missing" in statement:
            return ProbeFailure(backend="fake", message='relation "missing" does not exist')
        if statement.lstrip().upper().startswith("SELECT"):
            return ProbeSuccess(backend="fake", columns=self.columns)
        return ProbeSuccess(backend="fake", columns=())

    def interrupt(self) -> None:
        self.interrupted += 1


@pytest.fixture
def fake_probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def sqlite_db(tmp_path: Path) -> Path:
    """File-backed SQLite database with a small users table."""
    path = tmp_path / "schema.db"
    conn = sqlite3.connect(path)
    try:
        conn.executescript(USERS_SCHEMA)
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
def sqlite_url(sqlite_db: Path) -> str:
    return f"sqlite:///{sqlite_db}"


@pytest.fixture(autouse=True)
def _clean_registry() -> Iterator[None]:
    registry.clear()
    yield
    registry.clear()
