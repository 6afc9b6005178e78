"""Schema probing against a live database.

A probe describes one statement inside a transaction that is always rolled
back. With psycopg 3 the statement is only prepared: libpq's
describe-prepared reports the result columns without running anything, so
no rows are materialized and DML has no side effects at all. Other
drivers execute the statement with example arguments and the columns are
read from the DB-API cursor description; no row is fetched. Dialect-specific
describers refine that metadata:

- PostgreSQL: type names from OIDs, nullability and defaults from
  pg_attribute for columns that come straight from a table
- SQLite: the driver reports no types, every column is "unreported"
- anything else: DB-API type objects and null_ok

Probes are independent: each one opens its own connection (NullPool, no
pooling at this layer) so several can run in parallel. interrupt() cancels
every in-flight statement; the interrupted probe still rolls back.
"""

from __future__ import annotations

import re
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

import structlog
from sqlalchemy import Connection, Engine, bindparam, create_engine, event, text
from sqlalchemy.exc import ArgumentError, DBAPIError, NoSuchModuleError, SQLAlchemyError
from sqlalchemy.pool import NullPool
from sqlalchemy.types import TypeEngine

from sqlshape.compiler.models import ColumnSchema

log = structlog.get_logger(__name__)

# Built-in PostgreSQL type OIDs; anything else is looked up in pg_type.
PG_TYPE_NAMES: dict[int, str] = {
    16: "bool",
    17: "bytea",
    18: "char",
    19: "name",
    20: "int8",
    21: "int2",
    23: "int4",
    25: "text",
    26: "oid",
    114: "json",
    142: "xml",
    700: "float4",
    701: "float8",
    790: "money",
    1000: "_bool",
    1001: "_bytea",
    1005: "_int2",
    1007: "_int4",
    1009: "_text",
    1015: "_varchar",
    1016: "_int8",
    1021: "_float4",
    1022: "_float8",
    1042: "bpchar",
    1043: "varchar",
    1082: "date",
    1083: "time",
    1114: "timestamp",
    1115: "_timestamp",
    1182: "_date",
    1184: "timestamptz",
    1185: "_timestamptz",
    1186: "interval",
    1231: "_numeric",
    1266: "timetz",
    1700: "numeric",
    2950: "uuid",
    2951: "_uuid",
    3802: "jsonb",
}

_DBAPI_CATEGORIES = ("STRING", "NUMBER", "DATETIME", "BINARY", "ROWID")

# libpq PGRES_COMMAND_OK and PG_DIAG_MESSAGE_PRIMARY
_PG_COMMAND_OK = 1
_PG_DIAG_MESSAGE_PRIMARY = ord("M")

_PYFORMAT_BIND = re.compile(r"%%|%\((\w+)\)s")


@dataclass(frozen=True, slots=True)
class ProbeSuccess:
    backend: str
    columns: tuple[ColumnSchema, ...]


@dataclass(frozen=True, slots=True)
class ProbeFailure:
    """The database rejected the statement; message is its text, verbatim."""

    backend: str
    message: str


ProbeResult = ProbeSuccess | ProbeFailure


class StatementRejected(Exception):
    """The server refused to prepare a statement; message is its primary text."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SchemaProbe(Protocol):
    """Describes the result shape of a statement without keeping side effects."""

    def probe(
        self,
        connection_string: str,
        statement: str,
        parameters: Mapping[str, Any],
        bind_types: Mapping[str, TypeEngine[Any]],
    ) -> ProbeResult: ...

    def interrupt(self) -> None: ...


@dataclass(slots=True)
class _RawColumn:
    name: str
    type_code: Any
    null_ok: bool | None
    table_oid: int | None = None
    table_column: int | None = None


class SqlAlchemyProbe:
    """SchemaProbe backed by SQLAlchemy Core.

    Engines are created lazily per connection string and reused across
    probes; they use NullPool so every probe gets a fresh connection that
    is closed when the probe ends.
    """

    def __init__(self, statement_timeout_sec: float | None = 30.0) -> None:
        self._statement_timeout_sec = statement_timeout_sec
        self._engines: dict[str, Engine] = {}
        self._engines_lock = threading.Lock()
        self._active: dict[int, Any] = {}
        self._active_lock = threading.Lock()

    def probe(
        self,
        connection_string: str,
        statement: str,
        parameters: Mapping[str, Any],
        bind_types: Mapping[str, TypeEngine[Any]],
    ) -> ProbeResult:
        backend = "database"
        try:
            engine = self._engine(connection_string)
        except (ImportError, NoSuchModuleError) as e:
            # create_engine imports the DB-API driver lazily
            log.info("probe_driver_missing", backend=backend, error=str(e))
            return ProbeFailure(backend=backend, message=f"database driver not installed: {e}")
        except (ArgumentError, ValueError) as e:
            # the parse error quotes the URL, password included
            log.info("probe_bad_url", error=type(e).__name__)
            return ProbeFailure(
                backend=backend,
                message=f"invalid connection string ({type(e).__name__})",
            )

        backend = engine.dialect.name
        try:
            stmt = text(statement).bindparams(
                *(bindparam(name, type_=bind_type) for name, bind_type in bind_types.items())
            )
            with engine.connect() as conn:
                columns = self._probe_in_transaction(conn, stmt, dict(parameters), backend)
        except DBAPIError as e:
            message = database_message(e)
            log.info("probe_rejected", backend=backend, message=message)
            return ProbeFailure(backend=backend, message=message)
        except StatementRejected as e:
            log.info("probe_rejected", backend=backend, message=e.message)
            return ProbeFailure(backend=backend, message=e.message)
        except SQLAlchemyError as e:
            message = str(e).strip()
            log.info("probe_failed", backend=backend, error=message)
            return ProbeFailure(
                backend=backend,
                message=message.splitlines()[0] if message else type(e).__name__,
            )
        return ProbeSuccess(backend=backend, columns=tuple(columns))

    def _probe_in_transaction(
        self, conn: Connection, stmt: Any, parameters: dict[str, Any], backend: str
    ) -> list[ColumnSchema]:
        dbapi_connection = conn.connection.dbapi_connection
        key = id(dbapi_connection)
        with self._active_lock:
            self._active[key] = dbapi_connection

        trans = conn.begin()
        try:
            self._apply_statement_timeout(conn, backend)
            if backend == "postgresql" and conn.dialect.driver == "psycopg":
                raw = _describe_prepared(conn, stmt, parameters)
            else:
                result = conn.execute(stmt, parameters)
                try:
                    raw = _capture(result.cursor) if result.returns_rows else []
                finally:
                    result.close()
            return self._describe(conn, raw, backend)
        finally:
            with self._active_lock:
                self._active.pop(key, None)
            if trans.is_active:
                trans.rollback()

    def _apply_statement_timeout(self, conn: Connection, backend: str) -> None:
        if backend != "postgresql" or not self._statement_timeout_sec:
            return
        millis = int(self._statement_timeout_sec * 1000)
        conn.exec_driver_sql(f"SET LOCAL statement_timeout = {millis}")

    def _describe(
        self, conn: Connection, raw: list[_RawColumn], backend: str
    ) -> list[ColumnSchema]:
        if backend == "postgresql":
            return _describe_postgres(conn, raw)
        if backend == "sqlite":
            return [
                ColumnSchema(ordinal=i, name=c.name, native_type=None, nullable=None)
                for i, c in enumerate(raw)
            ]
        return _describe_generic(conn, raw)

    def interrupt(self) -> None:
        """Cancel every statement currently running in a probe."""
        with self._active_lock:
            connections = list(self._active.values())
        for dbapi_connection in connections:
            cancel = getattr(dbapi_connection, "cancel", None) or getattr(
                dbapi_connection, "interrupt", None
            )
            if cancel is None:
                continue
            try:
                cancel()
            except Exception as e:
                log.warning("probe_interrupt_failed", error=str(e))
        if connections:
            log.info("probes_interrupted", count=len(connections))

    def check_connection(self, connection_string: str) -> str:
        """Run ``SELECT 1`` in a rolled-back transaction; returns the backend name.

        Raises:
            SQLAlchemyError: when the database cannot be reached.
        """
        engine = self._engine(connection_string)
        with engine.connect() as conn:
            trans = conn.begin()
            try:
                conn.execute(text("SELECT 1")).scalar_one()
            finally:
                trans.rollback()
        return engine.dialect.name

    def close(self) -> None:
        with self._engines_lock:
            engines = list(self._engines.values())
            self._engines.clear()
        for engine in engines:
            engine.dispose()

    def _engine(self, connection_string: str) -> Engine:
        with self._engines_lock:
            engine = self._engines.get(connection_string)
            if engine is None:
                engine = create_engine(connection_string, poolclass=NullPool)
                if engine.dialect.name == "sqlite":
                    _enable_sqlite_transactions(engine)
                self._engines[connection_string] = engine
            return engine


def check_connection(connection_string: str) -> str:
    """Health check used by ``sqlshape ping``; returns the backend name."""
    probe = SqlAlchemyProbe()
    try:
        return probe.check_connection(connection_string)
    finally:
        probe.close()


def database_message(error: DBAPIError) -> str:
    """The database's own message, without SQLAlchemy's decoration.

    psycopg exposes the primary message through ``diag``; other drivers
    only have the exception text, of which the first line is kept.
    """
    orig = error.orig
    diag = getattr(orig, "diag", None)
    primary = getattr(diag, "message_primary", None)
    if primary:
        return str(primary)
    message = str(orig).strip() if orig is not None else str(error)
    return message.splitlines()[0] if message else type(orig).__name__


def _enable_sqlite_transactions(engine: Engine) -> None:
    """Make pysqlite honour BEGIN/ROLLBACK for DDL as well as DML."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, _connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Connection) -> None:
        conn.exec_driver_sql("BEGIN")


def numbered_statement(sql: str) -> tuple[str, list[str]]:
    """Rewrite pyformat binds (``%(name)s``) as PostgreSQL ``$n`` parameters.

    Returns the rewritten SQL and the bind names in ``$n`` order; a name
    used twice keeps its first number.
    """
    names: list[str] = []

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name is None:
            return "%"
        if name not in names:
            names.append(name)
        return f"${names.index(name) + 1}"

    return _PYFORMAT_BIND.sub(replace, sql), names


def _describe_prepared(
    conn: Connection, stmt: Any, parameters: dict[str, Any]
) -> list[_RawColumn]:
    from psycopg.adapt import PyFormat, Transformer

    driver_connection = conn.connection.driver_connection
    sql, names = numbered_statement(stmt.compile(dialect=conn.dialect).string)
    values = [parameters.get(name) for name in names]
    transformer = Transformer(driver_connection)
    transformer.dump_sequence(values, [PyFormat.AUTO] * len(values))
    return prepared_columns(
        driver_connection.pgconn,
        sql,
        list(transformer.types or ()),
        driver_connection.info.encoding,
    )


def prepared_columns(
    pgconn: Any, sql: str, param_types: list[int], encoding: str = "utf-8"
) -> list[_RawColumn]:
    """Prepare sql as the unnamed statement and describe its result columns.

    Raises:
        StatementRejected: when the server refuses the statement.
    """
    _check_result(pgconn.prepare(b"", sql.encode(encoding), param_types), encoding)
    described = pgconn.describe_prepared(b"")
    _check_result(described, encoding)

    columns: list[_RawColumn] = []
    for index in range(described.nfields):
        name = described.fname(index)
        columns.append(
            _RawColumn(
                name=name.decode(encoding) if name else "?column?",
                type_code=described.ftype(index),
                null_ok=None,
                table_oid=described.ftable(index) or None,
                table_column=described.ftablecol(index) or None,
            )
        )
    return columns


def _check_result(result: Any, encoding: str) -> None:
    if result.status == _PG_COMMAND_OK:
        return
    raw = result.error_field(_PG_DIAG_MESSAGE_PRIMARY) or result.error_message
    message = raw.decode(encoding, "replace").strip() if raw else ""
    raise StatementRejected(message.splitlines()[0] if message else "statement rejected")


def _capture(cursor: Any) -> list[_RawColumn]:
    description = cursor.description or ()
    pgresult = getattr(cursor, "pgresult", None)
    columns: list[_RawColumn] = []
    for index, item in enumerate(description):
        table_oid = getattr(item, "table_oid", None)
        table_column = getattr(item, "table_column", None)
        if table_oid is None and pgresult is not None:
            table_oid = pgresult.ftable(index)
            table_column = pgresult.ftablecol(index)
        null_ok = item[6] if len(item) > 6 else None
        columns.append(
            _RawColumn(
                name=item[0],
                type_code=item[1],
                null_ok=None if null_ok is None else bool(null_ok),
                table_oid=table_oid or None,
                table_column=table_column or None,
            )
        )
    return columns


def _describe_postgres(conn: Connection, raw: list[_RawColumn]) -> list[ColumnSchema]:
    type_names = dict(PG_TYPE_NAMES)
    unknown = {c.type_code for c in raw if isinstance(c.type_code, int)} - type_names.keys()
    for oid in sorted(unknown):
        row = conn.execute(
            text("SELECT typname FROM pg_catalog.pg_type WHERE oid = :oid"), {"oid": oid}
        ).first()
        if row is not None:
            type_names[oid] = row[0]

    columns: list[ColumnSchema] = []
    for ordinal, column in enumerate(raw):
        nullable: bool | None = None
        has_default = False
        if column.table_oid and column.table_column and column.table_column > 0:
            row = conn.execute(
                text(
                    "SELECT attnotnull, atthasdef FROM pg_catalog.pg_attribute "
                    "WHERE attrelid = :rel AND attnum = :num"
                ),
                {"rel": column.table_oid, "num": column.table_column},
            ).first()
            if row is not None:
                nullable = not row[0]
                has_default = bool(row[1])
        columns.append(
            ColumnSchema(
                ordinal=ordinal,
                name=column.name,
                native_type=type_names.get(column.type_code, str(column.type_code)),
                nullable=nullable,
                has_default=has_default,
            )
        )
    return columns


def _describe_generic(conn: Connection, raw: list[_RawColumn]) -> list[ColumnSchema]:
    dialect = conn.dialect
    dbapi = getattr(dialect, "loaded_dbapi", None) or dialect.dbapi
    columns: list[ColumnSchema] = []
    for ordinal, column in enumerate(raw):
        native_type = None
        for category in _DBAPI_CATEGORIES:
            type_object = getattr(dbapi, category, None)
            if type_object is not None and column.type_code == type_object:
                native_type = category.lower()
                break
        columns.append(
            ColumnSchema(
                ordinal=ordinal,
                name=column.name,
                native_type=native_type,
                nullable=column.null_ok,
            )
        )
    return columns
