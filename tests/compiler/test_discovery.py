"""Tests for compiler/discovery.py and compiler/scopes.py.

Covers:
- Recognising query/execute call sites through imports and aliases
- Shadowed names and unrelated calls
- Placeholder type inference
- Per call-site failures
- iter_source_files()
"""

from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest

from sqlshape.compiler.diagnostics import DiagnosticCode
from sqlshape.compiler.discovery import DiscoveryResult, discover_call_sites, iter_source_files
from sqlshape.compiler.models import OperationKind, Placeholder, SourceLocation
from sqlshape.compiler.scopes import normalize_annotation


def _discover(code: str, path: str = "app/users.py") -> DiscoveryResult:
    return discover_call_sites(path, dedent(code).lstrip().encode(), connection_id="conn")


class TestRecognition:
    """Which calls are call sites."""

    def test_given_imported_query_when_discovered_then_descriptor_built(self) -> None:
        # Given
        code = """
        from sqlshape.runtime import query


        def find(connection, email: str):
            return query[User](connection, f"SELECT id FROM users WHERE email = {email}")
        """

        # When
        result = _discover(code)

        # Then
        assert result.failures == ()
        (descriptor,) = result.descriptors
        assert descriptor.kind is OperationKind.QUERY
        assert descriptor.result_name == "User"
        assert descriptor.sql == "SELECT id FROM users WHERE email = :email"
        assert descriptor.parameters == (Placeholder("email", "str"),)
        assert descriptor.connection_id == "conn"
        assert descriptor.location == SourceLocation("app/users.py", 5, 12)

    def test_given_execute_when_discovered_then_no_result_name(self) -> None:
        code = """
        from sqlshape.runtime import execute

        def purge(connection):
            days = 30
            return execute(connection, f"DELETE FROM events WHERE age > {days}")
        """

        (descriptor,) = _discover(code).descriptors

        assert descriptor.kind is OperationKind.EXECUTE
        assert descriptor.result_name is None
        assert descriptor.parameters == (Placeholder("days", "int"),)

    def test_given_module_alias_when_discovered_then_recognised(self) -> None:
        code = """
        import sqlshape.runtime as db

        def find(connection, user_id: int):
            return db.query[User](connection, f"SELECT * FROM users WHERE id = {user_id}")
        """

        (descriptor,) = _discover(code).descriptors

        assert descriptor.result_name == "User"

    def test_given_from_package_import_when_discovered_then_recognised(self) -> None:
        code = """
        from sqlshape import runtime

        def touch(connection):
            runtime.execute(connection, f"UPDATE users SET seen = 1")
        """

        (descriptor,) = _discover(code).descriptors

        assert descriptor.kind is OperationKind.EXECUTE
        assert descriptor.parameters == ()

    def test_given_function_alias_when_discovered_then_recognised(self) -> None:
        code = """
        from sqlshape.runtime import query as q

        rows = q["Order"](connection, f"SELECT * FROM orders")
        """

        (descriptor,) = _discover(code).descriptors

        assert descriptor.result_name == "Order"

    def test_given_template_keyword_when_discovered_then_recognised(self) -> None:
        code = """
        from sqlshape.runtime import execute

        execute(connection, template=f"DELETE FROM sessions")
        """

        (descriptor,) = _discover(code).descriptors

        assert descriptor.sql == "DELETE FROM sessions"

    def test_given_shadowing_parameter_when_discovered_then_ignored(self) -> None:
        code = """
        from sqlshape.runtime import query

        def run(query, connection):
            return query[User](connection, f"SELECT 1")
        """

        assert _discover(code) == DiscoveryResult()

    def test_given_unrelated_query_function_when_discovered_then_ignored(self) -> None:
        code = """
        import sqlshape

        def query(connection, text):
            return connection.execute(text)

        query(connection, f"SELECT 1")
        """

        assert _discover(code) == DiscoveryResult()

    def test_given_unused_import_when_discovered_then_nothing(self) -> None:
        assert _discover("from sqlshape.runtime import execute, query\n") == DiscoveryResult()

    def test_given_file_without_package_when_discovered_then_nothing(self) -> None:
        assert _discover("def query(x):\n    return x\n") == DiscoveryResult()

    def test_given_several_calls_when_discovered_then_all_in_source_order(self) -> None:
        code = """
        from sqlshape.runtime import execute, query

        def a(connection):
            query[A](connection, f"SELECT 1 AS one")

        def b(connection):
            execute(connection, f"DELETE FROM t")
            query[B](connection, f"SELECT 2 AS two")
        """

        result = _discover(code)

        assert [d.location.line for d in result.descriptors] == [4, 7, 8]
        assert [d.result_name for d in result.descriptors] == ["A", None, "B"]


class TestPlaceholderTypes:
    """Static type inference for placeholders."""

    @pytest.mark.parametrize(
        ("declaration", "expected"),
        [
            ("value: str = get()", "str"),
            ("value: Optional[int] = None", "int"),
            ("value: 'datetime.date | None' = None", "datetime.date"),
            ("value = 'text'", "str"),
            ("value = -5", "int"),
            ("value = 2.5", "float"),
            ("value = True", "bool"),
            ("value = b'raw'", "bytes"),
            ("value = Decimal('1.5')", "Decimal"),
            ("value = uuid.uuid4()", "UUID"),
            ("value = datetime.datetime.now()", "datetime"),
            ("value = date.today()", "date"),
            ("value = get()", None),
        ],
    )
    def test_given_local_when_inferred_then_type(
        self, declaration: str, expected: str | None
    ) -> None:
        code = f"""
        from sqlshape.runtime import execute

        def run(connection):
            {declaration}
            execute(connection, f"DELETE FROM t WHERE c = {{value}}")
        """

        (descriptor,) = _discover(code).descriptors

        assert descriptor.parameters == (Placeholder("value", expected),)

    def test_given_module_level_constant_when_inferred_then_type(self) -> None:
        code = """
        from sqlshape.runtime import query

        LIMIT = 10

        def top(connection):
            return query[Row](connection, f"SELECT * FROM t LIMIT {LIMIT}")
        """

        (descriptor,) = _discover(code).descriptors

        assert descriptor.parameters == (Placeholder("LIMIT", "int"),)

    def test_given_parameter_default_when_inferred_then_type(self) -> None:
        code = """
        from sqlshape.runtime import query

        def page(connection, size=20):
            return query[Row](connection, f"SELECT * FROM t LIMIT {size}")
        """

        (descriptor,) = _discover(code).descriptors

        assert descriptor.parameters == (Placeholder("size", "int"),)

    def test_given_untyped_parameter_when_inferred_then_unknown(self) -> None:
        code = """
        from sqlshape.runtime import query

        def find(connection, email):
            return query[User](connection, f"SELECT * FROM users WHERE email = {email}")
        """

        (descriptor,) = _discover(code).descriptors

        assert descriptor.parameters == (Placeholder("email", None),)

    @pytest.mark.parametrize(
        ("annotation", "expected"),
        [
            ("str", "str"),
            ("Optional[str]", "str"),
            ("typing.Optional[int]", "int"),
            ("str | None", "str"),
            ("None | str", "str"),
            ("Final[int]", "int"),
            ("Annotated[int, 'meta']", "int"),
            ("Union[str, None]", "str"),
            ("int | str", None),
            ("'uuid.UUID'", "uuid.UUID"),
        ],
    )
    def test_given_annotation_when_normalized_then_underlying_type(
        self, annotation: str, expected: str | None
    ) -> None:
        assert normalize_annotation(annotation) == expected


class TestFailures:
    """Per call-site problems become failures, not exceptions."""

    def test_given_attribute_hole_when_discovered_then_failure_and_others_kept(self) -> None:
        # Given
        code = """
        from sqlshape.runtime import query

        def find(connection, user):
            return query[User](connection, f"SELECT * FROM users WHERE email = {user.email}")

        def count(connection):
            return query[Count](connection, f"SELECT count(*) AS n FROM users")
        """

        # When
        result = _discover(code)

        # Then
        (failure,) = result.failures
        assert failure.result_name == "User"
        assert failure.location == SourceLocation("app/users.py", 4, 12)
        (diagnostic,) = failure.diagnostics
        assert diagnostic.code is DiagnosticCode.UNSUPPORTED_EXPRESSION
        assert "{user.email}" in diagnostic.message
        assert [d.result_name for d in result.descriptors] == ["Count"]

    def test_given_query_without_result_type_when_discovered_then_failure(self) -> None:
        code = """
        from sqlshape.runtime import query

        query(connection, f"SELECT 1")
        """

        (failure,) = _discover(code).failures

        assert failure.kind is OperationKind.QUERY
        assert "result type" in failure.reason

    def test_given_non_literal_template_when_discovered_then_failure(self) -> None:
        code = """
        from sqlshape.runtime import execute

        statement = f"DELETE FROM t"
        execute(connection, statement)
        """

        (failure,) = _discover(code).failures

        assert failure.kind is OperationKind.EXECUTE
        assert "literal" in failure.reason


class TestIterSourceFiles:
    """Project file enumeration."""

    def test_given_tree_when_iterated_then_pruned_and_sorted(self, tmp_path: Path) -> None:
        # Given
        for rel in (
            "b.py",
            "a.py",
            "pkg/mod.py",
            "pkg/notes.txt",
            ".venv/lib/site.py",
            "node_modules/x.py",
            "generated/dispatch.py",
        ):
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("x = 1\n")

        # When
        files = list(
            iter_source_files(tmp_path, include=["**/*.py"], exclude_dirs=["generated"])
        )

        # Then
        assert [f.path for f in files] == ["a.py", "b.py", "pkg/mod.py"]
        assert files[0].text == b"x = 1\n"

    def test_given_narrow_include_when_iterated_then_only_matches(self, tmp_path: Path) -> None:
        (tmp_path / "app").mkdir()
        (tmp_path / "app" / "db.py").write_text("")
        (tmp_path / "setup.py").write_text("")

        files = list(iter_source_files(tmp_path, include=["app/*.py"]))

        assert [f.path for f in files] == ["app/db.py"]
