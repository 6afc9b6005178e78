"""Tests for compiler/diagnostics.py."""

from sqlshape.compiler.diagnostics import (
    Diagnostic,
    DiagnosticCode,
    conflicting_result_type,
    from_compile_error,
    missing_connection_string,
    query_validation_failed,
    sort_diagnostics,
)
from sqlshape.compiler.models import SourceLocation
from sqlshape.core.errors import CompileError

HERE = SourceLocation("app/users.py", 5, 12)


class TestRender:
    def test_given_located_diagnostic_when_rendered_then_compiler_style(self) -> None:
        diagnostic = query_validation_failed(HERE, "postgresql", 'column "emial" does not exist')

        assert diagnostic.render() == (
            'app/users.py:5:12: error SQS002: postgresql: column "emial" does not exist'
        )

    def test_given_pass_level_diagnostic_when_rendered_then_no_location(self) -> None:
        assert missing_connection_string().render().startswith("error SQS001: ")


class TestFactories:
    def test_given_compile_errors_when_converted_then_matching_codes(self) -> None:
        assert (
            from_compile_error(HERE, CompileError.unsupported_expression("a.b")).code
            is DiagnosticCode.UNSUPPORTED_EXPRESSION
        )
        assert (
            from_compile_error(HERE, CompileError.unsupported_parameter_type("x", None)).code
            is DiagnosticCode.UNSUPPORTED_PARAMETER_TYPE
        )
        assert (
            from_compile_error(HERE, CompileError.unsupported_column_type("c", "geometry")).code
            is DiagnosticCode.UNSUPPORTED_COLUMN_TYPE
        )

    def test_given_conflict_when_created_then_names_first_location(self) -> None:
        first = SourceLocation("app/accounts.py", 2, 5)

        diagnostic = conflicting_result_type(HERE, "User", first)

        assert diagnostic.code is DiagnosticCode.CONFLICTING_RESULT_TYPE
        assert "app/accounts.py:2:5" in diagnostic.message

    def test_codes_have_titles(self) -> None:
        assert all(code.title for code in DiagnosticCode)


class TestSortDiagnostics:
    def test_given_mixed_diagnostics_when_sorted_then_pass_level_first_then_location(
        self,
    ) -> None:
        later = Diagnostic(
            DiagnosticCode.QUERY_VALIDATION_FAILED, "b", SourceLocation("b.py", 1, 1)
        )
        earlier = Diagnostic(
            DiagnosticCode.QUERY_VALIDATION_FAILED, "a", SourceLocation("a.py", 9, 1)
        )
        global_ = missing_connection_string()

        assert sort_diagnostics([later, earlier, global_]) == [global_, earlier, later]
