"""Diagnostics reported by a generation pass.

A diagnostic is the only signal a broken call site produces: the pass
itself never fails because of one. Codes are stable and documented:

- SQS001 MissingConnectionString: reported once per pass, no call site
- SQS002 QueryValidationFailed: the database rejected the statement
- SQS003 UnsupportedParameterType: a placeholder's static type has no example value
- SQS004 UnsupportedExpression: a template hole is not a simple identifier
- SQS005 UnsupportedColumnType: a result column's database type has no Python mapping
- SQS006 ConflictingResultType: one result type name, two different shapes
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sqlshape.compiler.models import SourceLocation
from sqlshape.core.errors import CompileError, ErrorCode


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class DiagnosticCode(str, Enum):
    MISSING_CONNECTION_STRING = "SQS001"
    QUERY_VALIDATION_FAILED = "SQS002"
    UNSUPPORTED_PARAMETER_TYPE = "SQS003"
    UNSUPPORTED_EXPRESSION = "SQS004"
    UNSUPPORTED_COLUMN_TYPE = "SQS005"
    CONFLICTING_RESULT_TYPE = "SQS006"

    @property
    def title(self) -> str:
        return _TITLES[self]


_TITLES = {
    DiagnosticCode.MISSING_CONNECTION_STRING: "Missing connection string",
    DiagnosticCode.QUERY_VALIDATION_FAILED: "Query validation failed",
    DiagnosticCode.UNSUPPORTED_PARAMETER_TYPE: "Unsupported parameter type",
    DiagnosticCode.UNSUPPORTED_EXPRESSION: "Unsupported expression in query",
    DiagnosticCode.UNSUPPORTED_COLUMN_TYPE: "Unsupported column type",
    DiagnosticCode.CONFLICTING_RESULT_TYPE: "Conflicting result type",
}

_COMPILE_ERROR_CODES = {
    ErrorCode.UNSUPPORTED_EXPRESSION: DiagnosticCode.UNSUPPORTED_EXPRESSION,
    ErrorCode.UNSUPPORTED_PARAMETER_TYPE: DiagnosticCode.UNSUPPORTED_PARAMETER_TYPE,
    ErrorCode.UNSUPPORTED_COLUMN_TYPE: DiagnosticCode.UNSUPPORTED_COLUMN_TYPE,
}


@dataclass(frozen=True, slots=True)
class Diagnostic:
    code: DiagnosticCode
    message: str
    location: SourceLocation | None = None
    severity: Severity = Severity.ERROR

    def render(self) -> str:
        """Compiler-style one-line rendering: ``path:line:col: error SQS002: ...``."""
        where = f"{self.location}: " if self.location is not None else ""
        return f"{where}{self.severity.value} {self.code.value}: {self.message}"

    def sort_key(self) -> tuple[int, SourceLocation | None, str, str]:
        if self.location is None:
            return (0, None, self.code.value, self.message)  # type: ignore[return-value]
        return (1, self.location, self.code.value, self.message)


def missing_connection_string() -> Diagnostic:
    return Diagnostic(
        code=DiagnosticCode.MISSING_CONNECTION_STRING,
        message="Missing connection string (set database.connection_string "
        "or SQLSHAPE__DATABASE__CONNECTION_STRING)",
    )


def query_validation_failed(location: SourceLocation, backend: str, message: str) -> Diagnostic:
    return Diagnostic(
        code=DiagnosticCode.QUERY_VALIDATION_FAILED,
        message=f"{backend}: {message}",
        location=location,
    )


def conflicting_result_type(
    location: SourceLocation, name: str, first: SourceLocation
) -> Diagnostic:
    return Diagnostic(
        code=DiagnosticCode.CONFLICTING_RESULT_TYPE,
        message=f"Result type '{name}' has a different shape than at {first}",
        location=location,
    )


def from_compile_error(location: SourceLocation, error: CompileError) -> Diagnostic:
    code = _COMPILE_ERROR_CODES.get(error.code, DiagnosticCode.UNSUPPORTED_EXPRESSION)
    return Diagnostic(code=code, message=error.message, location=location)


def sort_diagnostics(diagnostics: list[Diagnostic]) -> list[Diagnostic]:
    return sorted(diagnostics, key=lambda d: d.sort_key())
