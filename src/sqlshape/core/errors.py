"""sqlshape error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Compile (extraction, type mapping, cancellation)
- 4xxx: Runtime (dispatch, materialization)
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003
    CONFIG_FILE_NOT_FOUND = 2004

    # Compile (3xxx)
    UNSUPPORTED_EXPRESSION = 3001
    UNSUPPORTED_PARAMETER_TYPE = 3002
    UNSUPPORTED_COLUMN_TYPE = 3003
    GENERATION_CANCELLED = 3004

    # Runtime (4xxx)
    UNBOUND_CALL_SITE = 4001
    NULL_COLUMN = 4002
    MISSING_PARAMETER = 4003

    # Internal (9xxx)
    INTERNAL_ERROR = 9001
    INTERNAL_TIMEOUT = 9002


@dataclass(frozen=True, slots=True)
class SqlShapeError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'CONFIG_PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(SqlShapeError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def missing_required(cls, field: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_MISSING_REQUIRED,
            message=f"Missing required config field: {field}",
            details={"field": field},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )


class CompileError(SqlShapeError):
    """Errors raised while turning one call site into generated code.

    These never escape the pipeline: each one is converted into a
    diagnostic for the call site that caused it.
    """

    @classmethod
    def unsupported_expression(cls, expression: str) -> "CompileError":
        return cls(
            code=ErrorCode.UNSUPPORTED_EXPRESSION,
            message=f"Unsupported expression in query: {{{expression}}}",
            details={"expression": expression},
        )

    @classmethod
    def invalid_call_site(cls, reason: str) -> "CompileError":
        return cls(
            code=ErrorCode.UNSUPPORTED_EXPRESSION,
            message=f"Unsupported call: {reason}",
            details={"reason": reason},
        )

    @classmethod
    def unsupported_parameter_type(cls, name: str, type_name: str | None) -> "CompileError":
        shown = type_name or "<unknown>"
        return cls(
            code=ErrorCode.UNSUPPORTED_PARAMETER_TYPE,
            message=f"Type {shown} of parameter '{name}' is not supported",
            details={"parameter": name, "type": shown},
        )

    @classmethod
    def unsupported_column_type(cls, column: str, native_type: str) -> "CompileError":
        return cls(
            code=ErrorCode.UNSUPPORTED_COLUMN_TYPE,
            message=f"Column '{column}' has unsupported database type '{native_type}'",
            details={"column": column, "native_type": native_type},
        )

    @classmethod
    def cancelled(cls, pending: int) -> "CompileError":
        return cls(
            code=ErrorCode.GENERATION_CANCELLED,
            message=f"Generation pass cancelled with {pending} call site(s) pending",
            details={"pending": pending},
        )


class RuntimeDispatchError(SqlShapeError):
    """Errors raised by generated code and the runtime dispatch table."""

    @classmethod
    def unbound_call_site(cls, path: str, line: int, column: int) -> "RuntimeDispatchError":
        return cls(
            code=ErrorCode.UNBOUND_CALL_SITE,
            message=(
                f"This call was not bound to a generated dispatcher ({path}:{line}:{column}). "
                "Run 'sqlshape generate' and import the generated package."
            ),
            details={"path": path, "line": line, "column": column},
        )

    @classmethod
    def null_column(cls, result_type: str, column: str) -> "RuntimeDispatchError":
        return cls(
            code=ErrorCode.NULL_COLUMN,
            message=f"Column '{column}' of {result_type} is declared NOT NULL but returned NULL",
            details={"result_type": result_type, "column": column},
        )

    @classmethod
    def missing_parameter(cls, name: str) -> "RuntimeDispatchError":
        return cls(
            code=ErrorCode.MISSING_PARAMETER,
            message=f"No value found for query parameter '{name}' in the calling scope",
            details={"parameter": name},
        )


class InternalError(SqlShapeError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
