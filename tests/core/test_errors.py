"""Tests for error types and codes."""

import pytest

from sqlshape.core.errors import (
    CompileError,
    ConfigError,
    ErrorCode,
    InternalError,
    RuntimeDispatchError,
    SqlShapeError,
)


class TestErrorCode:
    """Error code value tests."""

    @pytest.mark.parametrize(
        ("code", "expected_range"),
        [
            (ErrorCode.CONFIG_PARSE_ERROR, 2000),
            (ErrorCode.CONFIG_MISSING_REQUIRED, 2000),
            (ErrorCode.UNSUPPORTED_EXPRESSION, 3000),
            (ErrorCode.GENERATION_CANCELLED, 3000),
            (ErrorCode.UNBOUND_CALL_SITE, 4000),
            (ErrorCode.NULL_COLUMN, 4000),
            (ErrorCode.INTERNAL_ERROR, 9000),
        ],
    )
    def test_given_error_code_when_checked_then_in_correct_range(
        self, code: ErrorCode, expected_range: int
    ) -> None:
        """Error codes fall within their designated numeric range."""
        # Given
        error_code = code

        # When
        value = error_code.value

        # Then
        assert expected_range <= value < expected_range + 1000


class TestSqlShapeError:
    """Base error behavior tests."""

    def test_given_error_when_to_dict_then_serializes_all_fields(self) -> None:
        """Error serializes to dict with all required fields."""
        # Given
        error = SqlShapeError(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message="Test message",
            retryable=True,
            details={"key": "value"},
        )

        # When
        result = error.to_dict()

        # Then
        assert result == {
            "code": 2001,
            "error": "CONFIG_PARSE_ERROR",
            "message": "Test message",
            "retryable": True,
            "details": {"key": "value"},
        }

    def test_given_error_when_str_then_human_readable(self) -> None:
        """Error string representation is human readable."""
        # Given
        error = SqlShapeError(code=ErrorCode.INTERNAL_ERROR, message="Something broke")

        # When
        result = str(error)

        # Then
        assert result == "[9001] INTERNAL_ERROR: Something broke"


class TestConfigError:
    """ConfigError factory method tests."""

    @pytest.mark.parametrize(
        ("factory", "kwargs", "expected_code"),
        [
            ("parse_error", {"path": "/foo", "reason": "bad yaml"}, ErrorCode.CONFIG_PARSE_ERROR),
            (
                "invalid_value",
                {"field": "database.max_workers", "value": 0, "reason": "too small"},
                ErrorCode.CONFIG_INVALID_VALUE,
            ),
            (
                "missing_required",
                {"field": "database.connection_string"},
                ErrorCode.CONFIG_MISSING_REQUIRED,
            ),
            ("file_not_found", {"path": "/missing"}, ErrorCode.CONFIG_FILE_NOT_FOUND),
        ],
    )
    def test_given_factory_when_called_then_correct_code(
        self, factory: str, kwargs: dict[str, object], expected_code: ErrorCode
    ) -> None:
        """Factory methods produce errors with correct error codes."""
        # Given
        factory_method = getattr(ConfigError, factory)

        # When
        error = factory_method(**kwargs)

        # Then
        assert error.code == expected_code


class TestCompileError:
    """CompileError factory method tests."""

    def test_given_unsupported_expression_when_created_then_message_shows_hole(self) -> None:
        # Given
        expression = "user.email"

        # When
        error = CompileError.unsupported_expression(expression)

        # Then
        assert error.code == ErrorCode.UNSUPPORTED_EXPRESSION
        assert error.message == "Unsupported expression in query: {user.email}"

    def test_given_unknown_parameter_type_when_created_then_placeholder_shown(self) -> None:
        # Given / When
        error = CompileError.unsupported_parameter_type("email", None)

        # Then
        assert error.code == ErrorCode.UNSUPPORTED_PARAMETER_TYPE
        assert "<unknown>" in error.message
        assert error.details["parameter"] == "email"

    def test_given_cancellation_when_created_then_pending_in_details(self) -> None:
        # Given / When
        error = CompileError.cancelled(3)

        # Then
        assert error.code == ErrorCode.GENERATION_CANCELLED
        assert error.details == {"pending": 3}


class TestRuntimeDispatchError:
    """RuntimeDispatchError factory method tests."""

    def test_given_unbound_call_site_when_created_then_location_in_details(self) -> None:
        # Given / When
        error = RuntimeDispatchError.unbound_call_site("/app/users.py", 12, 5)

        # Then
        assert error.code == ErrorCode.UNBOUND_CALL_SITE
        assert error.details == {"path": "/app/users.py", "line": 12, "column": 5}
        assert "sqlshape generate" in error.message

    def test_given_null_column_when_created_then_names_type_and_column(self) -> None:
        # Given / When
        error = RuntimeDispatchError.null_column("User", "email")

        # Then
        assert error.code == ErrorCode.NULL_COLUMN
        assert "User" in error.message
        assert "email" in error.message


class TestInternalError:
    """InternalError tests."""

    def test_given_unexpected_error_when_created_then_includes_extras(self) -> None:
        """Unexpected error captures arbitrary extra details."""
        # Given
        extras = {"foo": "bar", "count": 42}

        # When
        error = InternalError.unexpected("boom", **extras)

        # Then
        assert error.details == extras
        assert error.code == ErrorCode.INTERNAL_ERROR
