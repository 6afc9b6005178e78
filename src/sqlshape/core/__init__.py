"""Core module exports."""

from sqlshape.core.errors import (
    CompileError,
    ConfigError,
    ErrorCode,
    InternalError,
    RuntimeDispatchError,
    SqlShapeError,
)
from sqlshape.core.logging import (
    clear_pass_id,
    configure_logging,
    get_logger,
    get_pass_id,
    set_pass_id,
)
from sqlshape.core.progress import spinner, status

__all__ = [
    # Errors
    "SqlShapeError",
    "ConfigError",
    "CompileError",
    "RuntimeDispatchError",
    "ErrorCode",
    "InternalError",
    # Logging
    "clear_pass_id",
    "configure_logging",
    "get_logger",
    "get_pass_id",
    "set_pass_id",
    # Progress
    "spinner",
    "status",
]
