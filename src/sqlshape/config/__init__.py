"""Config module exports."""

from sqlshape.config.loader import SqlShapeSettings, load_config, require_connection_string
from sqlshape.config.models import (
    DatabaseConfig,
    GenerateConfig,
    LoggingConfig,
    SqlShapeConfig,
)

__all__ = [
    "load_config",
    "require_connection_string",
    "SqlShapeConfig",
    "SqlShapeSettings",
    "DatabaseConfig",
    "GenerateConfig",
    "LoggingConfig",
]
