"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (SQLSHAPE__SECTION__KEY)
3. Project YAML (.sqlshape/config.yaml)
4. Global YAML (~/.config/sqlshape/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    SQLSHAPE__<SECTION>__<KEY>=<VALUE>

Examples:
    SQLSHAPE__DATABASE__CONNECTION_STRING=postgresql+psycopg://app@localhost/app
    SQLSHAPE__DATABASE__MAX_WORKERS=8
    SQLSHAPE__GENERATE__OUTPUT_DIR=src/app/sql_generated
    SQLSHAPE__LOGGING__LEVEL=DEBUG
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
PropertyCase = Literal["pascal", "snake"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        SQLSHAPE__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="WARNING",
        description="Root log level. INFO logs every probe; DEBUG is verbose.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class DatabaseConfig(BaseModel):
    """Schema probing database configuration.

    Env vars:
        SQLSHAPE__DATABASE__CONNECTION_STRING: SQLAlchemy URL of the schema database
        SQLSHAPE__DATABASE__MAX_WORKERS: Probes in flight at once
        SQLSHAPE__DATABASE__STATEMENT_TIMEOUT_SEC: Per-probe statement timeout
    """

    connection_string: SecretStr | None = Field(
        default=None,
        description="SQLAlchemy URL of the database every query is validated against. "
        "Required; a blank value counts as missing.",
    )
    max_workers: int = Field(
        default=4,
        description="Parallel schema probes. Each probe opens its own connection.",
    )
    statement_timeout_sec: float = Field(
        default=30.0,
        description="Statement timeout applied to each probe where the backend supports it.",
    )

    @field_validator("max_workers")
    @classmethod
    def validate_max_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_workers must be >= 1, got {v}")
        return v

    @field_validator("connection_string")
    @classmethod
    def validate_connection_string(cls, v: SecretStr | None) -> SecretStr | None:
        value = v.get_secret_value().strip() if v is not None else ""
        if not value:
            return v
        try:
            make_url(value)
        except (ArgumentError, ValueError) as e:
            # The URL may carry a password: report the reason, never the value
            reason = type(e).__name__
            raise ValueError(f"not a valid SQLAlchemy database URL ({reason})") from None
        return v

    def resolved_connection_string(self) -> str | None:
        """The connection string, or None when unset or blank."""
        if self.connection_string is None:
            return None
        value = self.connection_string.get_secret_value().strip()
        return value or None


class GenerateConfig(BaseModel):
    """Code generation configuration.

    Env vars:
        SQLSHAPE__GENERATE__OUTPUT_DIR: Directory of the generated package
        SQLSHAPE__GENERATE__PROPERTY_CASE: pascal (DateOfBirth) or snake (date_of_birth)
    """

    output_dir: str = Field(
        default="sqlshape_generated",
        description="Generated package directory, relative to the project root.",
    )
    property_case: PropertyCase = Field(
        default="pascal",
        description="Casing applied to column names to form result properties.",
    )
    include: list[str] = Field(
        default_factory=lambda: ["**/*.py"],
        description="Glob patterns (relative to the project root) scanned for call sites.",
    )
    exclude_dirs: list[str] = Field(
        default_factory=list,
        description="Extra directory names never scanned, on top of the built-in list.",
    )

    @field_validator("output_dir")
    @classmethod
    def validate_output_dir(cls, v: str) -> str:
        name = Path(v).name
        if not name.isidentifier():
            raise ValueError(f"Output directory name must be a valid package name: {v}")
        return v

    @property
    def package_name(self) -> str:
        return Path(self.output_dir).name


class SqlShapeConfig(BaseModel):
    """Root configuration for sqlshape.

    All settings can be configured via:
    1. Environment variables: SQLSHAPE__SECTION__KEY
    2. YAML config files (project or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    generate: GenerateConfig = Field(default_factory=GenerateConfig)
