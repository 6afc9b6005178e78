"""Configuration loading with pydantic-settings.

Supports loading configuration from multiple sources with precedence:
1. Direct kwargs (highest priority)
2. Environment variables (SQLSHAPE__SECTION__KEY)
3. Project config (.sqlshape/config.yaml)
4. Global config (~/.config/sqlshape/config.yaml)
5. Built-in defaults (lowest priority)

The connection string is the one build property the compiler cannot do
without; it usually arrives through SQLSHAPE__DATABASE__CONNECTION_STRING
so that it stays out of version control.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from sqlshape.config.constants import CONFIG_DIR_NAME
from sqlshape.config.models import (
    DatabaseConfig,
    GenerateConfig,
    LoggingConfig,
    SqlShapeConfig,
)
from sqlshape.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/sqlshape/config.yaml").expanduser()


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top level must be a mapping")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """Create a Settings class with instance-based YAML source (thread-safe)."""

    class SqlShapeSettings(BaseSettings):
        """Root config. Env vars: SQLSHAPE__DATABASE__CONNECTION_STRING, etc."""

        model_config = SettingsConfigDict(
            env_prefix="SQLSHAPE__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        database: DatabaseConfig = DatabaseConfig()
        generate: GenerateConfig = GenerateConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml files
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return SqlShapeSettings


SqlShapeSettings = _make_settings_class({})


def load_config(project_root: Path | None = None, **kwargs: Any) -> SqlShapeConfig:
    """Load config: defaults < global yaml < project yaml < env vars < kwargs.

    Args:
        project_root: Project root holding .sqlshape/config.yaml.
                      Defaults to current working directory.
        **kwargs: Override values (highest precedence).

    Returns:
        Fully resolved configuration object.

    Raises:
        ConfigError: On invalid YAML syntax or validation errors.
    """
    project_root = project_root or Path.cwd()

    yaml_config = _load_yaml(project_root / CONFIG_DIR_NAME / "config.yaml")

    global_config = _load_yaml(GLOBAL_CONFIG_PATH)
    if global_config:
        yaml_config = _deep_merge(global_config, yaml_config)

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        value = "**********" if field.endswith("connection_string") else err.get("input")
        raise ConfigError.invalid_value(field, value, err["msg"]) from e
    return SqlShapeConfig.model_validate(settings.model_dump())


def require_connection_string(config: SqlShapeConfig) -> str:
    """Return the connection string or raise ConfigError when missing/blank."""
    value = config.database.resolved_connection_string()
    if value is None:
        raise ConfigError.missing_required("database.connection_string")
    return value
