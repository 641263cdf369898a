"""Rulewire settings.

Values come from keyword arguments, the environment, ``.env`` and an
optional ``rulewire.yaml``. YAML values may reference environment variables
as ``${NAME}`` so webhook secrets stay out of the file.
"""

import logging
import os
import re
from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from rulewire.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "RULEWIRE_CONFIG"

_PLACEHOLDER_RE = re.compile(r"^\$\{([A-Z_][A-Z0-9_]*)\}$")

# Checked in order after RULEWIRE_CONFIG; the first existing file is used
_YAML_SEARCH_PATHS = [
    Path("rulewire.yaml"),
    Path("config/rulewire.yaml"),
    Path.home() / ".config" / "rulewire" / "rulewire.yaml",
]


def find_config_file() -> Path | None:
    """Locate the YAML config file, or None when there is none.

    Raises:
        ConfigurationError: RULEWIRE_CONFIG names a file that does not exist
    """
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        path = Path(explicit).expanduser()
        if not path.is_file():
            raise ConfigurationError(f"{CONFIG_ENV_VAR} points to a missing file: {path}")
        return path
    return next((path for path in _YAML_SEARCH_PATHS if path.is_file()), None)


class Settings(BaseSettings):
    """Application settings.

    Priority: init kwargs > env vars > .env file > rulewire.yaml > file secrets > defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        config_file = find_config_file()
        if config_file is None:
            return init_settings, env_settings, dotenv_settings, file_secret_settings

        logger.debug(f"Loading settings from {config_file}")
        yaml_settings = YamlConfigSettingsSource(
            settings_cls, yaml_file=config_file, yaml_file_encoding="utf-8"
        )
        return init_settings, env_settings, dotenv_settings, yaml_settings, file_secret_settings

    @model_validator(mode="before")
    @classmethod
    def _expand_placeholders(cls, data):
        """Replace ``${NAME}`` values with the environment variable's value.

        A placeholder whose variable is unset is dropped so the field default
        applies instead of the literal ``${NAME}`` string.
        """
        if not isinstance(data, dict):
            return data
        expanded = {}
        for key, value in data.items():
            match = _PLACEHOLDER_RE.match(value) if isinstance(value, str) else None
            if match is None:
                expanded[key] = value
            elif match.group(1) in os.environ:
                expanded[key] = os.environ[match.group(1)]
        return expanded

    # Logging
    log_level: str = Field("INFO", description="Logging level")
    log_format: str = Field("text", description="Log format: 'text' or 'json'")
    sanitize_logs: bool = Field(True, description="Sanitize sensitive data from logs")

    # Persistence
    database_url: str = Field(
        "sqlite:///rulewire.db",
        description="Rule store and execution log database (sqlite:///path.db)",
    )

    # Webhooks
    webhook_timeout_ms: int = Field(10000, description="Default per-attempt timeout in ms")
    webhook_max_retries: int = Field(3, description="Default maximum delivery attempts")
    webhook_backoff_base_ms: int = Field(1000, description="Backoff delay before attempt 2")
    webhook_backoff_max_ms: int = Field(10000, description="Backoff delay cap")
    webhook_user_agent: str = Field("Rulewire/1.0", description="User-Agent for webhook calls")

    # Scheduler
    cron_enabled: bool = Field(True, description="Enable scheduled rule execution")
    scheduler_misfire_grace_seconds: int = Field(
        30, ge=1, description="How late a cron fire may run before it is skipped"
    )

    # HTTP connection pool
    http_pool_connections: int = Field(10, ge=1, description="Number of connection pools")
    http_pool_maxsize: int = Field(20, ge=1, description="Maximum connections per pool")

    @field_validator("webhook_timeout_ms")
    @classmethod
    def _check_timeout(cls, value: int) -> int:
        if not 1000 <= value <= 30000:
            raise ValueError("webhook_timeout_ms must be between 1000 and 30000")
        return value

    @field_validator("webhook_max_retries")
    @classmethod
    def _check_retries(cls, value: int) -> int:
        if not 0 <= value <= 10:
            raise ValueError("webhook_max_retries must be between 0 and 10")
        return value

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value.lower() not in ("text", "json"):
            raise ValueError("log_format must be 'text' or 'json'")
        return value.lower()

    @property
    def database_path(self) -> str:
        """Filesystem path portion of a sqlite:/// URL."""
        if self.database_url.startswith("sqlite:///"):
            return self.database_url[len("sqlite:///") :]
        return self.database_url


def load_settings(**overrides) -> Settings:
    """Build settings, converting validation failures into ConfigurationError."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()
