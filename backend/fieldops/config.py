"""
Service configuration.

Settings come from environment variables with explicit defaults.
Nothing is read implicitly at import time: callers build settings with
ServiceSettings.from_env().
"""

import os
from typing import List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ENV_DB_PATH = "FIELDOPS_DB_PATH"
ENV_STORE = "FIELDOPS_STORE"
ENV_DB_TIMEOUT = "FIELDOPS_DB_TIMEOUT"
ENV_NOTIFY_QUEUE_SIZE = "FIELDOPS_NOTIFY_QUEUE_SIZE"
ENV_CORS_ORIGINS = "FIELDOPS_CORS_ORIGINS"
ENV_LOG_LEVEL = "FIELDOPS_LOG_LEVEL"
ENV_ACTORS_FILE = "FIELDOPS_ACTORS_FILE"
ENV_HOST = "FIELDOPS_HOST"
ENV_PORT = "FIELDOPS_PORT"


class ConfigError(ValueError):
    """Raised when an environment variable holds an invalid value."""

    def __init__(self, variable: str, value: str, reason: str):
        self.variable = variable
        self.value = value
        super().__init__(f"Invalid value for {variable}={value!r}: {reason}")


class ServiceSettings(BaseModel):
    """Runtime settings for the field-service backend."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    db_path: str = "./fieldops.db"
    store_backend: Literal["sqlite", "memory"] = "sqlite"
    db_timeout_seconds: float = Field(default=5.0, gt=0)
    notification_queue_size: int = Field(default=1000, gt=0)
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    log_level: str = "INFO"
    actors_file: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = Field(default=8085, gt=0, lt=65536)

    @field_validator("db_path")
    @classmethod
    def validate_db_path(cls, v: str) -> str:
        if v == ":memory:":
            raise ValueError("Use store_backend='memory' instead of an in-memory SQLite path")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServiceSettings":
        """
        Build settings from an environment mapping.

        Args:
            environ: Mapping to read (defaults to os.environ)

        Raises:
            ConfigError: If a numeric variable cannot be parsed
        """
        env = os.environ if environ is None else environ
        values = {}

        if env.get(ENV_DB_PATH):
            values["db_path"] = env[ENV_DB_PATH]
        if env.get(ENV_STORE):
            values["store_backend"] = env[ENV_STORE].strip().lower()
        if env.get(ENV_DB_TIMEOUT):
            values["db_timeout_seconds"] = _parse(ENV_DB_TIMEOUT, env[ENV_DB_TIMEOUT], float)
        if env.get(ENV_NOTIFY_QUEUE_SIZE):
            values["notification_queue_size"] = _parse(
                ENV_NOTIFY_QUEUE_SIZE, env[ENV_NOTIFY_QUEUE_SIZE], int
            )
        if env.get(ENV_CORS_ORIGINS):
            values["cors_origins"] = [
                origin.strip() for origin in env[ENV_CORS_ORIGINS].split(",") if origin.strip()
            ]
        if env.get(ENV_LOG_LEVEL):
            values["log_level"] = env[ENV_LOG_LEVEL]
        if env.get(ENV_ACTORS_FILE):
            values["actors_file"] = env[ENV_ACTORS_FILE]
        if env.get(ENV_HOST):
            values["host"] = env[ENV_HOST]
        if env.get(ENV_PORT):
            values["port"] = _parse(ENV_PORT, env[ENV_PORT], int)

        return cls(**values)


def _parse(variable: str, raw: str, kind):
    try:
        return kind(raw)
    except ValueError as e:
        raise ConfigError(variable, raw, str(e)) from e
