"""Application settings loaded from the environment."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SQLITE_SCHEME = "sqlite:///"


class Settings(BaseSettings):
    """Process configuration.

    Every field can be overridden with a ``TASKS_``-prefixed environment
    variable, e.g. ``TASKS_PORT=9000``.
    """

    model_config = SettingsConfigDict(
        env_prefix="TASKS_",
        env_file=".env",
        extra="ignore",
    )

    # Database
    database_url: str = SQLITE_SCHEME + "tasks.db"
    pool_max_size: int = Field(20, ge=1)
    pool_min_size: int = Field(5, ge=1)
    pool_max_lifetime: float = Field(2 * 60 * 60, gt=0)
    pool_health_check_interval: float = Field(60, gt=0)
    pool_acquire_timeout: float = Field(5, gt=0)

    # HTTP
    host: str = "0.0.0.0"
    port: int = Field(8080, ge=1, le=65535)
    read_timeout: float = Field(10, gt=0)
    write_timeout: float = Field(10, gt=0)
    shutdown_timeout: float = Field(30, gt=0)

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    strict_row_decoding: bool = False

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v.startswith(SQLITE_SCHEME):
            raise ValueError(f"database_url must start with {SQLITE_SCHEME!r}")
        path = v[len(SQLITE_SCHEME) :]
        if not path or path == ":memory:":
            raise ValueError("database_url must point to a database file")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level

    @model_validator(mode="after")
    def validate_pool_bounds(self) -> "Settings":
        if self.pool_min_size > self.pool_max_size:
            raise ValueError("pool_min_size must not exceed pool_max_size")
        return self

    @property
    def database_path(self) -> Path:
        """Filesystem path of the SQLite database."""
        return Path(self.database_url[len(SQLITE_SCHEME) :]).expanduser()


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    return Settings()
