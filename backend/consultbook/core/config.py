# backend/consultbook/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


_BACKEND_ROOT = Path(__file__).resolve().parents[2]

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Deployment environment name",
    )
    log_level: str = Field(default="INFO", description="Root log level")

    # Database
    database_url: str = Field(
        default="sqlite:///./consultbook.db",
        description="SQLAlchemy URL of the booking store",
    )
    db_pool_size: int = Field(default=5, ge=1)
    db_max_overflow: int = Field(default=5, ge=0)
    # Fail fast when the pool is exhausted instead of queueing requests
    db_pool_timeout: int = Field(default=2, ge=1)
    db_pool_recycle: int = Field(default=30, ge=1)
    db_statement_timeout_ms: int = Field(default=15000, ge=100)

    # Locking / retries around the booking critical section
    lock_timeout_ms: int = Field(
        default=1500,
        ge=10,
        description="Upper bound on waiting for a slot/package row lock (PostgreSQL)",
    )
    sqlite_busy_timeout_s: float = Field(
        default=5.0,
        gt=0,
        description="How long a SQLite writer waits for the database lock",
    )
    booking_max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts made before a lock timeout is surfaced as Busy",
    )
    booking_retry_base_delay_s: float = Field(default=0.05, ge=0)

    # Business policy
    no_show_restores_session: bool = Field(
        default=False,
        description="Return the session to the client's package when a booking is a no-show",
    )
    no_show_releases_capacity: bool = Field(
        default=True,
        description="Free the slot seats held by a booking marked as no-show",
    )
    slot_duplicate_policy: Literal["skip", "fail"] = Field(
        default="skip",
        description="Bulk creation: skip candidates that collide with existing slots, or fail the batch",
    )

    slow_operation_threshold_s: float = Field(default=1.0, gt=0)
    metrics_enabled: bool = True

    model_config = SettingsConfigDict(
        env_file=_BACKEND_ROOT / ".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = (value or "INFO").strip().upper()
        if not isinstance(logging.getLevelName(normalized), int):
            raise ValueError(f"Unknown log level: {value}")
        return normalized

    @property
    def resolved_database_url(self) -> str:
        """Resolve relative SQLite paths against the backend directory."""
        url = self.database_url
        if url.startswith("sqlite:///./"):
            relative_path = url.replace("sqlite:///./", "")
            return f"sqlite:///{_BACKEND_ROOT / relative_path}"
        return url


settings = Settings()
