"""
Run configuration: chunk sizing, table names, database connection, clock.

Each piece can be built from environment variables; the CLI overlays its
arguments on top.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from utils.sql_safety import validate_integer_param, validate_schema_table

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000
DEFAULT_MAX_BATCH_SIZE = 10000
DEFAULT_STAGING_TABLE = "transaction_table"
DEFAULT_SNAPSHOT_TABLE = "latest_data_table"
DEFAULT_TIMEZONE = "UTC"

Clock = Callable[[], datetime]

_TRUTHY = ("true", "1", "yes", "on")
_FALSY = ("false", "0", "no", "off")


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class BatchProcessingOptions:
    """
    Chunking behaviour of a run.

    Attributes:
        batch_size: Requested records per chunk. Non-positive values fall
            back to the default instead of failing.
        max_batch_size: Ceiling applied to ``batch_size``; None disables it
        continue_on_error: Keep processing later chunks after one rolls back
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    max_batch_size: int | None = DEFAULT_MAX_BATCH_SIZE
    continue_on_error: bool = True

    def get_validated_batch_size(self) -> int:
        """
        Effective chunk size.

        Returns:
            ``batch_size`` when positive, otherwise the default of 1000,
            capped at ``max_batch_size`` when a positive ceiling is set
        """
        size = self.batch_size if self.batch_size > 0 else DEFAULT_BATCH_SIZE
        if self.max_batch_size is not None and self.max_batch_size > 0:
            size = min(size, self.max_batch_size)
        return size

    @classmethod
    def from_env(cls) -> "BatchProcessingOptions":
        """
        Environment variables:
            DIFFCHECK_BATCH_SIZE: records per chunk (default: 1000)
            DIFFCHECK_MAX_BATCH_SIZE: ceiling, 0 disables (default: 10000)
            DIFFCHECK_CONTINUE_ON_ERROR: keep going after a failed chunk (default: true)
        """
        max_batch_size = _env_int("DIFFCHECK_MAX_BATCH_SIZE", DEFAULT_MAX_BATCH_SIZE)
        return cls(
            batch_size=_env_int("DIFFCHECK_BATCH_SIZE", DEFAULT_BATCH_SIZE),
            max_batch_size=max_batch_size if max_batch_size else None,
            continue_on_error=_env_bool("DIFFCHECK_CONTINUE_ON_ERROR", True),
        )


@dataclass(frozen=True)
class TableOptions:
    """Names of the staging and snapshot tables, optionally schema qualified."""

    staging_table: str = DEFAULT_STAGING_TABLE
    snapshot_table: str = DEFAULT_SNAPSHOT_TABLE

    def __post_init__(self):
        for name in (self.staging_table, self.snapshot_table):
            try:
                validate_schema_table(name)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
        if self.staging_table == self.snapshot_table:
            raise ConfigurationError("staging and snapshot tables must differ")

    @classmethod
    def from_env(cls) -> "TableOptions":
        return cls(
            staging_table=os.getenv("DIFFCHECK_STAGING_TABLE") or DEFAULT_STAGING_TABLE,
            snapshot_table=os.getenv("DIFFCHECK_SNAPSHOT_TABLE") or DEFAULT_SNAPSHOT_TABLE,
        )


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection settings."""

    host: str = "localhost"
    port: int = 5432
    database: str = "postgres"
    user: str = "postgres"
    password: str | None = None

    def __post_init__(self):
        try:
            validate_integer_param(self.port, "port", min_value=1)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    def require_password(self) -> None:
        if not self.password:
            raise ConfigurationError("PostgreSQL password not provided")

    def as_pool_config(self) -> dict:
        """Keyword arguments for ``PostgresConnectionPool``."""
        self.require_password()
        return {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "password": self.password,
        }

    def __repr__(self) -> str:
        masked = "***" if self.password else None
        return (
            f"DatabaseConfig(host={self.host!r}, port={self.port}, "
            f"database={self.database!r}, user={self.user!r}, password={masked!r})"
        )

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """
        Environment variables:
            POSTGRES_HOST, POSTGRES_PORT, POSTGRES_DB, POSTGRES_USER,
            POSTGRES_PASSWORD
        """
        return cls(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=_env_int("POSTGRES_PORT", 5432),
            database=os.getenv("POSTGRES_DB", "postgres"),
            user=os.getenv("POSTGRES_USER", "postgres"),
            password=os.getenv("POSTGRES_PASSWORD"),
        )


def make_clock(timezone: str = DEFAULT_TIMEZONE) -> Clock:
    """
    Return a callable producing timezone-aware "now" in ``timezone``.

    Raises:
        ConfigurationError: If the zone name is unknown
    """
    try:
        zone = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone: {timezone!r}") from e

    def now() -> datetime:
        return datetime.now(zone)

    return now


def clock_from_env() -> Clock:
    """Clock for ``DIFFCHECK_TIMEZONE`` (default: UTC)."""
    return make_clock(os.getenv("DIFFCHECK_TIMEZONE") or DEFAULT_TIMEZONE)
