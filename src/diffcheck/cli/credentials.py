"""
Resolution of logging, database and processing settings for the CLI.

Command-line arguments win over environment variables, which win over the
built-in defaults.
"""

import argparse
import atexit
import logging

from utils.logging import setup_logging, shutdown_logging

from ..config import (
    BatchProcessingOptions,
    Clock,
    DatabaseConfig,
    TableOptions,
    clock_from_env,
    make_clock,
)

logger = logging.getLogger(__name__)

_logging_shutdown_registered = False


def configure_logging(args: argparse.Namespace) -> None:
    """Install handlers according to ``--log-level``, ``--log-json`` and ``--log-file``."""
    global _logging_shutdown_registered

    setup_logging(
        level=getattr(args, "log_level", "INFO"),
        log_file=getattr(args, "log_file", None),
        json_format=getattr(args, "log_json", False),
    )
    if not _logging_shutdown_registered:
        atexit.register(shutdown_logging)
        _logging_shutdown_registered = True


def get_database_config(args: argparse.Namespace) -> DatabaseConfig:
    """
    PostgreSQL settings from ``--db-*`` arguments over ``POSTGRES_*`` variables.

    Raises:
        ConfigurationError: If no password is available
    """
    env = DatabaseConfig.from_env()
    config = DatabaseConfig(
        host=getattr(args, "db_host", None) or env.host,
        port=getattr(args, "db_port", None) or env.port,
        database=getattr(args, "db_name", None) or env.database,
        user=getattr(args, "db_user", None) or env.user,
        password=getattr(args, "db_password", None) or env.password,
    )
    config.require_password()
    return config


def get_table_options(args: argparse.Namespace) -> TableOptions:
    env = TableOptions.from_env()
    return TableOptions(
        staging_table=getattr(args, "staging_table", None) or env.staging_table,
        snapshot_table=getattr(args, "snapshot_table", None) or env.snapshot_table,
    )


def get_batch_options(args: argparse.Namespace) -> BatchProcessingOptions:
    env = BatchProcessingOptions.from_env()

    batch_size = getattr(args, "batch_size", None)
    max_batch_size = getattr(args, "max_batch_size", None)
    continue_on_error = getattr(args, "continue_on_error", None)

    if max_batch_size is None:
        max_batch_size = env.max_batch_size
    elif max_batch_size <= 0:
        max_batch_size = None

    return BatchProcessingOptions(
        batch_size=env.batch_size if batch_size is None else batch_size,
        max_batch_size=max_batch_size,
        continue_on_error=env.continue_on_error if continue_on_error is None else continue_on_error,
    )


def get_clock(args: argparse.Namespace) -> Clock:
    timezone = getattr(args, "timezone", None)
    return make_clock(timezone) if timezone else clock_from_env()
