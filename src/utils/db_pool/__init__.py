"""
Database connection pooling.

The CLI initializes one process-wide PostgreSQL pool; library code takes a
pool (or anything with an ``acquire()`` context manager) as a constructor
argument instead of reaching for the global.
"""

import logging
from typing import Any

from .base import (
    BaseConnectionPool,
    ConnectionPoolError,
    PoolClosedError,
    PooledConnection,
    PoolExhaustedError,
)
from .postgres import PostgresConnectionPool

logger = logging.getLogger(__name__)

_postgres_pool: PostgresConnectionPool | None = None


def initialize_pools(
    postgres_config: dict[str, Any],
    min_size: int | None = None,
    max_size: int | None = None,
    **pool_kwargs: Any,
) -> PostgresConnectionPool:
    """
    Create the global PostgreSQL pool, replacing any previous one.

    Args:
        postgres_config: host, port, database, user, password
        min_size: Minimum pool size
        max_size: Maximum pool size
        **pool_kwargs: Other ``BaseConnectionPool`` options

    Returns:
        The new pool
    """
    global _postgres_pool

    if _postgres_pool is not None:
        _postgres_pool.close()

    if min_size is not None:
        pool_kwargs["min_size"] = min_size
    if max_size is not None:
        pool_kwargs["max_size"] = max_size

    logger.info("Initializing PostgreSQL connection pool")
    _postgres_pool = PostgresConnectionPool(**postgres_config, **pool_kwargs)
    return _postgres_pool


def get_postgres_pool() -> PostgresConnectionPool:
    """Return the global pool created by ``initialize_pools``."""
    if _postgres_pool is None:
        raise RuntimeError("PostgreSQL pool not initialized. Call initialize_pools() first.")
    return _postgres_pool


def close_pools() -> None:
    """Close the global pool if one exists."""
    global _postgres_pool

    if _postgres_pool is not None:
        _postgres_pool.close()
        _postgres_pool = None
        logger.info("Connection pools closed")


__all__ = [
    "BaseConnectionPool",
    "PostgresConnectionPool",
    "PooledConnection",
    "ConnectionPoolError",
    "PoolExhaustedError",
    "PoolClosedError",
    "initialize_pools",
    "get_postgres_pool",
    "close_pools",
]
