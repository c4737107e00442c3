"""
Session-level advisory lock that keeps two runs off the same tables.

The lock is tied to a dedicated pooled connection for the duration of the
run, so chunk transactions need a pool with at least two connections.
"""

import logging
import zlib
from contextlib import ExitStack

import psycopg2

from ..exceptions import RunLockError

logger = logging.getLogger(__name__)

LOCK_NAMESPACE = "diffcheck"


def advisory_lock_key(staging_table: str, snapshot_table: str) -> int:
    """Stable bigint lock key for a staging/snapshot table pair."""
    name = f"{LOCK_NAMESPACE}:{staging_table}->{snapshot_table}"
    return zlib.crc32(name.encode("utf-8"))


class PostgresRunLock:
    """
    Context manager around ``pg_try_advisory_lock``.

    Usage:
        with PostgresRunLock(pool, "transaction_table", "latest_data_table"):
            report = engine.run()

    Raises:
        RunLockError: On enter, if another session holds the lock
    """

    def __init__(self, pool, staging_table: str, snapshot_table: str):
        self.pool = pool
        self.key = advisory_lock_key(staging_table, snapshot_table)
        self.description = f"{staging_table} -> {snapshot_table}"
        self._resources: ExitStack | None = None
        self._conn = None

    def __enter__(self) -> "PostgresRunLock":
        resources = ExitStack()
        try:
            conn = resources.enter_context(self.pool.acquire())
            with conn.cursor() as cursor:
                cursor.execute("SELECT pg_try_advisory_lock(%s)", (self.key,))
                acquired = cursor.fetchone()[0]
        except BaseException:
            resources.close()
            raise

        if not acquired:
            resources.close()
            raise RunLockError(
                f"Another reconciliation run is in progress for {self.description} "
                f"(advisory lock {self.key})"
            )

        self._resources = resources
        self._conn = conn
        logger.info(f"Acquired run lock {self.key} for {self.description}")
        return self

    def __exit__(self, exc_type, exc_value, tb) -> None:
        try:
            if self._conn is not None and not self._conn.closed:
                with self._conn.cursor() as cursor:
                    cursor.execute("SELECT pg_advisory_unlock(%s)", (self.key,))
                logger.info(f"Released run lock {self.key}")
        except psycopg2.Error as e:
            # The server drops session locks when the connection goes away
            logger.warning(f"Failed to release run lock {self.key}: {e}")
            self._conn.close()
        finally:
            if self._resources is not None:
                self._resources.close()
            self._resources = None
            self._conn = None
