"""
psycopg2 implementations of the storage contracts.

Each bulk operation is a single SQL statement: ``execute_values`` expands
the whole key or record list into one ``VALUES`` list (``page_size`` is
pinned to the list length), so a chunk costs one SELECT, at most one
INSERT ... ON CONFLICT and at most one DELETE regardless of its size.
"""

import logging
from collections.abc import Sequence
from contextlib import ExitStack
from dataclasses import dataclass, field

import psycopg2
import psycopg2.extensions
from psycopg2.extras import execute_values

from utils.retry import retry_database_operation
from utils.sql_safety import quote_schema_table
from utils.tracing import add_span_attributes, trace_database_query

from ..models import BUSINESS_FIELDS, RECORD_COLUMNS, CompositeKey, SnapshotRecord, StagingRecord
from .base import SnapshotRepository, StagingRepository, TransactionManager

logger = logging.getLogger(__name__)

KEY_COLUMNS = ("id", "entity_id")
ISOLATION_LEVELS = ("READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE")

_SELECT_COLUMNS = ", ".join(RECORD_COLUMNS)


def _key_rows(keys: Sequence[CompositeKey]) -> list[tuple[int, int]]:
    return [key.as_tuple() for key in keys]


@dataclass
class PostgresTransaction:
    """A pooled connection with autocommit off, held until commit or rollback."""

    connection: psycopg2.extensions.connection
    resources: ExitStack = field(repr=False)
    finished: bool = False

    def cursor(self):
        if self.finished:
            raise psycopg2.InterfaceError("transaction already finished")
        return self.connection.cursor()


class PostgresTransactionManager(TransactionManager):
    """
    Transactions over connections borrowed from a pool.

    The connection leaves the pool in autocommit mode; ``begin`` switches
    autocommit off and the matching ``commit``/``rollback`` switches it
    back on before returning the connection.
    """

    def __init__(self, pool, isolation_level: str | None = None):
        """
        Args:
            pool: Object with an ``acquire()`` context manager yielding a
                psycopg2 connection (normally ``PostgresConnectionPool``)
            isolation_level: One of ``ISOLATION_LEVELS``; None keeps the
                server default
        """
        if isolation_level is not None:
            isolation_level = isolation_level.upper()
            if isolation_level not in ISOLATION_LEVELS:
                raise ValueError(f"Unsupported isolation level: {isolation_level!r}")
        self.pool = pool
        self.isolation_level = isolation_level

    @retry_database_operation(max_retries=3, base_delay=0.5)
    def begin(self) -> PostgresTransaction:
        resources = ExitStack()
        try:
            conn = resources.enter_context(self.pool.acquire())
            conn.autocommit = False
            if self.isolation_level:
                with conn.cursor() as cursor:
                    cursor.execute(f"SET TRANSACTION ISOLATION LEVEL {self.isolation_level}")
        except BaseException:
            resources.close()
            raise
        return PostgresTransaction(connection=conn, resources=resources)

    def commit(self, txn: PostgresTransaction) -> None:
        try:
            txn.connection.commit()
        finally:
            self._release(txn)

    def rollback(self, txn: PostgresTransaction) -> None:
        try:
            if not txn.finished and not txn.connection.closed:
                txn.connection.rollback()
        except psycopg2.Error as e:
            logger.warning(f"Rollback failed, discarding connection: {e}")
            txn.connection.close()
        finally:
            self._release(txn)

    def _release(self, txn: PostgresTransaction) -> None:
        if txn.finished:
            return
        txn.finished = True
        conn = txn.connection
        try:
            if not conn.closed:
                conn.rollback()
                conn.autocommit = True
        except psycopg2.Error as e:
            # A closed connection fails the pool's health check and is recycled
            logger.warning(f"Could not reset connection state: {e}")
            conn.close()
        finally:
            txn.resources.close()


class PostgresStagingRepository(StagingRepository):
    """Staging (transaction) table."""

    def __init__(self, pool, table: str = "transaction_table"):
        self.pool = pool
        self.table = table
        self._qualified = quote_schema_table(table)

    @retry_database_operation(max_retries=3, base_delay=1.0)
    def fetch_all(self) -> list[StagingRecord]:
        query = f"SELECT {_SELECT_COLUMNS} FROM {self._qualified} ORDER BY entity_id, id"
        with trace_database_query("SELECT", self.table):
            with self.pool.acquire() as conn, conn.cursor() as cursor:
                cursor.execute(query)
                rows = cursor.fetchall()
            add_span_attributes(**{"db.rows": len(rows)})

        logger.debug(f"Fetched {len(rows)} staging rows from {self.table}")
        return [StagingRecord.from_row(row) for row in rows]

    def delete_by_keys(self, keys: Sequence[CompositeKey], txn: PostgresTransaction) -> int:
        if not keys:
            return 0

        query = (
            f"DELETE FROM {self._qualified} "
            f"WHERE ({', '.join(KEY_COLUMNS)}) IN (VALUES %s)"
        )
        with trace_database_query("DELETE", self.table, **{"db.keys": len(keys)}):
            with txn.cursor() as cursor:
                execute_values(cursor, query, _key_rows(keys), page_size=len(keys))
                deleted = cursor.rowcount
            add_span_attributes(**{"db.rows": deleted})

        logger.debug(f"Deleted {deleted} of {len(keys)} staging rows from {self.table}")
        return deleted

    @retry_database_operation(max_retries=3, base_delay=1.0)
    def count_pending(self) -> int:
        with trace_database_query("SELECT", self.table):
            with self.pool.acquire() as conn, conn.cursor() as cursor:
                cursor.execute(f"SELECT COUNT(*) FROM {self._qualified}")
                return cursor.fetchone()[0]


class PostgresSnapshotRepository(SnapshotRepository):
    """Snapshot (latest data) table, unique on ``(id, entity_id)``."""

    def __init__(self, pool, table: str = "latest_data_table"):
        self.pool = pool
        self.table = table
        self._qualified = quote_schema_table(table)

    def _select_by_keys(self, cursor, keys: Sequence[CompositeKey]) -> list[tuple]:
        query = (
            f"SELECT {_SELECT_COLUMNS} FROM {self._qualified} "
            f"WHERE ({', '.join(KEY_COLUMNS)}) IN (VALUES %s)"
        )
        return execute_values(
            cursor, query, _key_rows(keys), page_size=len(keys), fetch=True
        )

    def fetch_by_keys(
        self,
        keys: Sequence[CompositeKey],
        txn: PostgresTransaction | None = None,
    ) -> list[SnapshotRecord]:
        if not keys:
            return []

        with trace_database_query("SELECT", self.table, **{"db.keys": len(keys)}):
            if txn is not None:
                with txn.cursor() as cursor:
                    rows = self._select_by_keys(cursor, keys)
            else:
                with self.pool.acquire() as conn, conn.cursor() as cursor:
                    rows = self._select_by_keys(cursor, keys)
            add_span_attributes(**{"db.rows": len(rows)})

        return [SnapshotRecord.from_row(row) for row in rows]

    def bulk_upsert(self, records: Sequence[SnapshotRecord], txn: PostgresTransaction) -> None:
        if not records:
            return

        assignments = ", ".join(
            f"{column} = EXCLUDED.{column}" for column in (*BUSINESS_FIELDS, "updated_at")
        )
        query = (
            f"INSERT INTO {self._qualified} ({_SELECT_COLUMNS}) VALUES %s "
            f"ON CONFLICT ({', '.join(KEY_COLUMNS)}) DO UPDATE SET {assignments}"
        )
        with trace_database_query("UPSERT", self.table, **{"db.rows": len(records)}):
            with txn.cursor() as cursor:
                execute_values(
                    cursor,
                    query,
                    [record.to_row() for record in records],
                    page_size=len(records),
                )

        logger.debug(f"Upserted {len(records)} rows into {self.table}")

    @retry_database_operation(max_retries=3, base_delay=1.0)
    def count(self) -> int:
        with trace_database_query("SELECT", self.table):
            with self.pool.acquire() as conn, conn.cursor() as cursor:
                cursor.execute(f"SELECT COUNT(*) FROM {self._qualified}")
                return cursor.fetchone()[0]
