"""
Wiring of the PostgreSQL repositories, the run lock and the engine.

Both the one-shot ``run`` command and the scheduled job go through
``run_reconciliation``.
"""

import logging
from contextlib import ExitStack, nullcontext
from datetime import timedelta

import psycopg2

from utils.db_pool import ConnectionPoolError
from utils.metrics import ReconciliationMetrics

from .config import BatchProcessingOptions, Clock, TableOptions
from .engine import ReconciliationEngine
from .exceptions import RunLockError
from .models import ReconciliationReport
from .repositories import (
    PostgresRunLock,
    PostgresSnapshotRepository,
    PostgresStagingRepository,
    PostgresTransactionManager,
)

logger = logging.getLogger(__name__)


def build_engine(
    pool,
    tables: TableOptions | None = None,
    options: BatchProcessingOptions | None = None,
    clock: Clock | None = None,
    metrics: ReconciliationMetrics | None = None,
    isolation_level: str | None = None,
) -> ReconciliationEngine:
    """Create an engine backed by the PostgreSQL repositories."""
    tables = tables or TableOptions()
    return ReconciliationEngine(
        staging=PostgresStagingRepository(pool, tables.staging_table),
        snapshot=PostgresSnapshotRepository(pool, tables.snapshot_table),
        transactions=PostgresTransactionManager(pool, isolation_level),
        options=options,
        clock=clock,
        metrics=metrics,
    )


def run_reconciliation(
    pool,
    tables: TableOptions | None = None,
    options: BatchProcessingOptions | None = None,
    clock: Clock | None = None,
    metrics: ReconciliationMetrics | None = None,
    use_lock: bool = True,
    isolation_level: str | None = None,
) -> ReconciliationReport:
    """
    Run one reconciliation, holding the advisory lock unless disabled.

    A lock held by another run, or a database that cannot be reached to
    take the lock, produces a failed report instead of an exception, like
    every other run-level failure.
    """
    tables = tables or TableOptions()
    engine = build_engine(pool, tables, options, clock, metrics, isolation_level)
    lock = (
        PostgresRunLock(pool, tables.staging_table, tables.snapshot_table)
        if use_lock
        else nullcontext()
    )

    with ExitStack() as stack:
        try:
            stack.enter_context(lock)
        except RunLockError as e:
            logger.error(str(e))
            return _not_run(f"reconciliation skipped: {e}")
        except (psycopg2.Error, ConnectionPoolError) as e:
            logger.error(f"Could not acquire run lock: {e}")
            return _not_run(f"reconciliation failed: could not acquire run lock: {e}")

        return engine.run()


def _not_run(message: str) -> ReconciliationReport:
    return ReconciliationReport(
        total=0,
        inserted=0,
        updated=0,
        skipped=0,
        deleted=0,
        errored=0,
        success=False,
        message=message,
        processing_time=timedelta(0),
    )
