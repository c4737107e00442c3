"""
Staging and snapshot storage.

``base`` defines the contracts; ``postgres`` implements them with psycopg2;
``lock`` provides the advisory lock that keeps two runs apart.
"""

from .base import SnapshotRepository, StagingRepository, Transaction, TransactionManager
from .lock import PostgresRunLock, advisory_lock_key
from .postgres import (
    PostgresSnapshotRepository,
    PostgresStagingRepository,
    PostgresTransaction,
    PostgresTransactionManager,
)

__all__ = [
    "StagingRepository",
    "SnapshotRepository",
    "TransactionManager",
    "Transaction",
    "PostgresStagingRepository",
    "PostgresSnapshotRepository",
    "PostgresTransactionManager",
    "PostgresTransaction",
    "PostgresRunLock",
    "advisory_lock_key",
]
