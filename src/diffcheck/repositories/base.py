"""
Storage contracts consumed by the chunk processor and the engine.

Implementations must honour:
- empty key/record lists are no-ops, never errors
- writes happen inside the transaction handle they are given
- the transaction manager owns isolation level and transient-error retry
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from ..models import CompositeKey, SnapshotRecord, StagingRecord

Transaction = Any


class StagingRepository(ABC):
    """Pending rows of the staging table."""

    @abstractmethod
    def fetch_all(self) -> list[StagingRecord]:
        """Every pending row, ordered by ``(entity_id, id)``."""

    @abstractmethod
    def delete_by_keys(self, keys: Sequence[CompositeKey], txn: Transaction) -> int:
        """Delete exactly ``keys`` inside ``txn``; return the affected row count."""

    @abstractmethod
    def count_pending(self) -> int:
        """Number of rows waiting to be reconciled."""


class SnapshotRepository(ABC):
    """Current-state rows of the snapshot table."""

    @abstractmethod
    def fetch_by_keys(
        self,
        keys: Sequence[CompositeKey],
        txn: Transaction | None = None,
    ) -> list[SnapshotRecord]:
        """Existing rows matching any of ``keys``; read inside ``txn`` when given."""

    @abstractmethod
    def bulk_upsert(self, records: Sequence[SnapshotRecord], txn: Transaction) -> None:
        """
        Insert-or-update keyed on ``(id, entity_id)``.

        Conflicting rows get their business fields and ``updated_at``
        overwritten; ``created_at`` is never changed by an update.
        """

    @abstractmethod
    def count(self) -> int:
        """Number of rows in the snapshot table."""


class TransactionManager(ABC):
    """Begin/commit/rollback of the unit of work that wraps one chunk."""

    @abstractmethod
    def begin(self) -> Transaction:
        """Open a transaction and return its handle."""

    @abstractmethod
    def commit(self, txn: Transaction) -> None:
        """Commit and release ``txn``."""

    @abstractmethod
    def rollback(self, txn: Transaction) -> None:
        """Roll back and release ``txn``. Must not raise for a broken connection."""

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """
        Commit on normal exit, roll back when the body raises.

        Example:
            with txn_manager.transaction() as txn:
                snapshot.bulk_upsert(records, txn)
        """
        txn = self.begin()
        try:
            yield txn
        except BaseException:
            self.rollback(txn)
            raise
        self.commit(txn)
