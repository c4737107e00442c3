"""
Value types shared by the reconciliation layers.

Records are immutable once read from the database. Classification of a
single staging record yields either ``Classified`` or ``Rejected``; a chunk
yields a ``ChunkResult``; a run yields a ``ReconciliationReport`` built by
a ``ReportAccumulator``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Sequence

from .exceptions import RecordValidationError

# Column order used by every SELECT and INSERT
RECORD_COLUMNS = (
    "id",
    "entity_id",
    "name",
    "description",
    "status",
    "amount",
    "transaction_type",
    "created_at",
    "updated_at",
)

BUSINESS_FIELDS = ("name", "description", "status", "amount", "transaction_type")


@dataclass(frozen=True, order=True, slots=True)
class CompositeKey:
    """Identity of a staging row and of the snapshot row it produced."""

    id: int
    entity_id: int

    def as_tuple(self) -> tuple[int, int]:
        return (self.id, self.entity_id)

    def __str__(self) -> str:
        return f"(id={self.id}, entity_id={self.entity_id})"


@dataclass(frozen=True)
class StagingRecord:
    """One pending row of the staging (transaction) table."""

    id: int
    entity_id: int
    name: str
    description: str | None
    status: str
    amount: Decimal
    transaction_type: str
    created_at: datetime
    updated_at: datetime

    @property
    def key(self) -> CompositeKey:
        return CompositeKey(self.id, self.entity_id)

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "StagingRecord":
        """Build from a database row in ``RECORD_COLUMNS`` order."""
        return cls(*row)


@dataclass(frozen=True)
class SnapshotRecord:
    """Current state row of the snapshot (latest data) table."""

    id: int
    entity_id: int
    name: str
    description: str | None
    status: str
    amount: Decimal
    transaction_type: str
    created_at: datetime
    updated_at: datetime

    @property
    def key(self) -> CompositeKey:
        return CompositeKey(self.id, self.entity_id)

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "SnapshotRecord":
        """Build from a database row in ``RECORD_COLUMNS`` order."""
        return cls(*row)

    def to_row(self) -> tuple:
        """Values in ``RECORD_COLUMNS`` order, as bound by the upsert."""
        return tuple(getattr(self, column) for column in RECORD_COLUMNS)

    @classmethod
    def from_staging(
        cls,
        record: StagingRecord,
        existing: "SnapshotRecord | None",
        now: datetime,
    ) -> "SnapshotRecord":
        """
        Build the candidate snapshot row for a staging record.

        Business fields are copied as-is. For a known key ``created_at`` is
        carried over from the existing row; for a new key both timestamps
        are ``now``.

        Args:
            record: The staging record
            existing: Snapshot row with the same key, if any
            now: Processing time of the chunk

        Returns:
            Candidate snapshot record

        Raises:
            RecordValidationError: If a business value is malformed
        """
        validate_business_fields(record)
        return cls(
            id=record.id,
            entity_id=record.entity_id,
            name=record.name,
            description=record.description,
            status=record.status,
            amount=record.amount,
            transaction_type=record.transaction_type,
            created_at=existing.created_at if existing is not None else now,
            updated_at=now,
        )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_business_fields(record: StagingRecord) -> None:
    """
    Reject values the snapshot table cannot represent faithfully.

    No coercion is attempted: an ``int`` amount or a numeric status is an
    error, not something to convert.

    Raises:
        RecordValidationError: On the first malformed field
    """
    key = CompositeKey(record.id, record.entity_id)

    for name in ("id", "entity_id"):
        if not _is_int(getattr(record, name)):
            raise RecordValidationError(key, name, "must be an integer")

    for name in ("name", "status", "transaction_type"):
        value = getattr(record, name)
        if value is None:
            raise RecordValidationError(key, name, "is required")
        if not isinstance(value, str):
            raise RecordValidationError(
                key, name, f"expected text, got {type(value).__name__}"
            )

    if record.description is not None and not isinstance(record.description, str):
        raise RecordValidationError(
            key, "description", f"expected text, got {type(record.description).__name__}"
        )

    if not isinstance(record.amount, Decimal):
        raise RecordValidationError(
            key, "amount", f"expected Decimal, got {type(record.amount).__name__}"
        )
    if not record.amount.is_finite():
        raise RecordValidationError(key, "amount", f"{record.amount} is not a finite number")


class ProcessAction(str, Enum):
    """What happened to a staging record."""

    INSERT = "insert"
    UPDATE = "update"
    NONE = "none"
    ERROR = "error"


@dataclass(frozen=True)
class ProcessResult:
    """Outcome for exactly one staging record."""

    entity_id: int
    transaction_id: int
    action: ProcessAction
    message: str
    success: bool = True
    changed_fields: tuple[str, ...] = ()

    @property
    def key(self) -> CompositeKey:
        return CompositeKey(self.transaction_id, self.entity_id)

    @classmethod
    def error(cls, record: StagingRecord, message: str) -> "ProcessResult":
        return cls(
            entity_id=record.entity_id,
            transaction_id=record.id,
            action=ProcessAction.ERROR,
            message=message,
            success=False,
        )


@dataclass(frozen=True)
class Classified:
    """A staging record that was classified successfully."""

    key: CompositeKey
    action: ProcessAction
    candidate: SnapshotRecord
    changed_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class Rejected:
    """A staging record that could not be classified."""

    key: CompositeKey
    reason: str


Classification = Classified | Rejected


class ChunkState(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class RunState(str, Enum):
    NOT_STARTED = "not_started"
    FETCHING_STAGING = "fetching_staging"
    PROCESSING = "processing"
    EMPTY_DONE = "empty_done"
    DONE = "done"


@dataclass(frozen=True)
class ChunkResult:
    """Outcomes and counts of one chunk after commit or rollback."""

    index: int
    state: ChunkState
    outcomes: tuple[ProcessResult, ...]
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    deleted: int = 0
    errored: int = 0
    error: str | None = None
    duration: float = 0.0

    @property
    def size(self) -> int:
        return len(self.outcomes)

    @property
    def committed(self) -> bool:
        return self.state is ChunkState.COMMITTED


@dataclass(frozen=True)
class ReconciliationReport:
    """
    Immutable summary of one reconciliation run.

    ``outcomes`` holds one entry per staging record, in the order the
    staging set was read.
    """

    total: int
    inserted: int
    updated: int
    skipped: int
    deleted: int
    errored: int
    success: bool
    message: str
    outcomes: tuple[ProcessResult, ...] = ()
    processing_time: timedelta = timedelta(0)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    chunk_count: int = 0
    failed_chunks: int = 0

    @property
    def processing_time_ms(self) -> float:
        return self.processing_time.total_seconds() * 1000


@dataclass
class ReportAccumulator:
    """Mutable running totals, merged chunk by chunk by the engine."""

    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    deleted: int = 0
    errored: int = 0
    chunk_count: int = 0
    failed_chunks: int = 0
    outcomes: list[ProcessResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    def merge(self, result: ChunkResult) -> None:
        self.inserted += result.inserted
        self.updated += result.updated
        self.skipped += result.skipped
        self.deleted += result.deleted
        self.errored += result.errored
        self.chunk_count += 1
        if not result.committed:
            self.failed_chunks += 1
        self.outcomes.extend(result.outcomes)

    def mark_unprocessed(self, records: Sequence[StagingRecord], reason: str) -> None:
        """Record an ERROR outcome for records the run never reached."""
        for record in records:
            self.outcomes.append(ProcessResult.error(record, f"not processed: {reason}"))
        self.errored += len(records)

    def summary(self, elapsed: timedelta) -> str:
        return (
            f"Processed {self.total} records in {self.chunk_count} chunk(s) "
            f"(inserted: {self.inserted}, updated: {self.updated}, "
            f"skipped: {self.skipped}, errors: {self.errored}), "
            f"deleted {self.deleted} staging rows in "
            f"{elapsed.total_seconds() * 1000:.0f}ms"
        )

    def build(
        self,
        success: bool,
        message: str,
        processing_time: timedelta,
        started_at: datetime | None = None,
        finished_at: datetime | None = None,
    ) -> ReconciliationReport:
        return ReconciliationReport(
            total=self.total,
            inserted=self.inserted,
            updated=self.updated,
            skipped=self.skipped,
            deleted=self.deleted,
            errored=self.errored,
            success=success,
            message=message,
            outcomes=tuple(self.outcomes),
            processing_time=processing_time,
            started_at=started_at,
            finished_at=finished_at,
            chunk_count=self.chunk_count,
            failed_chunks=self.failed_chunks,
        )
