"""
Chunk processor: one bounded list of staging records, one transaction.

Per chunk the processor issues exactly one snapshot read, at most one bulk
upsert and at most one bulk delete. Classification of individual records
never raises; store failures roll the whole chunk back.
"""

import logging
import time
from collections.abc import Sequence
from datetime import datetime

from utils.tracing import add_span_attributes, trace_operation

from .comparator import changed_fields
from .config import Clock, make_clock
from .exceptions import ChunkProcessingError
from .models import (
    ChunkResult,
    ChunkState,
    Classification,
    Classified,
    CompositeKey,
    ProcessAction,
    ProcessResult,
    Rejected,
    SnapshotRecord,
    StagingRecord,
)
from .repositories.base import SnapshotRepository, StagingRepository, TransactionManager

logger = logging.getLogger(__name__)

MSG_INSERTED = "new data registered"
MSG_UPDATED = "data updated"
MSG_NO_DIFF = "no diff - skip"
MSG_RECORD_ERROR = "processing error: {error}"
MSG_CHUNK_ERROR = "batch processing error: {error}"


def classify_record(
    record: StagingRecord,
    existing: SnapshotRecord | None,
    now: datetime,
) -> Classification:
    """
    Decide what to do with one staging record.

    Never raises: any failure becomes ``Rejected`` so the caller's loop
    carries on with the next record.
    """
    try:
        key = record.key
        candidate = SnapshotRecord.from_staging(record, existing, now)
        if existing is None:
            return Classified(key, ProcessAction.INSERT, candidate)

        diff = changed_fields(existing, candidate)
        if diff:
            return Classified(key, ProcessAction.UPDATE, candidate, diff)
        return Classified(key, ProcessAction.NONE, candidate)
    except Exception as e:
        return Rejected(
            CompositeKey(getattr(record, "id", None), getattr(record, "entity_id", None)),
            str(e) or type(e).__name__,
        )


def classify_chunk(
    records: Sequence[StagingRecord],
    existing_by_key: dict[CompositeKey, SnapshotRecord],
    now: datetime,
) -> list[Classification]:
    """
    Classify records in input order.

    A key seen earlier in the same chunk is rejected: a single statement
    cannot upsert the same row twice.
    """
    seen: set[CompositeKey] = set()
    results: list[Classification] = []

    for record in records:
        key = CompositeKey(record.id, record.entity_id)
        if key in seen:
            results.append(Rejected(key, f"duplicate key {key} within chunk"))
            continue
        seen.add(key)
        results.append(classify_record(record, existing_by_key.get(key), now))

    return results


def _outcome(record: StagingRecord, classification: Classification) -> ProcessResult:
    if isinstance(classification, Rejected):
        return ProcessResult.error(
            record, MSG_RECORD_ERROR.format(error=classification.reason)
        )

    if classification.action is ProcessAction.INSERT:
        message = MSG_INSERTED
    elif classification.action is ProcessAction.UPDATE:
        message = f"{MSG_UPDATED} ({', '.join(classification.changed_fields)})"
    else:
        message = MSG_NO_DIFF

    return ProcessResult(
        entity_id=record.entity_id,
        transaction_id=record.id,
        action=classification.action,
        message=message,
        changed_fields=classification.changed_fields,
    )


class ChunkProcessor:
    """
    Applies one chunk of staging records to the snapshot atomically.

    Args:
        staging: Staging table access
        snapshot: Snapshot table access
        transactions: Transaction manager shared by both repositories
        clock: Returns the processing time stamped on written rows
    """

    def __init__(
        self,
        staging: StagingRepository,
        snapshot: SnapshotRepository,
        transactions: TransactionManager,
        clock: Clock | None = None,
    ):
        self.staging = staging
        self.snapshot = snapshot
        self.transactions = transactions
        self.clock = clock or make_clock()

    def process(self, records: Sequence[StagingRecord], index: int = 0) -> ChunkResult:
        """
        Reconcile one chunk.

        Args:
            records: Non-empty list of staging records
            index: Position of the chunk within the run, for logs and spans

        Returns:
            Committed ``ChunkResult``

        Raises:
            ValueError: If ``records`` is empty
            ChunkProcessingError: If a store call failed; the transaction
                was rolled back and ``error.result`` marks every record
                of the chunk as an error
        """
        if not records:
            raise ValueError("chunk must contain at least one record")

        start = time.monotonic()

        with trace_operation("reconciliation.chunk", chunk=index, records=len(records)):
            try:
                txn = self.transactions.begin()
            except Exception as e:
                raise self._failure(index, records, e, start) from e

            try:
                keys = [record.key for record in records]
                existing = self.snapshot.fetch_by_keys(keys, txn)
                existing_by_key = {row.key: row for row in existing}

                now = self.clock()
                classifications = classify_chunk(records, existing_by_key, now)

                upserts = [
                    c.candidate
                    for c in classifications
                    if isinstance(c, Classified)
                    and c.action in (ProcessAction.INSERT, ProcessAction.UPDATE)
                ]
                no_diff_keys = [
                    c.key
                    for c in classifications
                    if isinstance(c, Classified) and c.action is ProcessAction.NONE
                ]

                if upserts:
                    self.snapshot.bulk_upsert(upserts, txn)
                deleted = self.staging.delete_by_keys(no_diff_keys, txn) if no_diff_keys else 0

                self.transactions.commit(txn)
            except Exception as e:
                self._rollback_quietly(txn, index)
                raise self._failure(index, records, e, start) from e

            outcomes = tuple(
                _outcome(record, classification)
                for record, classification in zip(records, classifications)
            )
            result = ChunkResult(
                index=index,
                state=ChunkState.COMMITTED,
                outcomes=outcomes,
                inserted=sum(o.action is ProcessAction.INSERT for o in outcomes),
                updated=sum(o.action is ProcessAction.UPDATE for o in outcomes),
                skipped=sum(o.action is ProcessAction.NONE for o in outcomes),
                errored=sum(o.action is ProcessAction.ERROR for o in outcomes),
                deleted=deleted,
                duration=time.monotonic() - start,
            )
            add_span_attributes(
                **{
                    "chunk.inserted": result.inserted,
                    "chunk.updated": result.updated,
                    "chunk.skipped": result.skipped,
                    "chunk.errored": result.errored,
                    "chunk.deleted": result.deleted,
                }
            )

        logger.debug(
            f"Chunk {index} committed: {len(records)} records, "
            f"{result.inserted} inserted, {result.updated} updated, "
            f"{result.skipped} skipped, {result.errored} errors, {deleted} deleted"
        )
        return result

    def _rollback_quietly(self, txn, index: int) -> None:
        try:
            self.transactions.rollback(txn)
        except Exception as rollback_error:
            logger.error(f"Rollback of chunk {index} failed: {rollback_error}")

    def _failure(
        self,
        index: int,
        records: Sequence[StagingRecord],
        error: Exception,
        start: float,
    ) -> ChunkProcessingError:
        message = MSG_CHUNK_ERROR.format(error=error)
        result = ChunkResult(
            index=index,
            state=ChunkState.ROLLED_BACK,
            outcomes=tuple(ProcessResult.error(record, message) for record in records),
            errored=len(records),
            error=str(error),
            duration=time.monotonic() - start,
        )
        logger.error(f"Chunk {index} rolled back ({len(records)} records): {error}")
        return ChunkProcessingError(result, error)
