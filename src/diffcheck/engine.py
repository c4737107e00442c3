"""
Reconciliation engine: staging set -> chunks -> one report.

The engine reads the whole staging set once, slices it into consecutive
chunks of the configured size and hands them to the chunk processor one
at a time. It never raises: every failure ends up in the report's
``success`` flag and ``message``.
"""

import logging
import time
import uuid
from collections.abc import Iterator, Sequence
from datetime import timedelta
from typing import TypeVar

from utils.logging import ContextLogger
from utils.metrics import ReconciliationMetrics
from utils.tracing import add_span_attributes, add_span_event, trace_operation

from .config import BatchProcessingOptions, Clock, make_clock
from .exceptions import ChunkProcessingError
from .models import ReconciliationReport, ReportAccumulator, RunState, StagingRecord
from .processor import ChunkProcessor
from .repositories.base import SnapshotRepository, StagingRepository, TransactionManager

logger = logging.getLogger(__name__)

T = TypeVar("T")

MSG_EMPTY = "no pending staging records to process"


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """
    Consecutive slices of ``size`` items; the last one may be shorter.

    Raises:
        ValueError: If ``size`` is not positive
    """
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield items[start:start + size]


class ReconciliationEngine:
    """
    Drives a full reconciliation run.

    Usage:
        engine = ReconciliationEngine(staging, snapshot, transactions,
                                      options=BatchProcessingOptions(batch_size=500))
        report = engine.run()
        if not report.success:
            sys.exit(1)
    """

    def __init__(
        self,
        staging: StagingRepository,
        snapshot: SnapshotRepository,
        transactions: TransactionManager,
        options: BatchProcessingOptions | None = None,
        clock: Clock | None = None,
        metrics: ReconciliationMetrics | None = None,
    ):
        """
        Args:
            staging: Staging table access
            snapshot: Snapshot table access
            transactions: Transaction manager for chunk transactions
            options: Chunk sizing and failure policy
            clock: Source of processing timestamps (default: UTC now)
            metrics: Prometheus metrics to update, if any
        """
        self.staging = staging
        self.snapshot = snapshot
        self.options = options or BatchProcessingOptions()
        self.clock = clock or make_clock()
        self.metrics = metrics
        self.processor = ChunkProcessor(staging, snapshot, transactions, self.clock)
        self.state = RunState.NOT_STARTED
        self.metrics_label = getattr(snapshot, "table", type(snapshot).__name__)

    def run(self) -> ReconciliationReport:
        """
        Reconcile every pending staging record.

        Returns:
            Report with one outcome per staging record read. ``success`` is
            False when the staging fetch failed or any chunk rolled back.
        """
        run_id = uuid.uuid4().hex[:12]
        log = ContextLogger(__name__, run_id=run_id)
        chunk_size = self.options.get_validated_batch_size()
        accumulator = ReportAccumulator()
        records: Sequence[StagingRecord] = ()
        chunk_errors: list[str] = []
        run_error: str | None = None

        started_at = self.clock()
        start = time.monotonic()

        with trace_operation("reconciliation.run", run_id=run_id, chunk_size=chunk_size):
            try:
                self.state = RunState.FETCHING_STAGING
                records = self.staging.fetch_all()

                if not records:
                    self.state = RunState.EMPTY_DONE
                    log.info("Nothing to reconcile: staging set is empty")
                    return self._finish(
                        accumulator.build(
                            success=True,
                            message=MSG_EMPTY,
                            processing_time=self._elapsed(start),
                            started_at=started_at,
                            finished_at=self.clock(),
                        )
                    )

                self.state = RunState.PROCESSING
                chunks = list(chunked(records, chunk_size))
                log.info(
                    f"Reconciling {len(records)} staging records in "
                    f"{len(chunks)} chunk(s) of up to {chunk_size}"
                )

                for index, chunk in enumerate(chunks):
                    try:
                        result = self.processor.process(chunk, index)
                    except ChunkProcessingError as e:
                        result = e.result
                        chunk_errors.append(f"chunk {index}: {e.cause}")
                        add_span_event("chunk.rolled_back", chunk=index, error=e.cause)
                        log.error(
                            f"Chunk rolled back: {e.cause}",
                            chunk=index,
                            records=len(chunk),
                        )

                    accumulator.merge(result)
                    if self.metrics is not None:
                        self.metrics.record_chunk(
                            self.metrics_label, result.committed, result.duration
                        )

                    if not result.committed and not self.options.continue_on_error:
                        remaining = records[accumulator.total:]
                        if remaining:
                            accumulator.mark_unprocessed(
                                remaining, f"run stopped after chunk {index} failed"
                            )
                        log.warning(
                            "Stopping after failed chunk",
                            chunk=index,
                            unprocessed=len(remaining),
                        )
                        break
            except Exception as e:
                run_error = str(e) or type(e).__name__
                log.exception(f"Reconciliation run failed: {run_error}")
                remaining = records[accumulator.total:]
                if remaining:
                    accumulator.mark_unprocessed(remaining, run_error)

            elapsed = self._elapsed(start)
            add_span_attributes(
                **{
                    "run.total": accumulator.total,
                    "run.failed_chunks": accumulator.failed_chunks,
                }
            )

        self.state = RunState.DONE
        summary = accumulator.summary(elapsed)

        if run_error is not None:
            message = f"reconciliation failed: {run_error}"
        elif chunk_errors:
            message = (
                f"{len(chunk_errors)} of {accumulator.chunk_count} chunk(s) failed "
                f"({'; '.join(chunk_errors)}). {summary}"
            )
        else:
            message = summary

        report = accumulator.build(
            success=run_error is None and not chunk_errors,
            message=message,
            processing_time=elapsed,
            started_at=started_at,
            finished_at=self.clock(),
        )
        if report.success:
            log.info(message)
        else:
            log.error(message)
        return self._finish(report)

    @staticmethod
    def _elapsed(start: float) -> timedelta:
        return timedelta(seconds=time.monotonic() - start)

    def _finish(self, report: ReconciliationReport) -> ReconciliationReport:
        if self.metrics is not None:
            self.metrics.record_run(
                self.metrics_label,
                success=report.success,
                duration=report.processing_time.total_seconds(),
                inserted=report.inserted,
                updated=report.updated,
                skipped=report.skipped,
                errored=report.errored,
                deleted=report.deleted,
            )
        return report
