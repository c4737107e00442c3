"""
Metrics describing reconciliation runs and their chunks.
"""

import logging
import time

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram

from .registry import get_or_create_metric

logger = logging.getLogger(__name__)

RECORD_ACTIONS = ("insert", "update", "skip", "error")


class ReconciliationMetrics:
    """
    Counters and histograms for reconciliation runs.

    Every series is labelled with the snapshot table so several jobs can
    share one Prometheus endpoint.
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Args:
            registry: Prometheus registry (default: global REGISTRY)
        """
        self.registry = registry or REGISTRY

        def metric(factory, name):
            return get_or_create_metric(factory, name, self.registry)

        self.runs_total = metric(
            lambda: Counter(
                "diffcheck_runs_total",
                "Reconciliation runs by outcome",
                ["snapshot_table", "status"],
                registry=self.registry,
            ),
            "diffcheck_runs_total",
        )
        self.run_duration_seconds = metric(
            lambda: Histogram(
                "diffcheck_run_duration_seconds",
                "Wall clock duration of reconciliation runs",
                ["snapshot_table"],
                buckets=(0.5, 1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600),
                registry=self.registry,
            ),
            "diffcheck_run_duration_seconds",
        )
        self.last_run_timestamp = metric(
            lambda: Gauge(
                "diffcheck_last_run_timestamp_seconds",
                "Unix time the last run finished",
                ["snapshot_table"],
                registry=self.registry,
            ),
            "diffcheck_last_run_timestamp_seconds",
        )
        self.records_total = metric(
            lambda: Counter(
                "diffcheck_records_total",
                "Staging records classified, by action",
                ["snapshot_table", "action"],
                registry=self.registry,
            ),
            "diffcheck_records_total",
        )
        self.staging_deleted_total = metric(
            lambda: Counter(
                "diffcheck_staging_deleted_total",
                "Staging rows removed after reconciliation",
                ["snapshot_table"],
                registry=self.registry,
            ),
            "diffcheck_staging_deleted_total",
        )
        self.chunks_total = metric(
            lambda: Counter(
                "diffcheck_chunks_total",
                "Chunks processed, by final state",
                ["snapshot_table", "state"],
                registry=self.registry,
            ),
            "diffcheck_chunks_total",
        )
        self.chunk_duration_seconds = metric(
            lambda: Histogram(
                "diffcheck_chunk_duration_seconds",
                "Duration of a single chunk transaction",
                ["snapshot_table"],
                buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30),
                registry=self.registry,
            ),
            "diffcheck_chunk_duration_seconds",
        )

    def record_run(
        self,
        snapshot_table: str,
        success: bool,
        duration: float,
        inserted: int = 0,
        updated: int = 0,
        skipped: int = 0,
        errored: int = 0,
        deleted: int = 0,
    ) -> None:
        """Record the outcome and counts of one finished run."""
        status = "success" if success else "failed"

        self.runs_total.labels(snapshot_table=snapshot_table, status=status).inc()
        self.run_duration_seconds.labels(snapshot_table=snapshot_table).observe(duration)
        self.last_run_timestamp.labels(snapshot_table=snapshot_table).set(time.time())

        for action, count in zip(RECORD_ACTIONS, (inserted, updated, skipped, errored)):
            if count:
                self.records_total.labels(
                    snapshot_table=snapshot_table, action=action
                ).inc(count)

        if deleted:
            self.staging_deleted_total.labels(snapshot_table=snapshot_table).inc(deleted)

        logger.debug(
            f"Recorded run metrics: table={snapshot_table}, status={status}, "
            f"duration={duration:.2f}s"
        )

    def record_chunk(self, snapshot_table: str, committed: bool, duration: float) -> None:
        """Record one chunk transaction."""
        state = "committed" if committed else "rolled_back"
        self.chunks_total.labels(snapshot_table=snapshot_table, state=state).inc()
        self.chunk_duration_seconds.labels(snapshot_table=snapshot_table).observe(duration)
