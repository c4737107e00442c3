"""
Job body executed by the scheduler for each reconciliation run.
"""

import logging
from datetime import UTC, datetime
from pathlib import Path

from utils.metrics import ReconciliationMetrics

from ..config import BatchProcessingOptions, Clock, TableOptions
from ..report import export_report_json, generate_report
from ..runner import run_reconciliation

logger = logging.getLogger(__name__)


def report_filename(now: datetime) -> str:
    return f"diffcheck_{now.strftime('%Y%m%d_%H%M%S')}.json"


def reconcile_job_wrapper(
    pool,
    output_dir: str,
    tables: TableOptions | None = None,
    options: BatchProcessingOptions | None = None,
    clock: Clock | None = None,
    metrics: ReconciliationMetrics | None = None,
    use_lock: bool = True,
    include_details: bool = True,
) -> Path:
    """
    Run one reconciliation and save its JSON report.

    A failed run is logged, not raised, so the scheduler keeps its
    schedule; the report file records the failure.

    Args:
        pool: Connection pool shared across runs
        output_dir: Directory for report files (created if missing)
        tables: Staging/snapshot table names
        options: Chunking options
        clock: Processing clock
        metrics: Prometheus metrics to update
        use_lock: Take the advisory run lock
        include_details: Write per-record outcomes into the report

    Returns:
        Path of the written report
    """
    output = Path(output_dir)
    output.mkdir(parents=True, exist_ok=True)
    output_path = output / report_filename(datetime.now(UTC))

    logger.info("Starting scheduled reconciliation")
    report = run_reconciliation(
        pool,
        tables=tables,
        options=options,
        clock=clock,
        metrics=metrics,
        use_lock=use_lock,
    )

    export_report_json(generate_report(report, include_details), str(output_path))

    if report.success:
        logger.info(f"Scheduled reconciliation finished: {report.message}")
    else:
        logger.error(f"Scheduled reconciliation failed: {report.message}")
    logger.info(f"Report saved to {output_path}")
    return output_path
