"""
Turn a ``ReconciliationReport`` into a JSON-safe dictionary.

The dictionary is the exchange format for every renderer and for the
report files the scheduler writes, so ``diffcheck report`` can re-render a
saved run without touching the database.
"""

from datetime import datetime

from ..models import ProcessResult, ReconciliationReport

REPORT_VERSION = 1


def format_timestamp(value: datetime | None) -> str | None:
    """ISO-8601 with offset, or None."""
    return value.isoformat() if value is not None else None


def _outcome_to_dict(outcome: ProcessResult) -> dict:
    return {
        "entity_id": outcome.entity_id,
        "transaction_id": outcome.transaction_id,
        "action": outcome.action.value,
        "success": outcome.success,
        "message": outcome.message,
        "changed_fields": list(outcome.changed_fields),
    }


def generate_report(report: ReconciliationReport, include_details: bool = True) -> dict:
    """
    Build the dictionary form of a run report.

    Args:
        report: Result of ``ReconciliationEngine.run``
        include_details: Include the per-record outcomes

    Returns:
        Dictionary containing only JSON types
    """
    data = {
        "version": REPORT_VERSION,
        "status": "SUCCESS" if report.success else "FAILED",
        "success": report.success,
        "message": report.message,
        "started_at": format_timestamp(report.started_at),
        "finished_at": format_timestamp(report.finished_at),
        "processing_time_ms": round(report.processing_time_ms, 3),
        "counts": {
            "total": report.total,
            "inserted": report.inserted,
            "updated": report.updated,
            "skipped": report.skipped,
            "deleted": report.deleted,
            "errored": report.errored,
        },
        "chunks": {
            "total": report.chunk_count,
            "failed": report.failed_chunks,
        },
    }
    if include_details:
        data["outcomes"] = [_outcome_to_dict(o) for o in report.outcomes]
    return data
