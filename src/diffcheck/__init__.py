"""
diffcheck: reconcile an append-only staging table into a keyed snapshot table.

The engine reads every pending staging row, compares it with the snapshot
row of the same ``(id, entity_id)`` key and, chunk by chunk inside one
transaction, inserts new rows, updates changed rows and deletes staging
rows that carried no change.

Usage:
    from diffcheck import ReconciliationEngine, BatchProcessingOptions

    engine = ReconciliationEngine(staging, snapshot, transactions,
                                  options=BatchProcessingOptions(batch_size=500))
    report = engine.run()
"""

__version__ = "1.0.0"

from .comparator import changed_fields, has_difference
from .config import BatchProcessingOptions, DatabaseConfig, TableOptions, make_clock
from .engine import ReconciliationEngine, chunked
from .exceptions import (
    ChunkProcessingError,
    ConfigurationError,
    DiffCheckError,
    RecordValidationError,
    RunLockError,
)
from .models import (
    ChunkResult,
    ChunkState,
    CompositeKey,
    ProcessAction,
    ProcessResult,
    ReconciliationReport,
    ReportAccumulator,
    RunState,
    SnapshotRecord,
    StagingRecord,
)
from .processor import ChunkProcessor

__all__ = [
    "__version__",
    "ReconciliationEngine",
    "ChunkProcessor",
    "chunked",
    "has_difference",
    "changed_fields",
    "BatchProcessingOptions",
    "TableOptions",
    "DatabaseConfig",
    "make_clock",
    "CompositeKey",
    "StagingRecord",
    "SnapshotRecord",
    "ProcessAction",
    "ProcessResult",
    "ChunkResult",
    "ChunkState",
    "RunState",
    "ReportAccumulator",
    "ReconciliationReport",
    "DiffCheckError",
    "ConfigurationError",
    "RecordValidationError",
    "ChunkProcessingError",
    "RunLockError",
]
