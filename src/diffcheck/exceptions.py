"""
Exception hierarchy for the diffcheck job.

Only the report's ``success`` flag and ``message`` are part of the engine's
public contract; these types exist so the layers can tell record, chunk and
run failures apart internally.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ChunkResult, CompositeKey


class DiffCheckError(Exception):
    """Base exception for diffcheck."""


class ConfigurationError(DiffCheckError):
    """Invalid or missing configuration (credentials, table names, sizes)."""


class RecordValidationError(DiffCheckError):
    """A staging record carries a value that cannot be stored in the snapshot."""

    def __init__(self, key: "CompositeKey", field: str, reason: str):
        self.key = key
        self.field = field
        self.reason = reason
        super().__init__(f"invalid {field} for {key}: {reason}")


class ChunkProcessingError(DiffCheckError):
    """
    A chunk's fetch, upsert or delete failed and its transaction was rolled back.

    ``result`` holds the rolled-back chunk with every record marked as an
    error, ready to be merged into the run report.
    """

    def __init__(self, result: "ChunkResult", cause: BaseException):
        self.result = result
        self.cause = cause
        super().__init__(f"chunk {result.index} rolled back: {cause}")


class RunLockError(DiffCheckError):
    """Another reconciliation run holds the lock for the same tables."""
