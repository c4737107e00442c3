"""
Business-field comparison between a snapshot row and a candidate.

Equality is exact: no trimming, no case folding, and ``None`` differs from
``""``. Amounts compare by Decimal value, so a scale change alone
(``1.0`` vs ``1.00``) is not a difference. Values of different types are
never equal, even where Python would say so (``1 == Decimal(1)``).
"""

from typing import Any

from .models import BUSINESS_FIELDS, SnapshotRecord


def _same(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is right
    if type(left) is not type(right):
        return False
    return left == right


def changed_fields(existing: SnapshotRecord, candidate: SnapshotRecord) -> tuple[str, ...]:
    """
    Business fields whose values differ, in declaration order.

    Args:
        existing: Row currently stored in the snapshot table
        candidate: Row built from the staging record

    Returns:
        Tuple of field names; empty when the records match
    """
    return tuple(
        name
        for name in BUSINESS_FIELDS
        if not _same(getattr(existing, name), getattr(candidate, name))
    )


def has_difference(existing: SnapshotRecord, candidate: SnapshotRecord) -> bool:
    """True if any business field differs."""
    return any(
        not _same(getattr(existing, name), getattr(candidate, name))
        for name in BUSINESS_FIELDS
    )
