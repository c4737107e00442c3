"""
Idempotent metric registration.
"""

from typing import Callable, TypeVar

from prometheus_client import REGISTRY, CollectorRegistry

T = TypeVar("T")


def get_or_create_metric(
    metric_factory: Callable[[], T],
    metric_name: str,
    registry: CollectorRegistry = REGISTRY,
) -> T:
    """
    Create a metric, or return the collector already registered under its name.

    Constructing ``ReconciliationMetrics`` twice against the global registry
    (one per scheduled run, or once per test) would otherwise raise
    ``ValueError: Duplicated timeseries``.

    Example:
        runs = get_or_create_metric(
            lambda: Counter("diffcheck_runs_total", "Runs", ["status"]),
            "diffcheck_runs_total",
        )
    """
    try:
        return metric_factory()
    except ValueError:
        existing = registry._names_to_collectors.get(metric_name)
        if existing is not None:
            return existing
        raise
