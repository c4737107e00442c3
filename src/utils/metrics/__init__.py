"""
Prometheus metrics for the diffcheck job.

Usage:
    from utils.metrics import MetricsPublisher, ReconciliationMetrics

    publisher = MetricsPublisher(port=9108)
    publisher.start()

    metrics = ReconciliationMetrics()
    metrics.record_run("latest_data_table", success=True, duration=3.2,
                       inserted=10, updated=2, skipped=5, errored=0, deleted=5)
"""

import logging
from typing import Any

from prometheus_client import CollectorRegistry

from .publisher import ApplicationInfo, MetricsPublisher
from .reconciliation import ReconciliationMetrics
from .registry import get_or_create_metric

logger = logging.getLogger(__name__)


def initialize_metrics(
    port: int = 9108,
    registry: CollectorRegistry | None = None,
    version: str = "unknown",
) -> dict[str, Any]:
    """
    Start the /metrics endpoint and create the job's metric families.

    Returns:
        Dictionary with ``publisher``, ``reconciliation`` and ``app_info``
    """
    logger.info(f"Initializing metrics on port {port}")

    publisher = MetricsPublisher(port=port, registry=registry)
    publisher.start()

    return {
        "publisher": publisher,
        "reconciliation": ReconciliationMetrics(registry=registry),
        "app_info": ApplicationInfo(version=version, registry=registry),
    }


__all__ = [
    "MetricsPublisher",
    "ReconciliationMetrics",
    "ApplicationInfo",
    "initialize_metrics",
    "get_or_create_metric",
]
