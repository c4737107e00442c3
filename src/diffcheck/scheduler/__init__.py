"""
Periodic reconciliation with APScheduler.
"""

from .jobs import reconcile_job_wrapper
from .scheduler import ReconciliationScheduler, parse_cron_expression

__all__ = [
    "ReconciliationScheduler",
    "parse_cron_expression",
    "reconcile_job_wrapper",
]
