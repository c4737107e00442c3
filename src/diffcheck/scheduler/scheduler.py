"""
APScheduler wrapper for periodic reconciliation runs.
"""

import logging
from typing import Any, Callable

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

# Runs never overlap; a run that is due while another is still going is
# folded into a single late run
JOB_DEFAULTS = {
    "max_instances": 1,
    "coalesce": True,
    "misfire_grace_time": 300,
}


def parse_cron_expression(cron_expression: str) -> CronTrigger:
    """
    Build a trigger from a five-field expression
    (minute hour day month day_of_week).

    Raises:
        ValueError: If the expression does not have five fields or a field
            is rejected by APScheduler
    """
    parts = cron_expression.split()
    if len(parts) != 5:
        raise ValueError(
            "Cron expression must have 5 parts: minute hour day month day_of_week"
        )

    minute, hour, day, month, day_of_week = parts
    return CronTrigger(
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=day_of_week,
    )


class ReconciliationScheduler:
    """
    Blocking scheduler that runs reconciliation jobs on a trigger.

    Usage:
        scheduler = ReconciliationScheduler()
        scheduler.add_cron_job(reconcile_job_wrapper, "*/15 * * * *", "diffcheck", pool=pool)
        scheduler.start()
    """

    def __init__(self, timezone: str = "UTC"):
        self.scheduler = BlockingScheduler(timezone=timezone, job_defaults=JOB_DEFAULTS)

    def add_interval_job(
        self,
        job_func: Callable,
        interval_seconds: int,
        job_id: str,
        **kwargs
    ) -> None:
        """
        Run ``job_func(**kwargs)`` every ``interval_seconds``.

        Raises:
            ValueError: If the interval is not positive
        """
        if interval_seconds <= 0:
            raise ValueError(f"Interval must be positive, got {interval_seconds}")

        self.scheduler.add_job(
            job_func,
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=job_id,
            kwargs=kwargs,
            replace_existing=True,
        )
        logger.info(f"Added interval job '{job_id}' every {interval_seconds}s")

    def add_cron_job(
        self,
        job_func: Callable,
        cron_expression: str,
        job_id: str,
        **kwargs
    ) -> None:
        """
        Run ``job_func(**kwargs)`` on a cron schedule.

        Example cron expressions:
            "*/15 * * * *" - Every 15 minutes
            "0 2 * * *"    - Daily at 02:00
        """
        self.scheduler.add_job(
            job_func,
            trigger=parse_cron_expression(cron_expression),
            id=job_id,
            kwargs=kwargs,
            replace_existing=True,
        )
        logger.info(f"Added cron job '{job_id}' with schedule '{cron_expression}'")

    def remove_job(self, job_id: str) -> None:
        self.scheduler.remove_job(job_id)
        logger.info(f"Removed job '{job_id}'")

    def start(self) -> None:
        """Block and run jobs until interrupted."""
        logger.info(f"Starting scheduler with {len(self.scheduler.get_jobs())} job(s)")
        try:
            self.scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler interrupted")
            self.stop()

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")

    def list_jobs(self) -> list[dict[str, Any]]:
        return [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": (
                    job.next_run_time.isoformat()
                    if getattr(job, "next_run_time", None)
                    else None
                ),
                "trigger": str(job.trigger),
            }
            for job in self.scheduler.get_jobs()
        ]
