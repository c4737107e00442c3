"""
CLI command implementations.

- run: one reconciliation, exit code 1 when the report is unsuccessful
- schedule: periodic reconciliation with APScheduler
- report: re-render a saved JSON report
- status: pending staging rows and snapshot size
"""

import argparse
import logging
import sys
from pathlib import Path

import psycopg2

from utils.db_pool import ConnectionPoolError, close_pools, initialize_pools
from utils.metrics import ApplicationInfo, MetricsPublisher, ReconciliationMetrics
from utils.tracing import initialize_tracing, shutdown_tracing

from .. import __version__
from ..exceptions import ConfigurationError
from ..report import (
    export_report_csv,
    export_report_json,
    format_report_console,
    generate_report,
    load_report_json,
)
from ..repositories import PostgresSnapshotRepository, PostgresStagingRepository
from ..runner import run_reconciliation
from ..scheduler import ReconciliationScheduler, reconcile_job_wrapper
from .credentials import (
    get_batch_options,
    get_clock,
    get_database_config,
    get_table_options,
)

logger = logging.getLogger(__name__)

# The run lock holds one connection while chunk transactions use another
POOL_MIN_SIZE = 1
POOL_MAX_SIZE = 3


def _write_report(report: dict, fmt: str, output: str | None, show_details: bool) -> None:
    if fmt == "console":
        text = format_report_console(report, show_details=show_details)
        if output:
            Path(output).write_text(text + "\n", encoding="utf-8")
            logger.info(f"Report saved to {output}")
        else:
            print(text)
        return

    if not output:
        raise ConfigurationError(f"--output is required for {fmt} format")

    Path(output).parent.mkdir(parents=True, exist_ok=True)
    if fmt == "json":
        export_report_json(report, output)
    else:
        export_report_csv(report, output)
    logger.info(f"Report saved to {output}")


def cmd_run(args: argparse.Namespace) -> None:
    """
    Run one reconciliation and exit with 0 on success, 1 otherwise.

    Args:
        args: Parsed command-line arguments
    """
    try:
        db_config = get_database_config(args)
        tables = get_table_options(args)
        options = get_batch_options(args)
        clock = get_clock(args)
        if args.format != "console" and not args.output:
            raise ConfigurationError(f"--output is required for {args.format} format")
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    logger.info(
        f"Starting reconciliation {tables.staging_table} -> {tables.snapshot_table} "
        f"(batch size {options.get_validated_batch_size()})"
    )

    initialize_tracing(otlp_endpoint=args.otlp_endpoint)
    try:
        pool = initialize_pools(
            db_config.as_pool_config(),
            min_size=POOL_MIN_SIZE,
            max_size=POOL_MAX_SIZE,
        )
        report = run_reconciliation(
            pool,
            tables=tables,
            options=options,
            clock=clock,
            use_lock=not args.no_lock,
            isolation_level=args.isolation_level,
        )
    except (psycopg2.Error, ConnectionPoolError) as e:
        logger.error(f"Database error: {e}")
        sys.exit(1)
    finally:
        close_pools()
        shutdown_tracing()

    try:
        _write_report(
            generate_report(report, include_details=True),
            args.format,
            args.output,
            args.show_details,
        )
    except OSError as e:
        logger.error(f"Failed to write report: {e}")
        sys.exit(1)

    if report.success:
        logger.info("Reconciliation completed successfully")
        sys.exit(0)
    logger.error(f"Reconciliation failed: {report.message}")
    sys.exit(1)


def cmd_schedule(args: argparse.Namespace) -> None:
    """
    Run reconciliation on a cron or interval trigger until interrupted.

    Args:
        args: Parsed command-line arguments
    """
    try:
        db_config = get_database_config(args)
        tables = get_table_options(args)
        options = get_batch_options(args)
        clock = get_clock(args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    metrics = None
    if args.metrics_port:
        publisher = MetricsPublisher(port=args.metrics_port)
        try:
            publisher.start()
        except RuntimeError as e:
            logger.error(str(e))
            sys.exit(1)
        ApplicationInfo(version=__version__)
        metrics = ReconciliationMetrics()

    initialize_tracing(otlp_endpoint=args.otlp_endpoint)
    try:
        pool = initialize_pools(
            db_config.as_pool_config(),
            min_size=POOL_MIN_SIZE,
            max_size=POOL_MAX_SIZE,
        )
    except (psycopg2.Error, ConnectionPoolError) as e:
        logger.error(f"Database error: {e}")
        close_pools()
        shutdown_tracing()
        sys.exit(1)

    job_kwargs = {
        "pool": pool,
        "output_dir": args.output_dir,
        "tables": tables,
        "options": options,
        "clock": clock,
        "metrics": metrics,
        "use_lock": not args.no_lock,
    }

    scheduler = ReconciliationScheduler()
    try:
        if args.cron:
            scheduler.add_cron_job(reconcile_job_wrapper, args.cron, "diffcheck", **job_kwargs)
        else:
            scheduler.add_interval_job(
                reconcile_job_wrapper, args.interval, "diffcheck", **job_kwargs
            )
    except ValueError as e:
        logger.error(f"Invalid schedule: {e}")
        close_pools()
        shutdown_tracing()
        sys.exit(1)

    logger.info("Starting scheduler (press Ctrl+C to stop)")
    try:
        scheduler.start()
    finally:
        close_pools()
        shutdown_tracing()


def cmd_report(args: argparse.Namespace) -> None:
    """
    Render a report file written by ``run --format json`` or ``schedule``.

    Args:
        args: Parsed command-line arguments
    """
    logger.info(f"Loading report from {args.input}")

    try:
        report = load_report_json(args.input)
        _write_report(report, args.format, args.output, args.show_details)
    except (OSError, ValueError, KeyError, ConfigurationError) as e:
        logger.error(f"Failed to process report: {e}")
        sys.exit(1)


def cmd_status(args: argparse.Namespace) -> None:
    """
    Print the number of pending staging rows and snapshot rows.

    Args:
        args: Parsed command-line arguments
    """
    try:
        db_config = get_database_config(args)
        tables = get_table_options(args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    try:
        pool = initialize_pools(db_config.as_pool_config(), min_size=1, max_size=1)
        pending = PostgresStagingRepository(pool, tables.staging_table).count_pending()
        snapshot_rows = PostgresSnapshotRepository(pool, tables.snapshot_table).count()
    except (psycopg2.Error, ConnectionPoolError) as e:
        logger.error(f"Database error: {e}")
        sys.exit(1)
    finally:
        close_pools()

    print(f"Pending staging rows ({tables.staging_table}): {pending:,}")
    print(f"Snapshot rows ({tables.snapshot_table}): {snapshot_rows:,}")
