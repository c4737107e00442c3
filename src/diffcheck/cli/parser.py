"""
Argument parser for the ``diffcheck`` command.
"""

import argparse

from ..config import DEFAULT_SNAPSHOT_TABLE, DEFAULT_STAGING_TABLE


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return number


def _add_database_options(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("database (defaults to POSTGRES_* variables)")
    group.add_argument("--db-host", help="PostgreSQL host")
    group.add_argument("--db-port", type=int, help="PostgreSQL port")
    group.add_argument("--db-name", help="PostgreSQL database name")
    group.add_argument("--db-user", help="PostgreSQL username")
    group.add_argument("--db-password", help="PostgreSQL password")


def _add_table_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--staging-table",
        help=f"Staging table, optionally schema qualified (default: {DEFAULT_STAGING_TABLE})",
    )
    parser.add_argument(
        "--snapshot-table",
        help=f"Snapshot table, optionally schema qualified (default: {DEFAULT_SNAPSHOT_TABLE})",
    )


def _add_processing_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--batch-size",
        type=int,
        help="Records per chunk; non-positive values fall back to 1000",
    )
    parser.add_argument(
        "--max-batch-size",
        type=int,
        help="Ceiling for --batch-size, 0 disables it (default: 10000)",
    )
    failure = parser.add_mutually_exclusive_group()
    failure.add_argument(
        "--continue-on-error",
        dest="continue_on_error",
        action="store_true",
        default=None,
        help="Keep processing later chunks after a chunk fails (default)",
    )
    failure.add_argument(
        "--stop-on-error",
        dest="continue_on_error",
        action="store_false",
        default=None,
        help="Stop at the first failed chunk",
    )
    parser.add_argument(
        "--timezone",
        help="Timezone of written timestamps, e.g. Asia/Tokyo (default: DIFFCHECK_TIMEZONE or UTC)",
    )
    parser.add_argument(
        "--isolation-level",
        choices=["READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE"],
        help="Isolation level of chunk transactions (default: server default)",
    )
    parser.add_argument(
        "--no-lock",
        action="store_true",
        help="Do not take the advisory lock that prevents concurrent runs",
    )


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="diffcheck",
        description="Reconcile a staging table into a snapshot table on PostgreSQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # One run with the default tables, summary on the console
  diffcheck run

  # Smaller chunks, per-record details, JST timestamps
  diffcheck run --batch-size 200 --show-details --timezone Asia/Tokyo

  # Save the report as JSON
  diffcheck run --format json --output report.json

  # Run every 15 minutes and expose Prometheus metrics
  diffcheck schedule --cron "*/15 * * * *" --metrics-port 9108

  # Re-render a saved report
  diffcheck report --input reports/diffcheck_20240101_020000.json --show-details

  # Pending staging rows and snapshot size
  diffcheck status
        """,
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--log-json", action="store_true", help="Log as JSON documents")
    parser.add_argument("--log-file", help="Also log to this rotating file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # ========== run ==========
    run_parser = subparsers.add_parser("run", help="Run one reconciliation")
    _add_table_options(run_parser)
    _add_processing_options(run_parser)
    run_parser.add_argument(
        "--format",
        choices=["console", "json", "csv"],
        default="console",
        help="Report format (default: console)",
    )
    run_parser.add_argument("--output", help="Write the report to this file")
    run_parser.add_argument(
        "--show-details",
        action="store_true",
        help="List every record outcome in the console report",
    )
    run_parser.add_argument("--otlp-endpoint", help="Export traces to this OTLP collector")
    _add_database_options(run_parser)

    # ========== schedule ==========
    schedule_parser = subparsers.add_parser("schedule", help="Run reconciliation periodically")
    _add_table_options(schedule_parser)
    _add_processing_options(schedule_parser)
    trigger = schedule_parser.add_mutually_exclusive_group()
    trigger.add_argument("--cron", help='Cron expression, e.g. "*/15 * * * *"')
    trigger.add_argument(
        "--interval",
        type=_positive_int,
        default=3600,
        help="Interval in seconds (default: 3600)",
    )
    schedule_parser.add_argument(
        "--output-dir",
        default="./diffcheck_reports",
        help="Directory for JSON reports (default: ./diffcheck_reports)",
    )
    schedule_parser.add_argument(
        "--metrics-port",
        type=int,
        help="Serve Prometheus metrics on this port",
    )
    schedule_parser.add_argument("--otlp-endpoint", help="Export traces to this OTLP collector")
    _add_database_options(schedule_parser)

    # ========== report ==========
    report_parser = subparsers.add_parser("report", help="Render a saved JSON report")
    report_parser.add_argument("--input", required=True, help="Report file written by run/schedule")
    report_parser.add_argument(
        "--format",
        choices=["console", "json", "csv"],
        default="console",
        help="Output format (default: console)",
    )
    report_parser.add_argument("--output", help="Output file (required for json and csv)")
    report_parser.add_argument(
        "--show-details",
        action="store_true",
        help="List every record outcome in the console report",
    )

    # ========== status ==========
    status_parser = subparsers.add_parser("status", help="Show pending and snapshot row counts")
    _add_table_options(status_parser)
    _add_database_options(status_parser)

    return parser
