"""
Command-line interface for diffcheck.

Available commands:
- run: one reconciliation
- schedule: periodic reconciliation
- report: render a saved report
- status: row counts of the staging and snapshot tables
"""

import sys

from .commands import cmd_report, cmd_run, cmd_schedule, cmd_status
from .credentials import configure_logging, get_database_config
from .parser import create_parser

COMMANDS = {
    "run": cmd_run,
    "schedule": cmd_schedule,
    "report": cmd_report,
    "status": cmd_status,
}


def main(argv: list[str] | None = None) -> None:
    """Entry point of the ``diffcheck`` console script."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(args)

    command = COMMANDS.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(1)
    command(args)


__all__ = [
    "main",
    "configure_logging",
    "get_database_config",
    "cmd_run",
    "cmd_schedule",
    "cmd_report",
    "cmd_status",
    "create_parser",
]


if __name__ == "__main__":
    main()
