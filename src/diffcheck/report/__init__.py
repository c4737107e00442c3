"""
Report rendering.

``generate_report`` converts a run result to a plain dictionary; the
formatters render that dictionary for the terminal, as JSON or as CSV.
"""

from .formatters import (
    export_report_csv,
    export_report_json,
    format_report_console,
    load_report_json,
)
from .generator import format_timestamp, generate_report

__all__ = [
    "generate_report",
    "format_timestamp",
    "export_report_json",
    "export_report_csv",
    "load_report_json",
    "format_report_console",
]
