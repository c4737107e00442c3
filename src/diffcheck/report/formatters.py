"""
Renderers for report dictionaries: console text, JSON file, CSV file.
"""

import csv
import json
from typing import Any

CSV_HEADER = ["entity_id", "transaction_id", "action", "success", "message", "changed_fields"]

_ACTION_LABELS = {
    "insert": "INSERT",
    "update": "UPDATE",
    "none": "SKIP",
    "error": "ERROR",
}


def export_report_json(report: dict[str, Any], output_path: str) -> None:
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, ensure_ascii=False)


def load_report_json(input_path: str) -> dict[str, Any]:
    """
    Read a report written by ``export_report_json``.

    Raises:
        ValueError: If the file is not a report dictionary
    """
    with open(input_path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict) or "counts" not in data:
        raise ValueError(f"{input_path} does not contain a diffcheck report")
    return data


def export_report_csv(report: dict[str, Any], output_path: str) -> None:
    """One CSV row per record outcome."""
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for outcome in report.get("outcomes", []):
            writer.writerow([
                outcome["entity_id"],
                outcome["transaction_id"],
                outcome["action"],
                outcome["success"],
                outcome["message"],
                ";".join(outcome.get("changed_fields", [])),
            ])


def format_report_console(report: dict[str, Any], show_details: bool = False) -> str:
    """
    Human readable summary, optionally followed by one line per record.

    Args:
        report: Dictionary from ``generate_report``
        show_details: Append the per-record outcomes

    Returns:
        Multi-line string
    """
    counts = report["counts"]
    chunks = report.get("chunks", {})
    lines = []

    lines.append("=" * 80)
    lines.append("DIFFCHECK RECONCILIATION REPORT")
    lines.append("=" * 80)
    lines.append(f"Status: {report['status']}")
    if report.get("started_at"):
        lines.append(f"Started: {report['started_at']}")
    if report.get("finished_at"):
        lines.append(f"Finished: {report['finished_at']}")
    lines.append(f"Processing Time: {report['processing_time_ms']:,.0f} ms")
    lines.append(f"Chunks: {chunks.get('total', 0)} ({chunks.get('failed', 0)} failed)")
    lines.append("")

    lines.append("COUNTS")
    lines.append("-" * 80)
    lines.append(f"Total Records:   {counts['total']:,}")
    lines.append(f"Inserted:        {counts['inserted']:,}")
    lines.append(f"Updated:         {counts['updated']:,}")
    lines.append(f"Skipped:         {counts['skipped']:,}")
    lines.append(f"Errors:          {counts['errored']:,}")
    lines.append(f"Staging Deleted: {counts['deleted']:,}")
    lines.append("")

    lines.append("SUMMARY")
    lines.append("-" * 80)
    lines.append(report["message"])
    lines.append("")

    outcomes = report.get("outcomes", [])
    if show_details and outcomes:
        lines.append("DETAILS")
        lines.append("-" * 80)
        for outcome in outcomes:
            label = _ACTION_LABELS.get(outcome["action"], outcome["action"].upper())
            lines.append(
                f"[{label:<6}] entity_id={outcome['entity_id']} "
                f"transaction_id={outcome['transaction_id']}: {outcome['message']}"
            )
        lines.append("")

    lines.append("=" * 80)
    return "\n".join(lines)
