"""
Report formatting for result files and job snapshots.

Provides console and JSON renderings used by the CLI.
"""

import json
from collections import Counter
from collections.abc import Iterable
from typing import Any

from catalog_recon.models import Job


def summarize_results(rows: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """
    Aggregate result rows (as returned by ``read_results``).

    Returns:
        Dictionary with total count, counts per conclusion kind and per
        conclusion text, and the non-success rows
    """
    by_kind: Counter = Counter()
    by_conclusion: Counter = Counter()
    issues = []
    total = 0

    for row in rows:
        total += 1
        kind = row.get("CONCLUSION_TYPE", "")
        by_kind[kind] += 1
        by_conclusion[row.get("CONCLUSION", "")] += 1
        if kind != "success":
            issues.append(row)

    return {
        "total": total,
        "by_kind": dict(by_kind),
        "by_conclusion": dict(by_conclusion),
        "issues": issues,
    }


def format_results_console(summary: dict[str, Any], max_issues: int = 50) -> str:
    """
    Format a result summary for console output

    Args:
        summary: Output of ``summarize_results``
        max_issues: Maximum non-success rows listed

    Returns:
        Formatted string for console display
    """
    lines = []

    lines.append("=" * 80)
    lines.append("CATALOG RECONCILIATION RESULT")
    lines.append("=" * 80)
    lines.append(f"Total Objects: {summary['total']:,}")
    for kind in ("success", "info", "warning", "error"):
        lines.append(f"  {kind.capitalize()}: {summary['by_kind'].get(kind, 0):,}")
    lines.append("")

    if summary["by_conclusion"]:
        lines.append("CONCLUSIONS")
        lines.append("-" * 80)
        for text, count in sorted(summary["by_conclusion"].items(), key=lambda kv: (-kv[1], kv[0])):
            lines.append(f"{count:>10,}  {text}")
        lines.append("")

    issues = summary["issues"]
    if issues:
        lines.append("ISSUES")
        lines.append("-" * 80)
        for row in issues[:max_issues]:
            lines.append(
                f"[{row.get('CONCLUSION_TYPE', '').upper()}] "
                f"{row.get('OWNER')}.{row.get('OBJECT_NAME')} ({row.get('OBJECT_TYPE')}): "
                f"{row.get('CONCLUSION')}"
            )
        if len(issues) > max_issues:
            lines.append(f"... and {len(issues) - max_issues} more")
        lines.append("")

    lines.append("=" * 80)

    return "\n".join(lines)


def format_job_console(job: Job) -> str:
    """Format a job snapshot for console output."""
    summary = job.summary
    lines = []

    lines.append("=" * 80)
    lines.append(f"JOB {job.id}")
    lines.append("=" * 80)
    lines.append(f"Mode: {job.mode.value}")
    lines.append(f"Status: {job.status.value}")
    lines.append(f"Progress: {job.progress}%")
    lines.append(f"Tasks: {job.processed_task_index}/{job.total_tasks}")
    lines.append(f"Processed: {summary.processed:,}")
    lines.append(f"Differences: {summary.diffs:,}")
    lines.append(f"Missing: {summary.missing:,}")
    lines.append(f"New: {summary.new:,}")
    if summary.failed_tasks:
        lines.append(f"Failed tasks: {summary.failed_tasks} (result incomplete)")
    if job.error:
        lines.append(f"Error: {job.error}")
    lines.append(f"Result: {job.result_location}")
    lines.append("")

    if job.logs:
        lines.append("LOG")
        lines.append("-" * 80)
        lines.extend(job.logs)
        lines.append("")

    lines.append("=" * 80)

    return "\n".join(lines)


def format_job_json(job: Job) -> str:
    return json.dumps(job.to_dict(), indent=2, default=str)
