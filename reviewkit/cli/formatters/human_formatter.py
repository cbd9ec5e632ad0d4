"""Human-readable output formatter for CLI commands.

Provides pretty-printed output with status icons and tables.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from reviewkit.checks.models import StepMetadata


# Conclusion / status emoji mapping
STATUS_EMOJI = {
    "success": "✅",  # check mark
    "failure": "❌",  # cross mark
    "cancelled": "\U0001f6d1",  # stop sign
    "timed_out": "⏱️",  # stopwatch
    "action_required": "⚠️",  # warning
    "skipped": "⏭️",  # next track
    "neutral": "⚪",  # white circle
    "stale": "\U0001f4a4",  # zzz
    # Runs without a conclusion yet
    "in_progress": "\U0001f3c3",  # runner
    "queued": "⏳",  # hourglass
    "pending": "⏳",
}

DEFAULT_STATUS_EMOJI = "❓"  # question mark

DEFAULT_CHECK_HEADERS = ("name", "status", "conclusion", "duration")
DETAIL_CHECK_HEADERS = ("id", "started", "url")

CHECK_COLUMNS = {
    "id": "ID",
    "name": "Name",
    "status": "Status",
    "conclusion": "Conclusion",
    "started": "Started",
    "completed": "Completed",
    "duration": "Duration",
    "url": "URL",
}


def parse_headers(value: Optional[str]) -> Optional[List[str]]:
    """Parse a comma-separated list of column names.

    Raises:
        ValueError: For unknown column names
    """
    if not value:
        return None
    headers = [h.strip().lower() for h in value.split(",") if h.strip()]
    unknown = [h for h in headers if h not in CHECK_COLUMNS]
    if unknown:
        raise ValueError(
            f"Unknown column(s): {', '.join(unknown)}. Available: {', '.join(CHECK_COLUMNS)}"
        )
    return headers


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _format_duration(started_at: Optional[str], completed_at: Optional[str]) -> str:
    """Format the time between two ISO timestamps as a duration."""
    started = _parse_iso(started_at)
    completed = _parse_iso(completed_at)
    if not started or not completed:
        return "-"

    seconds = max(int((completed - started).total_seconds()), 0)
    minutes = seconds // 60
    hours = minutes // 60

    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    elif minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    else:
        return f"{seconds}s"


def _format_timestamp(value: Optional[str]) -> str:
    parsed = _parse_iso(value)
    if not parsed:
        return "-"
    return parsed.strftime("%Y-%m-%d %H:%M:%S")


def _status_label(run: Dict[str, Any]) -> str:
    status = str(run.get("status") or "unknown")
    emoji = STATUS_EMOJI.get(run.get("conclusion") or status, DEFAULT_STATUS_EMOJI)
    return f"{emoji} {status}"


def _cell(run: Dict[str, Any], column: str) -> str:
    if column == "id":
        return str(run.get("id", "N/A"))
    if column == "name":
        return str(run.get("name", "N/A"))
    if column == "status":
        return _status_label(run)
    if column == "conclusion":
        return str(run.get("conclusion") or "-")
    if column == "started":
        return _format_timestamp(run.get("started_at"))
    if column == "completed":
        return _format_timestamp(run.get("completed_at"))
    if column == "duration":
        return _format_duration(run.get("started_at"), run.get("completed_at"))
    if column == "url":
        return str(run.get("details_url") or run.get("html_url") or "-")
    raise ValueError(f"Unknown column: {column}")


def format_check_runs(
    runs: List[Dict[str, Any]],
    headers: Optional[Sequence[str]] = None,
    details: bool = False,
) -> str:
    """Format check runs as a table.

    Args:
        runs: Check run objects from the API
        headers: Columns to show (default: name, status, conclusion, duration)
        details: Append the id, start time and details URL columns

    Returns:
        Formatted table string
    """
    if not runs:
        return "\nNo check runs found.\n"

    columns = list(headers or DEFAULT_CHECK_HEADERS)
    if details:
        columns.extend(c for c in DETAIL_CHECK_HEADERS if c not in columns)

    rows = [[_cell(run, column) for column in columns] for run in runs]

    # Dynamic column widths keep the table aligned without truncation
    widths = [
        max(len(CHECK_COLUMNS[column]), *(len(row[i]) for row in rows))
        for i, column in enumerate(columns)
    ]

    header_line = " ".join(f"{CHECK_COLUMNS[c]:<{w}}" for c, w in zip(columns, widths)).rstrip()
    separator = "─" * len(header_line)

    lines = [
        "",
        "\U0001f50e Check Runs",
        separator,
        header_line,
        separator,
    ]
    for row in rows:
        lines.append(" ".join(f"{cell:<{w}}" for cell, w in zip(row, widths)).rstrip())

    failed = sum(1 for run in runs if run.get("conclusion") in ("failure", "timed_out", "cancelled"))
    lines.append(separator)
    lines.append(f"Total: {len(runs)} check run(s), {failed} failed")

    return "\n".join(lines)


def format_step_header(job_name: str, step: StepMetadata) -> str:
    """Banner printed before the log of a workflow step."""
    conclusion = step.conclusion.value if step.conclusion else (step.status or "unknown")
    emoji = STATUS_EMOJI.get(conclusion, DEFAULT_STATUS_EMOJI)
    title = f" {job_name} / step {step.number}: {step.name} "
    return f"\n{emoji}{title}({conclusion})\n" + "━" * max(len(title) + 2, 40)


def format_job_header(job_name: str, html_url: str = "") -> str:
    """Banner printed before the full log of a job."""
    lines = ["", f"\U0001f4dc {job_name}"]
    if html_url:
        lines.append(f"   {html_url}")
    lines.append("━" * 40)
    return "\n".join(lines)


def format_error(message: str, hint: Optional[str] = None) -> str:
    """Format an error message.

    Args:
        message: Error message
        hint: Optional hint for fixing

    Returns:
        Formatted error string
    """
    lines = [f"\n❌ Error: {message}"]
    if hint:
        lines.append(f"\U0001f4a1 Hint: {hint}")
    return "\n".join(lines)


def format_success(message: str) -> str:
    """Format a success message."""
    return f"✅ {message}"

