"""Output formatters for CLI commands."""

from reviewkit.cli.formatters.json_formatter import format_json, format_json_error
from reviewkit.cli.formatters.human_formatter import (
    format_check_runs,
    format_step_header,
    format_job_header,
    format_error,
    format_success,
)

__all__ = [
    "format_json",
    "format_json_error",
    "format_check_runs",
    "format_step_header",
    "format_job_header",
    "format_error",
    "format_success",
]
