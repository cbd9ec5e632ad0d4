"""Retrieval and walking of workflow run log bundles."""

from reviewkit.checks.archive import LogArchive
from reviewkit.checks.errors import (
    ArchiveFormatError,
    DownloadError,
    FetchCancelledError,
    JobNotFoundError,
    LogUrlError,
    NoStepsError,
    NotFetchedError,
    RedirectLimitExceededError,
    RunLogError,
    StepMismatchError,
    TruncatedArchiveError,
    UnsupportedContextError,
)
from reviewkit.checks.log_url import LogSource, LogSourceKind, RedirectChain, follow_redirects
from reviewkit.checks.models import StepConclusion, StepMetadata, WorkflowJob
from reviewkit.checks.run_log import RunLogWalker
from reviewkit.checks.step_logs import StepLog, list_jobs, list_steps, sanitize_job_name

__all__ = [
    "LogArchive",
    "LogSource",
    "LogSourceKind",
    "RedirectChain",
    "RunLogWalker",
    "StepConclusion",
    "StepLog",
    "StepMetadata",
    "WorkflowJob",
    "follow_redirects",
    "list_jobs",
    "list_steps",
    "sanitize_job_name",
    # Errors
    "ArchiveFormatError",
    "DownloadError",
    "FetchCancelledError",
    "JobNotFoundError",
    "LogUrlError",
    "NoStepsError",
    "NotFetchedError",
    "RedirectLimitExceededError",
    "RunLogError",
    "StepMismatchError",
    "TruncatedArchiveError",
    "UnsupportedContextError",
]
