"""Errors raised while retrieving and walking workflow run logs.

Every error carries the context needed to report it (job name, step number,
URL) so callers never have to re-derive it.
"""

from typing import Optional


class RunLogError(Exception):
    """Base class for run log retrieval errors."""
    pass


class UnsupportedContextError(RunLogError):
    """No log fetcher is available for the given log source."""

    def __init__(self, message: str = "no log fetcher available for the given context"):
        super().__init__(message)


class RedirectLimitExceededError(RunLogError):
    """The provider kept redirecting past the allowed number of hops."""

    def __init__(self, url: str, max_redirects: int):
        self.url = url
        self.max_redirects = max_redirects
        super().__init__(
            f"Stopped after {max_redirects} redirect(s) while resolving the log location; "
            f"last location: {url}"
        )


class LogUrlError(RunLogError):
    """The provider answered with an error instead of a log location."""

    def __init__(self, url: str, status_code: int, detail: str = ""):
        self.url = url
        self.status_code = status_code
        msg = f"Failed to resolve log location: HTTP {status_code} for {url}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class DownloadError(RunLogError):
    """The log bundle could not be downloaded."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class FetchCancelledError(DownloadError):
    """The caller cancelled the fetch while it was in flight."""
    pass


class ArchiveFormatError(RunLogError):
    """The downloaded bytes are not a valid log archive."""
    pass


class TruncatedArchiveError(RunLogError):
    """An archive entry could not be read in full."""

    def __init__(self, entry_name: str, reason: str = ""):
        self.entry_name = entry_name
        msg = f"Archive entry {entry_name!r} could not be read in full"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class JobNotFoundError(RunLogError):
    """The job has no directory in the log archive."""

    def __init__(self, job_name: str):
        self.job_name = job_name
        super().__init__(f"job {job_name!r} not found in the logs")


class NotFetchedError(RunLogError):
    """Logs were walked before they were fetched."""

    def __init__(self) -> None:
        super().__init__("logs have not been fetched yet")


class NoStepsError(RunLogError):
    """The job description carries no steps to walk."""

    def __init__(self, job_name: str):
        self.job_name = job_name
        super().__init__(f"job {job_name!r} has no steps")


class StepMismatchError(RunLogError):
    """An archived step log has no matching step in the job metadata."""

    def __init__(self, job_name: str, step_number: int):
        self.job_name = job_name
        self.step_number = step_number
        super().__init__(f"step number {step_number} not found in job {job_name!r}")
