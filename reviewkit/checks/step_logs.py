"""Index of per-step log files inside a workflow run log bundle.

The provider lays the bundle out as one directory per job holding one file
per step, named ``<job-name>/<step-number>_<step-name>.txt``. Top-level
``<n>_<job-name>.txt`` files carry the whole job log and are not step logs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

from reviewkit.checks.archive import LogArchive
from reviewkit.checks.errors import JobNotFoundError

# The provider truncates job directory names to this many UTF-16 code units.
JOB_NAME_MAX_LENGTH = 90

STEP_FILE_PATTERN = re.compile(r"^(?P<number>\d+)_(?P<name>.*)\.txt$")


def sanitize_job_name(name: str) -> str:
    """Return the directory name the provider uses for a job in the bundle.

    Characters that are invalid in archive paths (``/`` and ``:``) are
    removed and the result is truncated to JOB_NAME_MAX_LENGTH UTF-16 units.
    """
    sanitized = name.replace("/", "").replace(":", "")
    encoded = sanitized.encode("utf-16-le")
    if len(encoded) <= JOB_NAME_MAX_LENGTH * 2:
        return sanitized
    # A cut in the middle of a surrogate pair is dropped by errors="ignore".
    return encoded[: JOB_NAME_MAX_LENGTH * 2].decode("utf-16-le", errors="ignore")


@dataclass(frozen=True)
class StepLog:
    """Log file of one step, read lazily from the archive."""

    job_name: str
    step_number: int
    step_name: str
    entry_name: str
    archive: LogArchive = field(repr=False, compare=False)

    def read_content(self) -> bytes:
        """Decompress and return the full step log."""
        return self.archive.open_entry(self.entry_name)

    def read_text(self, encoding: str = "utf-8") -> str:
        return self.read_content().decode(encoding, errors="replace")


def _parse_step_entry(entry_name: str, job_dir: str) -> Optional[tuple[int, str]]:
    parts = entry_name.split("/")
    if len(parts) != 2 or parts[0] != job_dir:
        return None
    match = STEP_FILE_PATTERN.match(parts[1])
    if not match:
        return None
    return int(match.group("number")), match.group("name")


def list_steps(archive: LogArchive, job_name: str) -> list[StepLog]:
    """List the step logs of a job, ordered by step number.

    Entries that do not follow the step file convention are skipped. When the
    same step number appears twice, the first entry in archive order wins.

    Args:
        archive: Opened log bundle
        job_name: Job name as reported by the API

    Returns:
        Step logs in ascending step-number order (empty if the job has a
        directory but no step files)

    Raises:
        JobNotFoundError: If the archive has no entries for the job
    """
    job_dir = sanitize_job_name(job_name)
    prefix = job_dir + "/"

    present = False
    steps: dict[int, StepLog] = {}
    for entry_name in archive.names():
        if not entry_name.startswith(prefix):
            continue
        present = True
        parsed = _parse_step_entry(entry_name, job_dir)
        if parsed is None:
            continue
        number, step_name = parsed
        if number in steps:
            continue
        steps[number] = StepLog(
            job_name=job_name,
            step_number=number,
            step_name=step_name,
            entry_name=entry_name,
            archive=archive,
        )

    if not present:
        raise JobNotFoundError(job_name)

    return [steps[n] for n in sorted(steps)]


def list_jobs(archive: LogArchive) -> list[str]:
    """Job directory names present in the archive, in archive order."""
    jobs: list[str] = []
    for entry_name in archive.names():
        if "/" not in entry_name:
            continue
        job_dir = entry_name.split("/", 1)[0]
        if job_dir and job_dir not in jobs:
            jobs.append(job_dir)
    return jobs
