"""Walk the per-step logs of a workflow job.

A RunLogWalker is bound to one log source. ``fetch`` resolves, downloads and
opens the run log bundle; ``walk`` then visits each archived step log of a
job, in step order, together with the step's metadata.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable, Iterator, Optional

from reviewkit.checks.archive import LogArchive
from reviewkit.checks.errors import JobNotFoundError, NoStepsError, NotFetchedError, StepMismatchError
from reviewkit.checks.log_url import LogSource, download, resolver_for
from reviewkit.checks.models import StepMetadata, WorkflowJob
from reviewkit.checks.step_logs import StepLog, list_jobs, list_steps

if TYPE_CHECKING:
    from reviewkit.github_api import GitHubAPI

DEFAULT_MAX_REDIRECTS = 3

StepVisitor = Callable[[StepMetadata, StepLog], None]


class RunLogWalker:
    """Fetches a run log bundle and walks the step logs of a job.

    Not safe for concurrent use; independent walkers share no state.
    """

    def __init__(
        self,
        api: "GitHubAPI",
        repo: str,
        source: LogSource,
        *,
        logger: Optional[logging.Logger] = None,
        cancel: Optional[threading.Event] = None,
    ):
        """Bind a walker to a log source.

        Args:
            api: GitHub API client (session, credentials, timeouts)
            repo: Repository as 'owner/repo'
            source: Check run or workflow job whose logs are walked
            logger: Sink for progress messages (default: this module's logger)
            cancel: Event that aborts an in-flight fetch when set

        Raises:
            UnsupportedContextError: If no resolver handles the source
        """
        self.api = api
        self.repo = repo
        self.source = source
        self._resolver = resolver_for(source)
        self._logger = logger or logging.getLogger(__name__)
        self._cancel = cancel
        self._archive: Optional[LogArchive] = None

    @property
    def is_fetched(self) -> bool:
        return self._archive is not None

    def fetch(self, max_redirects: int = DEFAULT_MAX_REDIRECTS) -> None:
        """Resolve, download and open the log bundle.

        Any previously fetched bundle is discarded first, so a failed fetch
        leaves the walker unfetched. Safe to call again to retry or refresh.
        """
        self.close()

        chain = self._resolver.resolve(self.api, self.repo, max_redirects, cancel=self._cancel)
        self._logger.debug(
            "Resolved log bundle for %s %s after %d redirect(s)",
            self.source.kind.value,
            self.source.id,
            chain.hops,
        )

        data = download(
            self.api.session,
            chain.final_url,
            headers=chain.headers_for_final(self.api.auth_headers()),
            timeout=self.api.config.timeout,
            verify=self.api.config.verify_ssl,
            cancel=self._cancel,
        )
        self._logger.debug("Downloaded %d bytes of logs", len(data))

        self._archive = LogArchive(data)

    def iter_steps(self, job: WorkflowJob) -> Iterator[tuple[StepMetadata, StepLog]]:
        """Pair each archived step log of ``job`` with its metadata.

        Preconditions are checked when this is called; step logs are paired
        lazily and no log content is read.

        Raises:
            NotFetchedError: If no bundle has been fetched
            NoStepsError: If ``job`` has no steps
            JobNotFoundError: If the bundle has no directory for the job
            StepMismatchError: While iterating, for a logged step with no metadata
        """
        if self._archive is None:
            raise NotFetchedError()
        if not job.steps:
            raise NoStepsError(job.name)

        try:
            step_logs = list_steps(self._archive, job.name)
        except JobNotFoundError:
            self._logger.debug(
                "Jobs in the logs: %s", ", ".join(list_jobs(self._archive)) or "none"
            )
            raise
        by_number: dict[int, StepMetadata] = {}
        for step in job.steps:
            by_number.setdefault(step.number, step)

        return self._pair(job.name, step_logs, by_number)

    @staticmethod
    def _pair(
        job_name: str,
        step_logs: list[StepLog],
        by_number: dict[int, StepMetadata],
    ) -> Iterator[tuple[StepMetadata, StepLog]]:
        for step_log in step_logs:
            step = by_number.get(step_log.step_number)
            if step is None:
                raise StepMismatchError(job_name, step_log.step_number)
            yield step, step_log

    def walk(self, job: WorkflowJob, visitor: StepVisitor) -> None:
        """Call ``visitor(step, step_log)`` for each step log, in step order.

        The first error, including one raised by the visitor, ends the walk
        and propagates unchanged.
        """
        for step, step_log in self.iter_steps(job):
            visitor(step, step_log)

    def close(self) -> None:
        """Release the fetched bundle, returning to the unfetched state."""
        if self._archive is not None:
            self._archive.close()
            self._archive = None

    def __enter__(self) -> "RunLogWalker":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
