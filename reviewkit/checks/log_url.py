"""Resolve the download location of a workflow run log bundle.

The Actions API does not return the bundle location in a JSON body: the logs
endpoint answers with an HTTP redirect, usually to a storage front end that
may redirect again. Redirects are followed here, hop by hop, so the number of
hops can be bounded and credentials are never forwarded to a storage host.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional
from urllib.parse import urljoin, urlsplit

import requests

from reviewkit.checks.errors import (
    DownloadError,
    FetchCancelledError,
    LogUrlError,
    RedirectLimitExceededError,
    UnsupportedContextError,
)
from reviewkit.checks.models import WorkflowJob

if TYPE_CHECKING:
    from reviewkit.github_api import GitHubAPI

logger = logging.getLogger(__name__)

REDIRECT_STATUS_CODES = (301, 302, 303, 307, 308)
ERROR_DETAIL_LIMIT = 500


class LogSourceKind(Enum):
    """What a log source identifier refers to."""
    CHECK_RUN = "check_run"
    WORKFLOW_JOB = "workflow_job"


@dataclass(frozen=True)
class LogSource:
    """Identifies the job whose run log bundle should be fetched."""

    kind: LogSourceKind
    id: int
    run_id: Optional[int] = None
    run_attempt: Optional[int] = None

    @classmethod
    def check_run(cls, check_run_id: int) -> "LogSource":
        return cls(kind=LogSourceKind.CHECK_RUN, id=int(check_run_id))

    @classmethod
    def workflow_job(cls, job: WorkflowJob) -> "LogSource":
        return cls(
            kind=LogSourceKind.WORKFLOW_JOB,
            id=job.id,
            run_id=job.run_id,
            run_attempt=job.run_attempt,
        )


@dataclass
class RedirectChain:
    """Locations visited while resolving a log URL, initial one first."""

    urls: list[str] = field(default_factory=list)

    @property
    def final_url(self) -> str:
        return self.urls[-1]

    @property
    def hops(self) -> int:
        return max(0, len(self.urls) - 1)

    def headers_for_final(self, headers: Optional[dict[str, str]]) -> dict[str, str]:
        """Headers to send to the final location: none unless it is the initial host."""
        if urlsplit(self.final_url).netloc == urlsplit(self.urls[0]).netloc:
            return dict(headers or {})
        return {}


def _check_cancelled(cancel: Optional[threading.Event], url: str) -> None:
    if cancel is not None and cancel.is_set():
        raise FetchCancelledError(f"Fetch cancelled while requesting {url}", url=url)


def _error_detail(response: requests.Response) -> str:
    try:
        text = response.text or ""
    except requests.exceptions.RequestException:
        return ""
    return text.strip()[:ERROR_DETAIL_LIMIT]


def follow_redirects(
    session: requests.Session,
    url: str,
    max_redirects: int,
    headers: Optional[dict[str, str]] = None,
    timeout: Optional[float] = None,
    verify: bool = True,
    cancel: Optional[threading.Event] = None,
) -> RedirectChain:
    """Follow redirects from ``url`` until a non-redirect response.

    Only response headers are consumed; bodies of visited locations are never
    read. ``headers`` are sent to the host of ``url`` only.

    Args:
        session: HTTP session to issue requests with
        url: Initial location (an API endpoint)
        max_redirects: Maximum number of redirect hops to follow
        headers: Request headers for the initial host (e.g. Authorization)
        timeout: Per-request timeout in seconds
        verify: Verify TLS certificates
        cancel: Optional event; when set, resolution stops with FetchCancelledError

    Returns:
        The chain of visited locations; ``final_url`` is the literal URL to download

    Raises:
        RedirectLimitExceededError: If more than max_redirects hops are needed
        LogUrlError: If a location answers with an error status
        DownloadError: On transport failures
    """
    origin = urlsplit(url).netloc
    chain = RedirectChain(urls=[url])

    while True:
        _check_cancelled(cancel, url)
        request_headers = dict(headers or {}) if urlsplit(url).netloc == origin else {}
        logger.debug("Resolving log location %s (hop %d)", url, chain.hops)
        try:
            response = session.get(
                url,
                headers=request_headers,
                allow_redirects=False,
                stream=True,
                timeout=timeout,
                verify=verify,
            )
        except requests.exceptions.RequestException as e:
            raise DownloadError(f"Request failed for {url}: {e}", url=url) from e

        try:
            status = response.status_code
            if status in REDIRECT_STATUS_CODES:
                location = response.headers.get("Location")
                if not location:
                    raise LogUrlError(url, status, "redirect without a Location header")
                next_url = urljoin(url, location)
                if chain.hops >= max_redirects:
                    raise RedirectLimitExceededError(next_url, max_redirects)
                chain.urls.append(next_url)
                url = next_url
                continue
            if 200 <= status < 300:
                return chain
            raise LogUrlError(url, status, _error_detail(response))
        finally:
            response.close()


def download(
    session: requests.Session,
    url: str,
    headers: Optional[dict[str, str]] = None,
    timeout: Optional[float] = None,
    verify: bool = True,
    cancel: Optional[threading.Event] = None,
    chunk_size: int = 64 * 1024,
) -> bytes:
    """Download the bytes at a resolved location.

    The body is streamed so a set ``cancel`` event aborts between chunks.

    Raises:
        DownloadError: On transport failures, error statuses or short reads
        FetchCancelledError: If ``cancel`` is set mid-download
    """
    _check_cancelled(cancel, url)
    logger.debug("Downloading %s", url)
    try:
        response = session.get(url, headers=headers or {}, stream=True, timeout=timeout, verify=verify)
    except requests.exceptions.RequestException as e:
        raise DownloadError(f"Request failed for {url}: {e}", url=url) from e

    try:
        if response.status_code >= 400:
            raise DownloadError(
                f"Download error {response.status_code} for {url}",
                url=url,
                status_code=response.status_code,
            )
        chunks = []
        received = 0
        try:
            for chunk in response.iter_content(chunk_size=chunk_size):
                _check_cancelled(cancel, url)
                if chunk:
                    chunks.append(chunk)
                    received += len(chunk)
        except requests.exceptions.RequestException as e:
            raise DownloadError(f"Download interrupted for {url}: {e}", url=url) from e
    finally:
        response.close()

    expected = response.headers.get("Content-Length")
    if expected and not response.headers.get("Content-Encoding"):
        try:
            expected_size = int(expected)
        except ValueError:
            expected_size = None
        if expected_size is not None and received < expected_size:
            raise DownloadError(
                f"Incomplete download from {url}: received {received} of {expected_size} bytes",
                url=url,
            )
    return b"".join(chunks)


class LogUrlResolver(ABC):
    """Strategy that knows which endpoint serves the log bundle of a source."""

    def __init__(self, source: LogSource):
        self.source = source

    @abstractmethod
    def initial_url(self, api: "GitHubAPI", repo: str) -> str:
        """Return the API endpoint that redirects to the log bundle."""
        pass

    def resolve(
        self,
        api: "GitHubAPI",
        repo: str,
        max_redirects: int,
        cancel: Optional[threading.Event] = None,
    ) -> RedirectChain:
        url = self.initial_url(api, repo)
        return follow_redirects(
            api.session,
            url,
            max_redirects,
            headers=api.auth_headers(),
            timeout=api.config.timeout,
            verify=api.config.verify_ssl,
            cancel=cancel,
        )


def _run_logs_url(api: "GitHubAPI", repo: str, run_id: int, run_attempt: Optional[int]) -> str:
    if run_attempt:
        return f"{api.api_base}/repos/{repo}/actions/runs/{run_id}/attempts/{run_attempt}/logs"
    return f"{api.api_base}/repos/{repo}/actions/runs/{run_id}/logs"


class WorkflowJobLogResolver(LogUrlResolver):
    """Resolves the run log bundle of a workflow job with a known run."""

    def __init__(self, source: LogSource):
        if source.run_id is None:
            raise UnsupportedContextError(
                f"no log fetcher available: workflow job {source.id} has no run id"
            )
        super().__init__(source)

    def initial_url(self, api: "GitHubAPI", repo: str) -> str:
        return _run_logs_url(api, repo, self.source.run_id, self.source.run_attempt)


class CheckRunLogResolver(LogUrlResolver):
    """Resolves the run log bundle behind an Actions check run.

    Check runs created by Actions share their id with the workflow job, so
    the job is looked up first to learn which run (and attempt) it belongs to.
    """

    def initial_url(self, api: "GitHubAPI", repo: str) -> str:
        job = api.get_workflow_job(repo, self.source.id)
        if job.run_id is None:
            raise UnsupportedContextError(
                f"no log fetcher available: check run {self.source.id} is not an Actions job"
            )
        return _run_logs_url(api, repo, job.run_id, job.run_attempt)


_RESOLVERS: dict[LogSourceKind, type[LogUrlResolver]] = {
    LogSourceKind.CHECK_RUN: CheckRunLogResolver,
    LogSourceKind.WORKFLOW_JOB: WorkflowJobLogResolver,
}


def resolver_for(source: LogSource) -> LogUrlResolver:
    """Pick the resolver for a log source.

    Raises:
        UnsupportedContextError: If no resolver handles the source
    """
    resolver_cls = _RESOLVERS.get(getattr(source, "kind", None))
    if resolver_cls is None:
        raise UnsupportedContextError()
    return resolver_cls(source)
