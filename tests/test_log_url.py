"""Tests for resolving and downloading log bundles over HTTP."""

import threading
from typing import Any, Callable, Dict, Iterable, List, Optional

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from reviewkit.checks import (
    DownloadError,
    FetchCancelledError,
    LogSource,
    LogSourceKind,
    LogUrlError,
    RedirectChain,
    RedirectLimitExceededError,
    UnsupportedContextError,
    WorkflowJob,
    follow_redirects,
)
from reviewkit.checks.log_url import CheckRunLogResolver, WorkflowJobLogResolver, download, resolver_for
from reviewkit.github_api import GitHubAPI, GitHubConfig

API = "https://api.github.com/repos/o/r/actions/jobs/1/logs"


class DummyResponse:
    def __init__(
        self,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
        chunks: Optional[Iterable[bytes]] = None,
        text: str = "",
    ) -> None:
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {})
        self._chunks = chunks if chunks is not None else []
        self.text = text
        self.closed = False

    def iter_content(self, chunk_size: int = 1):  # noqa: ANN001
        for chunk in self._chunks:
            yield chunk

    def close(self) -> None:
        self.closed = True


def redirect(location: str, status: int = 302) -> Callable[[], DummyResponse]:
    return lambda: DummyResponse(status, headers={"Location": location})


def ok(body: bytes = b"", headers: Optional[Dict[str, str]] = None) -> Callable[[], DummyResponse]:
    return lambda: DummyResponse(200, headers=headers, chunks=[body])


class DummySession:
    """Serves a fresh response per GET from a url -> factory map."""

    def __init__(self, routes: Dict[str, Callable[[], Any]]) -> None:
        self.routes = routes
        self.calls: List[Dict[str, Any]] = []
        self.responses: List[DummyResponse] = []

    def get(self, url, headers=None, **kwargs):  # noqa: ANN001
        self.calls.append({"url": url, "headers": dict(headers or {}), **kwargs})
        factory = self.routes[url]
        response = factory()
        if isinstance(response, Exception):
            raise response
        self.responses.append(response)
        return response


def chain_routes(hops: int) -> Dict[str, Callable[[], DummyResponse]]:
    """API -> storage/1 -> ... -> storage/<hops> which answers 200."""
    routes: Dict[str, Callable[[], DummyResponse]] = {}
    url = API
    for i in range(1, hops + 1):
        nxt = f"https://storage.example.com/hop/{i}"
        routes[url] = redirect(nxt)
        url = nxt
    routes[url] = ok(b"bundle")
    return routes


class TestFollowRedirects:
    def test_no_redirect_returns_initial_url(self):
        session = DummySession({API: ok()})

        chain = follow_redirects(session, API, max_redirects=0)

        assert chain.final_url == API
        assert chain.hops == 0

    @pytest.mark.parametrize("hops", [1, 2, 3])
    def test_chain_of_k_hops_succeeds_with_limit_k(self, hops: int):
        session = DummySession(chain_routes(hops))

        chain = follow_redirects(session, API, max_redirects=hops)

        assert chain.hops == hops
        assert chain.final_url == f"https://storage.example.com/hop/{hops}"

    @pytest.mark.parametrize("hops", [1, 2, 3])
    def test_chain_of_k_hops_fails_with_limit_k_minus_one(self, hops: int):
        session = DummySession(chain_routes(hops))

        with pytest.raises(RedirectLimitExceededError) as exc_info:
            follow_redirects(session, API, max_redirects=hops - 1)

        assert exc_info.value.max_redirects == hops - 1
        # The location past the limit is never requested
        assert len(session.calls) == hops

    def test_redirects_disabled_and_streamed(self):
        session = DummySession(chain_routes(1))

        follow_redirects(session, API, max_redirects=1, timeout=7, verify=False)

        for call in session.calls:
            assert call["allow_redirects"] is False
            assert call["stream"] is True
            assert call["timeout"] == 7
            assert call["verify"] is False

    def test_every_response_is_closed(self):
        session = DummySession(chain_routes(2))

        follow_redirects(session, API, max_redirects=2)

        assert all(r.closed for r in session.responses)

    @pytest.mark.parametrize("status", [301, 302, 303, 307, 308])
    def test_all_redirect_statuses_are_followed(self, status: int):
        target = "https://storage.example.com/logs.zip"
        session = DummySession({API: redirect(target, status), target: ok()})

        chain = follow_redirects(session, API, max_redirects=1)

        assert chain.final_url == target

    def test_relative_location_is_resolved_against_current_url(self):
        target = "https://api.github.com/storage/logs.zip"
        session = DummySession({API: redirect("/storage/logs.zip"), target: ok()})

        chain = follow_redirects(session, API, max_redirects=1)

        assert chain.final_url == target

    def test_authorization_only_sent_to_origin_host(self):
        session = DummySession(chain_routes(2))
        headers = {"Authorization": "Bearer secret"}

        chain = follow_redirects(session, API, max_redirects=2, headers=headers)

        assert session.calls[0]["headers"] == headers
        assert all(call["headers"] == {} for call in session.calls[1:])
        assert chain.headers_for_final(headers) == {}

    def test_same_host_redirect_keeps_headers(self):
        target = "https://api.github.com/other/logs.zip"
        session = DummySession({API: redirect(target), target: ok()})
        headers = {"Authorization": "Bearer secret"}

        chain = follow_redirects(session, API, max_redirects=1, headers=headers)

        assert session.calls[1]["headers"] == headers
        assert chain.headers_for_final(headers) == headers

    def test_error_status_raises_log_url_error(self):
        session = DummySession({API: lambda: DummyResponse(404, text='{"message": "Not Found"}')})

        with pytest.raises(LogUrlError) as exc_info:
            follow_redirects(session, API, max_redirects=3)

        assert exc_info.value.status_code == 404
        assert "Not Found" in str(exc_info.value)

    def test_redirect_without_location_raises(self):
        session = DummySession({API: lambda: DummyResponse(302)})

        with pytest.raises(LogUrlError):
            follow_redirects(session, API, max_redirects=3)

    def test_transport_error_raises_download_error(self):
        session = DummySession({API: lambda: requests.exceptions.ConnectionError("boom")})

        with pytest.raises(DownloadError):
            follow_redirects(session, API, max_redirects=3)

    def test_cancelled_before_start_makes_no_request(self):
        session = DummySession(chain_routes(1))
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(FetchCancelledError):
            follow_redirects(session, API, max_redirects=3, cancel=cancel)

        assert session.calls == []


class TestDownload:
    def test_joins_chunks(self):
        url = "https://storage.example.com/logs.zip"
        session = DummySession({url: lambda: DummyResponse(200, chunks=[b"ab", b"", b"cd"])})

        assert download(session, url) == b"abcd"
        assert session.calls[0]["stream"] is True
        assert session.responses[0].closed

    def test_error_status_raises_with_status_code(self):
        url = "https://storage.example.com/logs.zip"
        session = DummySession({url: lambda: DummyResponse(403)})

        with pytest.raises(DownloadError) as exc_info:
            download(session, url)

        assert exc_info.value.status_code == 403

    def test_short_read_raises(self):
        url = "https://storage.example.com/logs.zip"
        session = DummySession({url: ok(b"0123456789", headers={"Content-Length": "100"})})

        with pytest.raises(DownloadError, match="Incomplete download"):
            download(session, url)

    def test_content_length_ignored_for_encoded_bodies(self):
        url = "https://storage.example.com/logs.zip"
        session = DummySession({
            url: ok(b"0123456789", headers={"Content-Length": "4", "Content-Encoding": "gzip"}),
        })

        assert download(session, url) == b"0123456789"

    def test_cancel_between_chunks(self):
        url = "https://storage.example.com/logs.zip"
        cancel = threading.Event()

        def chunks():
            yield b"first"
            cancel.set()
            yield b"second"

        session = DummySession({url: lambda: DummyResponse(200, chunks=chunks())})

        with pytest.raises(FetchCancelledError):
            download(session, url, cancel=cancel)

        assert session.responses[0].closed


def test_redirect_chain_properties():
    chain = RedirectChain(urls=["https://a.example/x", "https://b.example/y"])

    assert chain.final_url == "https://b.example/y"
    assert chain.hops == 1


class TestResolvers:
    def make_api(self) -> GitHubAPI:
        return GitHubAPI(GitHubConfig(token="t"), session=DummySession({}))

    def test_workflow_job_source_uses_run_attempt_logs(self):
        job = WorkflowJob(id=7, name="build", run_id=42, run_attempt=2)
        resolver = resolver_for(LogSource.workflow_job(job))

        assert isinstance(resolver, WorkflowJobLogResolver)
        assert resolver.initial_url(self.make_api(), "o/r") == (
            "https://api.github.com/repos/o/r/actions/runs/42/attempts/2/logs"
        )

    def test_workflow_job_without_attempt_uses_run_logs(self):
        job = WorkflowJob(id=7, name="build", run_id=42)

        resolver = resolver_for(LogSource.workflow_job(job))

        assert resolver.initial_url(self.make_api(), "o/r") == "https://api.github.com/repos/o/r/actions/runs/42/logs"

    def test_workflow_job_without_run_is_unsupported(self):
        job = WorkflowJob(id=7, name="build")

        with pytest.raises(UnsupportedContextError):
            resolver_for(LogSource.workflow_job(job))

    def test_check_run_looks_up_its_job(self, monkeypatch: pytest.MonkeyPatch):
        api = self.make_api()
        looked_up = []

        def fake_get_workflow_job(repo: str, job_id: int) -> WorkflowJob:
            looked_up.append((repo, job_id))
            return WorkflowJob(id=job_id, name="build", run_id=99, run_attempt=1)

        monkeypatch.setattr(api, "get_workflow_job", fake_get_workflow_job)
        resolver = resolver_for(LogSource.check_run(5))

        assert isinstance(resolver, CheckRunLogResolver)
        assert resolver.initial_url(api, "o/r") == "https://api.github.com/repos/o/r/actions/runs/99/attempts/1/logs"
        assert looked_up == [("o/r", 5)]

    def test_unknown_source_is_unsupported(self):
        with pytest.raises(UnsupportedContextError, match="no log fetcher available for the given context"):
            resolver_for(object())  # type: ignore[arg-type]

    def test_source_kinds(self):
        assert LogSource.check_run(5).kind is LogSourceKind.CHECK_RUN
        assert LogSource.workflow_job(WorkflowJob(id=1, name="x", run_id=2)).kind is LogSourceKind.WORKFLOW_JOB
