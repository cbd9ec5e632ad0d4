"""Tests for the GitHub API client and review helpers."""

import json
from typing import Any, Dict, List, Optional

import pytest
import requests

from reviewkit import github_api
from reviewkit.github_api import (
    AuthenticationError,
    GitHubAPI,
    GitHubAPIError,
    GitHubConfig,
    NotFoundError,
    ReviewersRequest,
    ValidationError,
    expand_team_reviewers,
    parse_pull_request_number,
    parse_reviewers,
)


class DummyResponse:
    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        url: str = "",
        links: Optional[Dict[str, Dict[str, str]]] = None,
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        self.url = url
        self.links = links or {}
        self.text = "" if payload is None else json.dumps(payload)
        self.content = self.text.encode()

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class DummySession:
    def __init__(self, responses: List[Any]) -> None:
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def request(self, method, url, timeout=None, **kwargs):  # noqa: ANN001
        self.calls.append({"method": method, "url": url, "timeout": timeout, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if not response.url:
            response.url = url
        return response


def make_api(responses: List[Any], **config: Any) -> GitHubAPI:
    config.setdefault("token", "tok")
    config.setdefault("retry_delay", 0.0)
    return GitHubAPI(GitHubConfig(**config), session=DummySession(responses))


class TestEndpoints:
    def test_api_base_github_com(self):
        api = make_api([])

        assert api.api_base == "https://api.github.com"
        assert api.graphql_url == "https://api.github.com/graphql"

    def test_api_base_enterprise(self):
        api = make_api([], server_url="https://github.example.com/")

        assert api.api_base == "https://github.example.com/api/v3"
        assert api.graphql_url == "https://github.example.com/api/graphql"

    def test_auth_headers(self):
        headers = make_api([]).auth_headers()

        assert headers["Authorization"] == "Bearer tok"
        assert headers["Accept"] == "application/vnd.github+json"

    def test_no_token_no_authorization(self):
        assert "Authorization" not in make_api([], token=None).auth_headers()


class TestRequests:
    def test_retries_server_errors(self):
        api = make_api([DummyResponse(502), DummyResponse(200, {"ok": True})], max_retries=2)

        assert api.request_json("GET", "/repos/o/r") == {"ok": True}
        assert len(api.session.calls) == 2

    def test_gives_up_after_max_retries(self):
        api = make_api([DummyResponse(500), DummyResponse(500)], max_retries=1)

        with pytest.raises(GitHubAPIError, match="API error 500"):
            api.request_json("GET", "/repos/o/r")

    def test_retries_connection_errors(self):
        api = make_api(
            [requests.exceptions.ConnectionError("reset"), DummyResponse(200, {"ok": True})],
            max_retries=1,
        )

        assert api.request_json("GET", "/x") == {"ok": True}

    def test_timeout_after_retries(self):
        api = make_api([requests.exceptions.Timeout(), requests.exceptions.Timeout()], max_retries=1)

        with pytest.raises(GitHubAPIError, match="timeout"):
            api.request_json("GET", "/x")

    def test_401_raises_authentication_error(self):
        api = make_api([DummyResponse(401, {"message": "Bad credentials"})])

        with pytest.raises(AuthenticationError, match="Bad credentials"):
            api.request_json("GET", "/user")

    def test_404_raises_not_found(self):
        api = make_api([DummyResponse(404, {"message": "Not Found"})])

        with pytest.raises(NotFoundError):
            api.get_pull_request("o/r", 1)

    def test_empty_body_gives_empty_dict(self):
        api = make_api([DummyResponse(204)])

        assert api.request_json("DELETE", "/x") == {}

    def test_paginate_follows_next_links(self):
        api = make_api([
            DummyResponse(200, {"check_runs": [{"id": 1}]}, links={"next": {"url": "https://api.github.com/page2"}}),
            DummyResponse(200, {"check_runs": [{"id": 2}]}),
        ])

        items = api.paginate("/repos/o/r/commits/abc/check-runs", key="check_runs", params={"filter": "latest"})

        assert [i["id"] for i in items] == [1, 2]
        first, second = api.session.calls
        assert first["params"] == {"filter": "latest", "per_page": 100}
        assert second["url"] == "https://api.github.com/page2"
        assert "params" not in second

    def test_graphql_errors_raise(self):
        api = make_api([DummyResponse(200, {"errors": [{"message": "bad query"}]})])

        with pytest.raises(GitHubAPIError, match="bad query"):
            api.graphql("query {}", {})


class TestCheckRuns:
    def test_conclusion_filtered_client_side(self):
        api = make_api([
            DummyResponse(200, {"check_runs": [
                {"id": 1, "name": "b", "conclusion": "failure"},
                {"id": 2, "name": "a", "conclusion": "success"},
            ]}),
        ])

        runs = api.list_check_runs_for_ref("o/r", "abc", conclusion="failure")

        assert [r["id"] for r in runs] == [1]
        assert api.session.calls[0]["params"]["filter"] == "latest"

    def test_pull_request_check_runs_sorted_and_required_filtered(self, monkeypatch: pytest.MonkeyPatch):
        api = make_api([])
        monkeypatch.setattr(api, "get_pull_request", lambda repo, number: {"head": {"sha": "abc"}})
        monkeypatch.setattr(
            api,
            "list_check_runs_for_ref",
            lambda repo, sha, status=None, conclusion=None, filter="latest": [
                {"id": 3, "name": "lint"},
                {"id": 1, "name": "Build"},
                {"id": 2, "name": "docs"},
            ],
        )
        monkeypatch.setattr(api, "get_required_check_run_ids", lambda repo, number: {1, 3})

        assert [r["name"] for r in api.list_pull_request_check_runs("o/r", 5)] == ["Build", "docs", "lint"]
        assert [r["id"] for r in api.list_pull_request_check_runs("o/r", 5, required=True)] == [1, 3]
        assert [r["id"] for r in api.list_pull_request_check_runs("o/r", 5, required=False)] == [2]

    def test_required_check_run_ids_from_graphql(self):
        payload = {"data": {"repository": {"pullRequest": {"commits": {"nodes": [{"commit": {
            "statusCheckRollup": {"contexts": {"nodes": [
                {"__typename": "CheckRun", "databaseId": 11, "isRequired": True},
                {"__typename": "CheckRun", "databaseId": 12, "isRequired": False},
                {"__typename": "StatusContext", "isRequired": True},
            ]}},
        }}]}}}}}
        api = make_api([DummyResponse(200, payload)])

        assert api.get_required_check_run_ids("o/r", 5) == {11}
        variables = api.session.calls[0]["json"]["variables"]
        assert variables == {"owner": "o", "name": "r", "number": 5}

    def test_get_workflow_job(self):
        api = make_api([DummyResponse(200, {
            "id": 7,
            "name": "build",
            "run_id": 42,
            "run_attempt": 2,
            "conclusion": "failure",
            "steps": [
                {"number": 1, "name": "Set up job", "conclusion": "success", "status": "completed"},
                {"number": 2, "name": "Run tests", "conclusion": "failure", "status": "completed"},
                {"number": 3, "name": "Deploy", "conclusion": "timed_out", "status": "completed"},
            ],
        })])

        job = api.get_workflow_job("o/r", 7)

        assert (job.run_id, job.run_attempt) == (42, 2)
        assert [s.number for s in job.failed_steps()] == [2]


class TestReviews:
    REVIEWS = [
        {"user": {"login": "alice"}, "state": "CHANGES_REQUESTED"},
        {"user": {"login": "bob"}, "state": "APPROVED"},
        {"user": {"login": "alice"}, "state": "APPROVED"},
        {"user": {"login": "carol"}, "state": "COMMENTED"},
        {"user": {"login": "dave"}, "state": "PENDING"},
        {"user": {"login": "bob"}, "state": "COMMENTED"},
    ]

    def test_latest_review_per_user(self):
        api = make_api([DummyResponse(200, self.REVIEWS)])

        latest = api.get_latest_reviews("o/r", 1)

        assert [(r["user"]["login"], r["state"]) for r in latest] == [
            ("alice", "APPROVED"),
            ("bob", "COMMENTED"),
            ("carol", "COMMENTED"),
        ]

    def test_approved_reviewers_use_latest_state(self):
        api = make_api([DummyResponse(200, self.REVIEWS)])

        assert api.get_approved_reviewers("o/r", 1) == ["alice"]

    def test_request_reviewers_payload(self):
        api = make_api([DummyResponse(201, {"number": 1})])

        api.request_reviewers("o/r", 1, ReviewersRequest(reviewers=["alice"], team_reviewers=["core"]))

        call = api.session.calls[0]
        assert call["method"] == "POST"
        assert call["url"] == "https://api.github.com/repos/o/r/pulls/1/requested_reviewers"
        assert call["json"] == {"reviewers": ["alice"], "team_reviewers": ["core"]}

    def test_request_reviewers_rejects_empty(self):
        api = make_api([])

        with pytest.raises(ValidationError):
            api.request_reviewers("o/r", 1, ReviewersRequest())


class TestParsing:
    def test_parse_reviewers(self):
        request = parse_reviewers(["@alice", "my-org/core,bob", "@my-org/docs", "alice", " "])

        assert request.reviewers == ["alice", "bob"]
        assert request.team_reviewers == ["core", "docs"]

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("123", 123),
            ("#45", 45),
            ("https://github.com/o/r/pull/678", 678),
            ("https://github.com/o/r/pull/9/files", 9),
        ],
    )
    def test_parse_pull_request_number(self, value: str, expected: int):
        assert parse_pull_request_number(value) == expected

    def test_parse_pull_request_number_invalid(self):
        with pytest.raises(ValidationError):
            parse_pull_request_number("main")


class DummyTeamAPI:
    def __init__(self, teams: Dict[str, List[str]]) -> None:
        self.teams = teams
        self.calls: List[tuple] = []

    def list_team_members(self, org: str, team_slug: str) -> List[str]:
        self.calls.append((org, team_slug))
        return self.teams[team_slug]


def test_expand_team_reviewers():
    api = DummyTeamAPI({"core": ["bob", "carol"], "docs": ["alice", "dave"]})
    request = ReviewersRequest(reviewers=["alice"], team_reviewers=["core", "docs"])

    expanded = expand_team_reviewers(api, "my-org/repo", request)  # type: ignore[arg-type]

    assert expanded.reviewers == ["alice", "bob", "carol", "dave"]
    assert expanded.team_reviewers == []
    assert api.calls == [("my-org", "core"), ("my-org", "docs")]


def test_ssl_warnings_disabled_when_not_verifying(monkeypatch: pytest.MonkeyPatch):
    calls = []
    monkeypatch.setattr(github_api.urllib3, "disable_warnings", lambda category: calls.append(category))

    make_api([], verify_ssl=False)

    assert calls == [github_api.urllib3.exceptions.InsecureRequestWarning]
