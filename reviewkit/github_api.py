"""
GitHub API client for review-kit.

This module provides functionality to:
- Query pull requests and their check runs (REST and GraphQL)
- Look up Actions workflow jobs and download job logs
- List reviews and re-request reviewers

API Documentation: https://docs.github.com/en/rest
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

import requests
import urllib3

from reviewkit.checks.log_url import download, follow_redirects
from reviewkit.checks.models import WorkflowJob

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "https://github.com"
PAGE_SIZE = 100


@dataclass
class GitHubConfig:
    """GitHub API configuration class."""
    server_url: str = DEFAULT_SERVER_URL
    token: Optional[str] = None
    timeout: int = 30
    max_retries: int = 3
    retry_delay: float = 1.0
    verify_ssl: bool = True


class GitHubAPIError(Exception):
    """GitHub API base exception."""
    pass


class AuthenticationError(GitHubAPIError):
    """Credentials missing or rejected."""
    pass


class NotFoundError(GitHubAPIError):
    """Requested resource does not exist or is not visible."""
    pass


class ValidationError(GitHubAPIError):
    """Input validation failed exception."""
    pass


@dataclass
class ReviewersRequest:
    """Users and team slugs to request a review from."""
    reviewers: List[str] = field(default_factory=list)
    team_reviewers: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.reviewers and not self.team_reviewers

    def to_payload(self) -> Dict[str, List[str]]:
        return {"reviewers": list(self.reviewers), "team_reviewers": list(self.team_reviewers)}


def _dedupe(values: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen


def parse_reviewers(values: Iterable[str]) -> ReviewersRequest:
    """Split reviewer arguments into users and team slugs.

    Accepts ``user``, ``@user``, ``org/team`` and ``@org/team``; values may
    also be comma separated.
    """
    users: List[str] = []
    teams: List[str] = []
    for raw in values:
        for chunk in raw.split(","):
            item = chunk.strip().lstrip("@")
            if not item:
                continue
            if "/" in item:
                teams.append(item.split("/", 1)[1])
            else:
                users.append(item)
    return ReviewersRequest(reviewers=_dedupe(users), team_reviewers=_dedupe(teams))


def parse_pull_request_number(value: str) -> int:
    """Parse '123', '#123' or a pull request URL into a number."""
    text = str(value).strip()
    match = re.search(r"/pull/(\d+)", text)
    if match:
        return int(match.group(1))
    text = text.lstrip("#")
    if not text.isdigit():
        raise ValidationError(f"Invalid pull request number: {value}")
    return int(text)


def sort_check_runs_by_name(check_runs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(check_runs, key=lambda run: (str(run.get("name", "")).lower(), run.get("id") or 0))


REQUIRED_CHECKS_QUERY = """
query($owner: String!, $name: String!, $number: Int!) {
  repository(owner: $owner, name: $name) {
    pullRequest(number: $number) {
      commits(last: 1) {
        nodes {
          commit {
            statusCheckRollup {
              contexts(first: 100) {
                nodes {
                  __typename
                  ... on CheckRun {
                    databaseId
                    name
                    isRequired(pullRequestNumber: $number)
                  }
                }
              }
            }
          }
        }
      }
    }
  }
}
"""


class GitHubAPI:
    """
    GitHub REST/GraphQL client
    """

    ERROR_BODY_PREVIEW_LIMIT = 4000
    USER_AGENT = "review-kit"

    def __init__(self, config: Optional[GitHubConfig] = None, session: Optional[requests.Session] = None):
        """
        Initialize API client.

        Args:
            config: API configuration object, uses default config if None
            session: HTTP session to use (a new requests.Session if None)
        """
        self.config = config or GitHubConfig()
        self.server_url = self.config.server_url.rstrip("/")

        if not self.config.verify_ssl:
            # Suppress SSL warnings when verification is disabled
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        self.session = session or requests.Session()
        self.session.trust_env = True

    @property
    def api_base(self) -> str:
        """REST API base URL.

        Note: github.com is served from api.github.com;
        GitHub Enterprise serves it from {host}/api/v3.
        """
        if self.server_url == DEFAULT_SERVER_URL:
            return "https://api.github.com"
        return f"{self.server_url}/api/v3"

    @property
    def graphql_url(self) -> str:
        if self.server_url == DEFAULT_SERVER_URL:
            return "https://api.github.com/graphql"
        return f"{self.server_url}/api/graphql"

    def auth_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": self.USER_AGENT,
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.api_base}{path}"

    def _make_request_with_retry(self, method: str, url: str, **kwargs) -> requests.Response:
        """Request method with retry mechanism."""
        last_exception = None
        kwargs.setdefault("verify", self.config.verify_ssl)

        for attempt in range(self.config.max_retries + 1):
            try:
                response = self.session.request(method.upper(), url, timeout=self.config.timeout, **kwargs)

                if response.status_code < 500:
                    return response

                if attempt < self.config.max_retries:
                    logger.warning(
                        "Server error %s, retrying in %ss...", response.status_code, self.config.retry_delay
                    )
                    time.sleep(self.config.retry_delay * (attempt + 1))
                    continue
                return response

            except requests.exceptions.Timeout as e:
                last_exception = e
                if attempt < self.config.max_retries:
                    logger.warning("Request timeout, retrying in %ss...", self.config.retry_delay)
                    time.sleep(self.config.retry_delay * (attempt + 1))
                    continue
                raise GitHubAPIError(f"Request timeout after {self.config.max_retries} retries")

            except requests.exceptions.ConnectionError as e:
                last_exception = e
                if attempt < self.config.max_retries:
                    logger.warning("Connection error, retrying in %ss...", self.config.retry_delay)
                    time.sleep(self.config.retry_delay * (attempt + 1))
                    continue
                raise GitHubAPIError(f"Connection error after {self.config.max_retries} retries: {e}")

            except requests.exceptions.RequestException as e:
                raise GitHubAPIError(f"Request failed: {e}")

        if last_exception:
            raise GitHubAPIError(f"All retry attempts failed. Last error: {last_exception}")
        raise GitHubAPIError("All retry attempts failed")

    def _summarize_response_error(self, response: requests.Response) -> str:
        """Format HTTP error response with status, URL and truncated body."""
        detail = ""
        try:
            body = response.json()
            if isinstance(body, dict):
                detail = body.get("message") or ""
        except ValueError:
            detail = (response.text or "")[:self.ERROR_BODY_PREVIEW_LIMIT].strip()
        msg = f"API error {response.status_code} for {response.url}"
        if detail:
            msg += f": {detail}"
        return msg

    def _raise_for_status(self, response: requests.Response) -> None:
        if response.status_code < 400:
            return
        summary = self._summarize_response_error(response)
        if response.status_code == 401:
            raise AuthenticationError(summary)
        if response.status_code == 404:
            raise NotFoundError(summary)
        raise GitHubAPIError(summary)

    def request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        """Send a request and raise on error statuses."""
        url = self._url(path)
        kwargs: Dict[str, Any] = {"headers": self.auth_headers()}
        if payload is not None:
            kwargs["json"] = payload
        if params:
            kwargs["params"] = params

        response = self._make_request_with_retry(method, url, **kwargs)
        logger.debug("Request: %s %s -> %s", method, url, response.status_code)
        self._raise_for_status(response)
        return response

    def request_json(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Send a request and decode the JSON body ({} for empty bodies)."""
        response = self.request(method, path, payload=payload, params=params)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            preview = (response.text or "")[:self.ERROR_BODY_PREVIEW_LIMIT]
            raise GitHubAPIError(f"Invalid JSON response from API. Body preview: {preview}")

    def paginate(self, path: str, key: Optional[str] = None, params: Optional[Dict[str, Any]] = None) -> List[Any]:
        """Collect all pages of a list endpoint by following ``Link: rel="next"``.

        Args:
            path: API path or absolute URL
            key: Field holding the items when the endpoint wraps them in an object
            params: Query parameters for the first page
        """
        items: List[Any] = []
        query = dict(params or {})
        query.setdefault("per_page", PAGE_SIZE)
        url: Optional[str] = self._url(path)

        while url:
            response = self.request("GET", url, params=query)
            data = response.json() if response.content else []
            page = data.get(key, []) if key and isinstance(data, dict) else data
            items.extend(page or [])
            url = response.links.get("next", {}).get("url")
            # The next link already carries the query string
            query = {}
        return items

    def graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        result = self.request_json("POST", self.graphql_url, payload={"query": query, "variables": variables})
        errors = result.get("errors") if isinstance(result, dict) else None
        if errors:
            messages = "; ".join(str(e.get("message", e)) for e in errors)
            raise GitHubAPIError(f"GraphQL error: {messages}")
        return result.get("data") or {}

    # ------------------------------------------------------------------
    # Pull requests and checks
    # ------------------------------------------------------------------

    def get_pull_request(self, repo: str, number: int) -> Dict[str, Any]:
        return self.request_json("GET", f"/repos/{repo}/pulls/{number}")

    def list_check_runs_for_ref(
        self,
        repo: str,
        ref: str,
        status: Optional[str] = None,
        conclusion: Optional[str] = None,
        filter: str = "latest",
    ) -> List[Dict[str, Any]]:
        """List check runs for a commit.

        Args:
            repo: Repository as 'owner/repo'
            ref: Commit SHA, branch or tag
            status: Only runs with this status (queued, in_progress, completed)
            conclusion: Only runs with this conclusion (filtered client side)
            filter: 'latest' (most recent run per check) or 'all'
        """
        params: Dict[str, Any] = {"filter": filter}
        if status:
            params["status"] = status
        runs = self.paginate(f"/repos/{repo}/commits/{ref}/check-runs", key="check_runs", params=params)
        if conclusion:
            runs = [r for r in runs if (r.get("conclusion") or "") == conclusion]
        return runs

    def get_required_check_run_ids(self, repo: str, pr_number: int) -> Set[int]:
        """Ids of check runs on the PR head that are required for merging."""
        owner, name = repo.split("/", 1)
        data = self.graphql(REQUIRED_CHECKS_QUERY, {"owner": owner, "name": name, "number": pr_number})

        required: Set[int] = set()
        commits = (((data.get("repository") or {}).get("pullRequest") or {}).get("commits") or {}).get("nodes") or []
        for node in commits:
            rollup = ((node or {}).get("commit") or {}).get("statusCheckRollup") or {}
            for context in (rollup.get("contexts") or {}).get("nodes") or []:
                if context.get("__typename") == "CheckRun" and context.get("isRequired"):
                    if context.get("databaseId") is not None:
                        required.add(int(context["databaseId"]))
        return required

    def list_pull_request_check_runs(
        self,
        repo: str,
        number: int,
        status: Optional[str] = None,
        conclusion: Optional[str] = None,
        filter: str = "latest",
        required: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        """Check runs of a pull request's head commit, sorted by name.

        Args:
            required: True keeps only required runs, False only non-required
                ones, None keeps all of them
        """
        pr = self.get_pull_request(repo, number)
        sha = (pr.get("head") or {}).get("sha")
        if not sha:
            raise GitHubAPIError(f"Pull request #{number} has no head commit")

        runs = self.list_check_runs_for_ref(repo, sha, status=status, conclusion=conclusion, filter=filter)
        if required is not None:
            required_ids = self.get_required_check_run_ids(repo, number)
            runs = [r for r in runs if (r.get("id") in required_ids) == required]
        return sort_check_runs_by_name(runs)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def get_workflow_job(self, repo: str, job_id: int) -> WorkflowJob:
        return WorkflowJob.from_api(self.request_json("GET", f"/repos/{repo}/actions/jobs/{job_id}"))

    def get_job_logs_content(self, repo: str, job_id: int, max_redirects: int = 3) -> bytes:
        """Download the plain-text log of a whole job.

        The endpoint redirects to the log location; redirects are followed up
        to ``max_redirects`` hops.
        """
        headers = self.auth_headers()
        chain = follow_redirects(
            self.session,
            f"{self.api_base}/repos/{repo}/actions/jobs/{job_id}/logs",
            max_redirects,
            headers=headers,
            timeout=self.config.timeout,
            verify=self.config.verify_ssl,
        )
        return download(
            self.session,
            chain.final_url,
            headers=chain.headers_for_final(headers),
            timeout=self.config.timeout,
            verify=self.config.verify_ssl,
        )

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    def list_reviews(self, repo: str, number: int) -> List[Dict[str, Any]]:
        return self.paginate(f"/repos/{repo}/pulls/{number}/reviews")

    def get_latest_reviews(self, repo: str, number: int) -> List[Dict[str, Any]]:
        """Most recent submitted review of each reviewer, in first-review order."""
        latest: Dict[str, Dict[str, Any]] = {}
        for review in self.list_reviews(repo, number):
            if review.get("state") == "PENDING":
                continue
            login = (review.get("user") or {}).get("login")
            if not login:
                continue
            latest[login] = review
        return list(latest.values())

    def get_approved_reviewers(self, repo: str, number: int) -> List[str]:
        return [
            review["user"]["login"]
            for review in self.get_latest_reviews(repo, number)
            if review.get("state") == "APPROVED"
        ]

    def list_team_members(self, org: str, team_slug: str) -> List[str]:
        members = self.paginate(f"/orgs/{org}/teams/{team_slug}/members")
        return [m.get("login") for m in members if m.get("login")]

    def request_reviewers(self, repo: str, number: int, request: ReviewersRequest) -> Dict[str, Any]:
        if request.is_empty():
            raise ValidationError("No reviewers to request")
        return self.request_json(
            "POST", f"/repos/{repo}/pulls/{number}/requested_reviewers", payload=request.to_payload()
        )


def expand_team_reviewers(api: GitHubAPI, repo: str, request: ReviewersRequest) -> ReviewersRequest:
    """Replace team reviewers with their individual members."""
    org = repo.split("/", 1)[0]
    reviewers = list(request.reviewers)
    for team in request.team_reviewers:
        reviewers.extend(api.list_team_members(org, team))
    return ReviewersRequest(reviewers=_dedupe(reviewers), team_reviewers=[])
