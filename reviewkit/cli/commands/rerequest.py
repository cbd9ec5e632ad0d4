"""Review commands for review-kit.

Commands:
    review-kit rerequest <pr> - Re-request review for a pull request
"""

import logging
import sys
from typing import Optional, Tuple

import click

from reviewkit.cli.context import (
    Context,
    pass_context,
    EXIT_CONFIG_ERROR,
    EXIT_AUTH_ERROR,
    EXIT_VALIDATION_ERROR,
    EXIT_API_ERROR,
)
from reviewkit.github_api import (
    AuthenticationError,
    GitHubAPI,
    GitHubAPIError,
    ReviewersRequest,
    ValidationError,
    expand_team_reviewers,
    parse_pull_request_number,
    parse_reviewers,
)
from reviewkit.cli.utils.auth import AuthManager
from reviewkit.cli.utils.config import Config, ConfigError
from reviewkit.cli.utils.repository import resolve_repository
from reviewkit.cli.formatters import json_formatter, human_formatter

logger = logging.getLogger(__name__)


def _exclude_approved(api: GitHubAPI, repo: str, number: int, request: ReviewersRequest) -> ReviewersRequest:
    """Drop users who approved, and teams with an approving member."""
    approved = set(api.get_approved_reviewers(repo, number))
    org = repo.split("/", 1)[0]

    reviewers = []
    for reviewer in request.reviewers:
        if reviewer in approved:
            logger.info("Skipping approved reviewer %s", reviewer)
            continue
        reviewers.append(reviewer)

    teams = []
    for team in request.team_reviewers:
        members = api.list_team_members(org, team)
        if any(member in approved for member in members):
            logger.info("Skipping team %s with an approving member", team)
            continue
        teams.append(team)

    return ReviewersRequest(reviewers=reviewers, team_reviewers=teams)


def _previous_reviewers(api: GitHubAPI, repo: str, number: int, exclude_approved: bool) -> ReviewersRequest:
    """Everyone who already submitted a review."""
    reviews = api.get_latest_reviews(repo, number)
    if not reviews:
        raise ValidationError(
            f"No reviews found for pull request #{number}, please specify reviewers using --reviewers"
        )

    reviewers = []
    for review in reviews:
        login = review["user"]["login"]
        if exclude_approved and review.get("state") == "APPROVED":
            logger.info("Skipping approved reviewer %s", login)
            continue
        reviewers.append(login)
    return ReviewersRequest(reviewers=reviewers)


@click.command("rerequest")
@click.argument("pull_request")
@click.option("--repo", "-R", help="Repository in the format 'owner/repo'")
@click.option(
    "--reviewers",
    "-r",
    multiple=True,
    help="Reviewers to re-request (user or org/team; repeatable or comma-separated)",
)
@click.option("--expand-team", is_flag=True, help="Expand team reviewers to individual members")
@click.option("--exclude-approved", is_flag=True, help="Skip reviewers who already approved")
@pass_context
def rerequest(
    ctx: Context,
    pull_request: str,
    repo: Optional[str],
    reviewers: Tuple[str, ...],
    expand_team: bool,
    exclude_approved: bool,
):
    """Re-request review for a pull request.

    Without --reviewers, review is re-requested from everyone who has
    already submitted a review.

    \b
    Examples:
        review-kit rerequest 123
        review-kit rr 123 -r alice -r @my-org/backend --expand-team
        review-kit rerequest 123 --exclude-approved
    """
    try:
        number = parse_pull_request_number(pull_request)

        config, _ = Config.from_files_and_env(require_token=False)
        repository = resolve_repository(repo, config)
        api = AuthManager.get_api(config)
        full_name = repository.full_name

        # Fails early for an unknown pull request
        api.get_pull_request(full_name, number)

        if reviewers:
            request = parse_reviewers(reviewers)
            if expand_team:
                request = expand_team_reviewers(api, full_name, request)
                logger.info("Expanded team reviewers to %d individual reviewer(s)", len(request.reviewers))
            if exclude_approved:
                request = _exclude_approved(api, full_name, number, request)
        else:
            request = _previous_reviewers(api, full_name, number, exclude_approved)

        if request.is_empty():
            raise ValidationError(
                f"No eligible reviewers found for pull request #{number} (all reviewers have already approved)"
            )

        api.request_reviewers(full_name, number, request)

        if ctx.json_output:
            click.echo(json_formatter.format_json({
                "pull_request": number,
                "reviewers": request.reviewers,
                "team_reviewers": request.team_reviewers,
            }))
        else:
            click.echo(human_formatter.format_success(f"Re-requested review for pull request #{number}"))

    except ConfigError as e:
        _handle_error(ctx, "ConfigError", str(e), EXIT_CONFIG_ERROR)
    except AuthenticationError as e:
        _handle_error(ctx, "AuthenticationError", str(e), EXIT_AUTH_ERROR)
    except ValidationError as e:
        _handle_error(ctx, "ValidationError", str(e), EXIT_VALIDATION_ERROR)
    except GitHubAPIError as e:
        _handle_error(ctx, "APIError", str(e), EXIT_API_ERROR)


def _handle_error(ctx: Context, error_type: str, message: str, exit_code: int):
    """Handle and format errors consistently."""
    if ctx.json_output:
        click.echo(json_formatter.format_json_error(error_type, message, exit_code), err=True)
    else:
        click.echo(human_formatter.format_error(message), err=True)
    sys.exit(exit_code)
