"""Check run commands for review-kit.

Commands:
    review-kit checks <pr> - List the check runs of a pull request
"""

import logging
import sys
from typing import Optional

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
    GitHubAPIError,
    ValidationError,
    parse_pull_request_number,
)
from reviewkit.cli.utils.auth import AuthManager
from reviewkit.cli.utils.config import Config, ConfigError
from reviewkit.cli.utils.repository import resolve_repository
from reviewkit.cli.formatters import json_formatter, human_formatter

logger = logging.getLogger(__name__)

CHECK_STATUSES = ("queued", "in_progress", "completed")
CHECK_CONCLUSIONS = (
    "action_required",
    "cancelled",
    "failure",
    "neutral",
    "success",
    "skipped",
    "stale",
    "timed_out",
)


@click.command("checks")
@click.argument("pull_request")
@click.option("--repo", "-R", help="Repository in the format 'owner/repo'")
@click.option(
    "--status",
    "-s",
    type=click.Choice(CHECK_STATUSES, case_sensitive=False),
    help="Only check runs with this status",
)
@click.option(
    "--conclusion",
    "-c",
    type=click.Choice(CHECK_CONCLUSIONS, case_sensitive=False),
    help="Only check runs with this conclusion",
)
@click.option("--all", "show_all", is_flag=True, help="Include superseded runs, not just the latest per check")
@click.option("--details", "-d", is_flag=True, help="Show id, start time and details URL")
@click.option("--headers", "-H", help="Comma-separated columns (id,name,status,conclusion,started,completed,duration,url)")
@click.option(
    "--required/--no-required",
    default=None,
    help="Show only required (or only non-required) check runs",
)
@pass_context
def checks(
    ctx: Context,
    pull_request: str,
    repo: Optional[str],
    status: Optional[str],
    conclusion: Optional[str],
    show_all: bool,
    details: bool,
    headers: Optional[str],
    required: Optional[bool],
):
    """List the check runs of a pull request's head commit.

    \b
    Examples:
        review-kit checks 123
        review-kit checks 123 --conclusion failure --required
        review-kit checks https://github.com/owner/repo/pull/123 -H name,conclusion,url
    """
    try:
        columns = human_formatter.parse_headers(headers)
        number = parse_pull_request_number(pull_request)

        config, _ = Config.from_files_and_env(require_token=False)
        repository = resolve_repository(repo, config)
        api = AuthManager.get_api(config)

        runs = api.list_pull_request_check_runs(
            repository.full_name,
            number,
            status=status.lower() if status else None,
            conclusion=conclusion.lower() if conclusion else None,
            filter="all" if show_all else "latest",
            required=required,
        )
        logger.debug("Found %d check run(s) for %s#%d", len(runs), repository, number)

        if ctx.json_output:
            click.echo(json_formatter.format_json({
                "repository": repository.full_name,
                "pull_request": number,
                "check_runs": runs,
            }))
        else:
            click.echo(human_formatter.format_check_runs(runs, headers=columns, details=details))

    except ValueError as e:
        _handle_error(ctx, "ValidationError", str(e), EXIT_VALIDATION_ERROR)
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
