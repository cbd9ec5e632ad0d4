"""Failure log commands for review-kit.

Commands:
    review-kit flush-failure <pr> - Print the logs of failed check runs
"""

import logging
import sys
from typing import Any, Dict, List, Optional

import click

from reviewkit.checks import (
    LogSource,
    RunLogError,
    RunLogWalker,
    StepLog,
    StepMetadata,
    TruncatedArchiveError,
)
from reviewkit.cli.context import (
    Context,
    pass_context,
    EXIT_CONFIG_ERROR,
    EXIT_AUTH_ERROR,
    EXIT_VALIDATION_ERROR,
    EXIT_API_ERROR,
    EXIT_LOG_NOT_FOUND,
)
from reviewkit.github_api import (
    AuthenticationError,
    GitHubAPI,
    GitHubAPIError,
    ValidationError,
    parse_pull_request_number,
)
from reviewkit.cli.utils.auth import AuthManager
from reviewkit.cli.utils.config import Config, ConfigError
from reviewkit.cli.utils.repository import resolve_repository
from reviewkit.cli.formatters import json_formatter, human_formatter

logger = logging.getLogger(__name__)


@click.command("flush-failure")
@click.argument("pull_request")
@click.option("--repo", "-R", help="Repository in the format 'owner/repo'")
@click.option("--full", is_flag=True, help="Print the whole job log instead of the failed steps")
@click.option(
    "--max-redirects",
    type=click.IntRange(min=0),
    default=None,
    help="Redirect hops allowed when locating logs (default: from config, 3)",
)
@click.option(
    "--required/--no-required",
    default=None,
    help="Only required (or only non-required) check runs",
)
@pass_context
def flush_failure(
    ctx: Context,
    pull_request: str,
    repo: Optional[str],
    full: bool,
    max_redirects: Optional[int],
    required: Optional[bool],
):
    """Print the logs of the failed check runs of a pull request.

    By default only the failed steps of each job are printed. A check run whose
    logs cannot be retrieved is reported as a warning and skipped.

    \b
    Examples:
        review-kit flush-failure 123
        review-kit ff 123 --full
        review-kit flush-failure 123 --required -R owner/repo
    """
    try:
        number = parse_pull_request_number(pull_request)

        config, _ = Config.from_files_and_env(require_token=False)
        repository = resolve_repository(repo, config)
        api = AuthManager.get_api(config)
        if max_redirects is None:
            max_redirects = config.max_redirects

        runs = api.list_pull_request_check_runs(
            repository.full_name,
            number,
            conclusion="failure",
            filter="latest",
            required=required,
        )
    except ConfigError as e:
        _handle_error(ctx, "ConfigError", str(e), EXIT_CONFIG_ERROR)
    except AuthenticationError as e:
        _handle_error(ctx, "AuthenticationError", str(e), EXIT_AUTH_ERROR)
    except ValidationError as e:
        _handle_error(ctx, "ValidationError", str(e), EXIT_VALIDATION_ERROR)
    except GitHubAPIError as e:
        _handle_error(ctx, "APIError", str(e), EXIT_API_ERROR)

    if not runs:
        logger.info("No failed check runs found for pull request #%d", number)
        if ctx.json_output:
            click.echo(json_formatter.format_json({"pull_request": number, "check_runs": []}))
        else:
            click.echo(human_formatter.format_success(f"No failed check runs for pull request #{number}"))
        return

    logger.info("Found %d failed check run(s)", len(runs))

    results: List[Dict[str, Any]] = []
    for index, run in enumerate(runs, start=1):
        run_id = run.get("id")
        name = run.get("name", "N/A")
        if not run_id:
            logger.warning("Could not get check run ID for %s", name)
            continue

        logger.info("Check run %d/%d: %s (%s)", index, len(runs), name, run_id)
        try:
            if full:
                result = _flush_full(ctx, api, repository.full_name, run, max_redirects)
            else:
                result = _flush_failed_steps(ctx, api, repository.full_name, run, max_redirects)
        except (RunLogError, GitHubAPIError) as e:
            logger.warning("Failed to get logs for check run %s (%s): %s", name, run_id, e)
            continue
        results.append(result)

    if not results:
        _handle_error(
            ctx,
            "LogNotFound",
            f"Could not retrieve logs for any of the {len(runs)} failed check run(s)",
            EXIT_LOG_NOT_FOUND,
        )

    if ctx.json_output:
        click.echo(json_formatter.format_json({"pull_request": number, "check_runs": results}))


def _flush_full(
    ctx: Context, api: GitHubAPI, repo: str, run: Dict[str, Any], max_redirects: int
) -> Dict[str, Any]:
    """Print the whole plain-text log of the job behind a check run."""
    content = api.get_job_logs_content(repo, run["id"], max_redirects=max_redirects)
    text = content.decode("utf-8", errors="replace")

    if not ctx.json_output:
        click.echo(human_formatter.format_job_header(run.get("name", "N/A"), run.get("html_url", "")))
        click.echo(text)
    return {"id": run["id"], "name": run.get("name"), "log": text}


def _flush_failed_steps(
    ctx: Context, api: GitHubAPI, repo: str, run: Dict[str, Any], max_redirects: int
) -> Dict[str, Any]:
    """Print the logs of the failed steps of the job behind a check run."""
    job = api.get_workflow_job(repo, run["id"])
    steps: List[Dict[str, Any]] = []

    def visit(step: StepMetadata, step_log: StepLog) -> None:
        if not step.failed:
            return
        try:
            text = step_log.read_text()
        except TruncatedArchiveError as e:
            logger.warning("Failed to read log of step %s: %s", step.name, e)
            return

        steps.append({"number": step.number, "name": step.name, "log": text})
        if not ctx.json_output:
            click.echo(human_formatter.format_step_header(job.name, step))
            click.echo(text)

    with RunLogWalker(api, repo, LogSource.workflow_job(job), logger=logger) as walker:
        walker.fetch(max_redirects)
        walker.walk(job, visit)

    return {"id": run["id"], "name": job.name, "steps": steps}


def _handle_error(ctx: Context, error_type: str, message: str, exit_code: int):
    """Handle and format errors consistently."""
    if ctx.json_output:
        click.echo(json_formatter.format_json_error(error_type, message, exit_code), err=True)
    else:
        click.echo(human_formatter.format_error(message), err=True)
    sys.exit(exit_code)
