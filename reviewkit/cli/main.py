"""review-kit CLI - Main entry point.

Usage:
    review-kit checks 123 --conclusion failure
    review-kit flush-failure 123
    review-kit rerequest 123 --exclude-approved
"""

import logging
import sys
from typing import Optional

import click

from reviewkit import __version__
from reviewkit.cli.context import (
    Context,
    pass_context,
    EXIT_GENERAL_ERROR,
)
from reviewkit.cli.utils.config import LOG_LEVELS, Config, ConfigError
from reviewkit.cli.commands import checks, flush_failure, rerequest

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def _configure_logging(level_name: str) -> None:
    # force=True so repeated invocations in one process pick up the new level
    logging.basicConfig(level=getattr(logging, level_name.upper()), format=LOG_FORMAT, force=True)


@click.group()
@click.version_option(version=__version__, prog_name="review-kit")
@click.option(
    "--json",
    "json_output",
    is_flag=True,
    help="Output as JSON (machine-readable)",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug logging (same as --log-level debug)",
)
@click.option(
    "--log-level",
    "-L",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    envvar="REVIEWKIT_LOG_LEVEL",
    default=None,
    help="Log level (default: warning, env: REVIEWKIT_LOG_LEVEL)",
)
@pass_context
def main(ctx: Context, json_output: bool, debug: bool, log_level: Optional[str]) -> None:
    """Pull request review helpers for GitHub.

    Inspect check runs, print the logs of failed workflow steps and
    re-request reviews.

    \b
    Examples:
        review-kit checks 123
        review-kit flush-failure 123 --repo owner/repo
        review-kit rerequest 123 -r alice -r my-org/backend
    """
    ctx.json_output = json_output
    ctx.debug = debug

    if debug:
        log_level = "debug"
    if log_level is None:
        try:
            config, _ = Config.from_files_and_env(require_token=False)
            log_level = config.log_level
        except ConfigError:
            # Reported by the command once it loads the config
            log_level = "warning"
    _configure_logging(log_level)


# Register commands, each also under its short aliases
main.add_command(checks)
main.add_command(checks, name="cc")
main.add_command(checks, name="check-checks")
main.add_command(flush_failure)
main.add_command(flush_failure, name="ff")
main.add_command(flush_failure, name="flush-fail")
main.add_command(flush_failure, name="flush-failed")
main.add_command(rerequest)
main.add_command(rerequest, name="rr")


def cli() -> None:
    """Entry point for the CLI."""
    try:
        main()
    except Exception as e:  # pragma: no cover - top-level safety net
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_GENERAL_ERROR)


if __name__ == "__main__":  # pragma: no cover
    cli()
