"""CLI command modules."""

from reviewkit.cli.commands.checks import checks
from reviewkit.cli.commands.flush_failure import flush_failure
from reviewkit.cli.commands.rerequest import rerequest

__all__ = ["checks", "flush_failure", "rerequest"]
