"""CLI utility modules."""

from reviewkit.cli.utils.config import Config, ConfigError
from reviewkit.cli.utils.repository import Repository, resolve_repository

__all__ = ["Config", "ConfigError", "Repository", "resolve_repository"]
