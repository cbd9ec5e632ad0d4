"""Resolve which GitHub repository a command operates on."""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

from reviewkit.cli.utils.config import Config, ConfigError

logger = logging.getLogger(__name__)

DEFAULT_HOST = "github.com"

# git@github.com:owner/repo.git
_SCP_REMOTE = re.compile(r"^[\w.-]+@(?P<host>[^:]+):(?P<path>.+)$")


@dataclass(frozen=True)
class Repository:
    """A repository on a GitHub host."""

    owner: str
    name: str
    host: str = DEFAULT_HOST

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.full_name


def _from_path(path: str, host: str) -> Repository:
    parts = [p for p in path.strip("/").split("/") if p]
    if len(parts) < 2:
        raise ConfigError(f"Invalid repository '{path}'. Expected 'owner/repo'.")
    owner, name = parts[-2], parts[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not owner or not name:
        raise ConfigError(f"Invalid repository '{path}'. Expected 'owner/repo'.")
    return Repository(owner=owner, name=name, host=host)


def parse_repository(value: str) -> Repository:
    """Parse 'owner/repo', 'host/owner/repo', an https URL or an scp-style git remote."""
    text = (value or "").strip()
    if not text:
        raise ConfigError("Repository cannot be empty. Expected 'owner/repo'.")

    if "://" in text:
        parsed = urlsplit(text)
        return _from_path(parsed.path, parsed.hostname or DEFAULT_HOST)

    scp = _SCP_REMOTE.match(text)
    if scp:
        return _from_path(scp.group("path"), scp.group("host"))

    parts = text.split("/")
    if len(parts) == 3:
        return _from_path("/".join(parts[1:]), parts[0])
    if len(parts) != 2:
        raise ConfigError(f"Invalid repository format '{text}'. Expected 'owner/repo'.")
    return _from_path(text, DEFAULT_HOST)


def _get_origin_url() -> Optional[str]:
    """Return the URL of the 'origin' remote of the current checkout, if any."""
    try:
        result = subprocess.run(
            ["git", "remote", "get-url", "origin"],
            capture_output=True,
            text=True,
            check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        logger.debug("Could not read git origin remote: %s", e)
        return None
    return result.stdout.strip() or None


def resolve_repository(value: Optional[str], config: Config) -> Repository:
    """Pick the repository from --repo, then config, then the git origin remote.

    Raises:
        ConfigError: If no repository can be determined
    """
    if value:
        return parse_repository(value)
    if config.github_repo:
        return parse_repository(config.github_repo)

    origin = _get_origin_url()
    if origin:
        return parse_repository(origin)

    raise ConfigError(
        "Could not determine the repository.\n"
        "Pass --repo owner/repo, set REVIEWKIT_REPO, or run inside a git checkout with an 'origin' remote."
    )
