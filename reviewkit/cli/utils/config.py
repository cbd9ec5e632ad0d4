"""Configuration management for review-kit.

Reads configuration from environment variables and TOML config files with sensible defaults.

Config precedence (lowest to highest):
    Hardcoded defaults < Global config.toml < Project config.toml < Environment variables
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Optional, Union

try:
    import tomllib
except ImportError:
    # Python < 3.11 fallback
    import tomli as tomllib

from reviewkit.github_api import DEFAULT_SERVER_URL, GitHubConfig

# Config file paths
CONFIG_FILENAME = "config.toml"
PROJECT_CONFIG_DIR = ".review-kit"  # ./.review-kit/config.toml


class ConfigError(Exception):
    """Configuration error - missing or invalid settings."""

    pass


# Source tracking for config values
SOURCE_DEFAULT = "default"
SOURCE_GLOBAL = "global"
SOURCE_PROJECT = "project"
SOURCE_ENV = "env"

LOG_LEVELS = ("debug", "info", "warning", "error")


def _parse_bool(value: Union[str, bool]) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"not a boolean: {value}")


def _parse_log_level(value: str) -> str:
    level = str(value).strip().lower()
    if level not in LOG_LEVELS:
        raise ValueError(f"unknown log level: {value}")
    return level


def _parse_server(value: str) -> str:
    server = str(value).strip().rstrip("/")
    if not server.startswith(("http://", "https://")):
        server = f"https://{server}"
    return server


# Parsers applied to values from files and env vars
_FIELD_PARSERS: dict[str, Callable[[Any], Any]] = {
    "timeout": int,
    "max_retries": int,
    "retry_delay": float,
    "max_redirects": int,
    "skip_ssl_verify": _parse_bool,
    "log_level": _parse_log_level,
    "github_server": _parse_server,
}


@dataclass
class Config:
    """review-kit configuration.

    **GitHub access:**
    - REVIEWKIT_GITHUB_TOKEN: API token (falls back to GH_TOKEN, then GITHUB_TOKEN)
    - REVIEWKIT_GITHUB_SERVER: Server URL (falls back to GH_HOST, default: https://github.com)
    - REVIEWKIT_REPO: Default repository as 'owner/repo'

    **API tuning (optional):**
    - REVIEWKIT_TIMEOUT: API timeout in seconds (default: 30)
    - REVIEWKIT_MAX_RETRIES: Max API retries (default: 3)
    - REVIEWKIT_RETRY_DELAY: Retry delay in seconds (default: 1.0)
    - REVIEWKIT_MAX_REDIRECTS: Redirect hops allowed when resolving logs (default: 3)
    - REVIEWKIT_SKIP_SSL_VERIFY: Disable TLS verification (default: false)

    **Logging:**
    - REVIEWKIT_LOG_LEVEL: debug, info, warning or error (default: warning)
    """

    github_token: Optional[str] = None
    github_repo: Optional[str] = None
    github_server: str = DEFAULT_SERVER_URL

    # API settings
    timeout: int = 30
    max_retries: int = 3
    retry_delay: float = 1.0
    max_redirects: int = 3
    skip_ssl_verify: bool = False

    log_level: str = "warning"

    # Class-level config paths
    GLOBAL_CONFIG_PATH = Path.home() / ".config" / "review-kit" / CONFIG_FILENAME

    def to_api_config(self) -> GitHubConfig:
        """Build the API client configuration."""
        return GitHubConfig(
            server_url=self.github_server,
            token=self.github_token,
            timeout=self.timeout,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            verify_ssl=not self.skip_ssl_verify,
        )

    @classmethod
    def _find_project_config(cls) -> Optional[Path]:
        """Walk up from cwd to find .review-kit/config.toml."""
        current = Path.cwd()
        while current != current.parent:
            config_path = current / PROJECT_CONFIG_DIR / CONFIG_FILENAME
            if config_path.exists():
                return config_path
            current = current.parent
        return None

    @staticmethod
    def _load_toml(path: Path) -> dict[str, Any]:
        """Load and parse a TOML config file."""
        try:
            with open(path, "rb") as f:
                return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {path}: {e}")

    @staticmethod
    def _flatten_toml(data: dict[str, Any], prefix: str = "") -> dict[str, Any]:
        """Flatten nested TOML dict to dotted keys (e.g., github.token)."""
        result = {}
        for key, value in data.items():
            full_key = f"{prefix}.{key}" if prefix else key
            if isinstance(value, dict):
                result.update(Config._flatten_toml(value, full_key))
            else:
                result[full_key] = value
        return result

    @classmethod
    def _toml_key_to_field(cls, toml_key: str) -> Optional[str]:
        """Map TOML key to Config field name."""
        mapping = {
            "github.token": "github_token",
            "github.repo": "github_repo",
            "github.server": "github_server",
            "api.timeout": "timeout",
            "api.max_retries": "max_retries",
            "api.retry_delay": "retry_delay",
            "api.skip_ssl_verify": "skip_ssl_verify",
            "logs.max_redirects": "max_redirects",
            "logging.level": "log_level",
        }
        return mapping.get(toml_key)

    @classmethod
    def _parse_field(cls, field_name: str, value: Any, origin: str) -> Any:
        parser = _FIELD_PARSERS.get(field_name)
        if parser is None:
            return value
        try:
            return parser(value)
        except (ValueError, TypeError):
            raise ConfigError(f"Invalid {origin} value: {value}")

    @classmethod
    def _merge_file(
        cls,
        path: Path,
        config_dict: dict[str, Any],
        sources: dict[str, str],
        source: str,
    ) -> None:
        flat = cls._flatten_toml(cls._load_toml(path))
        for toml_key, value in flat.items():
            field_name = cls._toml_key_to_field(toml_key)
            if field_name and field_name in config_dict:
                config_dict[field_name] = cls._parse_field(field_name, value, f"{toml_key} in {path}")
                sources[field_name] = source

    @classmethod
    def from_files_and_env(cls, require_token: bool = True) -> tuple["Config", dict[str, str]]:
        """Load config from files + env vars with layered precedence.

        Precedence (lowest to highest):
            Hardcoded defaults < Global config.toml < Project config.toml < Environment variables

        Args:
            require_token: If True, raise error if no GitHub token is configured

        Returns:
            Tuple of (Config instance, dict mapping field names to their sources)

        Raises:
            ConfigError: If required configuration is missing or invalid
        """
        # 1. Start with defaults
        config_dict: dict[str, Any] = {f.name: f.default for f in fields(cls)}
        sources: dict[str, str] = {key: SOURCE_DEFAULT for key in config_dict}

        # 2. Merge global config.toml
        global_config_path = cls.GLOBAL_CONFIG_PATH if cls.GLOBAL_CONFIG_PATH.exists() else None
        if global_config_path:
            cls._merge_file(global_config_path, config_dict, sources, SOURCE_GLOBAL)

        # 3. Merge project config.toml (walk up from cwd to find .review-kit/config.toml)
        project_config_path = cls._find_project_config()
        if project_config_path:
            cls._merge_file(project_config_path, config_dict, sources, SOURCE_PROJECT)

        # 4. Override with env vars (highest priority)
        env_mapping = {
            "REVIEWKIT_GITHUB_TOKEN": "github_token",
            "REVIEWKIT_REPO": "github_repo",
            "REVIEWKIT_GITHUB_SERVER": "github_server",
            "REVIEWKIT_TIMEOUT": "timeout",
            "REVIEWKIT_MAX_RETRIES": "max_retries",
            "REVIEWKIT_RETRY_DELAY": "retry_delay",
            "REVIEWKIT_MAX_REDIRECTS": "max_redirects",
            "REVIEWKIT_SKIP_SSL_VERIFY": "skip_ssl_verify",
            "REVIEWKIT_LOG_LEVEL": "log_level",
        }
        for env_var, field_name in env_mapping.items():
            value = os.getenv(env_var)
            if value is not None:
                config_dict[field_name] = cls._parse_field(field_name, value, env_var)
                sources[field_name] = SOURCE_ENV

        # Fallbacks shared with the gh CLI
        if not config_dict.get("github_token"):
            for env_var in ("GH_TOKEN", "GITHUB_TOKEN"):
                token = os.getenv(env_var)
                if token:
                    config_dict["github_token"] = token.strip()
                    sources["github_token"] = SOURCE_ENV
                    break
        if sources["github_server"] == SOURCE_DEFAULT and os.getenv("GH_HOST"):
            config_dict["github_server"] = _parse_server(os.environ["GH_HOST"])
            sources["github_server"] = SOURCE_ENV

        if config_dict["max_redirects"] < 0:
            raise ConfigError("max_redirects must be zero or a positive integer")

        if require_token and not config_dict["github_token"]:
            raise ConfigError(
                "Missing GitHub token.\n"
                "Set REVIEWKIT_GITHUB_TOKEN (or GH_TOKEN / GITHUB_TOKEN) or add to config.toml:\n"
                "  [github]\n"
                "  token = 'ghp_...'"
            )

        return cls(**config_dict), sources
