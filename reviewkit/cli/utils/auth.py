"""Authentication management for review-kit.

Provides a GitHub API client bound to the configured token, reused for the
lifetime of the process.
"""

from typing import Optional, Tuple

from reviewkit.github_api import AuthenticationError, GitHubAPI
from reviewkit.cli.utils.config import Config


class AuthManager:
    """Manages credentials and provides API client instances.

    One client is cached per (server, token) pair.
    """

    _key: Optional[Tuple[str, str]] = None
    _api: Optional[GitHubAPI] = None

    @classmethod
    def get_api(cls, config: Optional[Config] = None) -> GitHubAPI:
        """Get an authenticated API client.

        Args:
            config: Configuration to use. If None, reads files and environment.

        Returns:
            GitHubAPI instance carrying the configured token

        Raises:
            ConfigError: If the configuration is invalid
            AuthenticationError: If no token is configured
        """
        if config is None:
            config, _ = Config.from_files_and_env(require_token=False)

        if not config.github_token:
            raise AuthenticationError(
                "No GitHub token configured. Set REVIEWKIT_GITHUB_TOKEN, GH_TOKEN or GITHUB_TOKEN."
            )

        key = (config.github_server, config.github_token)
        if cls._api is not None and cls._key == key:
            return cls._api

        cls._api = GitHubAPI(config.to_api_config())
        cls._key = key
        return cls._api

    @classmethod
    def clear_cache(cls) -> None:
        """Drop the cached client."""
        cls._key = None
        cls._api = None
