"""Pick the GitHub client implementation for an installation."""

from typing import Optional

from clabot_api.github.client import GitHubAPIError, GitHubClient
from clabot_api.settings import get_settings


def get_github_client(installation_id: Optional[int]) -> GitHubClient:
    """Return an installation-scoped client according to GITHUB_CLIENT_MODE."""
    settings = get_settings()
    if settings.github_client_mode == "memory":
        from clabot_api.github.memory import get_memory_github_client

        return get_memory_github_client()

    if installation_id is None:
        raise GitHubAPIError("Missing installation id for GitHub App client")

    from clabot_api.github.app_client import GitHubAppClient

    return GitHubAppClient(installation_id, settings=settings)
