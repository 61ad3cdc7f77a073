"""GitHub access: gh-backed credentials and an issue client."""

from prflow.github.auth import GhCredentialProvider, GitHubAuthError
from prflow.github.client import (
    GitHubAPIError,
    GitHubClient,
    Issue,
    RateLimitError,
    parse_repo_slug,
)

__all__ = [
    "GhCredentialProvider",
    "GitHubAPIError",
    "GitHubAuthError",
    "GitHubClient",
    "Issue",
    "RateLimitError",
    "parse_repo_slug",
]
