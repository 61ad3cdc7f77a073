"""Minimal async GitHub REST client for reading issues.

Transient failures (connection errors, 5xx, 408) are retried with capped,
jittered exponential backoff. Rate limiting is reported immediately as a
RateLimitError so the caller can tell the user when to come back.
"""

import asyncio
import logging
import random
import re
import time
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import httpx

from prflow.errors import PrflowError

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
TRANSIENT_STATUS_CODES = frozenset({408, 500, 502, 503, 504})

_REMOTE_PATTERN = re.compile(
    r"(?:github\.[^/:]+|[^/:@]+)[/:](?P<owner>[^/]+)/(?P<repo>[^/]+?)(?:\.git)?/?$"
)


class GitHubAPIError(PrflowError):
    """Raised when a GitHub request fails.

    Attributes:
        status_code: HTTP status, or None when no response was received.
        response_body: Body of the failed response.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: str = "",
    ):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


class RateLimitError(GitHubAPIError):
    """Raised when GitHub refuses a request for exceeding the rate limit.

    Attributes:
        retry_after: Seconds until requests are accepted again, if known.
    """

    def __init__(self, retry_after: Optional[int], status_code: int):
        self.retry_after = retry_after
        message = "GitHub API rate limit exceeded"
        if retry_after is not None:
            message += f"; retry in {retry_after}s"
        super().__init__(message, status_code=status_code)


@dataclass
class Issue:
    number: int
    title: str
    body: str
    url: str = ""


def parse_repo_slug(value: str) -> Tuple[str, str]:
    """Split ``owner/repo`` or a git remote URL into (owner, repo).

    Example:
        >>> parse_repo_slug("git@github.com:acme/widgets.git")
        ('acme', 'widgets')

    Raises:
        ValueError: If no owner/repo pair can be found.
    """
    value = value.strip()
    parts = value.split("/")
    if len(parts) == 2 and all(parts) and ":" not in value:
        return parts[0], parts[1]
    match = _REMOTE_PATTERN.search(value)
    if match is None:
        raise ValueError(f"cannot determine GitHub repository from {value!r}")
    return match.group("owner"), match.group("repo")


def _retry_after(response: httpx.Response) -> Optional[int]:
    """Seconds to wait, from Retry-After or X-RateLimit-Reset."""
    header = response.headers.get("retry-after")
    if header and header.isdigit():
        return int(header)
    reset = response.headers.get("x-ratelimit-reset")
    if reset and reset.isdigit():
        return max(0, int(reset) - int(time.time()))
    return None


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    return (
        response.status_code == 403
        and response.headers.get("x-ratelimit-remaining") == "0"
    )


class GitHubClient:
    """Reads issues from github.com or a GitHub Enterprise API.

    Example:
        >>> async with GitHubClient(token) as client:
        ...     issue = await client.get_issue("acme", "widgets", 42)
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.github.com",
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": "prflow",
            },
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _backoff(self, attempt: int) -> float:
        return random.uniform(0, min(self.base_delay * 2 ** attempt, self.max_delay))

    async def _get(self, path: str) -> httpx.Response:
        """GET a path, retrying transient failures.

        Raises:
            RateLimitError: If the request is rate limited.
            GitHubAPIError: On any other error status, or when retries run out.
        """
        attempt = 0
        while True:
            try:
                response = await self._http.get(path)
            except httpx.RequestError as exc:
                if attempt >= self.max_retries:
                    raise GitHubAPIError(
                        f"GET {path} failed after {self.max_retries} retries: {exc}"
                    ) from exc
                reason = str(exc)
            else:
                if _is_rate_limited(response):
                    raise RateLimitError(_retry_after(response), response.status_code)
                if response.status_code < 400:
                    return response
                transient = response.status_code in TRANSIENT_STATUS_CODES
                if not transient or attempt >= self.max_retries:
                    raise GitHubAPIError(
                        f"GET {path} returned {response.status_code}",
                        status_code=response.status_code,
                        response_body=response.text,
                    )
                reason = f"status {response.status_code}"

            delay = self._backoff(attempt)
            attempt += 1
            logger.warning(
                "Retrying GitHub request",
                extra={"path": path, "attempt": attempt, "delay": delay, "reason": reason},
            )
            await asyncio.sleep(delay)

    async def get_issue(self, owner: str, repo: str, number: int) -> Issue:
        """Fetch a single issue.

        Raises:
            GitHubAPIError: If the request fails or the issue does not exist.
        """
        logger.info(
            "Fetching issue",
            extra={"owner": owner, "repo": repo, "issue_number": number},
        )
        response = await self._get(f"/repos/{owner}/{repo}/issues/{number}")
        data = response.json()
        return Issue(
            number=int(data.get("number", number)),
            title=data.get("title") or "",
            body=data.get("body") or "",
            url=data.get("html_url") or "",
        )
