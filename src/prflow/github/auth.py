"""GitHub credentials obtained through the ``gh`` CLI.

The token is fetched with ``gh auth token`` at most once per provider and
cached behind a lock, so concurrent callers share a single subprocess call.
GH_TOKEN / GITHUB_TOKEN in the environment bypass ``gh`` entirely, which is
how CI supplies credentials.
"""

import logging
import os
import re
import subprocess
import threading
from typing import Callable, List, Optional

from prflow.errors import PrflowError

logger = logging.getLogger(__name__)

TOKEN_ENV_VARS = ("GH_TOKEN", "GITHUB_TOKEN")
DEFAULT_HOST = "github.com"
MIN_GH_MAJOR_VERSION = 2

# Well-known GitHub token prefixes followed by at least 36 alphanumerics
TOKEN_PATTERN = re.compile(r"^(ghp_|ghs_|gho_|ghu_)[a-zA-Z0-9]{36,}$")

_NOT_INSTALLED = (
    "'gh' CLI is not installed. Install it from https://cli.github.com/ "
    "and run 'gh auth login'"
)
_NOT_AUTHENTICATED = (
    "'gh' CLI is not authenticated. Run 'gh auth login' to authenticate "
    "(or set GH_TOKEN in CI)"
)

GhRunner = Callable[[List[str]], str]


class GitHubAuthError(PrflowError):
    """Raised when gh is missing, too old, unauthenticated or returns a bad token."""


def _run_gh(args: List[str]) -> str:
    result = subprocess.run(
        ["gh", *args],
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


class GhCredentialProvider:
    """Provides a GitHub token for one host.

    Attributes:
        host: GitHub host; "github.com" or empty for the public instance.
    """

    def __init__(self, host: str = DEFAULT_HOST, runner: Optional[GhRunner] = None):
        self.host = host
        self._runner = runner or _run_gh
        self._lock = threading.Lock()
        self._token: Optional[str] = None

    def _host_args(self) -> List[str]:
        if self.host and self.host != DEFAULT_HOST:
            return ["--hostname", self.host]
        return []

    def _gh(self, args: List[str], failure_message: str) -> str:
        try:
            return self._runner(args)
        except FileNotFoundError as exc:
            raise GitHubAuthError(_NOT_INSTALLED) from exc
        except subprocess.CalledProcessError as exc:
            raise GitHubAuthError(failure_message) from exc

    def check_version(self) -> None:
        """Verify gh is installed at version 2.0.0 or later.

        Raises:
            GitHubAuthError: If gh is missing, unparseable or too old.
        """
        output = self._gh(["--version"], "checking gh version failed")
        # "gh version 2.x.y (date)"
        line = output.split("\n", 1)[0]
        parts = line.split()
        if len(parts) < 3:
            raise GitHubAuthError(f"unexpected 'gh --version' output: {line!r}")

        version = parts[2].lstrip("v")
        try:
            major = int(version.split(".", 1)[0])
        except ValueError as exc:
            raise GitHubAuthError(
                f"could not parse gh version from {version!r}"
            ) from exc
        if major < MIN_GH_MAJOR_VERSION:
            raise GitHubAuthError(
                f"'gh' CLI version {version} is below the required minimum 2.0.0. "
                "Upgrade from https://cli.github.com/"
            )

    def check_auth(self) -> None:
        """Verify gh is authenticated for the host."""
        self._gh(["auth", "status", *self._host_args()], _NOT_AUTHENTICATED)

    def get_token(self) -> str:
        """Return the cached token, fetching it on first use.

        Raises:
            GitHubAuthError: If no token can be obtained or it has an
                unexpected format.
        """
        with self._lock:
            if self._token:
                return self._token

            for env_var in TOKEN_ENV_VARS:
                value = os.environ.get(env_var, "").strip()
                if value:
                    logger.debug("Using GitHub token from environment", extra={"env_var": env_var})
                    self._token = value
                    return value

            output = self._gh(["auth", "token", *self._host_args()], _NOT_AUTHENTICATED)
            token = output.strip()
            if not TOKEN_PATTERN.match(token):
                raise GitHubAuthError(
                    "token returned by 'gh auth token' has an unexpected format. "
                    "Ensure 'gh' is up to date"
                )
            self._token = token
            return token

    def preflight(self) -> None:
        """Run version check, auth check and token retrieval in order."""
        self.check_version()
        self.check_auth()
        self.get_token()

    def reset(self) -> None:
        """Forget the cached token."""
        with self._lock:
            self._token = None
