"""Pull request creation for github-pr steps.

The executor works on the current checkout:

1. Switches to ``prflow/<slug>``, creating it from HEAD
2. Commits pending changes outside .prflow/ using the PR title as message
3. Pushes the branch to origin
4. Opens the pull request with ``gh pr create``; issue runs get ``Closes #N``

The body is PR.md when an earlier body_template pass produced one, else
PLAN.md.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional

from prflow.config import CONFIG_DIR_NAME, GitHubSettings
from prflow.context.resolver import PLAN_FILE, PR_BODY_FILE, TICKET_FILE
from prflow.errors import ExecutorError
from prflow.executor.base import (
    Executor,
    ExecutorKind,
    ExecutorRequest,
    ExecutorResult,
)

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "prflow/"
DEFAULT_TITLE = "chore: automated changes"
DEFAULT_BASE_BRANCH = "main"

# Pathspec covering the work tree except prflow's own directory
_WORKTREE_PATHSPEC = ("--", ":/", f":(exclude){CONFIG_DIR_NAME}")

CommandRunner = Callable[..., Awaitable[str]]


async def run_command(*argv: str, cwd: Optional[Path] = None) -> str:
    """Run a command and return its trimmed stdout.

    Raises:
        ExecutorError: If the command cannot start or exits non-zero.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise ExecutorError(
            f"failed to start {argv[0]}: {exc}",
            executor=ExecutorKind.GITHUB_PR.value,
        ) from exc

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        raise ExecutorError(
            f"{' '.join(argv[:3])} exited with code {process.returncode}",
            executor=ExecutorKind.GITHUB_PR.value,
            detail=f"stderr: {stderr.decode('utf-8', errors='replace').strip()}",
        )
    return stdout.decode("utf-8", errors="replace").strip()


def extract_title_from_ticket(content: str) -> str:
    """Return the first heading (or first non-empty line) of a ticket."""
    for line in content.splitlines():
        line = line.strip()
        if line.startswith("#"):
            return line.lstrip("#").strip() or DEFAULT_TITLE
        if line:
            return line
    return DEFAULT_TITLE


def branch_name(slug: str) -> str:
    return BRANCH_PREFIX + slug


class PullRequestExecutor(Executor):
    """Pushes the run's branch and opens a pull request for it.

    Attributes:
        settings: Base branch for the pull request.
        slug: Run slug; the branch is ``prflow/<slug>``.
        issue_ref: Issue number closed by the pull request, if any.
        work_dir: Checkout to operate on; defaults to the process cwd.
    """

    kind = ExecutorKind.GITHUB_PR

    def __init__(
        self,
        settings: GitHubSettings,
        slug: str,
        issue_ref: str = "",
        work_dir: Optional[Path] = None,
        runner: Optional[CommandRunner] = None,
    ):
        self.settings = settings
        self.slug = slug
        self.issue_ref = issue_ref
        self.work_dir = work_dir
        self._runner = runner or run_command

    @property
    def branch(self) -> str:
        return branch_name(self.slug)

    async def _run(self, *argv: str) -> str:
        return await self._runner(*argv, cwd=self.work_dir)

    def build_title(self, input_files: Dict[str, str], title_from: str = "") -> str:
        content = input_files.get(title_from or TICKET_FILE)
        if content is None:
            return DEFAULT_TITLE
        return extract_title_from_ticket(content)

    def build_body(self, input_files: Dict[str, str]) -> str:
        body = input_files.get(PR_BODY_FILE)
        if body is None:
            body = input_files.get(PLAN_FILE, "")
        if self.issue_ref:
            body += f"\n\nCloses #{self.issue_ref}"
        return body

    async def _push_branch(self, title: str) -> None:
        current = await self._run("git", "rev-parse", "--abbrev-ref", "HEAD")
        if current != self.branch:
            await self._run("git", "checkout", "-b", self.branch)

        if await self._run("git", "status", "--porcelain", *_WORKTREE_PATHSPEC):
            await self._run("git", "add", "-A", *_WORKTREE_PATHSPEC)
            await self._run("git", "commit", "-m", title)

        await self._run("git", "push", "-u", "origin", self.branch)

    async def execute(self, request: ExecutorRequest) -> ExecutorResult:
        """Push the branch and open the pull request.

        Returns:
            Result whose output is the pull request URL.

        Raises:
            ExecutorError: If a git or gh command fails.
        """
        start_time = time.monotonic()
        title = self.build_title(request.input_files, request.step.title_from)
        body = self.build_body(request.input_files)
        base = self.settings.base_branch or DEFAULT_BASE_BRANCH

        logger.info(
            "Opening pull request",
            extra={"branch": self.branch, "base": base, "issue_ref": self.issue_ref},
        )
        await self._push_branch(title)
        url = await self._run(
            "gh",
            "pr",
            "create",
            "--title",
            title,
            "--body",
            body,
            "--base",
            base,
            "--head",
            self.branch,
        )
        logger.info("Pull request created", extra={"url": url})
        return ExecutorResult(output=url, duration_seconds=time.monotonic() - start_time)
