"""Git state collection: branch, commit, dirty flag and working diff."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from prflow.config import CONFIG_DIR_NAME

logger = logging.getLogger(__name__)


class GitError(Exception):
    """Raised when a git command fails.

    Attributes:
        args_used: The git arguments that were run.
        stderr: Captured standard error.
    """

    def __init__(self, message: str, args_used: tuple = (), stderr: str = ""):
        self.args_used = args_used
        self.stderr = stderr
        super().__init__(message)


@dataclass
class GitInfo:
    branch: str = ""
    commit: str = ""
    is_dirty: bool = False


async def git_output(*args: str, cwd: Optional[Path] = None) -> str:
    """Run ``git <args>`` and return its trimmed standard output.

    Raises:
        GitError: If git is missing or exits non-zero.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(cwd) if cwd is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise GitError(f"failed to run git: {exc}", args_used=args) from exc

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        err = stderr.decode("utf-8", errors="replace").strip()
        raise GitError(
            f"git {' '.join(args)} exited with code {process.returncode}: {err}",
            args_used=args,
            stderr=err,
        )
    return stdout.decode("utf-8", errors="replace").strip()


async def collect_git_info(cwd: Optional[Path] = None) -> GitInfo:
    """Gather branch, short commit hash and dirty flag.

    prflow's own directory (runs, logs, PLAN.md) never makes the tree dirty.

    Raises:
        GitError: If the directory is not a git work tree.
    """
    branch = await git_output("rev-parse", "--abbrev-ref", "HEAD", cwd=cwd)
    commit = await git_output("rev-parse", "--short", "HEAD", cwd=cwd)
    status = await git_output(
        "status", "--porcelain", "--", ":/", f":(exclude){CONFIG_DIR_NAME}", cwd=cwd
    )
    return GitInfo(branch=branch, commit=commit, is_dirty=bool(status))


async def git_diff(cwd: Optional[Path] = None) -> str:
    """Return the combined staged and unstaged diff, trimmed."""
    staged = await git_output("diff", "--cached", cwd=cwd)
    unstaged = await git_output("diff", cwd=cwd)
    return f"{staged}\n{unstaged}".strip()


async def git_remote_url(remote: str = "origin", cwd: Optional[Path] = None) -> str:
    """Return the fetch URL of a remote."""
    return await git_output("remote", "get-url", remote, cwd=cwd)
