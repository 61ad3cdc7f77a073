"""Prerequisite checks behind ``prflow doctor``.

Checks, in order: git installed, inside a git work tree, gh installed,
gh version >= 2, gh authenticated, and optionally the configuration loads and
the provider API key is set.
"""

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from prflow.config import load_settings
from prflow.errors import ConfigurationError
from prflow.github.auth import GhCredentialProvider, GitHubAuthError

PASS_MARK = "✅"
FAIL_MARK = "❌"


@dataclass
class CheckResult:
    label: str
    ok: bool
    hint: str = ""


def _inside_work_tree(cwd: Optional[Path]) -> bool:
    try:
        subprocess.run(
            ["git", "rev-parse", "--is-inside-work-tree"],
            cwd=cwd,
            capture_output=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return False
    return True


def run_checks(
    include_config: bool = True,
    credentials: Optional[GhCredentialProvider] = None,
    which: Callable[[str], Optional[str]] = shutil.which,
    project_dir: Optional[Path] = None,
) -> List[CheckResult]:
    """Run every prerequisite check and return the results in order."""
    results = []

    git_found = which("git") is not None
    results.append(CheckResult("git installed", git_found, "install git"))
    results.append(
        CheckResult(
            "inside git repository",
            git_found and _inside_work_tree(project_dir),
            "run `git init` or cd to a git repo",
        )
    )

    gh_found = which("gh") is not None
    results.append(
        CheckResult("gh CLI installed", gh_found, "install gh: https://cli.github.com")
    )
    if gh_found:
        credentials = credentials or GhCredentialProvider()
        for label, check in (
            ("gh CLI version >= 2.0.0", credentials.check_version),
            ("gh CLI authenticated", credentials.check_auth),
        ):
            try:
                check()
            except GitHubAuthError as exc:
                results.append(CheckResult(label, False, str(exc)))
            else:
                results.append(CheckResult(label, True))

    if include_config:
        try:
            settings = load_settings(project_dir)
        except ConfigurationError as exc:
            results.append(CheckResult("config loadable", False, f"fix config: {exc}"))
        else:
            results.append(CheckResult("config loadable", True))
            env_var = settings.provider.api_key_env
            results.append(
                CheckResult(
                    f"{env_var} set",
                    bool(settings.api_key()),
                    f"set environment variable {env_var}",
                )
            )

    return results


def format_checks(results: List[CheckResult], verbose: bool = True) -> str:
    """Render check results; passing checks are listed only when verbose."""
    lines = []
    for result in results:
        if result.ok:
            if verbose:
                lines.append(f"{PASS_MARK} {result.label}")
        else:
            lines.append(f"{FAIL_MARK} {result.label} — {result.hint}")
    return "".join(line + "\n" for line in lines)
