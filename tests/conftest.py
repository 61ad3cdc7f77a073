"""Pytest configuration for all tests."""

import sys
import os

# Add src directory to Python path for all tests
src_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src'))
if src_dir not in sys.path:
    sys.path.insert(0, src_dir)

import shutil
import subprocess

import pytest


def _git(repo, *args):
    result = subprocess.run(
        ["git", "-c", "user.name=prflow", "-c", "user.email=prflow@example.com", *args],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


@pytest.fixture
def git():
    """Run git in a directory with a throwaway identity; returns stdout."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    return _git


@pytest.fixture
def git_repo(tmp_path, git):
    """A git work tree with one committed SPEC.md and a clean status."""
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    (repo / "SPEC.md").write_text("# Add dark mode\n\nToggle in settings.\n")
    git(repo, "add", "SPEC.md")
    git(repo, "commit", "-q", "-m", "initial")
    return repo
