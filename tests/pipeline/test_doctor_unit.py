"""Unit tests for prerequisite checks."""

import subprocess

import pytest

from prflow.doctor import CheckResult, format_checks, run_checks
from prflow.github import GhCredentialProvider


def _which(*found):
    return lambda name: f"/usr/bin/{name}" if name in found else None


def _gh(version="gh version 2.40.1 (2023-12-13)", authenticated=True):
    def runner(args):
        if args[0] == "--version":
            return version
        if not authenticated:
            raise subprocess.CalledProcessError(1, ["gh", *args])
        return ""

    return GhCredentialProvider(runner=runner)


def _by_label(results):
    return {result.label: result for result in results}


@pytest.fixture
def home(tmp_path, monkeypatch):
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    return home_dir


class TestRunChecks:

    def test_all_prerequisites_present(self, git_repo, home, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")

        results = run_checks(
            credentials=_gh(), which=_which("git", "gh"), project_dir=git_repo
        )

        assert [r.label for r in results] == [
            "git installed",
            "inside git repository",
            "gh CLI installed",
            "gh CLI version >= 2.0.0",
            "gh CLI authenticated",
            "config loadable",
            "OPENROUTER_API_KEY set",
        ]
        assert all(r.ok for r in results)

    def test_outside_repository(self, tmp_path, git):
        results = _by_label(
            run_checks(
                include_config=False,
                credentials=_gh(),
                which=_which("git", "gh"),
                project_dir=tmp_path,
            )
        )

        assert results["git installed"].ok
        assert not results["inside git repository"].ok

    def test_missing_gh_skips_gh_checks(self, tmp_path):
        results = run_checks(include_config=False, which=_which(), project_dir=tmp_path)

        assert [(r.label, r.ok) for r in results] == [
            ("git installed", False),
            ("inside git repository", False),
            ("gh CLI installed", False),
        ]

    def test_old_and_unauthenticated_gh(self, tmp_path):
        credentials = _gh(version="gh version 1.9.0", authenticated=False)

        results = _by_label(
            run_checks(
                include_config=False,
                credentials=credentials,
                which=_which("gh"),
                project_dir=tmp_path,
            )
        )

        assert "below the required minimum" in results["gh CLI version >= 2.0.0"].hint
        assert "gh auth login" in results["gh CLI authenticated"].hint

    def test_broken_config_and_missing_key(self, tmp_path, home):
        (tmp_path / ".prflow").mkdir()
        (tmp_path / ".prflow" / "config.yaml").write_text("max_context_tokens: [1\n")

        results = _by_label(run_checks(which=_which(), project_dir=tmp_path))

        assert not results["config loadable"].ok
        assert results["config loadable"].hint.startswith("fix config:")
        assert "OPENROUTER_API_KEY set" not in results

    def test_missing_api_key(self, tmp_path, home):
        results = _by_label(run_checks(which=_which(), project_dir=tmp_path))

        assert results["config loadable"].ok
        check = results["OPENROUTER_API_KEY set"]
        assert not check.ok
        assert check.hint == "set environment variable OPENROUTER_API_KEY"


class TestFormatChecks:

    def test_verbose_lists_every_check(self):
        output = format_checks(
            [CheckResult("git installed", True), CheckResult("gh CLI installed", False, "install gh")]
        )

        assert output == "✅ git installed\n❌ gh CLI installed — install gh\n"

    def test_quiet_lists_failures_only(self):
        output = format_checks(
            [CheckResult("git installed", True), CheckResult("gh CLI installed", False, "install gh")],
            verbose=False,
        )

        assert output == "❌ gh CLI installed — install gh\n"
