"""Unit tests for executor binding."""

import pytest

from prflow.config import PrflowSettings
from prflow.errors import ConfigurationError
from prflow.executor import (
    AgentExecutor,
    PullRequestExecutor,
    ApiExecutor,
    ExecutorKind,
    ExecutorRegistry,
    ShellExecutor,
    build_executors,
)


class TestExecutorRegistry:

    def test_build_binds_every_kind(self):
        registry = build_executors(PrflowSettings(), {"plan": "Plan it."})

        assert set(registry) == set(ExecutorKind)
        assert isinstance(registry.get("api"), ApiExecutor)
        assert isinstance(registry.get("agent"), AgentExecutor)
        assert isinstance(registry.get("shell"), ShellExecutor)
        assert isinstance(registry.get("github-pr"), PullRequestExecutor)

    def test_unknown_name(self):
        registry = ExecutorRegistry()

        with pytest.raises(ConfigurationError, match="unknown executor 'docker'"):
            registry.get("docker")
        assert "docker" not in registry

    def test_known_but_unbound(self):
        registry = ExecutorRegistry()
        registry.register(ShellExecutor())

        assert "shell" in registry
        assert "api" not in registry
        with pytest.raises(ConfigurationError, match="not configured"):
            registry.get("api")

    def test_agent_settings_flow_through(self):
        settings = PrflowSettings(executors={"agent": {"command": "my-agent"}})

        agent = build_executors(settings, {}).get("agent")

        assert agent.command == "my-agent"

    def test_run_context_reaches_pull_request_and_agent(self, tmp_path):
        settings = PrflowSettings(github={"base_branch": "develop"})

        registry = build_executors(
            settings, {}, work_dir=tmp_path, slug="42-fix-login", issue_ref="42", verbose=True
        )

        pr = registry.get("github-pr")
        assert pr.branch == "prflow/42-fix-login"
        assert pr.issue_ref == "42"
        assert pr.work_dir == tmp_path
        assert pr.settings.base_branch == "develop"
        assert registry.get("agent").verbose is True
