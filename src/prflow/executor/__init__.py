"""Step executors and the registry that binds them.

Executor kinds (see ExecutorKind):
- api: chat completion through an OpenAI-compatible provider
- agent: delegated coding-agent CLI run as a subprocess
- shell: shell command
- github-pr: push the run branch and open a pull request

Executors are constructed once at startup by build_executors() and looked up
by the engine through an ExecutorRegistry.
"""

import logging
from pathlib import Path
from typing import Dict, Iterator, Optional

from prflow.config import PrflowSettings
from prflow.errors import ConfigurationError
from prflow.executor.agent import AgentExecutor, parse_agent_output
from prflow.executor.api import ApiExecutor
from prflow.executor.base import (
    Executor,
    ExecutorKind,
    ExecutorRequest,
    ExecutorResult,
    build_user_content,
)
from prflow.executor.pull_request import PullRequestExecutor
from prflow.executor.shell import ShellExecutor

logger = logging.getLogger(__name__)


class ExecutorRegistry:
    """Closed mapping from ExecutorKind to a bound executor instance."""

    def __init__(self, executors: Optional[Dict[ExecutorKind, Executor]] = None):
        self._executors: Dict[ExecutorKind, Executor] = dict(executors or {})

    def register(self, executor: Executor) -> None:
        self._executors[executor.kind] = executor

    def get(self, name: str) -> Executor:
        """Look up the executor bound to a step's executor name.

        Raises:
            ConfigurationError: If the name is not a known executor kind or no
                executor is bound for it.
        """
        try:
            kind = ExecutorKind(name)
        except ValueError as exc:
            raise ConfigurationError(f"unknown executor {name!r}") from exc

        executor = self._executors.get(kind)
        if executor is None:
            raise ConfigurationError(f"executor {name!r} is not configured")
        return executor

    def __contains__(self, name: str) -> bool:
        try:
            return ExecutorKind(name) in self._executors
        except ValueError:
            return False

    def __iter__(self) -> Iterator[ExecutorKind]:
        return iter(self._executors)


def build_executors(
    settings: PrflowSettings,
    prompts: Dict[str, str],
    work_dir: Optional[Path] = None,
    slug: str = "",
    issue_ref: str = "",
    verbose: bool = False,
) -> ExecutorRegistry:
    """Construct every executor from configuration.

    Args:
        settings: Loaded configuration.
        prompts: Prompt template name -> content.
        work_dir: Checkout the agent and pull request executors operate on.
        slug: Run slug naming the pull request branch.
        issue_ref: Issue number the pull request closes, if any.
        verbose: Stream the agent's stderr to the terminal.
    """
    registry = ExecutorRegistry()
    registry.register(ApiExecutor(settings, prompts))
    registry.register(
        AgentExecutor(settings.executors.agent, prompts, work_dir=work_dir, verbose=verbose)
    )
    registry.register(ShellExecutor(settings.executors.shell))
    registry.register(
        PullRequestExecutor(settings.github, slug, issue_ref=issue_ref, work_dir=work_dir)
    )
    logger.debug("Executors bound", extra={"kinds": [k.value for k in registry]})
    return registry


__all__ = [
    "AgentExecutor",
    "ApiExecutor",
    "Executor",
    "ExecutorKind",
    "ExecutorRegistry",
    "ExecutorRequest",
    "ExecutorResult",
    "PullRequestExecutor",
    "ShellExecutor",
    "build_executors",
    "build_user_content",
    "parse_agent_output",
]
