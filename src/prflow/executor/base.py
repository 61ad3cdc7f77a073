"""Executor contract shared by every step executor.

An executor turns an ExecutorRequest (step, run directory, resolved inputs)
into an ExecutorResult (output text, cost, duration, token counts). The set
of executors is closed: see ExecutorKind.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict

from prflow.pipeline import Step

# Virtual inputs rendered as fenced diff blocks, keyed to their section label
DIFF_INPUTS = {"git:diff": "git diff"}


class ExecutorKind(str, Enum):
    """Executor implementations a step can name.

    Attributes:
        API: Remote chat-completion call.
        AGENT: Delegated coding-agent CLI run as a subprocess.
        SHELL: Shell command.
        GITHUB_PR: Pushes the run branch and opens a pull request.
    """

    API = "api"
    AGENT = "agent"
    SHELL = "shell"
    GITHUB_PR = "github-pr"


@dataclass
class ExecutorRequest:
    """Inputs for one step execution.

    Attributes:
        step: The step being executed, with its model already role-resolved.
        run_dir: Directory of the active run.
        input_files: Input name -> resolved content.
    """

    step: Step
    run_dir: Path
    input_files: Dict[str, str] = field(default_factory=dict)


@dataclass
class ExecutorResult:
    """Outcome of a successful step execution.

    Attributes:
        output: Textual result of the step.
        cost: Cost in USD; 0 when unknown.
        duration_seconds: Wall-clock execution time.
        tokens_in: Prompt tokens, when reported.
        tokens_out: Completion tokens, when reported.
    """

    output: str = ""
    cost: float = 0.0
    duration_seconds: float = 0.0
    tokens_in: int = 0
    tokens_out: int = 0


class Executor(ABC):
    """Base class for step executors."""

    kind: ExecutorKind

    @abstractmethod
    async def execute(self, request: ExecutorRequest) -> ExecutorResult:
        """Run the step and return its result.

        Raises:
            prflow.errors.ExecutorError: If the step cannot produce a result.
        """


def build_user_content(input_files: Dict[str, str]) -> str:
    """Assemble step inputs into one Markdown message.

    Inputs are emitted in ascending name order. Diff inputs become a
    ``## git diff`` section with a fenced ``diff`` block and are skipped when
    empty; every other input becomes ``## <name>`` followed by its content.
    """
    parts = []
    for name in sorted(input_files):
        content = input_files[name]
        label = DIFF_INPUTS.get(name)
        if label is not None:
            if content:
                parts.append(f"## {label}\n\n```diff\n{content}\n```\n\n")
        else:
            parts.append(f"## {name}\n\n{content}\n\n")
    return "".join(parts)
