"""Delegated coding-agent CLI executor.

Runs an external coding agent (the ``claude`` CLI by default) as an async
subprocess in print mode:

- The assembled step inputs are written to the agent's stdin
- The model and system prompt are always passed as flags
- A configurable timeout bounds execution; the process is killed on expiry
- A ``{"result": "..."}`` JSON envelope on stdout is unwrapped when present,
  otherwise the trimmed stdout is the result
- A non-zero exit is a failure carrying the captured stderr
- In verbose mode stderr is streamed to the terminal instead of captured
"""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import List, Optional

from prflow.config import AgentExecutorSettings
from prflow.errors import ExecutorError
from prflow.executor.base import (
    Executor,
    ExecutorKind,
    ExecutorRequest,
    ExecutorResult,
    build_user_content,
)

logger = logging.getLogger(__name__)

DEFAULT_AGENT_COMMAND = "claude"
_BASE_ARGS = ("-p", "--output-format", "json", "--dangerously-skip-permissions")


class AgentExecutor(Executor):
    """Delegates a step to a coding-agent CLI subprocess.

    Attributes:
        settings: Agent command, timeout and extra arguments.
        prompts: Prompt template name -> system prompt text.
        work_dir: Directory the agent runs in; defaults to the process cwd.
        verbose: Let the agent write its progress to our stderr.
    """

    kind = ExecutorKind.AGENT

    def __init__(
        self,
        settings: AgentExecutorSettings,
        prompts: Optional[dict] = None,
        work_dir: Optional[Path] = None,
        verbose: bool = False,
    ):
        self.settings = settings
        self.prompts = prompts or {}
        self.work_dir = work_dir
        self.verbose = verbose

    @property
    def command(self) -> str:
        return self.settings.command or DEFAULT_AGENT_COMMAND

    def build_args(self, request: ExecutorRequest) -> List[str]:
        """Build the agent's argument list for a request."""
        args = list(_BASE_ARGS)
        step = request.step
        if step.model:
            args.extend(["--model", step.model])
        if step.prompt_template:
            system_prompt = self.prompts.get(step.prompt_template)
            if system_prompt:
                args.extend(["--system-prompt", system_prompt])
        args.extend(self.settings.extra_args)
        return args

    async def execute(self, request: ExecutorRequest) -> ExecutorResult:
        """Run the agent with the step inputs on stdin.

        Raises:
            ExecutorError: If the agent cannot start, times out or exits non-zero.
        """
        start_time = time.monotonic()
        prompt = build_user_content(request.input_files)
        args = self.build_args(request)

        logger.info(
            "Starting coding agent",
            extra={
                "command": self.command,
                "step": request.step.name,
                "timeout": self.settings.timeout_seconds,
            },
        )

        try:
            process = await asyncio.create_subprocess_exec(
                self.command,
                *args,
                cwd=str(self.work_dir) if self.work_dir is not None else None,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                # None inherits our stderr
                stderr=None if self.verbose else asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.error("Failed to start %s: %s", self.command, exc)
            raise ExecutorError(
                f"failed to start {self.command}: {exc}", executor=self.kind.value
            ) from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(prompt.encode("utf-8")),
                timeout=self.settings.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            await self._kill(process)
            logger.error(
                "%s timed out after %ds", self.command, self.settings.timeout_seconds
            )
            raise ExecutorError(
                f"{self.command} timed out after {self.settings.timeout_seconds}s",
                executor=self.kind.value,
            ) from exc

        duration = time.monotonic() - start_time
        stdout_text = stdout.decode("utf-8", errors="replace")
        stderr_text = (stderr or b"").decode("utf-8", errors="replace")

        if process.returncode != 0:
            logger.error(
                "%s failed with exit code %d in %.1fs",
                self.command,
                process.returncode,
                duration,
            )
            raise ExecutorError(
                f"{self.command} exited with code {process.returncode}",
                executor=self.kind.value,
                detail=(
                    "stderr: (see output above)"
                    if self.verbose
                    else f"stderr: {stderr_text.strip()}"
                ),
            )

        logger.info("%s completed successfully in %.1fs", self.command, duration)
        return ExecutorResult(
            output=parse_agent_output(stdout_text),
            duration_seconds=duration,
        )

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()


def parse_agent_output(stdout: str) -> str:
    """Unwrap a ``{"result": ...}`` envelope, falling back to the raw text."""
    try:
        parsed = json.loads(stdout)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        result = parsed.get("result")
        if isinstance(result, str) and result:
            stdout = result
    return stdout.strip()
