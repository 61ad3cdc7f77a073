"""Shell command executor."""

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

from prflow.config import ShellExecutorSettings
from prflow.errors import ExecutorError
from prflow.executor.base import Executor, ExecutorKind, ExecutorRequest, ExecutorResult

logger = logging.getLogger(__name__)

STDERR_SEPARATOR = "\n--- stderr ---\n"


class ShellExecutor(Executor):
    """Runs a step's command through the shell and captures its output.

    Stdout is the result; stderr, when present, is appended after a
    separator line. A non-zero exit fails the step with the combined output.
    """

    kind = ExecutorKind.SHELL

    def __init__(self, settings: Optional[ShellExecutorSettings] = None):
        self.settings = settings or ShellExecutorSettings()

    def _work_dir(self) -> Optional[str]:
        if self.settings.work_dir:
            return str(Path(self.settings.work_dir))
        return None

    async def execute(self, request: ExecutorRequest) -> ExecutorResult:
        start = time.monotonic()
        command = request.step.command
        if not command.strip():
            raise ExecutorError(
                f"no command specified for step {request.step.name!r}",
                executor=self.kind.value,
            )

        logger.info("Running shell command", extra={"command": command})
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                cwd=self._work_dir(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ExecutorError(
                f"shell command {command!r} could not start: {exc}",
                executor=self.kind.value,
            ) from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.settings.timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise ExecutorError(
                f"shell command {command!r} timed out after "
                f"{self.settings.timeout_seconds}s",
                executor=self.kind.value,
            ) from exc

        output = stdout.decode("utf-8", errors="replace")
        if stderr:
            output += STDERR_SEPARATOR + stderr.decode("utf-8", errors="replace")

        if process.returncode != 0:
            raise ExecutorError(
                f"shell command {command!r} failed with exit code {process.returncode}",
                executor=self.kind.value,
                detail=f"output: {output}",
            )

        return ExecutorResult(output=output, duration_seconds=time.monotonic() - start)
