"""Terminal progress output for pipeline runs.

The engine reports progress through the Display protocol. Display is a pure
notification sink: the engine mutates run state identically whether the sink
renders to a terminal (TerminalDisplay) or discards everything (NullDisplay).

In non-verbose mode the running line of a step is redrawn in place every
second by a StepTicker. The ticker is an async context manager so it is
stopped and joined before the step's final status line is written, on every
exit path.
"""

import asyncio
import re
import sys
import time
from typing import AsyncContextManager, Optional, Protocol, TextIO

MODEL_COLUMN_WIDTH = 30
PREVIEW_MAX_LINES = 10
RULE = "─" * 76
NO_COST = "—"

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]|[\x00-\x1f\x7f]")


def sanitize_model(name: str) -> str:
    """Strip ANSI escape sequences and control characters."""
    return _ANSI_ESCAPE.sub("", name)


def truncate_model(model: str, width: int = MODEL_COLUMN_WIDTH) -> str:
    """Sanitize a model label and fit it to the model column with an ellipsis."""
    model = sanitize_model(model)
    if len(model) <= width:
        return model
    return model[: width - 1] + "…"


def format_cost(cost: float) -> str:
    if cost > 0:
        return f"${cost:.4f}"
    return NO_COST


def format_preview(text: str, max_lines: int = PREVIEW_MAX_LINES) -> str:
    """Render the first lines of a step's output, each prefixed with a bar."""
    lines = text.strip("\n").splitlines()
    if not lines:
        return ""
    shown = [f"   │ {line}" for line in lines[:max_lines]]
    remaining = len(lines) - max_lines
    if remaining > 0:
        shown.append(f"   │ ... {remaining} more lines")
    return "\n".join(shown) + "\n"


class Display(Protocol):
    """Notification sink for pipeline progress."""

    def header(self) -> None: ...

    def step_start(self, name: str, label: str) -> None: ...

    def ticker(self, name: str, label: str) -> AsyncContextManager[None]: ...

    def step_done(
        self,
        name: str,
        label: str,
        detail: str,
        cost: float,
        duration: float,
        preview: str = "",
    ) -> None: ...

    def step_failed(self, name: str, label: str, error: BaseException) -> None: ...

    def summary(self, total_cost: float, total_duration: float) -> None: ...

    def failed(self, error: BaseException) -> None: ...


class _NoTicker:
    async def __aenter__(self) -> None:
        return None

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None


class NullDisplay:
    """Display that discards every notification."""

    def header(self) -> None:
        pass

    def step_start(self, name: str, label: str) -> None:
        pass

    def ticker(self, name: str, label: str) -> AsyncContextManager[None]:
        return _NoTicker()

    def step_done(self, name, label, detail, cost, duration, preview="") -> None:
        pass

    def step_failed(self, name, label, error) -> None:
        pass

    def summary(self, total_cost, total_duration) -> None:
        pass

    def failed(self, error) -> None:
        pass


class StepTicker:
    """Redraws a step's running line with the elapsed seconds.

    Entering starts a background task; exiting cancels it and waits for it
    to finish, so nothing is written after the context exits.

    Example:
        async with StepTicker(stream, "Plan", "model-x"):
            await executor.execute(request)
    """

    def __init__(
        self,
        stream: TextIO,
        name: str,
        label: str,
        interval: float = 1.0,
    ):
        self.stream = stream
        self.name = name
        self.label = label
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    async def _run(self) -> None:
        start = time.monotonic()
        while True:
            await asyncio.sleep(self.interval)
            elapsed = time.monotonic() - start
            self.stream.write(
                f"\r⏳ {self.name:<12} {self.label:<30} running... {elapsed:.0f}s"
            )
            self.stream.flush()

    async def __aenter__(self) -> "StepTicker":
        self._task = asyncio.create_task(self._run())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()


class TerminalDisplay:
    """Writes step progress lines to a text stream (stdout by default).

    Attributes:
        title: Shown in the header, usually the ticket title.
        verbose: When set, lines are never redrawn in place because executor
            output may be interleaved.
        stream: Destination stream.
    """

    def __init__(
        self,
        title: str,
        verbose: bool = False,
        stream: Optional[TextIO] = None,
    ):
        self.title = title
        self.verbose = verbose
        self.stream = stream if stream is not None else sys.stdout

    def _write(self, text: str) -> None:
        self.stream.write(text)
        self.stream.flush()

    @property
    def _prefix(self) -> str:
        return "" if self.verbose else "\r"

    def header(self) -> None:
        self._write(f"\n🚀 prflow — {self.title}\n{RULE}\n")

    def step_start(self, name: str, label: str) -> None:
        label = truncate_model(label)
        line = f"⏳ {name:<12} {label:<30} running..."
        # Without a newline the ticker can overwrite the line in place
        self._write(line + "\n" if self.verbose else line)

    def ticker(self, name: str, label: str) -> AsyncContextManager[None]:
        if self.verbose:
            return _NoTicker()
        return StepTicker(self.stream, name, truncate_model(label))

    def step_done(
        self,
        name: str,
        label: str,
        detail: str,
        cost: float,
        duration: float,
        preview: str = "",
    ) -> None:
        label = truncate_model(label)
        self._write(
            f"{self._prefix}✅ {name:<12} {label:<30} {detail:<28} "
            f"{format_cost(cost):<10} {duration:.1f}s\n"
        )
        if preview:
            self._write(format_preview(preview))

    def step_failed(self, name: str, label: str, error: BaseException) -> None:
        label = truncate_model(label)
        self._write(f"{self._prefix}❌ {name:<12} {label:<30} {error}\n")

    def summary(self, total_cost: float, total_duration: float) -> None:
        self._write(f"{RULE}\n✅ Done  ${total_cost:.4f}  {total_duration:.0f}s\n\n")

    def failed(self, error: BaseException) -> None:
        self._write(f"{RULE}\n❌ Failed: {error}\n\n")
