"""Exception hierarchy for pipeline execution.

Every error raised by the engine and its collaborators derives from
PrflowError so the CLI can report failures uniformly:

- ConfigurationError: a step references an empty, unknown or unbound executor,
  or a pipeline definition is invalid. Fatal, aborts the run.
- InputNotFoundError: a declared step input cannot be resolved. Fatal to the step.
- ExecutorError: subprocess failure, timeout, HTTP error or malformed response.
  Fatal to the step; the message carries captured diagnostic output.
- StepFailedError: run-level wrapper naming the failing step.
- PipelineCancelledError: cancellation observed at a step boundary. Not a
  step failure.
"""

from typing import Optional


class PrflowError(Exception):
    """Base class for all prflow errors."""


class ConfigurationError(PrflowError):
    """Raised when configuration or a pipeline definition is unusable."""


class InputNotFoundError(PrflowError):
    """Raised when a step input is not found in the run dir or working dir.

    Attributes:
        name: The input specifier that could not be resolved.
    """

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"file {name!r} not found in run dir or working dir")


class ExecutorError(PrflowError):
    """Raised when an executor cannot produce a result.

    Attributes:
        message: Human-readable error description.
        executor: Name of the executor that failed.
        detail: Captured diagnostic output (stderr, response body).
    """

    def __init__(
        self,
        message: str,
        executor: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        self.message = message
        self.executor = executor
        self.detail = detail
        full = message
        if detail:
            full = f"{message}\n{detail}"
        super().__init__(full)


class StepFailedError(PrflowError):
    """Raised by the engine when a step fails and the run is aborted.

    Attributes:
        step_name: Name of the failing step.
        cause: The underlying exception.
    """

    def __init__(self, step_name: str, cause: BaseException):
        self.step_name = step_name
        self.cause = cause
        super().__init__(f"step {step_name!r} failed: {cause}")


class PipelineCancelledError(PrflowError):
    """Raised when cancellation is requested between steps.

    Attributes:
        next_step: Name of the step that was about to start.
    """

    def __init__(self, next_step: Optional[str] = None):
        self.next_step = next_step
        message = "pipeline cancelled"
        if next_step:
            message += f" before step {next_step!r}"
        super().__init__(message)
