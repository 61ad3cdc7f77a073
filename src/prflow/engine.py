"""Pipeline engine driving a run through its steps.

For each step, in order, the engine:
- checks for cancellation before the step starts
- resolves the step's inputs through the ContextResolver
- truncates inputs of API steps to the configured token budget
- dispatches the step to its executor while the display ticker runs
- records a StepResult on the run and writes the step's output artifact

github-pr steps do not resolve declared inputs. They receive the title file
(TICKET.md by default) and PR.md or PLAN.md from the run directory, after an
optional body_template pass that writes PR.md through the api executor.

The first failing step stops the pipeline and marks the run failed. Steps
are never retried. Failures to persist run metadata or artifacts are logged
and never abort the run.
"""

import asyncio
import dataclasses
import logging
import time
from typing import Dict, Optional

from prflow.config import PrflowSettings, RoleSettings
from prflow.context.budget import truncate_to_token_budget
from prflow.context.resolver import (
    PLAN_FILE,
    PR_BODY_FILE,
    TICKET_FILE,
    ContextResolver,
)
from prflow.display import Display, NullDisplay
from prflow.errors import (
    ConfigurationError,
    PipelineCancelledError,
    PrflowError,
    StepFailedError,
)
from prflow.executor import ApiExecutor, ExecutorKind, ExecutorRegistry
from prflow.executor.base import ExecutorRequest, ExecutorResult
from prflow.pipeline import Pipeline, Step
from prflow.run.models import StepResult, StepStatus
from prflow.run.store import Run

logger = logging.getLogger(__name__)

# Label shown for steps that have no executor
NO_EXECUTOR_LABEL = "—"

PR_BODY_STEP_NAME = "pr-body-generation"

ROLE_PLACEHOLDERS = {
    "$planner": "planner",
    "$reviewer": "reviewer",
    "$editor": "editor",
    "$auditor": "auditor",
}


def resolve_role_model(model: str, roles: RoleSettings) -> str:
    """Replace a role placeholder with the configured model id.

    Placeholders match case-insensitively; anything else is returned as-is.

    Example:
        >>> resolve_role_model("$PLANNER", RoleSettings(planner="m1"))
        'm1'
    """
    role = ROLE_PLACEHOLDERS.get(model.strip().lower())
    if role is None:
        return model
    return getattr(roles, role)


def step_display_label(step: Step, roles: RoleSettings) -> str:
    """Human-readable label for a step's model column."""
    if not step.executor:
        return NO_EXECUTOR_LABEL
    model = resolve_role_model(step.model, roles)
    return model or step.executor


def validate_pipeline(pipeline: Pipeline, registry: ExecutorRegistry) -> None:
    """Check every step's executor is known and bound.

    Raises:
        ConfigurationError: On the first step with an empty, unknown or
            unbound executor.
    """
    for step in pipeline.steps:
        if not step.executor:
            raise ConfigurationError(f"step {step.name!r} has no executor")
        registry.get(step.executor)


class PipelineEngine:
    """Executes a pipeline's steps sequentially against a run.

    Attributes:
        settings: Roles and token budget.
        registry: Executors bound at startup.
        resolver: Resolves step inputs for the run.
        display: Progress notification sink.
        cancel_event: Set to request cancellation at the next step boundary.
        pull_request_url: URL returned by the last github-pr step, if any.
    """

    def __init__(
        self,
        settings: PrflowSettings,
        registry: ExecutorRegistry,
        resolver: ContextResolver,
        display: Optional[Display] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.settings = settings
        self.registry = registry
        self.resolver = resolver
        self.display = display if display is not None else NullDisplay()
        self.cancel_event = cancel_event
        self.pull_request_url = ""

    def validate(self, pipeline: Pipeline) -> None:
        """Validate the pipeline against this engine's executors."""
        validate_pipeline(pipeline, self.registry)

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    async def execute(self, pipeline: Pipeline, run: Run) -> None:
        """Run every step of the pipeline in order.

        Raises:
            PipelineCancelledError: If cancellation was requested before a step.
            StepFailedError: If a step fails; the run is marked failed first.
        """
        start = time.monotonic()
        logger.info(
            "Executing pipeline",
            extra={"pipeline": pipeline.name, "run_id": run.id},
        )

        for step in pipeline.steps:
            if self._cancelled():
                logger.info("Pipeline cancelled", extra={"next_step": step.name})
                raise PipelineCancelledError(step.name)

            label = step_display_label(step, self.settings.roles)
            self.display.step_start(step.name, label)
            step_start = time.monotonic()

            try:
                async with self.display.ticker(step.name, label):
                    result = await self._dispatch(step, run)
            except Exception as exc:
                self._handle_failure(step, label, run, exc)
                raise StepFailedError(step.name, exc) from exc

            duration = time.monotonic() - step_start
            detail, preview = self._record_success(step, run, result, duration)
            self.display.step_done(
                step.name, label, detail, result.cost, duration, preview
            )

        try:
            run.complete()
        except OSError as exc:
            logger.warning("Failed to mark run complete", extra={"error": str(exc)})

        self.display.summary(run.meta.total_cost, time.monotonic() - start)
        logger.info(
            "Pipeline completed",
            extra={"run_id": run.id, "total_cost": run.meta.total_cost},
        )

    async def _dispatch(self, step: Step, run: Run) -> ExecutorResult:
        if not step.executor:
            raise ConfigurationError(f"step {step.name!r} has no executor")
        executor = self.registry.get(step.executor)
        resolved = step.model_copy(
            update={"model": resolve_role_model(step.model, self.settings.roles)}
        )

        if step.executor == ExecutorKind.GITHUB_PR.value:
            body_cost = 0.0
            if step.body_template:
                body_cost = await self._generate_pr_body(resolved, run)
            request = ExecutorRequest(
                step=resolved,
                run_dir=run.dir,
                input_files=self._pull_request_inputs(step, run),
            )
            result = await executor.execute(request)
            return dataclasses.replace(result, cost=result.cost + body_cost)

        input_files = self.resolver.resolve_input(step.input, step_name=step.name)

        max_tokens = self.settings.max_context_tokens
        if step.executor == ExecutorKind.API.value and max_tokens > 0:
            system_prompt = self._system_prompt_for_budget(step)
            input_files = truncate_to_token_budget(
                input_files, system_prompt, max_tokens
            )

        request = ExecutorRequest(step=resolved, run_dir=run.dir, input_files=input_files)
        return await executor.execute(request)

    async def _generate_pr_body(self, step: Step, run: Run) -> float:
        """Write PR.md from PLAN.md with the step's body_template.

        Failures are logged; the pull request then falls back to PLAN.md.

        Returns:
            Cost of the generation call.
        """
        try:
            api = self.registry.get(ExecutorKind.API.value)
            request = ExecutorRequest(
                step=Step(
                    name=PR_BODY_STEP_NAME,
                    executor=ExecutorKind.API.value,
                    model=step.model,
                    prompt_template=step.body_template,
                ),
                run_dir=run.dir,
                input_files={PLAN_FILE: run.read_file(PLAN_FILE)},
            )
            result = await api.execute(request)
            run.write_file(PR_BODY_FILE, result.output)
        except (PrflowError, OSError) as exc:
            logger.warning(
                "Failed to generate PR body",
                extra={"template": step.body_template, "error": str(exc)},
            )
            return 0.0
        return result.cost

    def _pull_request_inputs(self, step: Step, run: Run) -> Dict[str, str]:
        files: Dict[str, str] = {}
        title_file = step.title_from or TICKET_FILE
        if run.file_path(title_file).is_file():
            files[title_file] = run.read_file(title_file)
        for name in (PR_BODY_FILE, PLAN_FILE):
            if run.file_path(name).is_file():
                files[name] = run.read_file(name)
                break
        return files

    def _system_prompt_for_budget(self, step: Step) -> str:
        if not step.prompt_template or ExecutorKind.API.value not in self.registry:
            return ""
        api = self.registry.get(ExecutorKind.API.value)
        if not isinstance(api, ApiExecutor):
            return ""
        return api.resolve_prompt(step.prompt_template) or ""

    def _record_success(
        self,
        step: Step,
        run: Run,
        result: ExecutorResult,
        duration: float,
    ) -> tuple:
        try:
            run.add_step_result(
                StepResult(
                    name=step.name,
                    status=StepStatus.COMPLETED,
                    cost=result.cost,
                    tokens_in=result.tokens_in,
                    tokens_out=result.tokens_out,
                    duration_ms=int(duration * 1000),
                )
            )
        except OSError as exc:
            logger.warning(
                "Failed to save step result",
                extra={"step": step.name, "error": str(exc)},
            )

        is_pull_request = step.executor == ExecutorKind.GITHUB_PR.value
        if is_pull_request and result.output:
            self.pull_request_url = result.output

        detail = ""
        preview = ""
        if step.output and result.output:
            try:
                run.write_file(step.output, result.output)
            except OSError as exc:
                logger.warning(
                    "Failed to write output file",
                    extra={"file": step.output, "error": str(exc)},
                )
            detail = step.output
            preview = result.output
        elif is_pull_request and result.output:
            detail = result.output
        elif not step.output:
            detail = f"{duration:.0f}s"
        return detail, preview

    def _handle_failure(
        self,
        step: Step,
        label: str,
        run: Run,
        exc: Exception,
    ) -> None:
        logger.error(
            "Step failed",
            extra={"step": step.name, "run_id": run.id, "error": str(exc)},
        )
        self.display.step_failed(step.name, label, exc)
        try:
            run.fail(str(exc))
        except OSError as write_exc:
            logger.warning(
                "Failed to update run meta",
                extra={"error": str(write_exc)},
            )
        self.display.failed(exc)

