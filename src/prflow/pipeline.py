"""Pipeline and step definitions.

A pipeline is a named, ordered sequence of steps loaded from YAML. Lookup
order for a pipeline named ``NAME``:

1. Project override ``.prflow/pipelines/NAME.yaml``
2. User override ``~/.prflow/pipelines/NAME.yaml``
3. Packaged default shipped in ``prflow/assets/pipelines``

Pipelines are immutable once loaded.
"""

import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from prflow import assets
from prflow.errors import ConfigurationError

logger = logging.getLogger(__name__)


class Step(BaseModel):
    """One unit of pipeline work bound to an executor.

    Attributes:
        name: Unique name within the pipeline; used as display and result key.
        executor: Executor kind ("api", "agent", "shell", "github-pr").
            Empty is only legal for steps with no executor-bound work and
            fails at dispatch.
        model: Literal model id or a role placeholder such as "$planner".
        prompt_template: Name of the system prompt asset.
        input: Input specifiers: filenames, "git:diff" or "project:context".
        output: Filename the textual result is saved under in the run dir.
        command: Shell command, used only by the shell executor.
        title_from: File whose first heading becomes the pull request title
            (github-pr steps; default TICKET.md).
        body_template: Prompt template used to write PR.md from PLAN.md
            before a github-pr step opens the pull request.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(..., min_length=1)
    executor: str = ""
    model: str = ""
    prompt_template: str = ""
    input: List[str] = Field(default_factory=list)
    output: str = ""
    command: str = ""
    title_from: str = ""
    body_template: str = ""

    @model_validator(mode="after")
    def validate_shell_command(self) -> "Step":
        if self.executor == "shell" and not self.command.strip():
            raise ValueError(f"shell step {self.name!r} requires a command")
        return self


class Pipeline(BaseModel):
    """A named, ordered sequence of steps."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(..., min_length=1)
    steps: List[Step] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_step_names(self) -> "Pipeline":
        seen = set()
        for step in self.steps:
            if step.name in seen:
                raise ValueError(f"duplicate step name {step.name!r}")
            seen.add(step.name)
        return self


def parse_pipeline(text: str) -> Pipeline:
    """Decode a pipeline from YAML text.

    Raises:
        ConfigurationError: If the YAML is malformed or the pipeline is invalid
            (missing name, shell step without command, duplicate step names).
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"parsing pipeline: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError("parsing pipeline: expected a mapping")
    if not data.get("name"):
        raise ConfigurationError("pipeline must have a name")
    if data.get("steps") is None:
        data["steps"] = []

    try:
        return Pipeline.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid pipeline: {exc}") from exc


def load_pipeline_file(path: Path) -> Pipeline:
    """Read and parse a pipeline YAML file."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"reading pipeline file {path}: {exc}") from exc
    return parse_pipeline(text)


def load_pipeline(name: str, project_dir: Optional[Path] = None) -> Pipeline:
    """Resolve a pipeline by name from overrides or the packaged defaults.

    Raises:
        ConfigurationError: If no pipeline with that name exists or it is invalid.
    """
    text = assets.load_pipeline_text(name, project_dir=project_dir)
    if text is None:
        raise ConfigurationError(f"pipeline {name!r} not found")
    pipeline = parse_pipeline(text)
    logger.debug(
        "Loaded pipeline",
        extra={"pipeline": pipeline.name, "steps": len(pipeline.steps)},
    )
    return pipeline
