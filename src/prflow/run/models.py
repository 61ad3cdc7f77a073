"""Run metadata models.

This module defines the data persisted to ``meta.json`` for every run:
- RunStatus: lifecycle status of a run
- StepStatus: outcome of a single step
- StepResult: record of one step's outcome, appended in execution order
- RunMeta: the whole metadata document

The field names and JSON layout of RunMeta are read by external statistics
tooling and must stay stable.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    """Lifecycle status of a run.

    RUNNING is the only initial state. COMPLETED and FAILED are terminal.
    """

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class StepResult(BaseModel):
    """Record of one step's outcome.

    Attributes:
        name: Step name.
        status: Outcome of the step.
        cost: Cost in USD (0 when unknown).
        tokens_in: Prompt tokens reported by the executor.
        tokens_out: Completion tokens reported by the executor.
        duration_ms: Wall-clock step duration in milliseconds.
        error: Error text for failed steps.
    """

    name: str
    status: StepStatus = StepStatus.COMPLETED
    cost: float = 0.0
    tokens_in: int = 0
    tokens_out: int = 0
    duration_ms: int = 0
    error: Optional[str] = None


class RunMeta(BaseModel):
    """Metadata document for one pipeline invocation.

    Attributes:
        started_at: When the run was created.
        input_mode: How the input was obtained ("do", "pick", "ask").
        input_ref: Spec path, issue number or prompt reference.
        status: Current run status.
        steps: Ordered, append-only list of step results.
        total_cost: Sum of step costs.
        error: Error text once the run failed.
        git_branch: Branch checked out when the run started.
        git_commit: Short commit hash when the run started.
    """

    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    input_mode: str = ""
    input_ref: str = ""
    status: RunStatus = RunStatus.RUNNING
    steps: List[StepResult] = Field(default_factory=list)
    total_cost: float = 0.0
    error: Optional[str] = None
    git_branch: str = ""
    git_commit: str = ""

    def to_document(self) -> Dict[str, Any]:
        """Return the JSON-ready meta.json document.

        Empty ``error`` fields are omitted, on the run and on each step.
        """
        document = self.model_dump(mode="json")
        if not document.get("error"):
            document.pop("error", None)
        for step in document["steps"]:
            if not step.get("error"):
                step.pop("error", None)
        return document

    def to_json(self) -> str:
        return json.dumps(self.to_document(), indent=2)

    @classmethod
    def from_json(cls, text: str) -> "RunMeta":
        return cls.model_validate_json(text)
