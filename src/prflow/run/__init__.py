"""Run directories, metadata persistence and run statistics.

Every pipeline invocation is recorded under .prflow/runs/<run-id>/ with a
meta.json document that moves from running to completed or failed.
"""

from prflow.run.models import RunMeta, RunStatus, StepResult, StepStatus
from prflow.run.stats import RunStats, format_stats, load_run_records, summarize_runs
from prflow.run.store import Run, generate_run_id, sanitize_slug

__all__ = [
    # Models
    "RunMeta",
    "RunStatus",
    "StepResult",
    "StepStatus",
    # Store
    "Run",
    "generate_run_id",
    "sanitize_slug",
    # Stats
    "RunStats",
    "format_stats",
    "load_run_records",
    "summarize_runs",
]
