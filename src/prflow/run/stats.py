"""Cost and status statistics across recorded runs.

Reads every ``meta.json`` under the runs directory. Runs may still be in
progress; their partial metadata is reported as-is. Unreadable or malformed
documents are skipped.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Union

from pydantic import ValidationError

from prflow.run.models import RunMeta, RunStatus
from prflow.run.store import LATEST_LINK, META_FILE

logger = logging.getLogger(__name__)


@dataclass
class RunRecord:
    run_id: str
    meta: RunMeta


@dataclass
class RunStats:
    """Aggregate statistics over a set of runs.

    Attributes:
        runs: Records sorted newest first.
        completed: Number of completed runs.
        failed: Number of failed runs.
        total_cost: Sum of run costs in USD.
    """

    runs: List[RunRecord] = field(default_factory=list)
    completed: int = 0
    failed: int = 0
    total_cost: float = 0.0

    @property
    def total(self) -> int:
        return len(self.runs)

    @property
    def average_cost(self) -> float:
        if not self.runs:
            return 0.0
        return self.total_cost / len(self.runs)


def load_run_records(runs_dir: Union[str, Path]) -> List[RunRecord]:
    """Load every readable run's metadata, newest first."""
    root = Path(runs_dir)
    if not root.is_dir():
        return []

    records: List[RunRecord] = []
    for entry in root.iterdir():
        if entry.name == LATEST_LINK or entry.is_symlink() or not entry.is_dir():
            continue
        meta_path = entry / META_FILE
        try:
            meta = RunMeta.from_json(meta_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError):
            logger.debug("Skipping unreadable run", extra={"run_dir": str(entry)})
            continue
        records.append(RunRecord(run_id=entry.name, meta=meta))

    records.sort(key=lambda r: r.meta.started_at, reverse=True)
    return records


def summarize_runs(records: List[RunRecord]) -> RunStats:
    stats = RunStats(runs=list(records))
    for record in records:
        stats.total_cost += record.meta.total_cost
        if record.meta.status == RunStatus.COMPLETED:
            stats.completed += 1
        elif record.meta.status == RunStatus.FAILED:
            stats.failed += 1
    return stats


def format_stats(stats: RunStats) -> str:
    """Render statistics as a plain-text report."""
    if not stats.runs:
        return "No runs found.\n"

    lines = [
        f"Runs: {stats.total} total, {stats.completed} completed, {stats.failed} failed",
        f"Total cost: ${stats.total_cost:.4f}",
        f"Average cost: ${stats.average_cost:.4f}",
        "",
        f"{'Run ID':<40} {'Status':<10} {'Cost':<12} Mode",
        "-" * 70,
    ]
    for record in stats.runs:
        meta = record.meta
        lines.append(
            f"{record.run_id:<40} {meta.status.value:<10} "
            f"${meta.total_cost:<11.4f} {meta.input_mode}"
        )
    return "\n".join(lines) + "\n"
