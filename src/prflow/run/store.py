"""Durable run directories and metadata persistence.

Each pipeline invocation gets its own directory under ``.prflow/runs``
holding ``meta.json`` plus every artifact the steps produce. A ``latest``
symlink points at the most recent run.

Persistence is a whole-document overwrite of meta.json on every mutation so
readers performing whole-file reads never see interleaved writes.
"""

import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from prflow.run.models import RunMeta, RunStatus, StepResult

logger = logging.getLogger(__name__)

DEFAULT_RUNS_DIR = Path(".prflow") / "runs"
META_FILE = "meta.json"
LATEST_LINK = "latest"
MAX_SLUG_LENGTH = 40

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def sanitize_slug(value: str) -> str:
    """Convert free text into a run-id slug.

    Lower-cases, collapses non-alphanumeric runs into single hyphens, trims
    hyphens, caps the result at 40 characters and falls back to "run".

    Example:
        >>> sanitize_slug("Fix Auth Bug")
        'fix-auth-bug'
        >>> sanitize_slug("")
        'run'
    """
    slug = _NON_ALNUM.sub("-", value.lower()).strip("-")
    if len(slug) > MAX_SLUG_LENGTH:
        slug = slug[:MAX_SLUG_LENGTH].rstrip("-")
    return slug or "run"


def generate_run_id(slug: str, now: Optional[datetime] = None) -> str:
    """Build a run id that sorts lexicographically in start order.

    Format: ``YYYYMMDD-HHMMSS-mmm-<slug>``; the millisecond component keeps
    two runs started within the same second distinct.
    """
    now = now or datetime.now()
    millis = now.microsecond // 1000
    return f"{now:%Y%m%d-%H%M%S}-{millis:03d}-{sanitize_slug(slug)}"


def update_latest_link(base_dir: Path, run_id: str) -> None:
    """Point ``latest`` at run_id via a temp symlink and an atomic rename."""
    latest = base_dir / LATEST_LINK
    tmp = base_dir / f"{LATEST_LINK}.tmp"

    if tmp.is_symlink() or tmp.exists():
        tmp.unlink()

    os.symlink(run_id, tmp)
    try:
        os.replace(tmp, latest)
    except OSError:
        tmp.unlink()
        raise


class Run:
    """A single pipeline invocation with its directory and metadata.

    The engine is the only writer. Every mutating method re-persists the
    whole meta.json document; write failures propagate as OSError and the
    engine decides whether they are fatal.

    Attributes:
        id: Run identifier (also the directory name).
        dir: Run directory.
        meta: In-memory metadata, persisted to meta.json.
    """

    def __init__(self, run_id: str, run_dir: Path, meta: RunMeta):
        self.id = run_id
        self.dir = run_dir
        self.meta = meta

    @classmethod
    def create(
        cls,
        mode: str,
        ref: str,
        slug: str,
        git_branch: str = "",
        git_commit: str = "",
        base_dir: Union[str, Path, None] = None,
    ) -> "Run":
        """Provision a run directory, write initial metadata, update ``latest``.

        Raises:
            OSError: If the directory, meta.json or the latest link cannot be written.
        """
        runs_dir = Path(base_dir) if base_dir is not None else DEFAULT_RUNS_DIR
        now = datetime.now(timezone.utc).astimezone()
        run_id = generate_run_id(slug, now)

        runs_dir.mkdir(parents=True, exist_ok=True)
        run_dir = runs_dir / run_id
        run_dir.mkdir(parents=True, exist_ok=True)

        meta = RunMeta(
            started_at=now,
            input_mode=mode,
            input_ref=ref,
            status=RunStatus.RUNNING,
            git_branch=git_branch,
            git_commit=git_commit,
        )
        run = cls(run_id, run_dir, meta)
        run.save_meta()
        update_latest_link(runs_dir, run_id)

        logger.info("Created run", extra={"run_id": run_id, "dir": str(run_dir)})
        return run

    @classmethod
    def load(cls, run_dir: Union[str, Path]) -> "Run":
        """Open an existing run directory for reading."""
        path = Path(run_dir)
        meta = RunMeta.from_json((path / META_FILE).read_text(encoding="utf-8"))
        return cls(path.name, path, meta)

    @property
    def status(self) -> RunStatus:
        return self.meta.status

    def save_meta(self) -> None:
        """Overwrite meta.json with the current metadata."""
        self.file_path(META_FILE).write_text(self.meta.to_json(), encoding="utf-8")

    def add_step_result(self, result: StepResult) -> None:
        """Append a step result, recompute total cost and persist."""
        self.meta.steps.append(result)
        self.meta.total_cost = sum(step.cost for step in self.meta.steps)
        self.save_meta()

    def complete(self) -> None:
        self.meta.status = RunStatus.COMPLETED
        self.save_meta()

    def fail(self, message: str) -> None:
        self.meta.status = RunStatus.FAILED
        self.meta.error = message
        self.save_meta()

    def file_path(self, name: str) -> Path:
        return self.dir / name

    def write_file(self, name: str, content: str) -> None:
        """Write an artifact into the run directory."""
        self.file_path(name).write_text(content, encoding="utf-8")

    def read_file(self, name: str) -> str:
        """Read an artifact from the run directory.

        Raises:
            FileNotFoundError: If the artifact does not exist.
        """
        return self.file_path(name).read_text(encoding="utf-8")
