"""Resolution of step input specifiers into text.

Inputs are either virtual (``git:diff``, ``project:context``), served from
values computed once before the pipeline starts, or filenames looked up in
the run directory first and the working directory second.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, Optional

from prflow.context.plan_parser import extract_files_from_plan
from prflow.errors import InputNotFoundError
from prflow.project.scanner import filter_project_context

logger = logging.getLogger(__name__)

GIT_DIFF_INPUT = "git:diff"
PROJECT_CONTEXT_INPUT = "project:context"
PLAN_FILE = "PLAN.md"
TICKET_FILE = "TICKET.md"
PR_BODY_FILE = "PR.md"
DEFAULT_REVISION_STEP = "Revise"


class ContextResolver:
    """Maps a step's input names to text consumed by executors.

    Attributes:
        run_dir: Directory of the active run; searched first for files.
        project_context: Pre-aggregated project context document.
        git_diff: Pre-computed working-tree diff.
        work_dir: Fallback directory for files; defaults to the process cwd.
        revision_step: Name of the step whose project context is narrowed
            to the files listed in the plan.
    """

    def __init__(
        self,
        run_dir: Path,
        project_context: str = "",
        git_diff: str = "",
        work_dir: Optional[Path] = None,
        revision_step: str = DEFAULT_REVISION_STEP,
    ):
        self.run_dir = Path(run_dir)
        self.project_context = project_context
        self.git_diff = git_diff
        self.work_dir = work_dir
        self.revision_step = revision_step

    def resolve_input(
        self,
        names: Iterable[str],
        step_name: Optional[str] = None,
    ) -> Dict[str, str]:
        """Resolve each input specifier to its content.

        Args:
            names: Input specifiers declared by the step.
            step_name: Name of the owning step, used to detect the revision step.

        Returns:
            Input name -> content.

        Raises:
            InputNotFoundError: If a file is in neither the run dir nor the
                working dir.
        """
        files: Dict[str, str] = {}
        for name in names:
            if name == GIT_DIFF_INPUT:
                files[name] = self.git_diff
            elif name == PROJECT_CONTEXT_INPUT:
                files[name] = self.project_context
            else:
                files[name] = self._read_file(name)

        if self._is_revision_step(step_name):
            self._narrow_project_context(files)

        return files

    def _read_file(self, name: str) -> str:
        work_dir = self.work_dir if self.work_dir is not None else Path.cwd()
        for candidate in (self.run_dir / name, work_dir / name):
            if candidate.is_file():
                try:
                    return candidate.read_text(encoding="utf-8", errors="replace")
                except OSError:
                    logger.debug(
                        "Could not read input candidate",
                        extra={"path": str(candidate)},
                    )
        raise InputNotFoundError(name)

    def _is_revision_step(self, step_name: Optional[str]) -> bool:
        if not step_name or not self.revision_step:
            return False
        return step_name.strip().lower() == self.revision_step.strip().lower()

    def _narrow_project_context(self, files: Dict[str, str]) -> None:
        """Filter project:context down to the files the plan says will change."""
        plan = files.get(PLAN_FILE)
        context = files.get(PROJECT_CONTEXT_INPUT)
        if not plan or not context:
            return

        plan_files, headers = extract_files_from_plan(plan)
        if not plan_files:
            logger.info(
                "No files found in plan, using full project context",
                extra={"plan_headers": headers},
            )
            return

        narrowed = filter_project_context(context, plan_files)
        files[PROJECT_CONTEXT_INPUT] = narrowed
        logger.info(
            "Filtered project context to plan files",
            extra={
                "plan_files": plan_files,
                "original_chars": len(context),
                "filtered_chars": len(narrowed),
            },
        )


def build_ticket_content(title: str, body: str) -> str:
    """Render the normalized ticket written to TICKET.md."""
    return f"# {title}\n\n{body}\n"
