"""Project collaborators: git state and project file scanning."""

from prflow.project.git import (
    GitError,
    GitInfo,
    collect_git_info,
    git_diff,
    git_remote_url,
)
from prflow.project.scanner import (
    ProjectFile,
    filter_project_context,
    format_project_context,
    scan_project,
)

__all__ = [
    "GitError",
    "GitInfo",
    "ProjectFile",
    "collect_git_info",
    "filter_project_context",
    "format_project_context",
    "git_diff",
    "git_remote_url",
    "scan_project",
]
