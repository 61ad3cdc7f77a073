"""Project file scanning for the project:context virtual input.

Walks the working tree, collects files matching the configured include
patterns (skipping excluded and hidden directories and oversized files) and
renders them as one Markdown document:

    ## Project Context

    ### path/to/file.py

    ```
    <content>
    ```
"""

import fnmatch
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from prflow.config import ProjectContextSettings

logger = logging.getLogger(__name__)

CONTEXT_HEADING = "## Project Context"
_FILE_HEADING_PREFIX = "### "
_FENCE = "```"


@dataclass
class ProjectFile:
    path: str
    content: str


def _is_excluded(rel_path: str, patterns: Sequence[str]) -> bool:
    for pattern in patterns:
        if rel_path.startswith(pattern) or ("/" + pattern) in "/" + rel_path:
            return True
    return False


def scan_project(
    settings: ProjectContextSettings,
    root: Optional[Path] = None,
) -> List[ProjectFile]:
    """Collect project files matching the configured patterns.

    Files are visited in sorted order so the result is stable across
    platforms. Unreadable files and files larger than ``max_file_size`` are
    skipped. Scanning stops once ``max_files`` files are collected.

    Args:
        settings: Include/exclude patterns and limits.
        root: Directory to scan; defaults to the working directory.

    Returns:
        Collected files with paths relative to root, using "/" separators.
    """
    base = root if root is not None else Path.cwd()
    max_size = settings.max_file_size_bytes
    entries: List[ProjectFile] = []

    for dirpath, dirnames, filenames in os.walk(base):
        rel_dir = Path(dirpath).relative_to(base).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir + "/"

        dirnames[:] = sorted(
            d
            for d in dirnames
            if not d.startswith(".")
            and not _is_excluded(rel_dir + d + "/", settings.exclude_patterns)
        )

        for filename in sorted(filenames):
            rel_path = rel_dir + filename
            if _is_excluded(rel_path, settings.exclude_patterns):
                continue
            if not any(
                fnmatch.fnmatch(filename, pattern)
                for pattern in settings.include_patterns
            ):
                continue

            full_path = Path(dirpath) / filename
            try:
                if full_path.stat().st_size > max_size:
                    continue
                content = full_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue

            entries.append(ProjectFile(path=rel_path, content=content))
            if len(entries) >= settings.max_files:
                logger.debug(
                    "Project scan reached file limit",
                    extra={"max_files": settings.max_files},
                )
                return entries

    return entries


def format_project_context(entries: Iterable[ProjectFile]) -> str:
    """Render scanned files as the project:context Markdown document."""
    entries = list(entries)
    if not entries:
        return ""
    parts = [f"{CONTEXT_HEADING}\n\n"]
    for entry in entries:
        parts.append(
            f"{_FILE_HEADING_PREFIX}{entry.path}\n\n"
            f"{_FENCE}\n{entry.content}\n{_FENCE}\n\n"
        )
    return "".join(parts)


def split_project_context(context: str) -> Tuple[str, List[Tuple[str, str]]]:
    """Split a project:context document into its preamble and per-file sections.

    File headings inside fenced blocks are ignored.

    Returns:
        Tuple of (preamble text, list of (path, section text)).
    """
    preamble: List[str] = []
    sections: List[Tuple[str, List[str]]] = []
    in_fence = False

    for line in context.splitlines(keepends=True):
        stripped = line.rstrip("\n")
        if stripped.startswith(_FENCE):
            in_fence = not in_fence
        elif not in_fence and stripped.startswith(_FILE_HEADING_PREFIX):
            path = stripped[len(_FILE_HEADING_PREFIX):].strip()
            sections.append((path, [line]))
            continue

        if sections:
            sections[-1][1].append(line)
        else:
            preamble.append(line)

    return "".join(preamble), [(path, "".join(lines)) for path, lines in sections]


def _normalize_path(path: str) -> str:
    path = path.strip().replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


def filter_project_context(context: str, paths: Sequence[str]) -> str:
    """Keep only the sections of a project:context document for the given paths.

    Returns the context unchanged when no section matches, so a plan that
    names only new files still sees the full project.
    """
    wanted = {_normalize_path(p) for p in paths}
    preamble, sections = split_project_context(context)
    kept = [text for path, text in sections if _normalize_path(path) in wanted]
    if not kept:
        return context
    return preamble + "".join(kept)
