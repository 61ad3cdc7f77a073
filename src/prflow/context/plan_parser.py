"""Extraction of file paths from a plan's "Files to Change" section."""

import re
from typing import List, Tuple

_HEADER_PATTERN = re.compile(r"^#{2,3}\s*(.+)$", re.MULTILINE)
_SECTION_PATTERN = re.compile(
    r"^#{2,3}\s*Files\s+to\s+Change\s*$", re.IGNORECASE | re.MULTILINE
)
_SECTION_END_PATTERN = re.compile(r"\n(?:## |### |####)")

# Bullets starting with these are prose, not paths
_PROSE_LEAD_INS = (
    "need to",
    "should",
    "will",
    "can",
    "may",
    "might",
    "could",
    "would",
)


def extract_files_from_plan(plan: str) -> Tuple[List[str], List[str]]:
    """Extract file paths listed under a "Files to Change" heading.

    The section starts at a level-2 or level-3 heading reading "Files to
    Change" (case-insensitive) and ends at the next level-2/3/4 heading.
    Each ``-`` or ``*`` bullet in the section is a candidate; a trailing
    " - description" or a colon-introduced prose suffix is trimmed.

    Args:
        plan: Plan Markdown text.

    Returns:
        Tuple of (file paths in order of appearance, every level-2/3 heading
        text in the plan). The headings help diagnose plans whose section
        was not found.

    Example:
        >>> extract_files_from_plan("## Files to Change\\n- `src/app.py` - entry point\\n")[0]
        ['src/app.py']
    """
    headers = [m.group(1).strip() for m in _HEADER_PATTERN.finditer(plan)]

    match = _SECTION_PATTERN.search(plan)
    if match is None:
        return [], headers

    section = plan[match.end():]
    end = _SECTION_END_PATTERN.search(section)
    if end is not None:
        section = section[: end.start()]

    files: List[str] = []
    for raw_line in section.split("\n"):
        line = raw_line.strip()
        if not line or line[0] not in "-*":
            continue
        candidate = _candidate_from_bullet(line)
        if is_valid_file_path(candidate):
            files.append(candidate)

    return files, headers


def _candidate_from_bullet(line: str) -> str:
    content = line
    if content.startswith("-"):
        content = content[1:]
    if content.startswith("*"):
        content = content[1:]
    content = content.strip().strip("`")

    candidate = content
    dash = content.find(" - ")
    if dash > 0:
        candidate = content[:dash].strip()

    colon = content.find(":")
    if colon > 0:
        after_colon = content[colon + 1:].strip()
        if len(after_colon) > 5 and "/" not in after_colon and "." not in after_colon:
            candidate = content[:colon].strip()

    return candidate.strip("`")


def is_valid_file_path(value: str) -> bool:
    """Return True when a bullet candidate looks like a path, not a sentence."""
    if not value or " " in value:
        return False
    if "." not in value and "/" not in value:
        return False
    lower = value.lower()
    return not lower.startswith(_PROSE_LEAD_INS)
