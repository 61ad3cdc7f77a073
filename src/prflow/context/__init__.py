"""Step input resolution and token budgeting.

This package turns a step's declared inputs into text:
- Virtual inputs (git:diff, project:context) and file lookup
- Plan-driven narrowing of project context for the revision step
- Four-chars-per-token truncation for API-bound steps
"""

from prflow.context.budget import TRUNCATION_MARKER, truncate_to_token_budget
from prflow.context.plan_parser import extract_files_from_plan, is_valid_file_path
from prflow.context.resolver import (
    GIT_DIFF_INPUT,
    PROJECT_CONTEXT_INPUT,
    ContextResolver,
    build_ticket_content,
)

__all__ = [
    "GIT_DIFF_INPUT",
    "PROJECT_CONTEXT_INPUT",
    "TRUNCATION_MARKER",
    "ContextResolver",
    "build_ticket_content",
    "extract_files_from_plan",
    "is_valid_file_path",
    "truncate_to_token_budget",
]
