"""Pipeline input sources.

A source fetches a ticket from somewhere and normalizes it into a
SourceInput:
- SpecSource ("do"): a local Markdown spec file
- PromptSource ("ask"): free text given on the command line
- GitHubIssueSource ("pick"): an issue fetched through the GitHub API
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from prflow.errors import PrflowError
from prflow.github.client import GitHubClient

logger = logging.getLogger(__name__)

MAX_SLUG_LENGTH = 40
PROMPT_TITLE_LENGTH = 50

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


class SourceError(PrflowError):
    """Raised when a source cannot be read."""


@dataclass
class SourceInput:
    """Normalized pipeline input.

    Attributes:
        title: Ticket title.
        body: Ticket body.
        slug: Short identifier used in the run id.
        mode: "do", "ask" or "pick".
        ref: Spec path, issue number or "user-prompt".
    """

    title: str
    body: str
    slug: str
    mode: str
    ref: str


def slug_from_title(title: str, default: str = "issue") -> str:
    """Lower-case a title into a hyphenated slug of at most 40 characters."""
    slug = _NON_ALNUM.sub("-", title.lower()).strip("-")
    if len(slug) > MAX_SLUG_LENGTH:
        slug = slug[:MAX_SLUG_LENGTH].rstrip("-")
    return slug or default


def extract_title(content: str) -> str:
    """Return the first non-empty line with leading ``#`` removed."""
    for line in content.splitlines():
        line = line.strip().lstrip("#").strip()
        if line:
            return line
    return "spec"


class SpecSource:
    """Reads a local spec file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    async def fetch(self) -> SourceInput:
        try:
            content = self.path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise SourceError(f"reading spec file {self.path}: {exc}") from exc

        title = extract_title(content)
        slug = slug_from_title(title, default="")
        if not slug:
            slug = slug_from_title(self.path.stem)

        return SourceInput(
            title=title,
            body=content,
            slug=slug,
            mode="do",
            ref=str(self.path),
        )


class PromptSource:
    """Uses a user-provided message as the ticket."""

    def __init__(self, prompt: str):
        self.prompt = prompt

    async def fetch(self) -> SourceInput:
        title = self.prompt
        if len(title) > PROMPT_TITLE_LENGTH:
            title = title[:PROMPT_TITLE_LENGTH] + "..."
        return SourceInput(
            title=title,
            body=self.prompt,
            slug=slug_from_title(self.prompt),
            mode="ask",
            ref="user-prompt",
        )


class GitHubIssueSource:
    """Fetches a GitHub issue.

    Attributes:
        number: Issue number.
        owner: Repository owner.
        repo: Repository name.
        client: GitHub API client.
    """

    def __init__(self, number: int, owner: str, repo: str, client: GitHubClient):
        self.number = number
        self.owner = owner
        self.repo = repo
        self.client = client

    async def fetch(self) -> SourceInput:
        issue = await self.client.get_issue(self.owner, self.repo, self.number)
        logger.info(
            "Fetched issue",
            extra={"issue_number": issue.number, "title": issue.title},
        )
        return SourceInput(
            title=issue.title,
            body=issue.body,
            slug=f"{self.number}-{slug_from_title(issue.title)}",
            mode="pick",
            ref=str(self.number),
        )
