"""Packaged prompt templates and default pipeline definitions.

Every asset can be overridden per project (``.prflow/<kind>/``) or per user
(``~/.prflow/<kind>/``); the packaged copy is the last fallback.
"""

from importlib import resources
from pathlib import Path
from typing import Dict, List, Optional

PROMPTS_DIR = "prompts"
PIPELINES_DIR = "pipelines"


def _override_dirs(kind: str, project_dir: Optional[Path]) -> List[Path]:
    root = project_dir if project_dir is not None else Path.cwd()
    return [root / ".prflow" / kind, Path.home() / ".prflow" / kind]


def _packaged(kind: str, filename: str) -> Optional[str]:
    resource = resources.files(__name__).joinpath(kind, filename)
    if not resource.is_file():
        return None
    return resource.read_text(encoding="utf-8")


def _load_with_override(
    kind: str, filename: str, project_dir: Optional[Path]
) -> Optional[str]:
    for directory in _override_dirs(kind, project_dir):
        candidate = directory / filename
        if candidate.is_file():
            return candidate.read_text(encoding="utf-8")
    return _packaged(kind, filename)


def load_prompt(name: str, project_dir: Optional[Path] = None) -> Optional[str]:
    """Return a prompt template by name, or None when it does not exist."""
    return _load_with_override(PROMPTS_DIR, f"{name}.md", project_dir)


def load_pipeline_text(name: str, project_dir: Optional[Path] = None) -> Optional[str]:
    """Return pipeline YAML by name, or None when it does not exist."""
    return _load_with_override(PIPELINES_DIR, f"{name}.yaml", project_dir)


def load_all_prompts(project_dir: Optional[Path] = None) -> Dict[str, str]:
    """Return every known prompt template (name -> content), overrides applied."""
    names = set()
    packaged = resources.files(__name__).joinpath(PROMPTS_DIR)
    for entry in packaged.iterdir():
        if entry.name.endswith(".md"):
            names.add(entry.name[: -len(".md")])
    for directory in _override_dirs(PROMPTS_DIR, project_dir):
        if directory.is_dir():
            names.update(p.stem for p in directory.glob("*.md"))

    prompts: Dict[str, str] = {}
    for name in sorted(names):
        content = load_prompt(name, project_dir=project_dir)
        if content is not None:
            prompts[name] = content
    return prompts
