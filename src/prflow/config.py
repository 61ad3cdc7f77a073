"""prflow configuration using pydantic-settings.

Configuration is layered, lowest priority first:

1. Built-in defaults declared on the settings models below
2. User-level file ``~/.prflow/config.yaml``
3. Project-level file ``.prflow/config.yaml``
4. Environment variables prefixed with PRFLOW_ (nested keys use ``__``,
   e.g. PRFLOW_ROLES__PLANNER)

YAML layers are deep-merged so a project file only needs to name the keys it
overrides. The resulting settings are treated as validated input by the engine.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Type

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from prflow.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".prflow"
CONFIG_FILE_NAME = "config.yaml"

_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*(KB|MB)?\s*$")

_DEPRECATED_TOKEN_MESSAGE = (
    "configuration field {field!r} is no longer supported. Please remove it "
    "from {path} and authenticate via `gh auth login` (or set GH_TOKEN in CI)."
)


def parse_size(value: str) -> int:
    """Parse a human size string such as ``50KB`` or ``1MB`` into bytes.

    An empty string yields the 50KB default.

    Raises:
        ValueError: If the value is not a number with an optional KB/MB suffix.
    """
    if not value or not value.strip():
        return 50 * 1024
    match = _SIZE_PATTERN.match(value)
    if match is None:
        raise ValueError(f"invalid size {value!r}")
    number = int(match.group(1))
    unit = match.group(2)
    if unit == "KB":
        return number * 1024
    if unit == "MB":
        return number * 1024 * 1024
    return number


class ProviderSettings(BaseModel):
    """OpenAI-compatible chat completion provider."""

    # Base URL; "/chat/completions" is appended by the client
    endpoint: str = "https://openrouter.ai/api/v1"

    # Name of the environment variable holding the API key
    api_key_env: str = "OPENROUTER_API_KEY"

    # Request timeout for a single completion call
    api_timeout_seconds: float = 300.0

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Validate that the endpoint is an http(s) URL."""
        if not v or not v.strip():
            raise ValueError("provider.endpoint is required")
        if not v.startswith(("http://", "https://")):
            raise ValueError("provider.endpoint must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("api_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("provider.api_timeout_seconds must be positive")
        return v


class RoleSettings(BaseModel):
    """Model identifiers substituted for $planner, $reviewer, $editor, $auditor."""

    planner: str = "anthropic/claude-opus-4-6"
    reviewer: str = "deepseek/deepseek-r1"
    editor: str = "z-ai/glm-5"
    auditor: str = "openai/gpt-5.2-codex"


class AgentExecutorSettings(BaseModel):
    """Delegated coding-agent CLI."""

    command: str = "claude"
    timeout_seconds: int = 1800
    # Appended after the flags the executor always builds
    extra_args: List[str] = Field(default_factory=list)

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if v < 1:
            raise ValueError("executors.agent.timeout_seconds must be at least 1")
        return v


class ShellExecutorSettings(BaseModel):
    """Shell command executor."""

    # Working directory for commands; empty means the process working directory
    work_dir: str = ""
    # None means commands run to completion
    timeout_seconds: Optional[int] = None


class ExecutorsSettings(BaseModel):
    agent: AgentExecutorSettings = Field(default_factory=AgentExecutorSettings)
    shell: ShellExecutorSettings = Field(default_factory=ShellExecutorSettings)


class GitHubSettings(BaseModel):
    default_repo: str = ""
    base_branch: str = "main"
    host: str = "github.com"
    api_url: str = "https://api.github.com"


class ProjectContextSettings(BaseModel):
    """Limits for the project files aggregated into project:context."""

    max_files: int = 20
    max_file_size: str = "50KB"
    include_patterns: List[str] = Field(
        default_factory=lambda: ["*.go", "*.rs", "*.ts", "*.py", "*.md"]
    )
    exclude_patterns: List[str] = Field(
        default_factory=lambda: ["vendor/", "node_modules/", ".git/", ".prflow/"]
    )

    @field_validator("max_file_size")
    @classmethod
    def validate_max_file_size(cls, v: str) -> str:
        parse_size(v)
        return v

    @field_validator("max_files")
    @classmethod
    def validate_max_files(cls, v: int) -> int:
        if v < 1:
            raise ValueError("project_context.max_files must be at least 1")
        return v

    @property
    def max_file_size_bytes(self) -> int:
        return parse_size(self.max_file_size)


class PrflowSettings(BaseSettings):
    """Top-level prflow configuration.

    Environment variables take precedence over values passed to the
    constructor, which is how the merged YAML layers are supplied.
    """

    model_config = SettingsConfigDict(
        env_prefix="PRFLOW_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    default_pipeline: str = "default"
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    roles: RoleSettings = Field(default_factory=RoleSettings)
    executors: ExecutorsSettings = Field(default_factory=ExecutorsSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    project_context: ProjectContextSettings = Field(
        default_factory=ProjectContextSettings
    )

    # Approximate ceiling (4 chars/token) on input submitted to API steps; 0 disables
    max_context_tokens: int = 80000

    # Step whose project:context input is filtered down to the plan's files
    revision_step: str = "Revise"

    log_level: str = "info"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @field_validator("default_pipeline")
    @classmethod
    def validate_default_pipeline(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("default_pipeline is required")
        return v

    @field_validator("max_context_tokens")
    @classmethod
    def validate_max_context_tokens(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_context_tokens must not be negative")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().lower()
        if level not in {"debug", "info", "warn", "warning", "error"}:
            raise ValueError(f"unsupported log_level {v!r}")
        return level

    def api_key(self) -> str:
        """Return the provider API key from the configured environment variable."""
        return os.environ.get(self.provider.api_key_env or "OPENROUTER_API_KEY", "")

    def logging_level(self) -> int:
        """Translate log_level into a logging module level."""
        return {
            "debug": logging.DEBUG,
            "info": logging.INFO,
            "warn": logging.WARNING,
            "warning": logging.WARNING,
            "error": logging.ERROR,
        }[self.log_level]


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_config_file(path: Path) -> Dict[str, Any]:
    """Read one YAML config layer, rejecting deprecated token fields.

    Returns an empty dict when the file does not exist.

    Raises:
        ConfigurationError: If the file is malformed or uses removed fields.
    """
    if not path.is_file():
        return {}

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"parsing {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top-level YAML value must be a mapping")

    github = data.get("github")
    if isinstance(github, dict) and "token" in github:
        raise ConfigurationError(
            _DEPRECATED_TOKEN_MESSAGE.format(field="github.token", path=path)
        )
    if "github_token" in data:
        raise ConfigurationError(
            _DEPRECATED_TOKEN_MESSAGE.format(field="github_token", path=path)
        )
    return data


def config_paths(project_dir: Optional[Path] = None) -> List[Path]:
    """Return config file locations, lowest priority first."""
    paths = []
    home = Path.home()
    paths.append(home / CONFIG_DIR_NAME / CONFIG_FILE_NAME)
    root = project_dir if project_dir is not None else Path.cwd()
    paths.append(root / CONFIG_DIR_NAME / CONFIG_FILE_NAME)
    return paths


def load_settings(project_dir: Optional[Path] = None) -> PrflowSettings:
    """Load settings from defaults, user and project YAML, then environment.

    Raises:
        ConfigurationError: If a config file is malformed or a value is invalid.
    """
    merged: Dict[str, Any] = {}
    for path in config_paths(project_dir):
        layer = _read_config_file(path)
        if layer:
            logger.debug("Loaded config layer", extra={"path": str(path)})
        merged = _deep_merge(merged, layer)

    try:
        return PrflowSettings(**merged)
    except ValueError as exc:
        raise ConfigurationError(f"invalid config: {exc}") from exc


def redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def log_configuration(settings: PrflowSettings) -> None:
    """Log effective configuration values with secrets redacted."""
    logger.info("prflow configuration:")
    logger.info(f"  Default Pipeline: {settings.default_pipeline}")
    logger.info(f"  Provider Endpoint: {settings.provider.endpoint}")
    logger.info(f"  API Key: {redact_secret(settings.api_key())}")
    logger.info(f"  Planner: {settings.roles.planner}")
    logger.info(f"  Reviewer: {settings.roles.reviewer}")
    logger.info(f"  Editor: {settings.roles.editor}")
    logger.info(f"  Agent Command: {settings.executors.agent.command}")
    logger.info(f"  Agent Timeout Seconds: {settings.executors.agent.timeout_seconds}")
    logger.info(f"  Max Context Tokens: {settings.max_context_tokens}")
