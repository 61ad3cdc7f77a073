"""Unit tests for layered configuration loading."""

import logging

import pytest

from prflow.config import (
    PrflowSettings,
    load_settings,
    parse_size,
    redact_secret,
)
from prflow.errors import ConfigurationError


@pytest.fixture
def home(tmp_path, monkeypatch):
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    for key in ("PRFLOW_MAX_CONTEXT_TOKENS", "PRFLOW_ROLES__PLANNER", "PRFLOW_LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    return home_dir


@pytest.fixture
def project(tmp_path):
    project_dir = tmp_path / "project"
    (project_dir / ".prflow").mkdir(parents=True)
    return project_dir


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


class TestDefaults:

    def test_defaults_without_files(self, home, project):
        settings = load_settings(project)

        assert settings.default_pipeline == "default"
        assert settings.max_context_tokens == 80000
        assert settings.provider.endpoint == "https://openrouter.ai/api/v1"
        assert settings.executors.agent.command == "claude"
        assert settings.executors.agent.timeout_seconds == 1800
        assert settings.provider.api_timeout_seconds == 300
        assert settings.revision_step == "Revise"


class TestLayering:

    def test_project_overrides_user(self, home, project):
        _write(home / ".prflow" / "config.yaml", "roles:\n  planner: user/model\n  reviewer: user/rev\n")
        _write(project / ".prflow" / "config.yaml", "roles:\n  planner: project/model\n")

        settings = load_settings(project)

        assert settings.roles.planner == "project/model"
        # deep merge keeps keys the project layer does not name
        assert settings.roles.reviewer == "user/rev"

    def test_environment_overrides_files(self, home, project, monkeypatch):
        _write(project / ".prflow" / "config.yaml", "max_context_tokens: 1000\n")
        monkeypatch.setenv("PRFLOW_MAX_CONTEXT_TOKENS", "2000")
        monkeypatch.setenv("PRFLOW_ROLES__PLANNER", "env/model")

        settings = load_settings(project)

        assert settings.max_context_tokens == 2000
        assert settings.roles.planner == "env/model"

    def test_empty_file_is_ignored(self, home, project):
        _write(project / ".prflow" / "config.yaml", "")

        assert load_settings(project).default_pipeline == "default"


class TestValidation:

    def test_deprecated_github_token_rejected(self, home, project):
        _write(project / ".prflow" / "config.yaml", "github:\n  token: ghp_abc\n")

        with pytest.raises(ConfigurationError, match="github.token"):
            load_settings(project)

    def test_deprecated_top_level_token_rejected(self, home, project):
        _write(project / ".prflow" / "config.yaml", "github_token: ghp_abc\n")

        with pytest.raises(ConfigurationError, match="github_token"):
            load_settings(project)

    def test_malformed_yaml_rejected(self, home, project):
        _write(project / ".prflow" / "config.yaml", "roles: [unclosed\n")

        with pytest.raises(ConfigurationError):
            load_settings(project)

    def test_non_mapping_rejected(self, home, project):
        _write(project / ".prflow" / "config.yaml", "- a\n- b\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_settings(project)

    def test_invalid_endpoint_rejected(self, home, project):
        _write(project / ".prflow" / "config.yaml", "provider:\n  endpoint: ftp://nope\n")

        with pytest.raises(ConfigurationError, match="invalid config"):
            load_settings(project)

    def test_negative_budget_rejected(self, home, project):
        _write(project / ".prflow" / "config.yaml", "max_context_tokens: -1\n")

        with pytest.raises(ConfigurationError):
            load_settings(project)


class TestHelpers:

    @pytest.mark.parametrize(
        "value, expected",
        [("", 50 * 1024), ("50KB", 50 * 1024), ("1MB", 1024 * 1024), ("123", 123)],
    )
    def test_parse_size(self, value, expected):
        assert parse_size(value) == expected

    def test_parse_size_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_size("lots")

    def test_redact_secret(self):
        assert redact_secret("sk-or-123456") == "sk-o********"
        assert redact_secret("abc") == "***"

    def test_api_key_from_configured_env_var(self, monkeypatch):
        monkeypatch.setenv("MY_KEY", "secret")
        settings = PrflowSettings(provider={"api_key_env": "MY_KEY"})

        assert settings.api_key() == "secret"

    def test_logging_level(self):
        assert PrflowSettings(log_level="WARN").logging_level() == logging.WARNING
        assert PrflowSettings(log_level="debug").logging_level() == logging.DEBUG
