#!/usr/bin/env python3
"""
Tests for settings loading from YAML and the environment.
"""

import textwrap

import pytest

from scanctl.config import DEFAULT_SKIP_DIRECTORIES, ScanSettings, load_settings
from scanctl.errors import ConfigError


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No stray SCANCTL_* variables and no config files outside tmp_path."""
    for name in ("SCANCTL_CONFIG", "SCANCTL_BATCH_SIZE", "SCANCTL_REQUESTS_PER_MINUTE",
                 "SCANCTL_SKIP_DIRECTORIES", "SCANCTL_DUPLICATE_POLICY", "SCANCTL_MAX_RETRIES",
                 "SCANCTL_WEBHOOK_URL", "GEMINI_MODEL", "SCANCTL_MODEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    return tmp_path


def write_config(path, text):
    path.write_text(textwrap.dedent(text))
    return path


class TestDefaults:
    """Settings with nothing configured."""

    def test_defaults(self, clean_env):
        settings = load_settings(use_env=False)

        assert settings.rate_limits.requests_per_minute == 15
        assert settings.rate_limits.requests_per_day == 1500
        assert settings.rate_limits.cooldown_seconds == 60.0
        assert settings.retry.max_retries == 3
        assert settings.retry.initial_backoff_ms == 500
        assert settings.retry.backoff_multiplier == 1.5
        assert settings.batching.batch_size == 5
        assert settings.batching.batch_delay_ms == 4000
        assert settings.max_file_size == 100000
        assert settings.skip_directories == DEFAULT_SKIP_DIRECTORIES
        assert settings.coalesce_duplicates is False
        assert settings.webhook_url == ""

    def test_default_lists_are_not_shared(self):
        first, second = ScanSettings(), ScanSettings()
        first.skip_directories.append("target")

        assert "target" not in second.skip_directories


class TestYamlConfig:
    """Values from a config file."""

    def test_explicit_file(self, clean_env):
        path = write_config(clean_env / "custom.yaml", """
            rate_limits:
              requests_per_minute: 30
              cooldown_seconds: 90
            batching:
              batch_size: 10
              delay_between_batches_ms: 1000
            scan:
              skip_directories: [node_modules, target]
            jobs:
              duplicate_policy: coalesce
            ai:
              model: gemini-1.5-pro
            notifications:
              webhook_url: https://hooks.example.com/scan
        """)

        settings = load_settings(path, use_env=False)

        assert settings.rate_limits.requests_per_minute == 30
        assert settings.rate_limits.cooldown_seconds == 90.0
        assert settings.batching.batch_size == 10
        assert settings.batching.batch_delay_ms == 1000
        assert settings.skip_directories == ["node_modules", "target"]
        assert settings.coalesce_duplicates is True
        assert settings.model == "gemini-1.5-pro"
        assert settings.webhook_url == "https://hooks.example.com/scan"
        # Untouched sections keep their defaults
        assert settings.retry.max_retries == 3

    def test_file_in_working_directory_is_found(self, clean_env):
        write_config(clean_env / "scanctl.yaml", """
            retry:
              max_retries: 5
        """)

        assert load_settings(use_env=False).retry.max_retries == 5

    def test_missing_explicit_file(self, clean_env):
        with pytest.raises(ConfigError):
            load_settings(clean_env / "nope.yaml")

    def test_invalid_values_keep_defaults(self, clean_env):
        path = write_config(clean_env / "bad.yaml", """
            rate_limits:
              requests_per_minute: lots
            batching:
              batch_size: 0
            jobs:
              duplicate_policy: merge
        """)

        settings = load_settings(path, use_env=False)

        assert settings.rate_limits.requests_per_minute == 15
        assert settings.batching.batch_size == 1
        assert settings.duplicate_policy == "reject"

    def test_malformed_yaml_is_ignored(self, clean_env):
        path = write_config(clean_env / "broken.yaml", "rate_limits: [unclosed\n")

        assert load_settings(path, use_env=False).rate_limits.requests_per_minute == 15


class TestEnvironmentOverrides:
    """SCANCTL_* variables win over the file."""

    def test_env_overrides_yaml(self, clean_env, monkeypatch):
        path = write_config(clean_env / "custom.yaml", """
            batching:
              batch_size: 10
        """)
        monkeypatch.setenv("SCANCTL_BATCH_SIZE", "3")
        monkeypatch.setenv("SCANCTL_SKIP_DIRECTORIES", "node_modules, .venv")
        monkeypatch.setenv("GEMINI_MODEL", "gemini-exp")
        monkeypatch.setenv("SCANCTL_WEBHOOK_URL", "https://hooks.example.com/env")

        settings = load_settings(path)

        assert settings.batching.batch_size == 3
        assert settings.skip_directories == ["node_modules", ".venv"]
        assert settings.model == "gemini-exp"
        assert settings.webhook_url == "https://hooks.example.com/env"

    def test_env_ignored_when_disabled(self, clean_env, monkeypatch):
        monkeypatch.setenv("SCANCTL_REQUESTS_PER_MINUTE", "99")

        assert load_settings(use_env=False).rate_limits.requests_per_minute == 15
