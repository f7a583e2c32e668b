#!/usr/bin/env python3
"""
Tests for the scanctl command line interface.
"""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from scanctl.cli import build_notifiers, cli, format_progress, format_report
from scanctl.config import ScanSettings
from scanctl.models import (
    AnalysisResult, FailureKind, Issue, IssueCounts, JobStatus, ScanJob, Severity
)
from scanctl.aggregator import summarize
from scanctl.notifications import LoggingNotifier, WebhookNotifier
from scanctl.persistence import JsonJobPersistence

from fakes import FakeAnalysisService, analysis_response


class ClosableFakeService(FakeAnalysisService):
    async def close(self):
        pass


def finished_job():
    results = [
        AnalysisResult(file="app.py", language="python", success=True,
                       issues=[Issue(title="Command injection", severity=Severity.HIGH,
                                     raw_severity="High", line=2, file="app.py")],
                       best_practices=["Never pass user input to a shell"]),
        AnalysisResult(file="big.js", language="javascript", success=False,
                       error="File too large", failure_kind=FailureKind.SKIPPED, skipped=True),
    ]
    return ScanJob(id="job_1", repository_id="org/repo", root="org/repo",
                   status=JobStatus.COMPLETED, progress_percent=100,
                   total_files=2, processed_files=2, failed_files=1,
                   issue_counts=IssueCounts(high=1), results=results,
                   summary=summarize(results))


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    """Keep logs, config lookups and keys inside tmp_path."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("GEMINI_API_KEY", "AIza-test-key-1234")
    monkeypatch.delenv("SCANCTL_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestCliBasics:
    """Help and version."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_help_lists_commands(self):
        result = self.runner.invoke(cli, ['--help'])

        assert result.exit_code == 0
        for command in ("scan", "status", "config"):
            assert command in result.output

    def test_version(self):
        result = self.runner.invoke(cli, ['--version'])

        assert result.exit_code == 0
        assert "scanctl" in result.output

    def test_scan_rejects_directory_and_github_together(self, cli_env):
        result = self.runner.invoke(cli, ['scan', str(cli_env), '--github', 'org/repo'])

        assert result.exit_code == 2

    def test_scan_rejects_malformed_github_name(self, cli_env):
        result = self.runner.invoke(cli, ['scan', '--github', 'just-a-name'])

        assert result.exit_code == 2
        assert "OWNER/REPO" in result.output


class TestScanCommand:
    """Local scans with a fake AI service."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_local_scan_writes_report(self, cli_env):
        repo = cli_env / "repo"
        repo.mkdir()
        (repo / "app.py").write_text("import os\nos.system(input())\n")
        (repo / "util.js").write_text("export const x = 1;\n")
        output = cli_env / "report.json"
        service = ClosableFakeService(analysis_response(["High", "Low"], risk_score=60))

        with patch("scanctl.cli.GeminiAnalysisService", return_value=service):
            result = self.runner.invoke(cli, [
                'scan', str(repo), '--output', str(output), '--store', str(cli_env / "jobs"),
            ])

        assert result.exit_code == 0, result.output
        assert "Scan Report" in result.output
        assert service.calls == 2

        report = json.loads(output.read_text())
        assert report["status"] == "completed"
        assert report["issue_counts"] == {"high": 2, "medium": 0, "low": 2}
        assert report["summary"]["risk_score"] == 30
        assert JsonJobPersistence(cli_env / "jobs").list_job_ids() == [report["id"]]


class TestStatusCommand:
    """Reading persisted jobs."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_status_report(self, cli_env):
        JsonJobPersistence(cli_env / "jobs").save(finished_job())

        result = self.runner.invoke(cli, ['status', 'job_1', '--store', str(cli_env / "jobs")])

        assert result.exit_code == 0
        assert "org/repo" in result.output
        assert "Command injection" in result.output

    def test_status_json(self, cli_env):
        JsonJobPersistence(cli_env / "jobs").save(finished_job())

        result = self.runner.invoke(cli, ['status', 'job_1', '--json', '--store', str(cli_env / "jobs")])

        assert result.exit_code == 0
        assert json.loads(result.output)["status"] == "completed"

    def test_unknown_job(self, cli_env):
        result = self.runner.invoke(cli, ['status', 'missing', '--store', str(cli_env / "jobs")])

        assert result.exit_code == 1
        assert "No job missing" in result.output


class TestConfigCommands:
    """Key management."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_set_key(self, cli_env):
        with patch("scanctl.cli.store_api_key") as mock_store:
            result = self.runner.invoke(cli, ['config', 'set-key', 'gemini', '--key', 'AIza-new-key-9876'])

        assert result.exit_code == 0
        mock_store.assert_called_once_with("gemini", "AIza-new-key-9876")
        assert "AIza...9876" in result.output

    def test_show(self, cli_env, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)

        with patch("scanctl.credentials.keyring") as mock_keyring:
            mock_keyring.get_password.return_value = None
            result = self.runner.invoke(cli, ['config', 'show'])

        assert result.exit_code == 0
        assert "Gemini key: AIza...1234" in result.output
        assert "Github key: Not set" in result.output
        assert "Model: gemini-2.0-flash" in result.output

    def test_clear_with_nothing_stored(self, cli_env):
        with patch("scanctl.cli.clear_api_key", return_value=False):
            result = self.runner.invoke(cli, ['config', 'clear', 'gemini', '--force'])

        assert result.exit_code == 0
        assert "No stored Gemini key found." in result.output


class TestNotifierWiring:
    """Which notifiers a CLI run gets."""

    def test_logging_only_by_default(self):
        notifiers = build_notifiers(ScanSettings())

        assert [type(n) for n in notifiers] == [LoggingNotifier]

    @pytest.mark.asyncio
    async def test_webhook_added_when_configured(self):
        notifiers = build_notifiers(ScanSettings(webhook_url="https://hooks.example.com/scan"))

        assert [type(n) for n in notifiers] == [LoggingNotifier, WebhookNotifier]
        assert notifiers[1].url == "https://hooks.example.com/scan"
        await notifiers[1].close()


class TestFormatting:
    """Console rendering helpers."""

    def test_format_progress(self):
        job = ScanJob(id="j", repository_id="r", root="r", status=JobStatus.PROCESSING,
                      total_files=4, processed_files=1, progress_percent=25)

        assert format_progress(None) == "Waiting for scan to start..."
        assert format_progress(job) == "Analyzing files: 1/4 (25%) - 0 failed"

    def test_format_report(self):
        report = format_report(finished_job())

        assert "Command injection" in report
        assert "app.py:2" in report
        assert "big.js: skipped - File too large" in report
        assert "Never pass user input to a shell" in report
