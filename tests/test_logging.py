#!/usr/bin/env python3
"""
Tests for the scanctl logging system.
"""

import datetime
import json
import logging
import os
import sys
from unittest.mock import patch

import pytest

import scanctl.logging_config
from scanctl.logging_config import (
    API_LOGGER_NAME,
    ROOT_LOGGER_NAME,
    VERBOSE,
    JSONFormatter,
    LoggingConfig,
    StructuredLogger,
    get_api_logger,
    get_logger,
    get_scan_logger,
    setup_logging,
)


class TestLogLevels:
    """Custom VERBOSE level."""

    def test_verbose_level_defined(self):
        assert VERBOSE == 15
        assert logging.getLevelName(VERBOSE) == "VERBOSE"
        assert logging.DEBUG < VERBOSE < logging.INFO

    def test_logger_has_verbose_method(self):
        assert callable(logging.getLogger("scanctl.test").verbose)


class TestJSONFormatter:
    """JSON rendering of records."""

    def setup_method(self):
        self.formatter = JSONFormatter()

    def _record(self, level=logging.INFO, msg="Test message", exc_info=None):
        return logging.LogRecord(
            name="scanctl.test",
            level=level,
            pathname="test.py",
            lineno=42,
            msg=msg,
            args=(),
            exc_info=exc_info,
        )

    def test_basic_formatting(self):
        data = json.loads(self.formatter.format(self._record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "scanctl.test"
        assert data["message"] == "Test message"
        assert data["line"] == 42
        assert "timestamp" in data

    def test_structured_fields_are_merged(self):
        record = self._record(level=VERBOSE, msg="API call completed")
        record.fields = {"function": "submit_prompt", "execution_time_seconds": 2.34}

        data = json.loads(self.formatter.format(record))

        assert data["level"] == "VERBOSE"
        assert data["function"] == "submit_prompt"
        assert data["execution_time_seconds"] == 2.34

    def test_exception_formatting(self):
        try:
            raise ValueError("Test exception")
        except ValueError:
            exc_info = sys.exc_info()

        data = json.loads(self.formatter.format(self._record(logging.ERROR, "Error", exc_info)))

        assert "ValueError: Test exception" in data["exception"]


class TestStructuredLogger:
    """Keyword fields end up on the record."""

    def setup_method(self):
        self.base_logger = logging.getLogger("scanctl.structured")
        self.base_logger.setLevel(logging.DEBUG)
        self.logger = StructuredLogger("structured", self.base_logger)

    def test_verbose_logging(self):
        with patch.object(self.base_logger, 'handle') as mock_handle:
            self.logger.verbose("Batch finished", job_id="abc", batch=2)

        record = mock_handle.call_args[0][0]
        assert record.levelno == VERBOSE
        assert record.fields == {"job_id": "abc", "batch": 2}

    def test_disabled_level_is_not_emitted(self):
        self.base_logger.setLevel(logging.WARNING)

        with patch.object(self.base_logger, 'handle') as mock_handle:
            self.logger.info("Quiet")

        assert not mock_handle.called


class TestLoggingConfig:
    """Handler setup."""

    @pytest.mark.parametrize("level,expected", [
        ("VERBOSE", VERBOSE), ("DEBUG", logging.DEBUG), ("INFO", logging.INFO), ("INVALID", logging.INFO),
    ])
    def test_log_level_handling(self, tmp_path, level, expected):
        assert LoggingConfig(log_dir=tmp_path / "logs", log_level=level).log_level == expected

    def test_log_directory_creation(self, tmp_path):
        LoggingConfig(log_dir=tmp_path / "nested" / "logs")

        assert (tmp_path / "nested" / "logs").is_dir()

    def test_console_level_adjustment(self, tmp_path):
        config = LoggingConfig(log_dir=tmp_path / "logs")

        config.set_console_level("DEBUG")

        console = [h for h in logging.getLogger(ROOT_LOGGER_NAME).handlers
                   if type(h) is logging.StreamHandler]
        assert console[0].level == logging.DEBUG

    def test_api_logger_does_not_propagate(self, tmp_path):
        LoggingConfig(log_dir=tmp_path / "logs")

        assert logging.getLogger(API_LOGGER_NAME).propagate is False


class TestLogFiles:
    """Each stream lands in its own file."""

    def test_main_and_debug_files(self, isolated_logging):
        get_logger("test").info("Main message", answer=42)

        assert "Main message" in (isolated_logging / "scanctl.log").read_text()
        debug_lines = (isolated_logging / "debug.log").read_text().splitlines()
        entry = json.loads(debug_lines[-1])
        assert entry["message"] == "Main message"
        assert entry["answer"] == 42

    def test_api_calls_file(self, isolated_logging):
        get_api_logger().info("API call", function="submit")

        month = datetime.datetime.now().strftime("%Y-%m")
        content = (isolated_logging / f"api-calls-{month}.log").read_text()
        assert json.loads(content.splitlines()[-1])["function"] == "submit"
        assert "API call" not in (isolated_logging / "scanctl.log").read_text()

    def test_scan_file(self, isolated_logging):
        get_scan_logger().info("Scan started for org/repo", job_id="j1")

        day = datetime.datetime.now().strftime("%Y-%m-%d")
        assert "Scan started for org/repo" in (isolated_logging / f"scans-{day}.log").read_text()


class TestGlobalLoggingFunctions:
    """Module-level setup helpers."""

    def test_setup_logging_function(self, tmp_path):
        config = setup_logging(log_dir=tmp_path / "logs", log_level="VERBOSE")

        assert isinstance(config, LoggingConfig)
        assert config.log_level == VERBOSE
        assert config.log_dir == tmp_path / "logs"

    def test_get_logger_is_cached(self):
        assert get_logger("orchestrator") is get_logger("orchestrator")

    def test_cleanup_old_logs(self, tmp_path):
        config = setup_logging(log_dir=tmp_path / "logs")
        stale = tmp_path / "logs" / "old.log"
        stale.write_text("old")
        os.utime(stale, (0, 0))

        assert config.cleanup_old_logs(days=30) == 1
        assert not stale.exists()
        assert scanctl.logging_config.get_log_directory() == tmp_path / "logs"
