#!/usr/bin/env python3
"""
Centralized logging configuration for scanctl.

Three streams are kept apart: the main application log, a JSON log of every
call made against the AI service (``scanctl.api``), and a per-day log of scan
lifecycle events (``scanctl.scan``).
"""

import json
import logging
import logging.handlers
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

# Custom VERBOSE level between DEBUG (10) and INFO (20)
VERBOSE = 15
logging.addLevelName(VERBOSE, "VERBOSE")


def verbose(self, message, *args, **kwargs):
    """Log with VERBOSE level."""
    if self.isEnabledFor(VERBOSE):
        self._log(VERBOSE, message, args, **kwargs)


logging.Logger.verbose = verbose

ROOT_LOGGER_NAME = "scanctl"
API_LOGGER_NAME = "scanctl.api"
SCAN_LOGGER_NAME = "scanctl.scan"


class JSONFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        fields = getattr(record, 'fields', None)
        if fields:
            entry.update(fields)

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class StructuredLogger:
    """Logger wrapper that takes structured fields as keyword arguments.

    Example:
        log = get_logger("orchestrator")
        log.info("Batch finished", job_id=job.id, batch=3)
    """

    def __init__(self, name: str, base_logger: logging.Logger):
        self.name = name
        self.logger = base_logger

    def debug(self, message: str, **fields):
        self._log(logging.DEBUG, message, fields)

    def verbose(self, message: str, **fields):
        self._log(VERBOSE, message, fields)

    def info(self, message: str, **fields):
        self._log(logging.INFO, message, fields)

    def warning(self, message: str, **fields):
        self._log(logging.WARNING, message, fields)

    def error(self, message: str, **fields):
        self._log(logging.ERROR, message, fields)

    def critical(self, message: str, **fields):
        self._log(logging.CRITICAL, message, fields)

    def _log(self, level: int, message: str, fields: Dict[str, Any]):
        if not self.logger.isEnabledFor(level):
            return
        # stacklevel=3 attributes the record to the caller of info()/error()
        self.logger.log(level, message, extra={'fields': fields}, stacklevel=3)


class LoggingConfig:
    """Handler setup for the scanctl logger tree."""

    def __init__(self, log_dir: Optional[Path] = None, log_level: str = "INFO"):
        self.log_dir = Path(log_dir) if log_dir else Path.home() / ".scanctl" / "logs"

        if log_level.upper() == "VERBOSE":
            self.log_level = VERBOSE
        else:
            self.log_level = getattr(logging, log_level.upper(), logging.INFO)

        self.loggers: Dict[str, StructuredLogger] = {}
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._setup_loggers()

    def _setup_loggers(self):
        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        root_logger.setLevel(self.log_level)
        root_logger.handlers.clear()

        # Console only shows warnings unless verbose output is requested
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
        root_logger.addHandler(console_handler)

        main_handler = logging.handlers.RotatingFileHandler(
            self.log_dir / "scanctl.log", maxBytes=10 * 1024 * 1024, backupCount=5
        )
        main_handler.setLevel(self.log_level)
        main_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
        ))
        root_logger.addHandler(main_handler)

        debug_handler = logging.handlers.RotatingFileHandler(
            self.log_dir / "debug.log", maxBytes=50 * 1024 * 1024, backupCount=3
        )
        debug_handler.setLevel(logging.DEBUG)
        debug_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(debug_handler)

        # AI service traffic goes to its own monthly file and nowhere else
        api_handler = logging.handlers.RotatingFileHandler(
            self.log_dir / f"api-calls-{datetime.now().strftime('%Y-%m')}.log",
            maxBytes=20 * 1024 * 1024, backupCount=10
        )
        api_handler.setLevel(logging.DEBUG)
        api_handler.setFormatter(JSONFormatter())

        api_logger = logging.getLogger(API_LOGGER_NAME)
        api_logger.handlers.clear()
        api_logger.addHandler(api_handler)
        api_logger.setLevel(logging.DEBUG)
        api_logger.propagate = False

        scan_handler = logging.FileHandler(
            self.log_dir / f"scans-{datetime.now().strftime('%Y-%m-%d')}.log"
        )
        scan_handler.setLevel(logging.INFO)
        scan_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))

        scan_logger = logging.getLogger(SCAN_LOGGER_NAME)
        scan_logger.handlers.clear()
        scan_logger.addHandler(scan_handler)
        scan_logger.setLevel(logging.INFO)
        scan_logger.propagate = True

    def get_logger(self, name: str) -> StructuredLogger:
        if name not in self.loggers:
            self.loggers[name] = StructuredLogger(
                name, logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
            )
        return self.loggers[name]

    def get_api_logger(self) -> StructuredLogger:
        return StructuredLogger("api", logging.getLogger(API_LOGGER_NAME))

    def get_scan_logger(self) -> StructuredLogger:
        return StructuredLogger("scan", logging.getLogger(SCAN_LOGGER_NAME))

    def set_console_level(self, level: str):
        """Adjust console verbosity (used by --verbose)."""
        console_level = getattr(logging, level.upper(), logging.WARNING)
        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            if type(handler) is logging.StreamHandler and handler.stream == sys.stderr:
                handler.setLevel(console_level)
                break

    def get_log_directory(self) -> Path:
        return self.log_dir

    def cleanup_old_logs(self, days: int = 30) -> int:
        """Delete log files older than ``days``. Returns the number removed."""
        cutoff_time = time.time() - days * 24 * 60 * 60
        removed = 0
        for log_file in self.log_dir.glob("*.log*"):
            try:
                if log_file.stat().st_mtime < cutoff_time:
                    log_file.unlink()
                    removed += 1
            except OSError as e:
                logging.getLogger(ROOT_LOGGER_NAME).warning(
                    f"Failed to clean up log file {log_file}: {e}"
                )
        return removed


_logging_config: Optional[LoggingConfig] = None


def setup_logging(log_dir: Optional[Path] = None, log_level: str = "INFO",
                  verbose_console: bool = False) -> LoggingConfig:
    """Initialize logging. Safe to call again to reconfigure."""
    global _logging_config
    _logging_config = LoggingConfig(log_dir, log_level)

    if verbose_console:
        _logging_config.set_console_level("INFO")

    return _logging_config


def _config() -> LoggingConfig:
    if _logging_config is None:
        setup_logging()
    return _logging_config


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger. Auto-initializes logging on first use."""
    return _config().get_logger(name)


def get_api_logger() -> StructuredLogger:
    return _config().get_api_logger()


def get_scan_logger() -> StructuredLogger:
    return _config().get_scan_logger()


def get_log_directory() -> Path:
    return _config().get_log_directory()
