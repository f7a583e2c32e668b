#!/usr/bin/env python3
"""
Pytest configuration and fixtures for all tests.
"""

import logging

import pytest

import scanctl.logging_config
from scanctl.config import BatchConfig, RateLimitConfig, RetryConfig
from scanctl.logging_config import API_LOGGER_NAME, ROOT_LOGGER_NAME, SCAN_LOGGER_NAME, setup_logging
from scanctl.rate_limiter import RateLimiter
from scanctl.retry import RetryExecutor

from fakes import FakeClock


@pytest.fixture(autouse=True)
def isolated_logging(tmp_path):
    """Send every log file of a test into its own temporary directory."""
    setup_logging(log_dir=tmp_path / "logs", log_level="DEBUG")
    yield tmp_path / "logs"

    for name in (ROOT_LOGGER_NAME, API_LOGGER_NAME, SCAN_LOGGER_NAME):
        log = logging.getLogger(name)
        for handler in list(log.handlers):
            handler.close()
            log.removeHandler(handler)
    scanctl.logging_config._logging_config = None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rate_limiter(clock):
    return RateLimiter(RateLimitConfig(), clock=clock, sleep=clock.sleep)


@pytest.fixture
def retry_executor(rate_limiter, clock):
    return RetryExecutor(rate_limiter, RetryConfig(), sleep=clock.sleep)


@pytest.fixture
def batching():
    return BatchConfig(batch_size=5, batch_delay_ms=4000)
