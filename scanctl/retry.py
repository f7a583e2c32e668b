"""
Bounded exponential-backoff retry around AI service calls.

Every attempt first takes a token from both rate limit buckets. Quota errors
from the remote side trip the minute bucket's cooldown, and the next attempt
waits until that cooldown (or the server's retry-after hint) has passed.
"""

import asyncio
import time
import logging
from typing import Any, Awaitable, Callable, Optional

from .config import RetryConfig
from .errors import RateLimitExhaustedError, is_quota_error
from .logging_config import get_api_logger
from .rate_limiter import MINUTE_BUCKET, RateLimiter

logger = logging.getLogger(__name__)


class RetryExecutor:
    """Run an async callable with rate limiting and bounded retries."""

    def __init__(self, rate_limiter: RateLimiter, config: Optional[RetryConfig] = None,
                 sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
                 quota_bucket: str = MINUTE_BUCKET):
        self.rate_limiter = rate_limiter
        self.config = config or RetryConfig()
        self._sleep = sleep or asyncio.sleep
        self.quota_bucket = quota_bucket
        self.api_logger = get_api_logger()

    def backoff_seconds(self, attempt: int, initial_backoff_ms: int, backoff_multiplier: float) -> float:
        """Delay after a failed attempt (0-based)."""
        return initial_backoff_ms * (backoff_multiplier ** attempt) / 1000.0

    async def execute(
        self,
        func: Callable[[], Awaitable[Any]],
        max_retries: Optional[int] = None,
        initial_backoff_ms: Optional[int] = None,
        backoff_multiplier: Optional[float] = None,
    ) -> Any:
        """
        Call ``func`` until it succeeds or the retry budget runs out.

        Args:
            func: Zero-argument coroutine function to call
            max_retries: Retries after the first attempt (default from config)
            initial_backoff_ms: First backoff delay in milliseconds
            backoff_multiplier: Growth factor applied per attempt

        Returns:
            Whatever ``func`` returns

        Raises:
            Exception: The last error once every attempt has failed
        """
        if max_retries is None:
            max_retries = self.config.max_retries
        if initial_backoff_ms is None:
            initial_backoff_ms = self.config.initial_backoff_ms
        if backoff_multiplier is None:
            backoff_multiplier = self.config.backoff_multiplier

        function_name = getattr(func, '__name__', 'unknown_function')
        total_attempts = max_retries + 1
        last_error: Optional[BaseException] = None
        retry_after = 0.0

        for attempt in range(total_attempts):
            if await self.rate_limiter.acquire_all():
                start_time = time.time()
                self.api_logger.verbose("API call starting",
                                        function=function_name,
                                        attempt=attempt + 1,
                                        max_attempts=total_attempts)
                try:
                    result = await func()
                    self.api_logger.verbose("API call completed successfully",
                                            function=function_name,
                                            attempt=attempt + 1,
                                            execution_time_seconds=time.time() - start_time)
                    return result
                except Exception as e:
                    last_error = e
                    quota = is_quota_error(e)
                    if quota:
                        self.rate_limiter.mark_exhausted(self.quota_bucket)
                        retry_after = getattr(e, 'retry_after', None) or 0.0
                    self.api_logger.error("API call failed",
                                          function=function_name,
                                          attempt=attempt + 1,
                                          max_attempts=total_attempts,
                                          error_type="rate_limit" if quota else type(e).__name__,
                                          error_message=str(e),
                                          execution_time_seconds=time.time() - start_time)
            else:
                last_error = RateLimitExhaustedError("Rate limiter refused to grant a token")
                self.api_logger.warning("API call not admitted by rate limiter",
                                        function=function_name,
                                        attempt=attempt + 1,
                                        max_attempts=total_attempts)

            if attempt < total_attempts - 1:
                delay = max(self.backoff_seconds(attempt, initial_backoff_ms, backoff_multiplier),
                            self.rate_limiter.cooldown_remaining(self.quota_bucket),
                            retry_after)
                retry_after = 0.0
                logger.debug(f"Retrying {function_name} in {delay:.2f}s (attempt {attempt + 2}/{total_attempts})")
                await self._sleep(delay)

        self.api_logger.error("API call gave up after retries",
                              function=function_name,
                              attempts=total_attempts,
                              error_type=type(last_error).__name__,
                              error_message=str(last_error))
        raise last_error
