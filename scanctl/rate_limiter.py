"""
Admission control for AI service calls.

Two token buckets guard every call: a short window (requests per minute) and a
long window (requests per day). A bucket can be tripped into a cooldown when
the remote service reports quota exhaustion; while cooling down it grants no
tokens regardless of refill.
"""

import asyncio
import time
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from .config import RateLimitConfig
from .logging_config import get_api_logger

logger = logging.getLogger(__name__)

MINUTE_BUCKET = "minute"
DAY_BUCKET = "day"

SECONDS_PER_MINUTE = 60.0
SECONDS_PER_DAY = 86400.0


class TokenBucket:
    """Lazily refilled token bucket with an exhaustion flag.

    Invariant: ``0 <= tokens <= capacity``.
    """

    def __init__(self, name: str, capacity: float, refill_rate_per_second: float, now: float):
        self.name = name
        self.capacity = float(capacity)
        self.refill_rate = float(refill_rate_per_second)
        self.tokens = float(capacity)
        self.last_refill = now
        self.exhausted = False
        self.exhausted_at: Optional[float] = None
        self.lock = asyncio.Lock()

    def refill(self, now: float) -> None:
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def in_cooldown(self, now: float, cooldown: float) -> bool:
        """True while exhausted and the cooldown has not elapsed. Clears the flag afterwards."""
        if not self.exhausted:
            return False
        if now - self.exhausted_at >= cooldown:
            self.exhausted = False
            self.exhausted_at = None
            return False
        return True

    def seconds_until_token(self) -> Optional[float]:
        """Time until one whole token is available, None if the bucket never refills."""
        if self.tokens >= 1:
            return 0.0
        if self.refill_rate <= 0:
            return None
        return (1 - self.tokens) / self.refill_rate


class RateLimiter:
    """Dual-window rate limiter shared by every scan job in the process.

    ``acquire`` suspends the caller until a token is granted. When a bucket is
    in cooldown (or the next token is further away than ``max_token_wait``)
    the limiter polls a bounded number of times and then returns False, which
    tells the caller to skip or fail this unit of work.
    """

    def __init__(self, config: Optional[RateLimitConfig] = None,
                 clock: Optional[Callable[[], float]] = None,
                 sleep: Optional[Callable[[float], Awaitable[Any]]] = None):
        """
        Args:
            config: Rate limit configuration. Defaults to RateLimitConfig().
            clock: Monotonic time source in seconds.
            sleep: Coroutine function used for every wait.
        """
        self.config = config or RateLimitConfig()
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self.api_logger = get_api_logger()

        now = self._clock()
        rpm = self.config.requests_per_minute
        rpd = self.config.requests_per_day
        self.buckets: Dict[str, TokenBucket] = {
            MINUTE_BUCKET: TokenBucket(MINUTE_BUCKET, rpm, rpm / SECONDS_PER_MINUTE, now),
            DAY_BUCKET: TokenBucket(DAY_BUCKET, rpd, rpd / SECONDS_PER_DAY, now),
        }

        self.api_logger.info("Rate limiter initialized",
                             requests_per_minute=rpm,
                             requests_per_day=rpd,
                             cooldown_seconds=self.config.cooldown_seconds,
                             max_poll_attempts=self.config.max_poll_attempts)

    def _bucket(self, bucket_name: str) -> TokenBucket:
        try:
            return self.buckets[bucket_name]
        except KeyError:
            raise ValueError(f"Unknown rate limit bucket: {bucket_name}") from None

    def _caution_delay(self, bucket: TokenBucket) -> float:
        """Extra pacing applied when a bucket is running low."""
        if bucket.tokens < self.config.heavy_caution_ratio * bucket.capacity:
            return self.config.heavy_caution_delay_seconds
        if bucket.tokens < self.config.light_caution_ratio * bucket.capacity:
            return self.config.light_caution_delay_seconds
        return 0.0

    async def acquire(self, bucket_name: str) -> bool:
        """Take one token from a bucket, waiting as needed.

        Returns:
            True once a token was granted, False if the bucket stayed in
            cooldown (or out of reach) for every poll attempt.
        """
        bucket = self._bucket(bucket_name)
        max_polls = self.config.max_poll_attempts

        for attempt in range(max_polls + 1):
            if await self._try_acquire(bucket):
                return True
            if attempt < max_polls:
                self.api_logger.warning("Rate limit bucket unavailable - polling",
                                        bucket=bucket.name,
                                        attempt=attempt + 1,
                                        max_attempts=max_polls,
                                        poll_interval_seconds=self.config.poll_interval_seconds)
                await self._sleep(self.config.poll_interval_seconds)

        self.api_logger.error("Rate limit token refused",
                              bucket=bucket.name,
                              exhausted=bucket.exhausted,
                              tokens=bucket.tokens)
        return False

    async def _try_acquire(self, bucket: TokenBucket) -> bool:
        cooldown = self.config.cooldown_seconds

        async with bucket.lock:
            bucket.refill(self._clock())
            if bucket.in_cooldown(self._clock(), cooldown):
                return False

            delay = self._caution_delay(bucket)
            if delay > 0:
                self.api_logger.verbose("Bucket running low - applying caution delay",
                                        bucket=bucket.name,
                                        tokens=bucket.tokens,
                                        capacity=bucket.capacity,
                                        delay_seconds=delay)
                await self._sleep(delay)
                bucket.refill(self._clock())
                # Another caller may have tripped the breaker while we slept
                if bucket.in_cooldown(self._clock(), cooldown):
                    return False

            if bucket.tokens >= 1:
                bucket.tokens -= 1
                return True

            wait = bucket.seconds_until_token()
            if wait is None or wait > self.config.max_token_wait_seconds:
                self.api_logger.warning("Next token out of reach",
                                        bucket=bucket.name,
                                        wait_seconds=wait,
                                        max_wait_seconds=self.config.max_token_wait_seconds)
                return False

            self.api_logger.verbose("Waiting for token to accrue",
                                    bucket=bucket.name,
                                    wait_seconds=wait)
            await self._sleep(wait)
            bucket.refill(self._clock())
            bucket.tokens = max(0.0, bucket.tokens - 1)
            return True

    async def acquire_all(self) -> bool:
        """Acquire from the minute bucket, then the day bucket. Both must succeed.

        A minute token taken before the day bucket refuses is handed back.
        """
        if not await self.acquire(MINUTE_BUCKET):
            return False
        if not await self.acquire(DAY_BUCKET):
            self.release(MINUTE_BUCKET)
            return False
        return True

    def release(self, bucket_name: str) -> None:
        """Return one unused token to a bucket."""
        bucket = self._bucket(bucket_name)
        bucket.tokens = min(bucket.capacity, bucket.tokens + 1)

    def mark_exhausted(self, bucket_name: str = MINUTE_BUCKET) -> None:
        """Trip the cooldown breaker after the remote service reported a quota error."""
        bucket = self._bucket(bucket_name)
        bucket.exhausted = True
        bucket.exhausted_at = self._clock()
        logger.warning(f"Rate limit bucket '{bucket_name}' marked exhausted")
        self.api_logger.error("Rate limit bucket marked exhausted",
                              bucket=bucket_name,
                              cooldown_seconds=self.config.cooldown_seconds)

    def is_exhausted(self, bucket_name: str = MINUTE_BUCKET) -> bool:
        """True while the bucket is inside its cooldown window."""
        bucket = self._bucket(bucket_name)
        if not bucket.exhausted:
            return False
        return self._clock() - bucket.exhausted_at < self.config.cooldown_seconds

    def cooldown_remaining(self, bucket_name: str = MINUTE_BUCKET) -> float:
        """Seconds left before an exhausted bucket grants tokens again, 0 if it is not exhausted."""
        bucket = self._bucket(bucket_name)
        if not bucket.exhausted:
            return 0.0
        return max(0.0, self.config.cooldown_seconds - (self._clock() - bucket.exhausted_at))

    def get_status(self) -> Dict[str, Any]:
        """Current state of every bucket."""
        now = self._clock()
        status = {}
        for name, bucket in self.buckets.items():
            bucket.refill(now)
            cooldown_remaining = self.cooldown_remaining(name)
            status[name] = {
                "tokens": bucket.tokens,
                "capacity": bucket.capacity,
                "refill_rate_per_second": bucket.refill_rate,
                "exhausted": bucket.exhausted and cooldown_remaining > 0,
                "cooldown_remaining_seconds": cooldown_remaining,
            }
        return status

    def reset(self) -> None:
        """Refill every bucket and clear exhaustion."""
        now = self._clock()
        for bucket in self.buckets.values():
            bucket.tokens = bucket.capacity
            bucket.last_refill = now
            bucket.exhausted = False
            bucket.exhausted_at = None
