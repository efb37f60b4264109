"""Rate limiting per user.

Token bucket per user id, held in process memory only (resets on
restart). Refill is computed from elapsed time at check time, so there
is no timer thread and ``admit`` never blocks.
"""

import logging
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger("parley.ratelimit")


class TokenBucket:
    """Single token bucket with continuous refill.

    Not thread-safe on its own; callers hold ``lock`` around ``take``.
    """

    def __init__(self, capacity: int, refill: int, interval: float, initial: int, now: float):
        self.capacity = float(capacity)
        self.rate = refill / interval  # tokens per second
        self.tokens = float(min(initial, capacity))
        self.last_refill = now
        self.lock = threading.Lock()

    def _refill(self, now: float):
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self.last_refill = now

    def take(self, now: float) -> Optional[float]:
        """Consume one token.

        Returns:
            None if a token was consumed, otherwise seconds until one is available.
        """
        self._refill(now)
        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return None
        return (1.0 - self.tokens) / self.rate


class RateLimiter:
    """Token-bucket rate limiter keyed by user id.

    Default: capacity 120, 30 tokens refilled per 60 seconds, new
    buckets start with 30 tokens.

    The map lock is only held to find or create a bucket. Each bucket
    has its own lock, so concurrent checks for the same user never spend
    the same token and different users never wait on each other.
    """

    def __init__(
        self,
        capacity: int = 120,
        refill: int = 30,
        interval: float = 60.0,
        initial: int = 30,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize rate limiter.

        Args:
            capacity: Maximum tokens a bucket can hold
            refill: Tokens added per interval
            interval: Refill interval in seconds
            initial: Tokens in a newly created bucket
            clock: Monotonic time source in seconds
        """
        if capacity < 1 or refill < 1 or interval <= 0:
            raise ValueError("capacity and refill must be >= 1 and interval > 0")
        self.capacity = capacity
        self.refill = refill
        self.interval = interval
        self.initial = initial
        self._clock = clock
        self._buckets: dict[int, TokenBucket] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "RateLimiter":
        return cls(
            capacity=settings.ratelimit_capacity,
            refill=settings.ratelimit_refill,
            interval=settings.ratelimit_interval,
            initial=settings.ratelimit_initial,
        )

    def _bucket(self, user_id: int) -> TokenBucket:
        with self._lock:
            bucket = self._buckets.get(user_id)
            if bucket is None:
                bucket = TokenBucket(
                    self.capacity, self.refill, self.interval, self.initial, self._clock(),
                )
                self._buckets[user_id] = bucket
            return bucket

    def admit(self, user_id: int) -> Optional[float]:
        """Try to admit one action for a user.

        Args:
            user_id: Unique identifier for the user

        Returns:
            None if admitted, otherwise the (positive) number of seconds
            until the next token becomes available.
        """
        bucket = self._bucket(user_id)
        with bucket.lock:
            retry_after = bucket.take(self._clock())
        if retry_after is not None:
            logger.info(f"Rate limit hit for user {user_id}: retry in {retry_after:.1f}s")
        return retry_after

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)
