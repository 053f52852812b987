"""
RATE LIMITER

Token bucket limiter shared by every call that hits the data source.

- Bucket refills continuously at refill_rate tokens/second (computed lazily, no timer)
- Minimum spacing between consecutive requests (min_delay_seconds)
- One instance = one budget: concurrent scans sharing it are paced together
"""

import asyncio
import logging
import math
import time
from typing import Callable, Dict

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# Preset configurations, slowest to fastest
RATE_LIMIT_PRESETS = {
    # Long-running monitoring
    'conservative': {
        'max_tokens': 5,
        'refill_rate': 1.0,
        'min_delay_seconds': 0.5,
    },
    # Normal operation
    'standard': {
        'max_tokens': 10,
        'refill_rate': 2.0,
        'min_delay_seconds': 0.2,
    },
    # Time-sensitive scanning
    'aggressive': {
        'max_tokens': 20,
        'refill_rate': 5.0,
        'min_delay_seconds': 0.05,
    },
    # Initial data gathering
    'burst': {
        'max_tokens': 30,
        'refill_rate': 3.0,
        'min_delay_seconds': 0.1,
    },
}

# Extra wait so a refill never lands just short of the needed tokens
WAIT_BUFFER_SECONDS = 0.010


class RateLimiter:
    """
    Token bucket with minimum inter-request delay.
    """

    def __init__(self, config: Dict = None, clock: Callable[[], float] = None):
        """
        Initialize rate limiter.

        Args:
            config: Dict with max_tokens, refill_rate, min_delay_seconds
            clock: Time source returning seconds (time.time by default)
        """
        self.config = config or {}

        self.max_tokens = float(self.config.get('max_tokens', 10))
        self.refill_rate = float(self.config.get('refill_rate', 2.0))
        self.min_delay = float(self.config.get('min_delay_seconds', 0.1))

        if self.max_tokens <= 0 or self.refill_rate <= 0:
            raise ConfigurationError(
                f"Rate limiter needs positive max_tokens and refill_rate "
                f"(got {self.max_tokens}, {self.refill_rate})"
            )

        self._clock = clock or time.time

        self.tokens = self.max_tokens
        self.last_refill = self._clock()
        self.last_request = None

        # Stats
        self.total_requests = 0
        self.throttled_requests = 0
        self.total_wait_seconds = 0.0

    @classmethod
    def from_preset(cls, name: str = 'standard', clock: Callable[[], float] = None) -> 'RateLimiter':
        """Build a limiter from one of RATE_LIMIT_PRESETS."""
        preset = RATE_LIMIT_PRESETS.get(name)
        if preset is None:
            raise ConfigurationError(
                f"Unknown rate limit preset '{name}' (expected one of {', '.join(RATE_LIMIT_PRESETS)})"
            )
        return cls(dict(preset), clock=clock)

    def _refill(self):
        """Add tokens for the time elapsed since the last refill."""
        now = self._clock()
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    async def _sleep(self, seconds: float):
        await asyncio.sleep(seconds)

    async def acquire(self, cost: float = 1) -> float:
        """
        Take `cost` tokens, waiting if necessary.

        Args:
            cost: Tokens this request consumes

        Returns:
            Seconds spent waiting
        """
        if cost > self.max_tokens:
            raise ValueError(f"cost {cost} exceeds bucket capacity {self.max_tokens}")

        self.total_requests += 1
        self._refill()

        waited = 0.0

        # Enforce minimum delay between requests
        if self.last_request is not None:
            since_last = self._clock() - self.last_request
            if since_last < self.min_delay:
                min_wait = self.min_delay - since_last
                await self._sleep(min_wait)
                waited += min_wait
                self._refill()

        # Wait for tokens
        while self.tokens < cost:
            self.throttled_requests += 1
            shortfall = cost - self.tokens
            delay = math.ceil(shortfall / self.refill_rate * 1000) / 1000 + WAIT_BUFFER_SECONDS
            logger.debug(f"[RATE] Throttled: need {shortfall:.2f} tokens, waiting {delay:.3f}s")

            await self._sleep(delay)
            waited += delay
            self._refill()

        self.tokens -= cost
        self.last_request = self._clock()
        self.total_wait_seconds += waited

        return waited

    def can_acquire(self, cost: float = 1) -> bool:
        """Check if a request could go out right now (no waiting, no deduction)."""
        self._refill()
        return self.tokens >= cost

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self.tokens

    def reset(self):
        """Restore a full bucket and forget the last request time."""
        self.tokens = self.max_tokens
        self.last_refill = self._clock()
        self.last_request = None

    def get_stats(self) -> Dict:
        """
        Get rate limiter statistics.

        Returns:
            Dict with request and throttle counters
        """
        self._refill()
        return {
            'total_requests': self.total_requests,
            'throttled_requests': self.throttled_requests,
            'total_wait_seconds': self.total_wait_seconds,
            'current_tokens': math.floor(self.tokens),
            'max_tokens': self.max_tokens,
            'refill_rate': self.refill_rate,
        }
