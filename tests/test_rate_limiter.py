"""
Tests for the token bucket RateLimiter.
"""
import asyncio

import pytest

from signal_intel.exceptions import ConfigurationError
from signal_intel.rate_limiter import RATE_LIMIT_PRESETS, RateLimiter


class ClockedLimiter(RateLimiter):
    """Sleeps by advancing the fake clock instead of the event loop."""

    def __init__(self, config, clock):
        super().__init__(config, clock=clock)
        self.sleeps = []

    async def _sleep(self, seconds):
        self.sleeps.append(seconds)
        self._clock.advance(seconds)


class TestRateLimiter:
    """Bucket accounting, waits and presets"""

    def test_burst_up_to_capacity_without_waiting(self, clock):
        limiter = ClockedLimiter({'max_tokens': 5, 'refill_rate': 1.0, 'min_delay_seconds': 0}, clock)

        async def run():
            return [await limiter.acquire() for _ in range(5)]

        assert asyncio.run(run()) == [0.0] * 5
        assert limiter.sleeps == []
        assert limiter.available_tokens == 0

    def test_waits_for_refill_when_empty(self, clock):
        limiter = ClockedLimiter({'max_tokens': 2, 'refill_rate': 2.0, 'min_delay_seconds': 0}, clock)

        async def run():
            await limiter.acquire()
            await limiter.acquire()
            return await limiter.acquire()

        waited = asyncio.run(run())

        # 1 token at 2/s = 0.5s, plus buffer
        assert waited == pytest.approx(0.51)
        assert limiter.get_stats()['throttled_requests'] == 1

    def test_min_delay_between_requests(self, clock):
        limiter = ClockedLimiter({'max_tokens': 10, 'refill_rate': 10.0, 'min_delay_seconds': 0.5}, clock)

        async def run():
            await limiter.acquire()
            clock.advance(0.2)
            return await limiter.acquire()

        assert asyncio.run(run()) == pytest.approx(0.3)

    def test_throughput_bounded_by_capacity_and_refill(self, clock):
        preset = RATE_LIMIT_PRESETS['standard']
        limiter = ClockedLimiter(preset, clock)
        start = clock()
        n = 25

        async def run():
            for _ in range(n):
                await limiter.acquire()

        asyncio.run(run())
        elapsed = clock() - start

        assert n <= preset['max_tokens'] + preset['refill_rate'] * elapsed
        assert limiter.get_stats()['total_requests'] == n

    def test_tokens_never_exceed_capacity(self, clock):
        limiter = ClockedLimiter({'max_tokens': 3, 'refill_rate': 5.0}, clock)
        clock.advance(3600)
        assert limiter.available_tokens == 3
        assert limiter.can_acquire(3)
        assert not limiter.can_acquire(4)

    def test_acquire_deducts_cost(self, clock):
        limiter = ClockedLimiter({'max_tokens': 10, 'refill_rate': 1.0, 'min_delay_seconds': 0}, clock)
        asyncio.run(limiter.acquire(4))
        assert limiter.available_tokens == 6

    def test_cost_above_capacity_is_rejected(self, clock):
        limiter = ClockedLimiter({'max_tokens': 2, 'refill_rate': 1.0}, clock)
        with pytest.raises(ValueError):
            asyncio.run(limiter.acquire(3))

    def test_reset_refills_bucket(self, clock):
        limiter = ClockedLimiter({'max_tokens': 2, 'refill_rate': 1.0, 'min_delay_seconds': 1.0}, clock)
        asyncio.run(limiter.acquire(2))
        limiter.reset()
        assert limiter.available_tokens == 2
        assert asyncio.run(limiter.acquire()) == 0.0

    def test_from_preset(self):
        limiter = RateLimiter.from_preset('conservative')
        assert limiter.max_tokens == 5
        assert limiter.refill_rate == 1.0
        assert limiter.min_delay == 0.5

    def test_unknown_preset_raises(self):
        with pytest.raises(ConfigurationError):
            RateLimiter.from_preset('ludicrous')

    def test_invalid_config_raises(self):
        with pytest.raises(ConfigurationError):
            RateLimiter({'max_tokens': 0})
