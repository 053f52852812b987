"""
Tests for ScanOrchestrator scan / monitor flows.
"""
import asyncio

import pytest

from signal_intel.cache import CACHE_TTL, ResponseCache
from signal_intel.models import ScanMode
from signal_intel.orchestrator import ScanError, ScanOrchestrator
from signal_intel.rate_limiter import RateLimiter
from signal_intel.risk_engine import RiskConfig
from signal_intel.signal_store import SignalStore


class CountingLimiter(RateLimiter):
    """Records acquire costs, never waits."""

    def __init__(self):
        super().__init__({'max_tokens': 100, 'refill_rate': 100})
        self.costs = []

    async def acquire(self, cost=1):
        self.costs.append(cost)
        return 0.0


@pytest.fixture
def store(signal_log):
    return SignalStore({'path': signal_log})


@pytest.fixture
def build(store):
    def factory(source, **kwargs):
        kwargs.setdefault('config', {'enable_rate_limit': False})
        return ScanOrchestrator(source, store=store, **kwargs)
    return factory


class TestScan:

    def test_partial_failure_keeps_other_pairs(self, build, fake_source, make_candidate):
        source = fake_source(
            results={'base': [make_candidate(token='0xgood', chain='base')]},
            failing_chains=['ethereum'],
        )
        orchestrator = build(source)

        signals = asyncio.run(orchestrator.scan(chains=['base', 'ethereum']))

        assert [s.token for s in signals] == ['0xgood']
        assert orchestrator.last_errors == [
            ScanError('ethereum', 'accumulation', 'HTTP_500: ethereum unavailable')
        ]

    def test_defaults_and_fetch_limit(self, build, fake_source):
        source = fake_source()
        orchestrator = build(source)

        asyncio.run(orchestrator.scan())
        asyncio.run(orchestrator.scan(chains=['solana'], modes=['distribution'], limit=3))

        assert source.fetch_calls[:3] == [
            ('ethereum', ScanMode.ACCUMULATION, 20),
            ('base', ScanMode.ACCUMULATION, 20),
            ('arbitrum', ScanMode.ACCUMULATION, 20),
        ]
        assert source.fetch_calls[3] == ('solana', ScanMode.DISTRIBUTION, 6)

    def test_limit_truncates_result(self, build, fake_source, make_candidate):
        source = fake_source(results={'base': [make_candidate(token=f'0x{i}', score=2 + i) for i in range(8)]})
        signals = asyncio.run(build(source).scan(chains=['base'], limit=3))
        assert [s.token for s in signals] == ['0x7', '0x6', '0x5']

    def test_signals_are_logged(self, build, store, fake_source, make_candidate):
        source = fake_source(results={'base': [make_candidate(token='0xa')]})
        signals = asyncio.run(build(source).scan(chains=['base']))

        assert signals[0].logged_at is not None
        assert signals[0].acted is False
        stored = store.get(signals[0].id)
        assert stored.logged_at == signals[0].logged_at

    def test_second_scan_uses_cache_and_drops_recent(self, build, fake_source, make_candidate):
        source = fake_source(results={'base': [make_candidate(token='0xa')]})
        orchestrator = build(source)

        async def run():
            first = await orchestrator.scan(chains=['base'])
            second = await orchestrator.scan(chains=['base'])
            return first, second

        first, second = asyncio.run(run())

        assert len(first) == 1
        assert second == []
        assert len(source.fetch_calls) == 1
        assert orchestrator.cache.get_stats()['credits_saved'] == 1

    def test_chain_deny_list(self, build, fake_source):
        source = fake_source()
        orchestrator = build(source, risk_config=RiskConfig(excluded_chains=['base']))

        asyncio.run(orchestrator.scan(chains=['base', 'ethereum']))

        assert [call[0] for call in source.fetch_calls] == ['ethereum']

    def test_risk_override(self, build, fake_source, make_candidate):
        source = fake_source(results={'base': [make_candidate(token='0xa', score=3.0)]})
        signals = asyncio.run(build(source).scan(chains=['base'], risk_override={'min_score': 3.5}))
        assert signals == []

    def test_analyze_marks_failures_per_signal(self, build, fake_source, make_candidate):
        source = fake_source(
            results={'base': [make_candidate(token=f'0x{i}', score=2 + i) for i in range(5)]},
            failing_tokens=['0x3'],
        )
        limiter = CountingLimiter()
        orchestrator = build(source, rate_limiter=limiter, config={'enable_rate_limit': True})

        signals = asyncio.run(orchestrator.deep_scan(chains=['base']))

        assert [s.token for s in signals[:3]] == ['0x4', '0x3', '0x2']
        assert signals[0].analysis['net_volume_usd'] == 1234.0
        assert 'error' in signals[1].analysis
        assert signals[2].analysis is not None
        assert signals[3].analysis is None
        assert len(source.analyze_calls) == 3
        assert limiter.costs == [1, 2, 2, 2]

    def test_quick_scan(self, build, fake_source):
        source = fake_source()
        asyncio.run(build(source).quick_scan('base'))
        assert source.fetch_calls == [('base', ScanMode.ACCUMULATION, 10)]

    def test_invalidate_chain(self, build, fake_source):
        source = fake_source()
        orchestrator = build(source)
        asyncio.run(orchestrator.scan(chains=['base', 'ethereum']))

        assert orchestrator.invalidate_chain('base') == 1
        asyncio.run(orchestrator.scan(chains=['base', 'ethereum']))
        assert [call[0] for call in source.fetch_calls] == ['base', 'ethereum', 'base']

    def test_signal_management(self, build, fake_source, make_candidate):
        source = fake_source(results={'base': [make_candidate(token='0xa')]})
        orchestrator = build(source)
        signal = asyncio.run(orchestrator.scan(chains=['base']))[0]

        orchestrator.mark_acted(signal.id, 'buy')
        orchestrator.record_outcome(signal.id, entry_price=1.0, exit_price=1.1)

        assert orchestrator.get_recent_signals(5)[0].acted is True
        assert len(orchestrator.get_token_signals('0xA')) == 1
        assert orchestrator.get_performance_stats()['profitable_count'] == 1

    def test_stats_and_close(self, build, fake_source):
        source = fake_source()
        orchestrator = build(source)
        asyncio.run(orchestrator.scan(chains=['base']))

        stats = orchestrator.get_stats()
        assert set(stats) >= {'cache', 'rate_limit', 'signals', 'risk', 'source'}
        assert stats['scans_performed'] == 1

        orchestrator.clear_cache()
        assert len(orchestrator.cache) == 0

        asyncio.run(orchestrator.close())
        assert source.closed is True

    def test_empty_cache_instance_is_kept(self, build, fake_source):
        cache = ResponseCache()
        assert build(fake_source(), cache=cache).cache is cache


class TestMonitor:

    def _run_monitor(self, orchestrator, callback, ticks=3):
        async def run():
            handle = orchestrator.monitor(callback, interval_seconds=0.01, chains=['base'])
            while handle.ticks < ticks:
                await asyncio.sleep(0.005)
            handle.stop()
            await handle.wait()
            return handle
        return asyncio.run(run())

    def test_repeated_candidate_delivered_once(self, build, store, fake_source, make_candidate, monkeypatch):
        source = fake_source(results={'base': [make_candidate(token='0xa')]})
        orchestrator = build(source)
        monkeypatch.setattr(store, 'has_recent_signal', lambda candidate, window: False)
        delivered = []

        handle = self._run_monitor(orchestrator, delivered.append)

        assert handle.ticks >= 3
        assert [s.token for s in delivered] == ['0xa']
        assert not handle.running

    def test_async_callback(self, build, fake_source, make_candidate):
        source = fake_source(results={'base': [make_candidate(token='0xa'), make_candidate(token='0xb')]})
        delivered = []

        async def on_signal(signal):
            await asyncio.sleep(0)
            delivered.append(signal.token)

        self._run_monitor(build(source), on_signal, ticks=1)

        assert sorted(delivered) == ['0xa', '0xb']

    def test_tick_errors_do_not_stop_loop(self, build, store, fake_source, make_candidate, monkeypatch):
        source = fake_source(results={'base': [make_candidate(token='0xa')]})
        failures = []

        def broken_log_batch(candidates):
            failures.append(1)
            raise OSError('disk full')

        monkeypatch.setattr(store, 'log_batch', broken_log_batch)
        handle = self._run_monitor(build(source), lambda s: None, ticks=2)

        assert handle.ticks >= 2
        assert len(failures) >= 2

    def test_stop_prevents_future_ticks(self, build, fake_source):
        orchestrator = build(fake_source())

        async def run():
            handle = orchestrator.monitor(lambda s: None, interval_seconds=30, chains=['base'])
            while handle.ticks < 1:
                await asyncio.sleep(0.005)
            handle.stop()
            await asyncio.wait_for(handle.wait(), timeout=1)
            return handle

        handle = asyncio.run(run())
        assert handle.ticks == 1

    def test_expired_delivery_keys_are_dropped_between_ticks(self, store, fake_source, make_candidate, clock):
        """Rotating tokens with a tiny dedupe window keep the delivered set small."""

        class RotatingSource(fake_source):
            async def fetch_candidates(self, chain, mode, limit=20):
                self.fetch_calls.append((chain, mode, limit))
                return [make_candidate(token=f'0x{len(self.fetch_calls)}')]

        source = RotatingSource()
        orchestrator = ScanOrchestrator(
            source,
            cache=ResponseCache(clock=clock),
            store=store,
            risk_config=RiskConfig(dedupe_window_seconds=0.001),
            config={'enable_rate_limit': False},
        )
        delivered = []

        def on_signal(signal):
            delivered.append(signal)
            # expire the cached scan so the next tick fetches again
            clock.advance(CACHE_TTL['smart_money'] + 1)

        handle = self._run_monitor(orchestrator, on_signal, ticks=6)

        assert len(delivered) >= 6
        assert len(handle.delivered) <= 2
