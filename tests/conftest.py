"""
Shared fixtures: controllable clock, candidate factory, in-memory source.
"""
import pytest

from signal_intel.base_source import BaseCandidateSource
from signal_intel.exceptions import SourceError
from signal_intel.models import Candidate, MetricName, ScanMode


class FakeClock:
    """Manually advanced time source (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeSource(BaseCandidateSource):
    """Candidate source serving canned results per chain."""

    def __init__(self, results=None, failing_chains=(), failing_tokens=()):
        super().__init__()
        self.results = results or {}
        self.failing_chains = set(failing_chains)
        self.failing_tokens = set(failing_tokens)
        self.fetch_calls = []
        self.analyze_calls = []
        self.closed = False

    async def fetch_candidates(self, chain, mode, limit=20):
        self.fetch_calls.append((chain, mode, limit))
        if chain in self.failing_chains:
            raise SourceError('HTTP_500', f'{chain} unavailable')
        return list(self.results.get(chain, []))

    async def analyze_token(self, token, chain):
        self.analyze_calls.append((token, chain))
        if token in self.failing_tokens:
            raise SourceError('HTTP_404', 'token not indexed')
        return {'token': token, 'chain': chain, 'net_volume_usd': 1234.0}

    async def close(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_candidate():
    """Factory: make_candidate(token, chain=..., score=..., buyers=..., netflow24h=...)."""
    def factory(
        token='0xabc',
        chain='base',
        mode=ScanMode.ACCUMULATION,
        score=3.0,
        symbol='TKN',
        produced_at='2024-01-01T00:00:00+00:00',
        **metrics
    ):
        return Candidate(
            mode=mode,
            token=token,
            symbol=symbol,
            chain=chain,
            score=score,
            reason='test',
            metrics={MetricName(name): value for name, value in metrics.items()},
            produced_at=produced_at,
        )
    return factory


@pytest.fixture
def fake_source():
    return FakeSource


@pytest.fixture
def signal_log(tmp_path):
    return tmp_path / 'signals.json'
