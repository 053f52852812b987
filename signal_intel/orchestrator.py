"""
SCAN ORCHESTRATOR

Wires the pipeline together:

  source.fetch_candidates()   (through RateLimiter + ResponseCache)
        ↓
  RiskEngine.evaluate()       (threshold filter, dedup vs. SignalStore, scoring)
        ↓
  optional deep analysis      (top 3 signals)
        ↓
  SignalStore.log_batch()     (persist, copy logged_at back)

All collaborators are passed in; nothing here is a module-level singleton.
"""

import asyncio
import inspect
import json
import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from .base_source import BaseCandidateSource
from .cache import CACHE_TTL, ResponseCache, make_key
from .deduplicator import ExpiringSet
from .models import Candidate, ScanMode, Signal, TradingSignal
from .rate_limiter import RateLimiter
from .risk_engine import RiskConfig, RiskEngine, filter_chains
from .signal_store import SignalStore

logger = logging.getLogger(__name__)

DEFAULT_CHAINS = ['ethereum', 'base', 'arbitrum']
DEFAULT_MODES = [ScanMode.ACCUMULATION]

# Signals enriched when analyze=True
ANALYZE_TOP_N = 3
ANALYZE_COST = 2
ANALYZE_CREDITS = 5


@dataclass
class ScanError:
    """A (chain, mode) pair that failed during the last scan."""
    chain: str
    mode: str
    message: str

    def __str__(self):
        return f"{self.chain}/{self.mode}: {self.message}"


class MonitorHandle:
    """
    Handle for a running monitor loop.

    stop() only prevents future ticks. A tick already in flight runs to
    completion and its callbacks still fire.
    """

    def __init__(self, interval_seconds: float, delivered: ExpiringSet = None):
        self.interval_seconds = interval_seconds
        self.ticks = 0
        self.stopped = False
        self._wake = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        # dedupe keys already passed to on_signal
        self.delivered = delivered

    def stop(self):
        self.stopped = True
        self._wake.set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sleep(self):
        """Sleep one interval or until stop() is called."""
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self.interval_seconds)
        except asyncio.TimeoutError:
            pass

    async def wait(self):
        """Wait until the loop has exited."""
        if self._task is not None:
            await self._task


class ScanOrchestrator:
    """
    Runs scans against a candidate source and manages the signal log.
    """

    def __init__(
        self,
        source: BaseCandidateSource,
        cache: ResponseCache = None,
        rate_limiter: RateLimiter = None,
        store: SignalStore = None,
        risk_engine: RiskEngine = None,
        risk_config: RiskConfig = None,
        config: Dict = None
    ):
        """
        Initialize orchestrator.

        Args:
            source: Candidate source (e.g. NansenAPI)
            cache: Response cache (fresh ResponseCache if None)
            rate_limiter: Shared rate limiter ('standard' preset if None)
            store: Signal log (default path if None)
            risk_engine: Risk engine (fresh RiskEngine if None)
            risk_config: Base risk settings (defaults if None)
            config: Dict with enable_rate_limit, default_chains, default_modes
        """
        self.config = config or {}
        self.source = source
        self.cache = cache if cache is not None else ResponseCache()
        self.rate_limiter = rate_limiter or RateLimiter.from_preset('standard')
        self.store = store if store is not None else SignalStore()
        self.risk_engine = risk_engine or RiskEngine()
        self.risk_config = risk_config or RiskConfig()

        self.enable_rate_limit = self.config.get('enable_rate_limit', True)
        self.default_chains = list(self.config.get('default_chains') or DEFAULT_CHAINS)
        self.default_modes = [ScanMode(m) for m in (self.config.get('default_modes') or DEFAULT_MODES)]

        self.last_errors: List[ScanError] = []
        self.scans_performed = 0

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    async def _acquire(self, cost: float = 1):
        if self.enable_rate_limit:
            await self.rate_limiter.acquire(cost)

    def effective_risk_config(self, risk_override: Dict = None, limit: int = None) -> RiskConfig:
        """Base risk config with per-call overrides applied."""
        return self.risk_config.merged(risk_override, max_signals_per_scan=limit)

    async def _fetch_pair(self, chain: str, mode: ScanMode, fetch_limit: int) -> List[Candidate]:
        await self._acquire()
        key = make_key('scan', {'chain': chain, 'mode': mode.value})
        return await self.cache.get_or_fetch(
            key,
            lambda: self.source.fetch_candidates(chain, mode, fetch_limit),
            ttl=CACHE_TTL['smart_money'],
        )

    async def scan(
        self,
        chains: Iterable[str] = None,
        modes: Iterable = None,
        limit: int = None,
        analyze: bool = False,
        risk_override: Dict = None
    ) -> List[TradingSignal]:
        """
        Scan every (chain, mode) pair and return ranked, logged signals.

        A failing pair is logged and recorded in last_errors; the other
        pairs still contribute.

        Args:
            chains: Chains to scan (default ethereum, base, arbitrum)
            modes: Scan modes (default accumulation)
            limit: Max signals returned (overrides max_signals_per_scan)
            analyze: Deep-analyze the top signals
            risk_override: Dict of RiskConfig fields for this call only

        Returns:
            TradingSignals, best first
        """
        config = self.effective_risk_config(risk_override, limit)
        fetch_limit = config.max_signals_per_scan * 2

        chains = filter_chains(chains or self.default_chains, config)
        modes = [ScanMode(m) for m in (modes or self.default_modes)]

        self.last_errors = []
        candidates: List[Candidate] = []

        for chain in chains:
            for mode in modes:
                try:
                    found = await self._fetch_pair(chain, mode, fetch_limit)
                    candidates.extend(found)
                except Exception as e:
                    logger.warning(f"[SCAN] {chain}/{mode.value} failed: {e}")
                    self.last_errors.append(ScanError(chain, mode.value, str(e)))

        signals = self.risk_engine.evaluate(candidates, config, is_recent=self.store.has_recent_signal)

        if analyze:
            await self._analyze(signals[:ANALYZE_TOP_N])

        logged = self.store.log_batch(s.candidate for s in signals)
        for trading_signal, record in zip(signals, logged):
            trading_signal.logged_at = record.logged_at
            trading_signal.acted = record.acted

        self.scans_performed += 1
        logger.info(
            f"[SCAN] {len(chains)} chains x {len(modes)} modes: "
            f"{len(candidates)} candidates -> {len(signals)} signals"
            + (f" ({len(self.last_errors)} errors)" if self.last_errors else "")
        )
        return signals

    async def _analyze(self, signals: List[TradingSignal]):
        for trading_signal in signals:
            chain, token = trading_signal.chain, trading_signal.token
            try:
                await self._acquire(ANALYZE_COST)
                trading_signal.analysis = await self.cache.get_or_fetch(
                    make_key('analyze', {'chain': chain, 'token': token}),
                    lambda: self.source.analyze_token(token, chain),
                    ttl=CACHE_TTL['deep_analysis'],
                    credits=ANALYZE_CREDITS,
                )
            except Exception as e:
                logger.warning(f"[SCAN] Analysis failed for {chain}:{token}: {e}")
                trading_signal.analysis = {'error': str(e)}

    async def quick_scan(self, chain: str = 'ethereum', mode=ScanMode.ACCUMULATION) -> List[TradingSignal]:
        """Single chain, single mode, top 5, no analysis."""
        return await self.scan(chains=[chain], modes=[mode], limit=5)

    async def deep_scan(self, **options) -> List[TradingSignal]:
        """scan() with deep analysis of the top signals."""
        options['analyze'] = True
        return await self.scan(**options)

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def monitor(
        self,
        on_signal: Callable[[TradingSignal], None],
        interval_seconds: float = 60,
        **scan_options
    ) -> MonitorHandle:
        """
        Scan every `interval_seconds` and call on_signal once per new signal.

        Must be called from a running event loop. The first tick runs
        immediately. A signal is delivered again only after the dedupe
        window has passed.

        Args:
            on_signal: Sync or async callback taking a TradingSignal
            interval_seconds: Seconds between ticks
            **scan_options: Passed to scan()

        Returns:
            MonitorHandle (stop() / wait())
        """
        window = self.effective_risk_config(scan_options.get('risk_override')).dedupe_window_seconds
        delivered = ExpiringSet(window)
        handle = MonitorHandle(interval_seconds, delivered)

        async def run():
            logger.info(f"[MONITOR] Started (every {interval_seconds}s)")
            while not handle.stopped:
                delivered.cleanup_expired()
                try:
                    signals = await self.scan(**scan_options)
                    for trading_signal in signals:
                        if delivered.check_and_add(trading_signal.dedupe_key):
                            await self._deliver(on_signal, trading_signal)
                except Exception as e:
                    logger.error(f"[MONITOR] Tick failed: {e}")

                handle.ticks += 1
                if handle.stopped:
                    break
                await handle.sleep()
            logger.info(f"[MONITOR] Stopped after {handle.ticks} ticks")

        handle._task = asyncio.get_running_loop().create_task(run())
        return handle

    @staticmethod
    async def _deliver(on_signal: Callable, trading_signal: TradingSignal):
        try:
            result = on_signal(trading_signal)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"[MONITOR] Callback failed for {trading_signal.id}: {e}")

    # ------------------------------------------------------------------
    # Signal management
    # ------------------------------------------------------------------

    def mark_acted(self, signal_id: str, action: str, notes: str = None) -> Optional[Signal]:
        return self.store.mark_acted(signal_id, action, notes)

    def record_outcome(self, signal_id: str, **fields) -> Optional[Signal]:
        return self.store.record_outcome(signal_id, **fields)

    def get_recent_signals(self, limit: int = 20, **filters) -> List[Signal]:
        return self.store.find(limit=limit, **filters)

    def get_token_signals(self, token: str, chain: str = None) -> List[Signal]:
        return self.store.get_token_history(token, chain)

    def get_performance_stats(self, **filters) -> Dict:
        return self.store.get_stats(**filters)

    # ------------------------------------------------------------------
    # Cache control / stats
    # ------------------------------------------------------------------

    def clear_cache(self):
        self.cache.clear()

    def invalidate_chain(self, chain: str) -> int:
        """Drop every cached response for one chain."""
        return self.cache.invalidate_pattern(re.escape(f"chain={json.dumps(chain)}"))

    def get_stats(self) -> Dict:
        """
        Summary of every component.

        Returns:
            Dict with cache, rate_limit, signals, risk, source sections
        """
        return {
            'scans_performed': self.scans_performed,
            'last_errors': [str(e) for e in self.last_errors],
            'cache': self.cache.get_stats(),
            'rate_limit': self.rate_limiter.get_stats(),
            'signals': self.store.get_stats(),
            'risk': self.risk_engine.get_stats(),
            'source': self.source.get_stats(),
        }

    async def close(self):
        await self.source.close()
