"""
Signal Store - Persistent log of emitted signals

Features:
- Deterministic ids (chain:token:mode:timestamp), so re-logging is idempotent
- Persists to one JSON array file (survives restarts)
- Outcome tracking with derived PnL
- Recency lookup for cross-scan deduplication

The log file is stored at .nansen/signals.json by default.
"""
import json
import logging
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from .models import Candidate, Signal, Outcome, OUTCOME_ACTIONS, utc_now_iso, parse_iso

logger = logging.getLogger(__name__)

DEFAULT_SIGNAL_LOG_PATH = Path('.nansen') / 'signals.json'

TimeBound = Union[str, float, int, None]


def _to_ts(value: TimeBound) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return parse_iso(value)


class SignalStore:
    """
    Durable, deduplicating signal log.

    Loaded in full on construction; rewritten in full after every mutation
    (log_batch writes once at the end). A corrupt file means an empty store;
    write errors are raised to the caller.
    """

    def __init__(self, config: Dict = None, clock: Callable[[], float] = None):
        self.config = config or {}
        self.log_path = Path(self.config.get('path') or DEFAULT_SIGNAL_LOG_PATH)
        self.auto_save = self.config.get('auto_save', True)
        self._clock = clock or time.time

        self._signals: Dict[str, Signal] = {}
        # chain:token:mode -> most recent logged_at (epoch seconds)
        self._latest: Dict[str, float] = {}

        self.load()

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    def _insert(self, candidate: Candidate) -> Signal:
        signal_id = candidate.signal_id
        existing = self._signals.get(signal_id)
        if existing is not None:
            return existing

        now = self._clock()
        signal = Signal(
            candidate=candidate,
            id=signal_id,
            logged_at=utc_now_iso(now),
            acted=False,
        )
        self._signals[signal_id] = signal
        self._index(signal, now)
        return signal

    def _index(self, signal: Signal, logged_ts: float):
        key = signal.dedupe_key
        if logged_ts > self._latest.get(key, float('-inf')):
            self._latest[key] = logged_ts

    def log(self, candidate: Candidate) -> Signal:
        """
        Log a candidate as a signal.

        Returns the already stored signal unchanged if the same candidate
        (same chain, token, mode and timestamp) was logged before.
        """
        before = len(self._signals)
        signal = self._insert(candidate)

        if len(self._signals) != before:
            logger.debug(f"[SIGNALS] Logged {signal.id}")
            self._autosave()

        return signal

    def log_batch(self, candidates: Iterable[Candidate]) -> List[Signal]:
        """Log several candidates with a single write at the end."""
        before = len(self._signals)
        logged = [self._insert(candidate) for candidate in candidates]

        added = len(self._signals) - before
        if added:
            logger.info(f"[SIGNALS] Logged {added} new signals ({len(logged) - added} already known)")
            self._autosave()

        return logged

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def mark_acted(self, signal_id: str, action: str, notes: str = None) -> Optional[Signal]:
        """
        Mark a signal as acted upon.

        Args:
            signal_id: Signal id
            action: 'buy', 'sell' or 'skip'
            notes: Optional free text

        Returns:
            Updated signal, or None if the id is unknown
        """
        signal = self._signals.get(signal_id)
        if signal is None:
            logger.warning(f"[SIGNALS] mark_acted: unknown signal {signal_id}")
            return None

        if action not in OUTCOME_ACTIONS:
            logger.warning(f"[SIGNALS] mark_acted: invalid action '{action}' for {signal_id}")
            return None

        outcome = signal.outcome or Outcome(action=action)
        outcome.action = action
        outcome.executed_at = utc_now_iso(self._clock())
        if notes is not None:
            outcome.notes = notes

        signal.acted = True
        signal.outcome = outcome

        self._autosave()
        return signal

    def record_outcome(self, signal_id: str, **fields) -> Optional[Signal]:
        """
        Merge outcome fields into a signal.

        Accepts action, executed_at, entry_price, exit_price, pnl, pnl_percent, notes.
        When both prices are known pnl and pnl_percent are recomputed from them.

        Returns:
            Updated signal, or None if the id (or a field name) is invalid
        """
        signal = self._signals.get(signal_id)
        if signal is None:
            logger.warning(f"[SIGNALS] record_outcome: unknown signal {signal_id}")
            return None

        unknown = set(fields) - set(Outcome.FIELD_KEYS)
        if unknown:
            logger.warning(f"[SIGNALS] record_outcome: unknown fields {sorted(unknown)}")
            return None

        if fields.get('action') is not None and fields['action'] not in OUTCOME_ACTIONS:
            logger.warning(f"[SIGNALS] record_outcome: invalid action '{fields['action']}'")
            return None

        outcome = signal.outcome or Outcome()
        for name, value in fields.items():
            # Fields only move forward; None never clears a recorded value
            if value is not None:
                setattr(outcome, name, value)
        outcome.derive_pnl()

        signal.outcome = outcome

        self._autosave()
        return signal

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, signal_id: str) -> Optional[Signal]:
        return self._signals.get(signal_id)

    def __len__(self):
        return len(self._signals)

    def find(
        self,
        chains: Iterable[str] = None,
        modes: Iterable = None,
        min_score: float = None,
        max_score: float = None,
        acted: bool = None,
        has_outcome: bool = None,
        start: TimeBound = None,
        end: TimeBound = None,
        limit: int = None,
    ) -> List[Signal]:
        """
        Find signals matching criteria, newest logged first.

        Args:
            chains / modes: Restrict to these values (empty or None = all)
            min_score / max_score: Inclusive raw score range
            acted: Only acted (True) or not acted (False) signals
            has_outcome: Only signals with (True) / without (False) a recorded PnL
            start / end: Inclusive logged_at range (ISO string or epoch seconds)
            limit: Maximum results, applied after sorting
        """
        results = list(self._signals.values())

        if chains:
            chain_set = set(chains)
            results = [s for s in results if s.chain in chain_set]

        if modes:
            mode_set = {getattr(m, 'value', m) for m in modes}
            results = [s for s in results if s.mode.value in mode_set]

        if min_score is not None:
            results = [s for s in results if s.score >= min_score]

        if max_score is not None:
            results = [s for s in results if s.score <= max_score]

        if acted is not None:
            results = [s for s in results if s.acted == acted]

        if has_outcome is not None:
            results = [s for s in results if s.has_pnl == has_outcome]

        start_ts = _to_ts(start)
        if start_ts is not None:
            results = [s for s in results if s.logged_ts >= start_ts]

        end_ts = _to_ts(end)
        if end_ts is not None:
            results = [s for s in results if s.logged_ts <= end_ts]

        results.sort(key=lambda s: s.logged_ts, reverse=True)

        if limit is not None:
            results = results[:limit]

        return results

    def get_token_history(self, token: str, chain: str = None) -> List[Signal]:
        """All signals for a token (case-insensitive), newest first."""
        token = token.lower()
        return [
            s for s in self.find()
            if s.token.lower() == token and (chain is None or s.chain == chain)
        ]

    def has_recent_signal(self, candidate: Candidate, window_seconds: float = 3600) -> bool:
        """True if the same chain+token+mode was logged within the last window_seconds."""
        latest = self._latest.get(candidate.dedupe_key)
        if latest is None:
            return False
        return latest > self._clock() - window_seconds

    def get_stats(self, **filters) -> Dict:
        """
        Aggregate statistics over signals matching `filters` (see find()).
        """
        signals = self.find(**filters)

        with_outcome = [s for s in signals if s.has_pnl]
        profitable = [s for s in with_outcome if s.outcome.pnl > 0]

        by_chain: Dict[str, int] = {}
        by_mode: Dict[str, int] = {}
        for s in signals:
            by_chain[s.chain] = by_chain.get(s.chain, 0) + 1
            by_mode[s.mode.value] = by_mode.get(s.mode.value, 0) + 1

        total_pnl = sum(s.outcome.pnl for s in with_outcome)
        total_pnl_percent = sum(s.outcome.pnl_percent or 0 for s in with_outcome)
        acted_on = sum(1 for s in signals if s.acted)
        n_outcomes = len(with_outcome)

        return {
            'total_signals': len(signals),
            'acted_on': acted_on,
            'skipped': len(signals) - acted_on,
            'with_outcome': n_outcomes,
            'profitable_count': len(profitable),
            'total_pnl': total_pnl,
            'avg_pnl': total_pnl / n_outcomes if n_outcomes else 0,
            'total_pnl_percent': total_pnl_percent,
            'avg_pnl_percent': total_pnl_percent / n_outcomes if n_outcomes else 0,
            'win_rate': len(profitable) / n_outcomes if n_outcomes else 0,
            'avg_score': sum(s.score for s in signals) / len(signals) if signals else 0,
            'by_chain': by_chain,
            'by_mode': by_mode,
        }

    def export(self, **filters) -> str:
        """Signals matching `filters` as a JSON string."""
        return json.dumps([s.to_dict() for s in self.find(**filters)], indent=2)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def clear(self):
        """Remove every signal."""
        self._signals.clear()
        self._latest.clear()
        self._autosave()

    def _autosave(self):
        if self.auto_save:
            self.save()

    def save(self):
        """Write all signals to the log file. Raises OSError on failure."""
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        data = [s.to_dict() for s in self._signals.values()]
        with open(self.log_path, 'w') as f:
            json.dump(data, f, indent=2)

    def load(self):
        """Load signals from the log file; unreadable data leaves the store empty."""
        self._signals = {}
        self._latest = {}

        if not self.log_path.exists():
            logger.debug(f"[SIGNALS] No log at {self.log_path}, starting fresh")
            return

        try:
            with open(self.log_path, 'r') as f:
                data = json.load(f)
            if not isinstance(data, list):
                raise ValueError("signal log is not a JSON array")

            signals = {}
            latest = {}
            for record in data:
                signal = Signal.from_dict(record)
                signals[signal.id] = signal
                key = signal.dedupe_key
                latest[key] = max(latest.get(key, float('-inf')), signal.logged_ts)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"[SIGNALS] Failed to load signal log {self.log_path}: {e} - starting empty")
            return

        self._signals = signals
        self._latest = latest
        logger.info(f"[SIGNALS] Loaded {len(self._signals)} signals from {self.log_path}")
