"""
SIGNAL MODELS

Data structures flowing through the signal pipeline:

  Candidate      raw opportunity from the data source (one scan only)
       ↓
  Signal         persisted record (SignalStore)
       ↓
  TradingSignal  Signal + risk score / recommendation (recomputed each scan)

Metrics use a closed set of names (MetricName) so threshold checks stay explicit.
"""

from enum import Enum
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime, timezone


class ScanMode(Enum):
    """Opportunity scan modes supported by the data source."""
    ACCUMULATION = "accumulation"
    DISTRIBUTION = "distribution"
    BREAKOUT = "breakout"
    FRESH_WALLETS = "fresh-wallets"


class MetricName(Enum):
    """Known candidate metrics."""
    BUYERS = "buyers"
    SELLERS = "sellers"
    NETFLOW_24H = "netflow24h"
    NETFLOW_7D = "netflow7d"
    TRADER_COUNT = "traderCount"
    MARKET_CAP = "marketCap"
    FRESH_WALLETS = "freshWallets"


class Recommendation(Enum):
    STRONG_BUY = "strong_buy"
    BUY = "buy"
    WATCH = "watch"
    AVOID = "avoid"


OUTCOME_ACTIONS = ('buy', 'sell', 'skip')


def utc_now_iso(ts: float = None) -> str:
    """ISO-8601 UTC timestamp for epoch seconds (now if not given)."""
    if ts is None:
        return datetime.now(timezone.utc).isoformat()
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def parse_iso(value: str) -> float:
    """Parse an ISO-8601 timestamp into epoch seconds."""
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def _metrics_to_dict(metrics: Dict[MetricName, float]) -> Dict[str, float]:
    return {name.value: value for name, value in metrics.items()}


def _metrics_from_dict(raw: Optional[Dict[str, Any]]) -> Dict[MetricName, float]:
    metrics = {}
    for key, value in (raw or {}).items():
        try:
            name = MetricName(key)
        except ValueError:
            # Unknown vendor metric - not part of the scoring model
            continue
        if value is None:
            continue
        metrics[name] = float(value)
    return metrics


@dataclass
class Candidate:
    """Unfiltered, unscored opportunity for one (chain, mode) pair."""
    mode: ScanMode
    token: str
    symbol: str
    chain: str
    score: float
    reason: str = ""
    metrics: Dict[MetricName, float] = field(default_factory=dict)
    produced_at: str = field(default_factory=utc_now_iso)

    def metric(self, name: MetricName) -> Optional[float]:
        """Metric value or None when the source did not report it."""
        return self.metrics.get(name)

    @property
    def signal_id(self) -> str:
        return f"{self.chain}:{self.token}:{self.mode.value}:{self.produced_at}"

    @property
    def dedupe_key(self) -> str:
        return f"{self.chain}:{self.token}:{self.mode.value}"

    @property
    def token_key(self) -> str:
        return f"{self.chain}:{self.token}"

    def to_dict(self) -> Dict:
        return {
            'type': self.mode.value,
            'token': self.token,
            'symbol': self.symbol,
            'chain': self.chain,
            'score': self.score,
            'reason': self.reason,
            'metrics': _metrics_to_dict(self.metrics),
            'timestamp': self.produced_at,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Candidate':
        return cls(
            mode=ScanMode(data.get('type') or data.get('mode')),
            token=data['token'],
            symbol=data.get('symbol', ''),
            chain=data['chain'],
            score=float(data.get('score', 0)),
            reason=data.get('reason', ''),
            metrics=_metrics_from_dict(data.get('metrics')),
            produced_at=data.get('timestamp') or data.get('produced_at'),
        )


@dataclass
class Outcome:
    """What happened after a signal was emitted."""
    action: Optional[str] = None
    executed_at: Optional[str] = None
    entry_price: Optional[float] = None
    exit_price: Optional[float] = None
    pnl: Optional[float] = None
    pnl_percent: Optional[float] = None
    notes: Optional[str] = None

    # snake_case attribute -> key in the JSON log
    FIELD_KEYS = {
        'action': 'action',
        'executed_at': 'executedAt',
        'entry_price': 'entryPrice',
        'exit_price': 'exitPrice',
        'pnl': 'pnl',
        'pnl_percent': 'pnlPercent',
        'notes': 'notes',
    }

    def derive_pnl(self):
        """Recompute pnl from entry/exit prices when both are known."""
        if self.entry_price is None or self.exit_price is None:
            return
        self.pnl = self.exit_price - self.entry_price
        if self.entry_price:
            self.pnl_percent = self.pnl / self.entry_price * 100
        else:
            self.pnl_percent = 0.0

    def to_dict(self) -> Dict:
        data = {}
        for attr, key in self.FIELD_KEYS.items():
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Outcome':
        kwargs = {}
        for attr, key in cls.FIELD_KEYS.items():
            if key in data:
                kwargs[attr] = data[key]
            elif attr in data:
                kwargs[attr] = data[attr]
        return cls(**kwargs)


@dataclass
class Signal:
    """Persisted record of a candidate that survived risk filtering."""
    candidate: Candidate
    id: str
    logged_at: str
    acted: bool = False
    outcome: Optional[Outcome] = None

    # Candidate passthroughs
    @property
    def mode(self) -> ScanMode:
        return self.candidate.mode

    @property
    def token(self) -> str:
        return self.candidate.token

    @property
    def symbol(self) -> str:
        return self.candidate.symbol

    @property
    def chain(self) -> str:
        return self.candidate.chain

    @property
    def score(self) -> float:
        return self.candidate.score

    @property
    def reason(self) -> str:
        return self.candidate.reason

    @property
    def logged_ts(self) -> float:
        return parse_iso(self.logged_at)

    @property
    def dedupe_key(self) -> str:
        return self.candidate.dedupe_key

    @property
    def has_pnl(self) -> bool:
        return self.outcome is not None and self.outcome.pnl is not None

    def to_dict(self) -> Dict:
        data = self.candidate.to_dict()
        data.update({
            'id': self.id,
            'loggedAt': self.logged_at,
            'acted': self.acted,
        })
        if self.outcome is not None:
            data['outcome'] = self.outcome.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Signal':
        candidate = Candidate.from_dict(data)
        outcome = data.get('outcome')
        return cls(
            candidate=candidate,
            id=data.get('id') or candidate.signal_id,
            logged_at=data.get('loggedAt') or data.get('logged_at'),
            acted=bool(data.get('acted', False)),
            outcome=Outcome.from_dict(outcome) if outcome else None,
        )


@dataclass
class SuggestedAction:
    action: str
    urgency: str
    reasoning: str
    target_chain: str
    target_token: str
    position_size_hint: str

    def to_dict(self) -> Dict:
        return {
            'action': self.action,
            'urgency': self.urgency,
            'reasoning': self.reasoning,
            'targetChain': self.target_chain,
            'targetToken': self.target_token,
            'positionSizeHint': self.position_size_hint,
        }


@dataclass
class TradingSignal:
    """
    Signal annotated with risk analysis.

    Never persisted as such - recomputed on every scan. logged_at stays None
    until the orchestrator has written the signal to the store.
    """
    candidate: Candidate
    risk_score: int
    risk_factors: List[str]
    recommendation: Recommendation
    confidence: float
    suggested_action: Optional[SuggestedAction] = None
    logged_at: Optional[str] = None
    acted: bool = False
    analysis: Optional[Dict] = None

    @property
    def id(self) -> str:
        return self.candidate.signal_id

    @property
    def mode(self) -> ScanMode:
        return self.candidate.mode

    @property
    def token(self) -> str:
        return self.candidate.token

    @property
    def symbol(self) -> str:
        return self.candidate.symbol

    @property
    def chain(self) -> str:
        return self.candidate.chain

    @property
    def score(self) -> float:
        return self.candidate.score

    @property
    def reason(self) -> str:
        return self.candidate.reason

    @property
    def dedupe_key(self) -> str:
        return self.candidate.dedupe_key

    def to_dict(self) -> Dict:
        data = self.candidate.to_dict()
        data.update({
            'id': self.id,
            'loggedAt': self.logged_at,
            'acted': self.acted,
            'riskScore': self.risk_score,
            'riskFactors': list(self.risk_factors),
            'recommendation': self.recommendation.value,
            'confidence': self.confidence,
        })
        if self.suggested_action is not None:
            data['suggestedAction'] = self.suggested_action.to_dict()
        if self.analysis is not None:
            data['analysis'] = self.analysis
        return data
