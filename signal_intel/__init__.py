"""
SMART MONEY SIGNAL INTELLIGENCE

Trading-intelligence layer over a blockchain analytics API.
Turns raw smart-money flow data into deduplicated, risk-scored,
persisted trading signals under a bounded request budget.

Architecture:
  Nansen API (or any BaseCandidateSource)
          ↓
  RATE LIMITER + RESPONSE CACHE
          ↓
  RAW CANDIDATES (per chain / mode)
          ↓
  RISK ENGINE (filter, dedupe, score)
          ↓
  SIGNAL STORE (JSON log, outcomes, stats)
"""

from .models import (
    Candidate,
    MetricName,
    Outcome,
    Recommendation,
    ScanMode,
    Signal,
    SuggestedAction,
    TradingSignal,
)
from .exceptions import SignalIntelError, ConfigurationError, SourceError
from .cache import ResponseCache, CACHE_TTL, make_key
from .rate_limiter import RateLimiter, RATE_LIMIT_PRESETS
from .signal_store import SignalStore
from .risk_engine import RiskConfig, RiskEngine, filter_chains
from .deduplicator import ExpiringSet
from .base_source import BaseCandidateSource
from .nansen_api import NansenAPI
from .orchestrator import ScanOrchestrator, MonitorHandle, ScanError

__all__ = [
    'Candidate',
    'MetricName',
    'Outcome',
    'Recommendation',
    'ScanMode',
    'Signal',
    'SuggestedAction',
    'TradingSignal',
    'SignalIntelError',
    'ConfigurationError',
    'SourceError',
    'ResponseCache',
    'CACHE_TTL',
    'make_key',
    'RateLimiter',
    'RATE_LIMIT_PRESETS',
    'SignalStore',
    'RiskConfig',
    'RiskEngine',
    'filter_chains',
    'ExpiringSet',
    'BaseCandidateSource',
    'NansenAPI',
    'ScanOrchestrator',
    'MonitorHandle',
    'ScanError',
]
