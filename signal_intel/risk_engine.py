"""
RISK ENGINE

Rule-based filtering and scoring of raw candidates.

Stages (in order):
1. Chain allow/deny list   (applied to the chain list before fetching)
2. Threshold filter        (score + configured metric minimums)
3. Deduplication           (recently logged signals, then one candidate per chain+token)
4. Scoring                 (integer risk score -> recommendation / confidence)

Pure and synchronous: identical candidates + config + recency predicate
always give identical output.
"""

import logging
from dataclasses import dataclass, fields, replace
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .models import (
    Candidate,
    MetricName,
    Recommendation,
    SuggestedAction,
    TradingSignal,
)

logger = logging.getLogger(__name__)

RecencyCheck = Callable[[Candidate, float], bool]

HIGH_NETFLOW_USD = 100000

# risk_score floor -> (recommendation, confidence), checked top-down
RECOMMENDATION_LADDER = [
    (3, Recommendation.STRONG_BUY, 0.8),
    (1, Recommendation.BUY, 0.6),
    (0, Recommendation.WATCH, 0.4),
]
FALLBACK_RECOMMENDATION = (Recommendation.AVOID, 0.3)


@dataclass
class RiskConfig:
    """Risk filter settings. Thresholds set to None are not applied."""
    min_score: float = 2.0
    max_signals_per_scan: int = 10
    dedupe_window_seconds: float = 60 * 60
    min_smart_money_buyers: Optional[float] = 3
    min_netflow_usd: Optional[float] = 10000
    min_fresh_wallets: Optional[float] = 5
    allowed_chains: Optional[List[str]] = None
    excluded_chains: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Dict = None) -> 'RiskConfig':
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})

    def merged(self, overrides: Dict = None, **kwargs) -> 'RiskConfig':
        """Copy with overrides applied; None values keep the current setting."""
        changes = dict(overrides or {})
        changes.update(kwargs)
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown risk settings: {sorted(unknown)}")
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def filter_chains(chains: Iterable[str], config: RiskConfig) -> List[str]:
    """Apply the allow-list first, then remove excluded chains."""
    result = list(chains)

    if config.allowed_chains:
        result = [c for c in result if c in config.allowed_chains]

    if config.excluded_chains:
        result = [c for c in result if c not in config.excluded_chains]

    return result


class RiskEngine:
    """
    Turns candidates into ranked TradingSignals.
    """

    def __init__(self):
        # Stats
        self.stats = {
            'total_evaluated': 0,
            'below_threshold': 0,
            'recent_duplicates': 0,
            'batch_duplicates': 0,
            'emitted': 0,
        }

    def evaluate(
        self,
        candidates: Iterable[Candidate],
        config: RiskConfig,
        is_recent: RecencyCheck = None
    ) -> List[TradingSignal]:
        """
        Run threshold filter, dedup and scoring.

        Args:
            candidates: Raw candidates from one scan
            config: Effective risk config
            is_recent: (candidate, window_seconds) -> True if already logged recently

        Returns:
            TradingSignals sorted by risk score, then raw score, truncated
            to config.max_signals_per_scan
        """
        candidates = list(candidates)
        self.stats['total_evaluated'] += len(candidates)

        passed = []
        for candidate in candidates:
            ok, reason = self.apply_filters(candidate, config)
            if ok:
                passed.append(candidate)
            else:
                self.stats['below_threshold'] += 1
                logger.debug(f"[RISK] Drop {candidate.dedupe_key}: {reason}")

        deduped = self.deduplicate(passed, config.dedupe_window_seconds, is_recent)

        scored = [self.score_candidate(c) for c in deduped]
        scored.sort(key=lambda s: (s.risk_score, s.score), reverse=True)

        result = scored[:config.max_signals_per_scan]
        self.stats['emitted'] += len(result)
        return result

    def apply_filters(self, candidate: Candidate, config: RiskConfig) -> Tuple[bool, Optional[str]]:
        """
        Threshold checks.

        A missing metric never fails a check; only a reported value
        below the configured minimum does.

        Returns:
            (passed, reason or None)
        """
        if candidate.score < config.min_score:
            return False, f"LOW_SCORE ({candidate.score:.2f} < {config.min_score})"

        buyers = candidate.metric(MetricName.BUYERS)
        if config.min_smart_money_buyers is not None and buyers is not None:
            if buyers < config.min_smart_money_buyers:
                return False, f"LOW_BUYERS ({buyers:.0f} < {config.min_smart_money_buyers})"

        netflow = candidate.metric(MetricName.NETFLOW_24H)
        if config.min_netflow_usd is not None and netflow is not None:
            if abs(netflow) < config.min_netflow_usd:
                return False, f"LOW_NETFLOW (${abs(netflow):,.0f} < ${config.min_netflow_usd:,.0f})"

        fresh = candidate.metric(MetricName.FRESH_WALLETS)
        if config.min_fresh_wallets is not None and fresh is not None:
            if fresh < config.min_fresh_wallets:
                return False, f"LOW_FRESH_WALLETS ({fresh:.0f} < {config.min_fresh_wallets})"

        return True, None

    def deduplicate(
        self,
        candidates: List[Candidate],
        window_seconds: float,
        is_recent: RecencyCheck = None
    ) -> List[Candidate]:
        """
        Drop recently logged candidates, then keep the best-scoring
        candidate per chain+token (mode ignored).
        """
        best: Dict[str, Candidate] = {}

        for candidate in candidates:
            if is_recent is not None and is_recent(candidate, window_seconds):
                self.stats['recent_duplicates'] += 1
                continue

            key = candidate.token_key
            existing = best.get(key)
            if existing is None:
                best[key] = candidate
            elif candidate.score > existing.score:
                best[key] = candidate
                self.stats['batch_duplicates'] += 1
            else:
                self.stats['batch_duplicates'] += 1

        return list(best.values())

    def score_candidate(self, candidate: Candidate) -> TradingSignal:
        """Compute risk score, factors and recommendation for one candidate."""
        risk_score = 0
        factors = []

        if candidate.score > 5:
            risk_score += 2
        elif candidate.score > 3:
            risk_score += 1

        buyers = candidate.metric(MetricName.BUYERS)
        sellers = candidate.metric(MetricName.SELLERS)
        netflow = candidate.metric(MetricName.NETFLOW_24H)
        both_sides = buyers is not None and sellers is not None

        if both_sides and buyers > sellers * 2:
            risk_score += 1
            factors.append('Strong buyer/seller ratio')

        if netflow is not None and netflow > HIGH_NETFLOW_USD:
            risk_score += 1
            factors.append('High netflow')

        if both_sides and sellers > buyers:
            risk_score -= 1
            factors.append('More sellers than buyers')

        recommendation, confidence = self.recommend(risk_score)

        suggested = None
        if recommendation in (Recommendation.STRONG_BUY, Recommendation.BUY):
            strong = recommendation == Recommendation.STRONG_BUY
            suggested = SuggestedAction(
                action='buy',
                urgency='high' if strong else 'medium',
                reasoning='; '.join(factors) or 'Positive signal detected',
                target_chain=candidate.chain,
                target_token=candidate.token,
                position_size_hint='medium' if strong else 'small',
            )

        return TradingSignal(
            candidate=candidate,
            risk_score=risk_score,
            risk_factors=factors,
            recommendation=recommendation,
            confidence=confidence,
            suggested_action=suggested,
        )

    @staticmethod
    def recommend(risk_score: int) -> Tuple[Recommendation, float]:
        for floor, recommendation, confidence in RECOMMENDATION_LADDER:
            if risk_score >= floor:
                return recommendation, confidence
        return FALLBACK_RECOMMENDATION

    def get_stats(self) -> Dict:
        return dict(self.stats)
