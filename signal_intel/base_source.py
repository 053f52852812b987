"""
BASE SOURCE - Abstract base class for candidate data sources

Defines the interface the orchestrator depends on. A source turns one
(chain, mode) request into raw Candidates; it may fail with SourceError.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from datetime import datetime

from .models import Candidate, ScanMode


class BaseCandidateSource(ABC):
    """
    Abstract base class for candidate sources.
    """

    def __init__(self, config: Dict = None):
        """
        Initialize base source.

        Args:
            config: Configuration dict with API keys, timeouts, etc.
        """
        self.config = config or {}
        self.last_request_time: Optional[datetime] = None
        self.request_count = 0

    @abstractmethod
    async def fetch_candidates(self, chain: str, mode: ScanMode, limit: int = 20) -> List[Candidate]:
        """
        Fetch raw opportunity candidates.

        Args:
            chain: Target chain (base, ethereum, solana, etc.)
            mode: Scan mode
            limit: Maximum number of candidates to return

        Returns:
            List of Candidates, best first
        """

    async def analyze_token(self, token: str, chain: str) -> Dict:
        """
        Deep analysis for a single token. Optional.

        Raises:
            NotImplementedError if the source has no deep analysis
        """
        raise NotImplementedError(f"{self.__class__.__name__} does not support token analysis")

    async def close(self):
        """Release network resources."""

    def _update_rate_limit(self):
        """Update internal request tracking."""
        self.last_request_time = datetime.now()
        self.request_count += 1

    def _normalize_chain_name(self, chain: str) -> str:
        """
        Normalize chain name to lowercase standard format.

        Args:
            chain: Chain name in any case or a common alias

        Returns:
            Normalized chain name
        """
        chain_map = {
            'eth': 'ethereum',
            'arb': 'arbitrum',
            'op': 'optimism',
            'matic': 'polygon',
            'bnb': 'bsc',
            'avax': 'avalanche',
            'sol': 'solana',
        }
        return chain_map.get(chain.lower(), chain.lower())

    def get_stats(self) -> Dict:
        """
        Get source statistics.

        Returns:
            Dict with request count, last request time, source name
        """
        return {
            'request_count': self.request_count,
            'last_request': self.last_request_time.isoformat() if self.last_request_time else None,
            'source': self.__class__.__name__,
        }
