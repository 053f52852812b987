"""
NANSEN API CLIENT

Smart-money data source for the signal pipeline.

Nansen provides:
- Smart money netflows per token (1h / 24h / 7d / 30d)
- Token God Mode breakdowns (holders, who bought/sold)
- API KEY REQUIRED (NANSEN_API_KEY)

Pacing and caching are the orchestrator's job; this client only talks HTTP
and maps vendor rows to Candidates.
"""

import aiohttp
import asyncio
import logging
import os
from typing import List, Dict, Optional
from datetime import datetime, timedelta, timezone

from .base_source import BaseCandidateSource
from .exceptions import ConfigurationError, SourceError
from .models import Candidate, MetricName, ScanMode, utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.nansen.ai/api/v1"

# Accumulation scans ignore inflows smaller than this
MIN_ACCUMULATION_NETFLOW_USD = 10000


def format_number(num: float) -> str:
    """1234567 -> '1.23M'."""
    if num >= 1e9:
        return f"{num / 1e9:.2f}B"
    if num >= 1e6:
        return f"{num / 1e6:.2f}M"
    if num >= 1e3:
        return f"{num / 1e3:.2f}K"
    return f"{num:.2f}"


def default_date_range(days: int = 7) -> Dict[str, str]:
    """{'from': 'YYYY-MM-DD', 'to': 'YYYY-MM-DD'} covering the last `days` days."""
    today = datetime.now(timezone.utc).date()
    return {
        'from': (today - timedelta(days=days)).isoformat(),
        'to': today.isoformat(),
    }


def netflow_score(row: Dict) -> float:
    """
    Opportunity score for a normalized netflow row (0-10).

    - |24h netflow| / $50k, capped at 5
    - trader count / 5, capped at 3
    - +2 when the 7d netflow points the same way as the 24h netflow
    """
    netflow_part = min(abs(row['netflow_usd']) / 50000, 5)
    trader_part = min(row['trader_count'] / 5, 3)

    trend_bonus = 0
    netflow_7d = row.get('netflow_7d')
    if netflow_7d:
        same_direction = (row['netflow_usd'] > 0 and netflow_7d > 0) or \
                         (row['netflow_usd'] < 0 and netflow_7d < 0)
        trend_bonus = 2 if same_direction else 0

    return netflow_part + trader_part + trend_bonus


class NansenAPI(BaseCandidateSource):
    """
    Nansen API client (aiohttp).

    Raises ConfigurationError immediately if no API key is available.
    """

    def __init__(self, api_key: Optional[str] = None, config: Dict = None):
        """
        Initialize Nansen API client.

        Args:
            api_key: API key (falls back to NANSEN_API_KEY)
            config: Optional config dict (base_url, timeout_seconds)
        """
        super().__init__(config)

        self.api_key = (api_key or os.getenv('NANSEN_API_KEY', '')).strip()
        if not self.api_key:
            raise ConfigurationError("NANSEN_API_KEY is required")

        self.base_url = self.config.get('base_url') or os.getenv('NANSEN_BASE_URL') or DEFAULT_BASE_URL
        self.timeout = self.config.get('timeout_seconds', 10)
        self.session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def _ensure_session(self):
        """Ensure aiohttp session exists."""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )

    async def close(self):
        """Close aiohttp session."""
        if self.session:
            await self.session.close()
            self.session = None

    async def _request(self, endpoint: str, body: Dict = None) -> Dict:
        """
        POST a JSON body to the API.

        Args:
            endpoint: Path below base_url, e.g. '/smart-money/netflow'
            body: JSON body

        Returns:
            Decoded JSON response

        Raises:
            SourceError on HTTP, network or timeout failure
        """
        await self._ensure_session()

        url = f"{self.base_url}{endpoint}"
        headers = {
            'apiKey': self.api_key,
            'Content-Type': 'application/json',
        }

        try:
            async with self.session.post(url, json=body or {}, headers=headers) as response:
                self._update_rate_limit()

                if response.status == 200:
                    return await response.json()

                try:
                    error = await response.json()
                except (aiohttp.ContentTypeError, ValueError):
                    error = {}
                if not isinstance(error, dict):
                    error = {}

                code = error.get('code') or f"HTTP_{response.status}"
                message = error.get('message') or response.reason or 'API request failed'
                if response.status == 429:
                    logger.warning(f"[NANSEN] Rate limited on {endpoint}")
                raise SourceError(code, message, error.get('details'))

        except asyncio.TimeoutError as e:
            raise SourceError('TIMEOUT', f"Timeout after {self.timeout}s: {endpoint}") from e
        except aiohttp.ClientError as e:
            raise SourceError('NETWORK', f"Request error on {endpoint}: {e}") from e

    # ------------------------------------------------------------------
    # Smart money
    # ------------------------------------------------------------------

    async def get_smart_money_netflow(
        self,
        chain: str,
        direction: str = 'all',
        min_value: float = None,
        limit: int = 20
    ) -> List[Dict]:
        """
        Smart money netflow per token.

        Args:
            chain: Target chain
            direction: 'inflow', 'outflow' or 'all'
            min_value: Minimum |24h netflow| in USD
            limit: Maximum rows

        Returns:
            Normalized rows (token, symbol, chain, netflow_usd, netflow_7d, trader_count, ...)
        """
        chain = self._normalize_chain_name(chain)
        response = await self._request('/smart-money/netflow', {'chains': [chain]})

        rows = [self._normalize_netflow(item, chain) for item in (response.get('data') or [])]

        if direction == 'inflow':
            rows = [r for r in rows if r['netflow_usd'] > 0]
        elif direction == 'outflow':
            rows = [r for r in rows if r['netflow_usd'] < 0]

        if min_value:
            rows = [r for r in rows if abs(r['netflow_usd']) >= min_value]

        return rows[:limit] if limit else rows

    @staticmethod
    def _normalize_netflow(item: Dict, chain: str) -> Dict:
        netflow = float(item.get('net_flow_24h_usd') or 0)
        traders = int(item.get('trader_count') or 0)
        return {
            'token': item.get('token_address', ''),
            'symbol': item.get('token_symbol', ''),
            'chain': item.get('chain') or chain,
            'netflow_usd': netflow,
            'netflow_1h': float(item.get('net_flow_1h_usd') or 0),
            'netflow_7d': float(item.get('net_flow_7d_usd') or 0),
            'netflow_30d': float(item.get('net_flow_30d_usd') or 0),
            'trader_count': traders,
            'market_cap': float(item.get('market_cap_usd') or 0),
            'token_age_days': item.get('token_age_days'),
            'sectors': item.get('token_sectors') or [],
        }

    async def fetch_candidates(self, chain: str, mode: ScanMode, limit: int = 20) -> List[Candidate]:
        """
        Scan smart money netflows for opportunities.

        accumulation: tokens with >= $10k smart money inflow
        distribution: tokens smart money is exiting
        other modes:  every token, typed by flow direction
        """
        mode = ScanMode(mode)

        if mode == ScanMode.ACCUMULATION:
            rows = await self.get_smart_money_netflow(
                chain, direction='inflow', min_value=MIN_ACCUMULATION_NETFLOW_USD, limit=limit
            )
        elif mode == ScanMode.DISTRIBUTION:
            rows = await self.get_smart_money_netflow(chain, direction='outflow', limit=limit)
        else:
            rows = await self.get_smart_money_netflow(chain, limit=limit)

        produced_at = utc_now_iso()
        candidates = [self._row_to_candidate(row, mode, produced_at) for row in rows]
        candidates.sort(key=lambda c: c.score, reverse=True)

        logger.debug(f"[NANSEN] {chain}/{mode.value}: {len(candidates)} candidates")
        return candidates

    @staticmethod
    def _row_to_candidate(row: Dict, mode: ScanMode, produced_at: str) -> Candidate:
        netflow = row['netflow_usd']
        traders = row['trader_count']

        if mode == ScanMode.ACCUMULATION:
            signal_mode = mode
            reason = f"{traders} smart traders, ${format_number(netflow)} net inflow (24h)"
        elif mode == ScanMode.DISTRIBUTION:
            signal_mode = mode
            reason = f"{traders} smart traders exiting, ${format_number(abs(netflow))} outflow (24h)"
        else:
            inflow = netflow > 0
            signal_mode = ScanMode.ACCUMULATION if inflow else ScanMode.DISTRIBUTION
            direction = 'inflow' if inflow else 'outflow'
            reason = f"{traders} smart traders, ${format_number(abs(netflow))} {direction}"

        metrics = {
            MetricName.NETFLOW_24H: netflow,
            MetricName.NETFLOW_7D: row.get('netflow_7d') or 0.0,
            MetricName.TRADER_COUNT: float(traders),
            MetricName.MARKET_CAP: row.get('market_cap') or 0.0,
        }

        return Candidate(
            mode=signal_mode,
            token=row['token'],
            symbol=row['symbol'],
            chain=row['chain'],
            score=abs(netflow_score(row)),
            reason=reason,
            metrics=metrics,
            produced_at=produced_at,
        )

    # ------------------------------------------------------------------
    # Token God Mode
    # ------------------------------------------------------------------

    async def analyze_token(self, token: str, chain: str) -> Dict:
        """
        Who bought/sold and top holders for a token over the last 7 days.

        Returns:
            Summary dict with volumes, top buyers and top holders
        """
        chain = self._normalize_chain_name(chain)
        body = {'chain': chain, 'token_address': token, 'date': default_date_range()}

        flows, holders = await asyncio.gather(
            self._request('/tgm/who-bought-sold', body),
            self._request('/tgm/holders', body),
        )

        entities = flows.get('data') or []
        buy_volume = sum(float(e.get('buy_volume_usd') or 0) for e in entities)
        sell_volume = sum(float(e.get('sell_volume_usd') or 0) for e in entities)

        top_buyers = sorted(entities, key=lambda e: float(e.get('net_volume_usd') or 0), reverse=True)[:5]

        return {
            'token': token,
            'chain': chain,
            'buy_volume_usd': buy_volume,
            'sell_volume_usd': sell_volume,
            'net_volume_usd': buy_volume - sell_volume,
            'top_buyers': [
                {
                    'entity': e.get('entity'),
                    'label': e.get('entity_label'),
                    'net_volume_usd': float(e.get('net_volume_usd') or 0),
                    'trade_count': e.get('trade_count', 0),
                }
                for e in top_buyers
            ],
            'top_holders': [
                {
                    'address': h.get('address'),
                    'label': h.get('address_label'),
                    'value_usd': float(h.get('value_usd') or 0),
                    'ownership_pct': float(h.get('ownership_percentage') or 0) * 100,
                }
                for h in (holders.get('data') or [])[:10]
            ],
        }
