"""
RESPONSE CACHE

In-memory cache for data source responses to avoid redundant API calls.
Implements TTL-based expiration and tracks API credits saved.

CREDIT SAVINGS: every hit on a cached response is a vendor call not paid for.

Single event loop, no locking. Two overlapping get_or_fetch() calls for the
same key can both miss and both fetch; the last one to finish wins.
"""

import inspect
import json
import logging
import re
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)


# Default cache TTLs by data type (seconds)
CACHE_TTL = {
    'smart_money': 60,         # changes frequently
    'token_screen': 5 * 60,
    'dex_trades': 30,          # very dynamic
    'flows': 5 * 60,
    'wallet_profile': 15 * 60, # relatively stable
    'token_info': 5 * 60,
    'deep_analysis': 10 * 60,  # expensive, cache longer
    'search': 30 * 60,
}


def make_key(prefix: str, params: Dict[str, Any]) -> str:
    """
    Build a canonical cache key.

    Parameter names are sorted and values JSON-encoded, so
    make_key('p', {'a': 1, 'b': 2}) == make_key('p', {'b': 2, 'a': 1}).
    """
    parts = [
        f"{name}={json.dumps(params[name], sort_keys=True, default=str)}"
        for name in sorted(params)
    ]
    return f"{prefix}:{'&'.join(parts)}"


class ResponseCache:
    """
    TTL cache for API responses.

    Features:
    - Lazy expiration (expired entries are dropped on read)
    - Optional proactive prune()
    - Hit/miss and credits-saved stats
    """

    def __init__(self, config: Dict = None, clock: Callable[[], float] = None):
        """
        Initialize cache.

        Args:
            config: Cache configuration dict
            clock: Time source returning epoch seconds (time.time by default)
        """
        self.config = config or {}

        self.default_ttl = self.config.get('default_ttl_seconds', 60)
        self._clock = clock or time.time

        self._cache: Dict[str, Dict] = {}

        # Stats
        self.hits = 0
        self.misses = 0
        self.credits_saved = 0

    def get(self, key: str) -> Optional[Any]:
        """
        Get cached value if exists and not expired.

        Args:
            key: Cache key (see make_key)

        Returns:
            Cached value or None
        """
        entry = self._cache.get(key)
        if entry is None:
            self.misses += 1
            return None

        if self._is_expired(entry):
            del self._cache[key]
            self.misses += 1
            return None

        entry['hit_count'] += 1
        self.hits += 1
        return entry['value']

    def set(self, key: str, value: Any, ttl: float = None):
        """
        Set cache value with TTL.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Seconds to live (default_ttl if not given)
        """
        ttl = self.default_ttl if ttl is None else ttl
        self._cache[key] = {
            'value': value,
            'expires_at': self._clock() + ttl,
            'hit_count': 0,
        }

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: Callable[[], Union[Awaitable[Any], Any]],
        ttl: float = None,
        credits: int = 1
    ) -> Any:
        """
        Return the cached value or call fetch_fn and cache its result.

        Args:
            key: Cache key
            fetch_fn: Zero-arg callable, may return an awaitable
            ttl: Seconds to live for a freshly fetched value
            credits: API credits a hit saves

        Returns:
            Cached or freshly fetched value
        """
        entry = self._cache.get(key)
        if entry is not None and not self._is_expired(entry):
            entry['hit_count'] += 1
            self.hits += 1
            self.credits_saved += credits
            logger.debug(f"[CACHE] Hit {key} (saved {credits} credits)")
            return entry['value']

        if entry is not None:
            del self._cache[key]
        self.misses += 1

        value = fetch_fn()
        if inspect.isawaitable(value):
            value = await value

        self.set(key, value, ttl)
        return value

    def invalidate(self, key: str) -> bool:
        """Delete one entry. Returns True if it existed."""
        return self._cache.pop(key, None) is not None

    def invalidate_pattern(self, pattern: str) -> int:
        """
        Delete every entry whose key matches a regex.

        Returns:
            Number of entries removed
        """
        regex = re.compile(pattern)
        matched = [key for key in self._cache if regex.search(key)]
        for key in matched:
            del self._cache[key]
        return len(matched)

    def clear(self):
        """Clear all cache entries."""
        self._cache.clear()

    def prune(self) -> int:
        """Remove all expired entries."""
        expired_keys = [
            key for key, entry in self._cache.items()
            if self._is_expired(entry)
        ]

        for key in expired_keys:
            del self._cache[key]

        if expired_keys:
            logger.debug(f"[CACHE] Pruned {len(expired_keys)} expired entries")
        return len(expired_keys)

    def _is_expired(self, entry: Dict) -> bool:
        return self._clock() > entry['expires_at']

    def __len__(self):
        return len(self._cache)

    def get_stats(self) -> Dict:
        """
        Get cache statistics.

        Returns:
            Dict with cache stats
        """
        total_requests = self.hits + self.misses
        hit_rate = (self.hits / total_requests * 100) if total_requests > 0 else 0

        return {
            'hits': self.hits,
            'misses': self.misses,
            'entries': len(self._cache),
            'credits_saved': self.credits_saved,
            'hit_rate_pct': hit_rate,
            'default_ttl_seconds': self.default_ttl,
        }
