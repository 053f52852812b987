"""
DEDUPLICATOR

Short-lived, in-process "already delivered" tracking for the monitor loop.

Entries store their insertion time and are checked on read; nothing is
scheduled to expire them.
"""

import time
from typing import Callable, Dict


class ExpiringSet:
    """
    Set of keys that forget themselves after `window_seconds`.
    """

    def __init__(self, window_seconds: float, clock: Callable[[], float] = None):
        self.window_seconds = window_seconds
        self._clock = clock or time.time

        # key -> time first seen
        self._seen: Dict[str, float] = {}

        # Stats
        self.stats = {
            'added': 0,
            'duplicates': 0,
            'expired': 0,
        }

    def _is_live(self, seen_at: float, now: float) -> bool:
        return now - seen_at < self.window_seconds

    def __contains__(self, key: str) -> bool:
        seen_at = self._seen.get(key)
        if seen_at is None:
            return False

        if self._is_live(seen_at, self._clock()):
            return True

        del self._seen[key]
        self.stats['expired'] += 1
        return False

    def add(self, key: str):
        self._seen[key] = self._clock()
        self.stats['added'] += 1

    def check_and_add(self, key: str) -> bool:
        """
        Record `key` if it is not currently tracked.

        Returns:
            True if the key is new (caller should deliver), False if duplicate
        """
        if key in self:
            self.stats['duplicates'] += 1
            return False

        self.add(key)
        return True

    def cleanup_expired(self) -> int:
        """Remove expired entries."""
        now = self._clock()
        expired = [k for k, seen_at in self._seen.items() if not self._is_live(seen_at, now)]
        for key in expired:
            del self._seen[key]
        self.stats['expired'] += len(expired)
        return len(expired)

    def __len__(self):
        return len(self._seen)

    def get_stats(self) -> Dict:
        return {
            **self.stats,
            'currently_tracked': len(self._seen),
            'window_seconds': self.window_seconds,
        }
