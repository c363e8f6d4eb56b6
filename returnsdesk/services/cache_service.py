"""
Result Cache for Returns Pages.

Every page of returns is cached under a canonical key built from the
account selection, the normalized filters and the pagination. Logically
identical queries always produce the same key regardless of how the
filters were assembled.

Cache keys follow the format:

    returns:{sorted account ids}:{filters digest}:p{page}:s{page_size}

Examples:
    returns:acc-1:44136fa355b3678a1146ad16f7e8649e:p1:s50
    returns:acc-1,acc-2:99914b932bd37a50b983c5e7c90ae93b:p3:s100

Entries stay *fresh* for the freshness window; after that they are still
returned by ``get`` so callers can keep showing the last good page while a
refresh is in flight (stale-while-revalidate). Entries older than the
retention period are dropped by ``purge_expired``.

Usage:
    cache = ResultCache(freshness_window=timedelta(seconds=60))
    key = build_cache_key(query)
    entry = cache.get_fresh(key)
    if entry is None:
        cache.set(key, page)
"""
import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from returnsdesk.core.clock import Clock, utcnow
from returnsdesk.schemas.returns import QueryState, ReturnsPage

logger = logging.getLogger(__name__)

KEY_NAMESPACE = "returns"


def hash_params(params: dict) -> str:
    """Create a stable digest from normalized query parameters."""
    param_str = json.dumps(params, sort_keys=True, separators=(",", ":"))
    return hashlib.md5(param_str.encode()).hexdigest()


def build_cache_key(query: QueryState) -> str:
    """
    Canonical cache key for a query.

    Account ids are sorted; filters drop empty strings, empty lists and
    None and sort their list values before hashing.
    """
    accounts = ",".join(query.selection.effective_ids())
    digest = hash_params(query.filters.normalized())
    return f"{KEY_NAMESPACE}:{accounts}:{digest}:p{query.page}:s{query.page_size}"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    payload: ReturnsPage
    fetched_at: datetime

    def age(self, now: datetime) -> timedelta:
        return now - self.fetched_at

    def is_fresh(self, now: datetime, window: timedelta) -> bool:
        return self.age(now) < window


class ResultCache:
    """
    In-process cache of returns pages.

    One instance per orchestrator; there is no module-level cache so tests
    and independent screens never share entries.
    """

    def __init__(
        self,
        freshness_window: timedelta = timedelta(seconds=60),
        retention: timedelta = timedelta(minutes=30),
        max_entries: int = 256,
        clock: Clock = utcnow,
    ):
        self._window = freshness_window
        self._retention = max(retention, freshness_window)
        self._max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[CacheEntry]:
        """Last stored entry for key, fresh or not."""
        return self._entries.get(key)

    def get_fresh(self, key: str) -> Optional[CacheEntry]:
        """Entry for key only if it is inside the freshness window."""
        entry = self._entries.get(key)
        if entry is not None and entry.is_fresh(self._clock(), self._window):
            self._hits += 1
            return entry
        self._misses += 1
        return None

    def set(self, key: str, payload: ReturnsPage) -> CacheEntry:
        """Store payload under key, evicting the oldest entry when full."""
        if key not in self._entries and len(self._entries) >= self._max_entries:
            oldest_key = min(self._entries, key=lambda k: self._entries[k].fetched_at)
            del self._entries[oldest_key]
        entry = CacheEntry(key=key, payload=payload, fetched_at=self._clock())
        self._entries[key] = entry
        return entry

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        return count

    def purge_expired(self) -> int:
        """Drop entries older than the retention period."""
        now = self._clock()
        expired = [
            k for k, entry in self._entries.items()
            if entry.age(now) >= self._retention
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"[ResultCache] Purged {len(expired)} expired entries")
        return len(expired)

    def stats(self) -> Dict[str, int]:
        return {
            "hits": self._hits,
            "misses": self._misses,
            "size": len(self._entries),
        }
