"""
Fetch Orchestrator for Returns Pages.

Sits between the returns manager and the upstream returns service:

1. Builds the canonical cache key for a query
2. Serves fresh cache entries without touching the network
3. Coalesces concurrent requests for the same key into one transport call
4. Retries failed calls immediately, a bounded number of times
5. Flags responses for keys that are no longer active so they are never
   published over newer state

Each call moves through ``idle -> fetching -> success | error``. A failed
refresh never touches the previous cache entry, which stays available
through ``peek`` as the last good value.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from returnsdesk.core.exceptions import FetchError, ReturnsServiceError
from returnsdesk.schemas.returns import QueryState
from returnsdesk.services.cache_service import CacheEntry, ResultCache, build_cache_key
from returnsdesk.services.returns_client import ReturnsTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchOutcome:
    key: str
    entry: CacheEntry
    from_cache: bool
    # True when the key stopped being the active key before the response
    # arrived; the payload is cached but must not be shown.
    discarded: bool = False


class FetchOrchestrator:
    """Cache-first, coalescing fetcher for returns pages."""

    def __init__(
        self,
        transport: ReturnsTransport,
        cache: ResultCache,
        max_retries: int = 2,
    ):
        self._transport = transport
        self._cache = cache
        self._max_retries = max(0, max_retries)
        self._inflight: Dict[str, asyncio.Task] = {}
        self._active_key: Optional[str] = None
        self._transport_calls = 0

    @property
    def cache(self) -> ResultCache:
        return self._cache

    @property
    def active_key(self) -> Optional[str]:
        return self._active_key

    @property
    def transport_calls(self) -> int:
        return self._transport_calls

    def key_for(self, query: QueryState) -> str:
        return build_cache_key(query)

    def activate(self, query: QueryState) -> str:
        """Mark the query's key as the one whose responses may be shown."""
        key = build_cache_key(query)
        if key != self._active_key:
            logger.debug(f"[FetchOrchestrator] Active key -> {key}")
        self._active_key = key
        return key

    def is_active(self, key: str) -> bool:
        return self._active_key is None or key == self._active_key

    def is_inflight(self, key: str) -> bool:
        return key in self._inflight

    def peek(self, query: QueryState) -> Optional[CacheEntry]:
        """Last good entry for the query, even if it is no longer fresh."""
        return self._cache.get(build_cache_key(query))

    def invalidate(self, key: Optional[str] = None) -> int:
        if key is None:
            return self._cache.clear()
        return 1 if self._cache.delete(key) else 0

    async def fetch(self, query: QueryState, force: bool = False) -> FetchOutcome:
        """
        Return the page for query.

        A fresh cache entry is returned as-is unless force is set. Otherwise
        the caller joins the in-flight request for the key, or starts one.

        Raises:
            FetchError: when every attempt failed
        """
        key = build_cache_key(query)

        if not force:
            entry = self._cache.get_fresh(key)
            if entry is not None:
                return FetchOutcome(
                    key=key,
                    entry=entry,
                    from_cache=True,
                    discarded=not self.is_active(key),
                )

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(key, query))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            logger.debug(f"[FetchOrchestrator] Joining in-flight request for {key}")

        # Shield so a cancelled caller does not cancel the shared request.
        entry = await asyncio.shield(task)

        discarded = not self.is_active(key)
        if discarded:
            logger.info(f"[FetchOrchestrator] Discarding response for inactive key {key}")
        return FetchOutcome(key=key, entry=entry, from_cache=False, discarded=discarded)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark the exception retrieved; waiters re-raise it themselves.
            task.exception()

    async def _run(self, key: str, query: QueryState) -> CacheEntry:
        attempts = self._max_retries + 1
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            self._transport_calls += 1
            try:
                page = await self._transport.fetch_returns(query)
            except ReturnsServiceError as e:
                last_error = e
                logger.warning(
                    f"[FetchOrchestrator] Attempt {attempt}/{attempts} failed for {key}: {e.message}"
                )
                continue
            except Exception as e:
                logger.exception(f"[FetchOrchestrator] Unexpected error fetching {key}")
                raise FetchError(key, attempt, e) from e

            entry = self._cache.set(key, page)
            logger.info(
                f"[FetchOrchestrator] Loaded {len(page.returns)} of {page.total} returns for {key}"
            )
            return entry

        logger.error(f"[FetchOrchestrator] Giving up on {key} after {attempts} attempts")
        raise FetchError(key, attempts, last_error)

    async def aclose(self) -> None:
        """Cancel requests that are still in flight."""
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()
