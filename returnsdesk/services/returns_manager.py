"""
Returns Manager

Single owner of the returns listing state. Wires together:

- FilterController      -> which query is active
- FetchOrchestrator     -> cached / coalesced / retried page loads
- aggregate()           -> groups + independent returns for display
- SnapshotStore         -> last good result, restored on start
- AnnotationStore       -> local review statuses merged in by record id

All state changes happen on the event loop that owns the manager; page
loads are the only suspension points. Failures never raise out of the
manager: they end up in ``view().error`` while the last good data stays
visible.

Usage:
    manager = build_returns_manager()
    await manager.start()
    manager.set_filters({"search": "camisa"})
    view = manager.view()
"""

import asyncio
import logging
import math
from datetime import timedelta
from typing import Any, Callable, Coroutine, Dict, List, Optional, Set, Union

from returnsdesk.config import Settings, settings as default_settings
from returnsdesk.core.clock import Clock, utcnow
from returnsdesk.core.exceptions import FetchError
from returnsdesk.core.storage import KeyValueStore, create_store
from returnsdesk.schemas.annotation import Annotation, ReviewStatus
from returnsdesk.schemas.hierarchy import HierarchyResult
from returnsdesk.schemas.returns import FilterCriteria, QueryState, ReturnRecord
from returnsdesk.schemas.snapshot import PersistedSnapshot
from returnsdesk.schemas.view import FetchStatus, ReturnsView
from returnsdesk.services.annotation_store import AnnotationStore
from returnsdesk.services.cache_service import CacheEntry, ResultCache
from returnsdesk.services.fetch_orchestrator import FetchOrchestrator
from returnsdesk.services.filter_controller import FilterController
from returnsdesk.services.hierarchy_service import aggregate
from returnsdesk.services.returns_client import HttpReturnsClient, ReturnsTransport
from returnsdesk.services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

ViewListener = Callable[[ReturnsView], None]


class ReturnsManager:
    """State holder behind the returns screen."""

    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        controller: FilterController,
        snapshots: SnapshotStore,
        annotations: AnnotationStore,
    ):
        self._orchestrator = orchestrator
        self._controller = controller
        self._snapshots = snapshots
        self._annotations = annotations

        self._records: List[ReturnRecord] = []
        self._hierarchy = HierarchyResult()
        self._total = 0
        self._status = FetchStatus.IDLE
        self._error: Optional[str] = None
        self._loading = False
        self._refreshing = False
        self._cached_at = None
        self._shown_entry: Optional[CacheEntry] = None
        self._shown_accounts: List[str] = controller.selection.effective_ids()

        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[ViewListener] = []
        self._unsubscribe = controller.subscribe(self._on_query_change)

    # ==================== Collaborators ====================

    @property
    def orchestrator(self) -> FetchOrchestrator:
        return self._orchestrator

    @property
    def annotations(self) -> AnnotationStore:
        return self._annotations

    # ==================== View ====================

    def view(self) -> ReturnsView:
        page_size = self._controller.page_size
        return ReturnsView(
            groups=self._hierarchy.groups,
            independents=self._hierarchy.independents,
            annotations=self._annotations.merge(self._records),
            total=self._total,
            current_page=self._controller.page,
            page_size=page_size,
            total_pages=math.ceil(self._total / page_size) if page_size else 0,
            filters=self._controller.filters,
            selection=self._controller.selection,
            status=self._status,
            loading=self._loading,
            refreshing=self._refreshing,
            error=self._error,
            cached_at=self._cached_at,
        )

    def subscribe(self, listener: ViewListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        view = self.view()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception as e:
                logger.error(f"[ReturnsManager] View listener failed: {e}")

    def _show(self, records: List[ReturnRecord], total: int) -> None:
        self._shown_entry = None
        self._records = list(records)
        self._total = total
        self._hierarchy = aggregate(self._records)

    # ==================== Lifecycle ====================

    async def start(self) -> ReturnsView:
        """Paint the persisted snapshot (if any), then load the active query."""
        snapshot = self._snapshots.load()
        if snapshot is not None:
            self._restore(snapshot)
        await self.load()
        return self.view()

    def _restore(self, snapshot: PersistedSnapshot) -> None:
        logger.info(
            f"[ReturnsManager] Restoring {len(snapshot.records)} persisted returns "
            f"(page {snapshot.current_page})"
        )
        self._controller.restore(
            filters=snapshot.filters,
            selection=snapshot.account_selection,
            page=snapshot.current_page,
            notify=False,
        )
        self._shown_accounts = snapshot.account_selection.effective_ids()
        self._show(snapshot.records, snapshot.total)
        self._cached_at = snapshot.timestamp
        self._loading = False
        self._notify()

    async def close(self) -> None:
        self._unsubscribe()
        self._controller.close()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        await self._orchestrator.aclose()

    async def wait_idle(self) -> None:
        """Wait until every scheduled page load has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ==================== Loading ====================

    def _schedule(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("[ReturnsManager] No running event loop; query change not loaded")
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_query_change(self, query: QueryState) -> None:
        accounts = query.selection.effective_ids()
        if accounts != self._shown_accounts:
            if self._records:
                logger.info("[ReturnsManager] Account selection changed, clearing shown returns")
                self._show([], 0)
                self._cached_at = None
            self._shown_accounts = accounts
        self._schedule(self._load(query))

    async def load(self) -> ReturnsView:
        """Load the active query, using the cache while it is fresh."""
        await self._load(self._controller.query())
        return self.view()

    async def refresh(self) -> ReturnsView:
        """Refetch the active query from the service, keeping current data visible."""
        self._controller.flush()
        self._refreshing = True
        self._notify()
        try:
            await self._load(self._controller.query(), force=True)
        finally:
            self._refreshing = False
            self._notify()
        return self.view()

    async def _load(self, query: QueryState, force: bool = False) -> None:
        key = self._orchestrator.activate(query)

        if query.selection.is_empty:
            self._status = FetchStatus.IDLE
            self._loading = False
            self._notify()
            return

        # Stale-while-revalidate: show the last good page for this key
        # while the request runs.
        previous = self._orchestrator.peek(query)
        if previous is not None and previous is not self._shown_entry:
            self._publish(previous, query, persist=False)

        self._status = FetchStatus.FETCHING
        self._loading = True
        self._notify()

        try:
            outcome = await self._orchestrator.fetch(query, force=force)
        except FetchError as e:
            if self._orchestrator.active_key == key:
                self._status = FetchStatus.ERROR
                self._error = e.message
                self._loading = False
                self._notify()
            return
        except Exception as e:
            logger.exception(f"[ReturnsManager] Unexpected failure loading {key}")
            if self._orchestrator.active_key == key:
                self._status = FetchStatus.ERROR
                self._error = f"Unexpected error loading returns: {e}"
                self._loading = False
                self._notify()
            return

        if outcome.discarded:
            return

        self._publish(outcome.entry, query, persist=True)
        self._status = FetchStatus.SUCCESS
        self._error = None
        self._loading = False
        self._notify()

    def _publish(self, entry: CacheEntry, query: QueryState, persist: bool) -> None:
        self._show(entry.payload.returns, entry.payload.total)
        self._shown_entry = entry
        self._cached_at = entry.fetched_at
        if persist:
            self._snapshots.save(
                records=self._records,
                total=self._total,
                current_page=query.page,
                filters=query.filters,
                account_selection=query.selection,
            )

    # ==================== Query Actions ====================

    def set_filters(self, partial: Dict[str, Any]) -> bool:
        return self._guard(self._controller.set_filters, partial)

    def replace_filters(self, filters: Union[FilterCriteria, Dict[str, Any]]) -> bool:
        return self._guard(self._controller.replace_filters, filters)

    def clear_filters(self) -> None:
        self._controller.clear_filters()

    def set_account_selection(self, ids: List[str]) -> bool:
        return self._guard(self._controller.set_account_selection, ids)

    def set_page(self, page: int) -> bool:
        return self._guard(self._controller.set_page, page)

    def set_page_size(self, page_size: int) -> bool:
        return self._guard(self._controller.set_page_size, page_size)

    def _guard(self, action: Callable[[Any], None], value: Any) -> bool:
        """Apply a query change; a rejected value lands in view().error."""
        try:
            action(value)
        except ValueError as e:
            logger.warning(f"[ReturnsManager] Rejected query change: {e}")
            self._error = str(e)
            self._notify()
            return False
        return True

    # ==================== Annotations ====================

    def set_review_status(
        self, record_id: str, status: Union[ReviewStatus, str]
    ) -> Optional[Annotation]:
        """Annotate a return. An unknown status lands in view().error and returns None."""
        try:
            annotation = self._annotations.set_status(record_id, status)
        except ValueError as e:
            logger.warning(f"[ReturnsManager] Rejected review status for {record_id}: {e}")
            self._error = str(e)
            self._notify()
            return None
        self._notify()
        return annotation

    def prune_annotations(self) -> int:
        removed = self._annotations.prune_expired()
        if removed:
            self._notify()
        return removed

    def clear_annotations(self) -> None:
        self._annotations.clear()
        self._notify()


def build_returns_manager(
    config: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    transport: Optional[ReturnsTransport] = None,
    clock: Clock = utcnow,
) -> ReturnsManager:
    """Assemble a ReturnsManager from settings."""
    config = config or default_settings
    store = store if store is not None else create_store(config)
    transport = transport or HttpReturnsClient.from_settings(config)

    cache = ResultCache(
        freshness_window=timedelta(seconds=config.FRESHNESS_WINDOW_SECONDS),
        retention=timedelta(minutes=config.CACHE_RETENTION_MINUTES),
        clock=clock,
    )
    orchestrator = FetchOrchestrator(
        transport=transport,
        cache=cache,
        max_retries=config.FETCH_MAX_RETRIES,
    )
    controller = FilterController(
        page_size=config.DEFAULT_PAGE_SIZE,
        debounce_seconds=config.FILTER_DEBOUNCE_MS / 1000,
    )
    snapshots = SnapshotStore(
        store,
        namespace=config.STORAGE_NAMESPACE,
        ttl=timedelta(minutes=config.SNAPSHOT_TTL_MINUTES),
        clock=clock,
    )
    annotations = AnnotationStore(
        store,
        namespace=config.STORAGE_NAMESPACE,
        retention=timedelta(days=config.ANNOTATION_RETENTION_DAYS),
        clock=clock,
    )
    return ReturnsManager(
        orchestrator=orchestrator,
        controller=controller,
        snapshots=snapshots,
        annotations=annotations,
    )
