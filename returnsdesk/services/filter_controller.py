"""
Filter & Selection Controller.

Holds the filters, the account selection and the pagination for the
returns listing and tells subscribers when the effective query changes.

- Filter edits are debounced: subscribers only see them after the
  quiet period (500 ms by default) so typing in the search box does not
  issue a request per keystroke. Every edit restarts the timer and only
  the last one fires.
- Page, page size and account selection changes are published at once.
- Publishing a query whose cache key did not change is a no-op.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from returnsdesk.schemas.returns import AccountSelection, FilterCriteria, QueryState
from returnsdesk.services.cache_service import build_cache_key

logger = logging.getLogger(__name__)

QueryListener = Callable[[QueryState], None]


class Debouncer:
    """Single-shot timer that restarts on every trigger."""

    def __init__(self, delay: float, callback: Callable[[], None]):
        self.delay = delay
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        self.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("[Debouncer] No running event loop; firing without the debounce delay")
            self._callback()
            return
        self._handle = loop.call_later(self.delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self._callback()

    def flush(self) -> bool:
        """Run a pending callback now. Returns False if nothing was pending."""
        if self._handle is None:
            return False
        self.cancel()
        self._callback()
        return True

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class FilterController:
    """Plain state holder for the returns query with change notifications."""

    def __init__(
        self,
        page_size: int = 50,
        debounce_seconds: float = 0.5,
        selection: Optional[AccountSelection] = None,
    ):
        self._pending_filters = FilterCriteria()
        self._filters = FilterCriteria()
        self._selection = selection or AccountSelection()
        self._page = 1
        self._page_size = page_size
        self._listeners: List[QueryListener] = []
        self._debouncer = Debouncer(debounce_seconds, self._apply_pending_filters)
        self._last_published_key: Optional[str] = None

    # ==================== State ====================

    @property
    def filters(self) -> FilterCriteria:
        """Filters as edited, including edits still inside the debounce window."""
        return self._pending_filters

    @property
    def effective_filters(self) -> FilterCriteria:
        """Filters subscribers have been told about."""
        return self._filters

    @property
    def selection(self) -> AccountSelection:
        return self._selection

    @property
    def page(self) -> int:
        return self._page

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def has_pending_filters(self) -> bool:
        return self._debouncer.pending

    def query(self) -> QueryState:
        """The effective query: debounced filters plus current selection and page."""
        return QueryState(
            selection=self._selection,
            filters=self._filters,
            page=self._page,
            page_size=self._page_size,
        )

    def effective_key(self) -> str:
        return build_cache_key(self.query())

    # ==================== Subscriptions ====================

    def subscribe(self, listener: QueryListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, force: bool = False) -> None:
        query = self.query()
        key = build_cache_key(query)
        if not force and key == self._last_published_key:
            return
        self._last_published_key = key
        for listener in list(self._listeners):
            try:
                listener(query)
            except Exception as e:
                logger.error(f"[FilterController] Listener failed: {e}")

    # ==================== Filters (debounced) ====================

    def set_filters(self, partial: Dict[str, Any]) -> None:
        """Merge partial into the filters and go back to page 1."""
        merged = {**self._pending_filters.model_dump(), **partial}
        self._pending_filters = FilterCriteria.model_validate(merged)
        self._page = 1
        self._debouncer.trigger()

    def replace_filters(self, filters: Union[FilterCriteria, Dict[str, Any]]) -> None:
        self._pending_filters = FilterCriteria.model_validate(
            filters.model_dump() if isinstance(filters, FilterCriteria) else filters
        )
        self._page = 1
        self._debouncer.trigger()

    def clear_filters(self) -> None:
        self._pending_filters = FilterCriteria()
        self._page = 1
        self._debouncer.trigger()

    def _apply_pending_filters(self) -> None:
        self._filters = self._pending_filters
        self._publish()

    def flush(self) -> None:
        """Publish pending filter edits without waiting for the quiet period."""
        self._debouncer.flush()

    # ==================== Selection & Pagination (immediate) ====================

    def set_account_selection(self, ids: List[str]) -> None:
        """
        One id selects single-account mode, several select multi-account
        mode; the other mode is always cleared.
        """
        self._selection = AccountSelection.from_ids(ids)
        self._page = 1
        self._publish()

    def set_page(self, page: int) -> None:
        if page < 1:
            raise ValueError(f"Page must be >= 1, got {page}")
        self._page = page
        self._publish()

    def set_page_size(self, page_size: int) -> None:
        if page_size < 1:
            raise ValueError(f"Page size must be >= 1, got {page_size}")
        self._page_size = page_size
        self._page = 1
        self._publish()

    def restore(
        self,
        filters: FilterCriteria,
        selection: AccountSelection,
        page: int,
        notify: bool = True,
    ) -> None:
        """Load persisted query state at once, skipping the debounce."""
        self._debouncer.cancel()
        self._pending_filters = filters
        self._filters = filters
        self._selection = selection
        self._page = max(1, page)
        if notify:
            self._publish()
        else:
            self._last_published_key = self.effective_key()

    def close(self) -> None:
        self._debouncer.cancel()
        self._listeners.clear()
