"""
Pytest fixtures for returns desk tests.

Provides a scripted returns transport, a controllable clock, an in-memory
key/value store and a record factory shared by the test modules.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from returnsdesk.core.exceptions import ReturnsServiceError
from returnsdesk.core.storage import InMemoryKeyValueStore
from returnsdesk.schemas.returns import QueryState, ReturnRecord, ReturnsPage
from returnsdesk.services.returns_client import ReturnsTransport


class MutableClock:
    """Clock whose time only moves when a test says so."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeTransport(ReturnsTransport):
    """
    Scripted returns service.

    - ``queue``: pages handed out in order; ``page`` once it is empty
    - ``fail_next(n)``: the next n calls raise ReturnsServiceError
    - ``gate``: when set, every call waits for the event before answering
    """

    def __init__(self, page: Optional[ReturnsPage] = None):
        self.page = page or ReturnsPage()
        self.queue: List[ReturnsPage] = []
        self.calls: List[QueryState] = []
        self.gate: Optional[asyncio.Event] = None
        self.error: Exception = ReturnsServiceError("service unavailable", status_code=503)
        self._failures = 0

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def fail_next(self, count: int, error: Optional[Exception] = None) -> None:
        self._failures = count
        if error is not None:
            self.error = error

    def hold(self) -> asyncio.Event:
        self.gate = asyncio.Event()
        return self.gate

    async def fetch_returns(self, query: QueryState) -> ReturnsPage:
        self.calls.append(query)
        if self.gate is not None:
            await self.gate.wait()
        if self._failures:
            self._failures -= 1
            raise self.error
        if self.queue:
            return self.queue.pop(0)
        return self.page


def build_record(
    record_id: Any,
    sku: Optional[str] = None,
    status: Optional[str] = "delivered",
    reason: Optional[str] = None,
    quantity: Optional[int] = None,
    amount: Optional[float] = None,
    title: Optional[str] = None,
    claim_id: Optional[str] = None,
    variation_id: Optional[str] = None,
    date_created: Optional[str] = None,
) -> ReturnRecord:
    payload: Dict[str, Any] = {"id": record_id, "status": status, "reason_id": reason}
    if claim_id is not None:
        payload["claim_id"] = claim_id
    if quantity is not None:
        payload["return_quantity"] = quantity
    if date_created is not None:
        payload["date_created"] = date_created
    if sku is not None or title is not None or variation_id is not None:
        payload["product_info"] = {"sku": sku, "title": title, "variation_id": variation_id}
    if amount is not None:
        payload["financial_info"] = {"total_amount": amount}
    return ReturnRecord.model_validate(payload)


def build_page(*records: ReturnRecord, total: Optional[int] = None) -> ReturnsPage:
    return ReturnsPage(returns=list(records), total=len(records) if total is None else total)


@pytest.fixture
def clock():
    return MutableClock(datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def transport():
    return FakeTransport(build_page(build_record("r-1", sku="ABC-P")))


@pytest.fixture
def make_record():
    return build_record


@pytest.fixture
def make_page():
    return build_page
