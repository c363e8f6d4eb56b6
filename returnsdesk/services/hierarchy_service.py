"""
Hierarchy Aggregator - returns grouped by parent product.

Variations of one product (sizes, colours, versions) carry SKUs that
differ only by a suffix, e.g. ``CAMISA-AZ-P`` and ``CAMISA-AZ-GG``.
Stripping the suffix gives a *base key* shared by every variation, and
returns are grouped by it.

Suffix patterns, applied once each and in this order:

    1. -P / -M / -G / -PP / -GG       size letters
    2. -1 .. -999                     numeric variation
    3. -A .. -ZZ                      one or two letter variation
    4. -V2, -V10                      version
    5. -TAMP, -TAMGG                  size word
    6. _1 .. _999                     underscore numeric
    7. _P / _M / _G / _PP / _GG       underscore size letters

The numeric patterns 2 and 6 are generic enough to eat a product code,
so they only apply while the remainder still contains a ``-`` or ``_``
(``PROD-001`` stays ``PROD-001``; ``PROD-001-P`` becomes ``PROD-001``).
Letter suffixes always strip: ``CAMISA-P`` and ``CAMISA-XG`` share ``CAMISA``.
Matching is case-insensitive and base keys are upper-cased.

This is a heuristic. No catalogue lookup confirms that two SKUs belong to
the same product; tests pin the behaviour down with examples.

Groups with a single member are dissolved: the record is listed with the
independent returns, next to returns whose SKU is missing.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

from returnsdesk.schemas.hierarchy import HierarchyResult, ReturnGroup
from returnsdesk.schemas.returns import ReturnRecord

_SIZE_LETTERS = r"(?:PP|GG|P|M|G)"
_DELIMITER = re.compile(r"[-_]")

# (name, pattern, needs a delimiter left in the remainder)
SUFFIX_PATTERNS: List[Tuple[str, Pattern[str], bool]] = [
    ("size", re.compile(rf"-{_SIZE_LETTERS}$", re.IGNORECASE), False),
    ("numeric", re.compile(r"-\d{1,3}$"), True),
    ("alpha", re.compile(r"-[A-Z]{1,2}$", re.IGNORECASE), False),
    ("version", re.compile(r"-V\d+$", re.IGNORECASE), False),
    ("size_word", re.compile(r"-TAM[A-Z]+$", re.IGNORECASE), False),
    ("underscore_numeric", re.compile(r"_\d{1,3}$"), True),
    ("underscore_size", re.compile(rf"_{_SIZE_LETTERS}$", re.IGNORECASE), False),
]

UNKNOWN = "unknown"


def derive_base_key(sku: str) -> str:
    """Strip variation suffixes from a SKU. Unmatched SKUs come back as-is."""
    base = sku.strip().upper()
    for _name, pattern, needs_delimiter in SUFFIX_PATTERNS:
        candidate = pattern.sub("", base, count=1)
        if candidate == base or not candidate:
            continue
        if needs_delimiter and not _DELIMITER.search(candidate):
            continue
        base = candidate
    return base


def extract_sku(record: ReturnRecord) -> Optional[str]:
    """SKU from the product info, falling back to the record's own field."""
    candidates = (
        record.product_info.sku if record.product_info else None,
        record.sku,
    )
    for sku in candidates:
        if isinstance(sku, str) and sku.strip():
            return sku
    return None


def record_quantity(record: ReturnRecord) -> int:
    for quantity in (record.return_quantity, record.total_quantity):
        if quantity is not None and quantity > 0:
            return quantity
    return 1


def record_value(record: ReturnRecord) -> float:
    if record.financial_info and record.financial_info.total_amount is not None:
        return record.financial_info.total_amount
    if record.product_info and record.product_info.price is not None:
        return record.product_info.price
    return 0.0


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


@dataclass
class _GroupAccumulator:
    base_key: str
    title: Optional[str] = None
    members: List[ReturnRecord] = field(default_factory=list)
    quantity: int = 0
    value: float = 0.0
    variation_ids: Dict[str, None] = field(default_factory=dict)
    claim_ids: Dict[str, None] = field(default_factory=dict)
    statuses: Dict[str, int] = field(default_factory=dict)
    reasons: Dict[str, int] = field(default_factory=dict)
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def add(self, record: ReturnRecord) -> None:
        self.members.append(record)
        self.quantity += record_quantity(record)
        self.value += record_value(record)

        product = record.product_info
        if product is not None:
            if self.title is None and product.title:
                self.title = product.title
            if product.variation_id:
                self.variation_ids[product.variation_id] = None
        if record.claim_id:
            self.claim_ids[record.claim_id] = None

        status = record.status_code or UNKNOWN
        self.statuses[status] = self.statuses.get(status, 0) + 1
        reason = record.reason_id or UNKNOWN
        self.reasons[reason] = self.reasons.get(reason, 0) + 1

        if record.date_created is not None:
            created = _as_utc(record.date_created)
            if self.start is None or created < self.start:
                self.start = created
            if self.end is None or created > self.end:
                self.end = created

    def build(self) -> ReturnGroup:
        return ReturnGroup(
            base_key=self.base_key,
            representative_title=self.title,
            members=self.members,
            total_quantity=self.quantity,
            total_value=self.value,
            distinct_variation_ids=list(self.variation_ids),
            distinct_claim_ids=list(self.claim_ids),
            status_histogram=self.statuses,
            reason_histogram=self.reasons,
            period_start=self.start,
            period_end=self.end,
        )


def aggregate(records: Iterable[ReturnRecord]) -> HierarchyResult:
    """
    Group returns by base SKU.

    Records without a usable SKU and groups of one are returned as
    independents. Groups are ordered by member count, largest first,
    keeping first-seen order for ties. Never raises on odd input.
    """
    accumulators: Dict[str, _GroupAccumulator] = {}
    independents: List[ReturnRecord] = []

    for record in records:
        sku = extract_sku(record)
        base_key = derive_base_key(sku) if sku else ""
        if not base_key:
            independents.append(record)
            continue
        accumulator = accumulators.get(base_key)
        if accumulator is None:
            accumulator = accumulators[base_key] = _GroupAccumulator(base_key=base_key)
        accumulator.add(record)

    groups: List[ReturnGroup] = []
    for accumulator in accumulators.values():
        if len(accumulator.members) == 1:
            independents.append(accumulator.members[0])
        else:
            groups.append(accumulator.build())

    groups.sort(key=lambda g: g.total_count, reverse=True)
    return HierarchyResult(groups=groups, independents=independents)
