"""
Pydantic schemas for marketplace return records and the queries that
fetch them.
"""

from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BeforeValidator, Field, field_validator, model_validator

from returnsdesk.schemas.base import StateSchema, UpstreamSchema, coerce_id

RecordId = Annotated[Optional[str], BeforeValidator(coerce_id)]

_WIRE_FILTER_NAMES = {
    "search": "search",
    "status": "status",
    "date_from": "dateFrom",
    "date_to": "dateTo",
}


# ==================== Upstream Record ====================

class CodedValue(UpstreamSchema):
    """Status-like value sent as {id, description} by the service."""
    id: str
    description: Optional[str] = None


def _coerce_coded(value: Any) -> Any:
    if isinstance(value, str):
        return {"id": value}
    return value


CodedField = Annotated[Optional[CodedValue], BeforeValidator(_coerce_coded)]


class ReturnOrder(UpstreamSchema):
    id: RecordId = None
    date_created: Optional[datetime] = None
    seller_id: RecordId = None
    buyer_id: RecordId = None


class ProductInfo(UpstreamSchema):
    id: RecordId = None
    title: Optional[str] = None
    price: Optional[float] = None
    currency_id: Optional[str] = None
    thumbnail: Optional[str] = None
    permalink: Optional[str] = None
    sku: Optional[str] = None
    condition: Optional[str] = None
    variation_id: RecordId = None
    category_id: Optional[str] = None


class FinancialInfo(UpstreamSchema):
    total_amount: Optional[float] = None
    paid_amount: Optional[float] = None
    refund_amount: Optional[float] = None
    currency_id: Optional[str] = None
    payment_status: Optional[str] = None
    payment_method: Optional[str] = None
    shipping_cost: Optional[float] = None


class BuyerInfo(UpstreamSchema):
    id: RecordId = None
    nickname: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    country_id: Optional[str] = None


class ReturnRecord(UpstreamSchema):
    """A single marketplace return as delivered by the returns service."""
    id: RecordId
    claim_id: RecordId = None
    order_id: RecordId = None
    status: CodedField = None
    status_money: CodedField = None
    subtype: CodedField = None
    shipment_status: Optional[str] = None
    tracking_number: Optional[str] = None
    date_created: Optional[datetime] = None
    date_closed: Optional[datetime] = None
    reason_id: Optional[str] = None
    sku: Optional[str] = None
    return_quantity: Optional[int] = None
    total_quantity: Optional[int] = None
    order: Optional[ReturnOrder] = None
    product_info: Optional[ProductInfo] = None
    financial_info: Optional[FinancialInfo] = None
    buyer_info: Optional[BuyerInfo] = None

    @property
    def status_code(self) -> Optional[str]:
        return self.status.id if self.status else None


class ReturnsPage(StateSchema):
    """One page of results from the returns service."""
    returns: List[ReturnRecord] = Field(default_factory=list)
    total: int = 0

    @field_validator('total', mode='before')
    @classmethod
    def default_total(cls, v):
        return 0 if v is None else v


# ==================== Query State ====================

class FilterCriteria(StateSchema):
    """User-editable filters applied to the returns listing."""
    search: str = ""
    status: List[str] = Field(default_factory=list)
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    @field_validator('search', mode='before')
    @classmethod
    def default_search(cls, v):
        return "" if v is None else str(v).strip()

    @field_validator('status', mode='before')
    @classmethod
    def parse_status(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [s.strip() for s in v.split(',') if s.strip()]
        return v

    @field_validator('date_from', 'date_to', mode='before')
    @classmethod
    def parse_date(cls, v):
        if v == "":
            return None
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v

    def normalized(self) -> Dict[str, Any]:
        """
        Canonical form used for cache keys and equivalence.

        Empty strings, empty lists and None are dropped; lists are sorted.
        """
        normalized: Dict[str, Any] = {}
        for name, value in self.model_dump(mode="json").items():
            if value is None or value == "" or value == []:
                continue
            normalized[name] = sorted(value) if isinstance(value, list) else value
        return normalized

    def is_equivalent(self, other: "FilterCriteria") -> bool:
        return self.normalized() == other.normalized()


class AccountSelection(StateSchema):
    """
    Which marketplace accounts to query.

    Exactly one mode is populated: a single account_id, or several
    account_ids. Selecting one mode always clears the other.
    """
    account_id: Optional[str] = None
    account_ids: List[str] = Field(default_factory=list)

    @model_validator(mode='after')
    def single_mode(self):
        if self.account_id and self.account_ids:
            raise ValueError("account_id and account_ids are mutually exclusive")
        return self

    @classmethod
    def from_ids(cls, ids: List[str]) -> "AccountSelection":
        unique = list(dict.fromkeys(i for i in (ids or []) if i))
        if len(unique) == 1:
            return cls(account_id=unique[0])
        return cls(account_ids=unique)

    @property
    def is_multi(self) -> bool:
        return bool(self.account_ids)

    @property
    def is_empty(self) -> bool:
        return not self.account_id and not self.account_ids

    def effective_ids(self) -> List[str]:
        if self.account_ids:
            return sorted(self.account_ids)
        return [self.account_id] if self.account_id else []


class QueryState(StateSchema):
    """Everything that determines which page of returns is shown."""
    selection: AccountSelection = Field(default_factory=AccountSelection)
    filters: FilterCriteria = Field(default_factory=FilterCriteria)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=50, ge=1)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def to_request(self) -> Dict[str, Any]:
        """Request body expected by the upstream returns service."""
        return {
            "accountIds": self.selection.effective_ids(),
            "filters": {
                _WIRE_FILTER_NAMES[name]: value
                for name, value in self.filters.normalized().items()
            },
            "pagination": {
                "offset": self.offset,
                "limit": self.page_size,
            },
        }
