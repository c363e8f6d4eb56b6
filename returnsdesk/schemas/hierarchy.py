"""
Pydantic schemas for returns grouped by parent product (base SKU).
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field, computed_field

from returnsdesk.schemas.base import StateSchema
from returnsdesk.schemas.returns import ReturnRecord


def most_common(histogram: Dict[str, int]) -> Optional[str]:
    """Key with the highest count; ties go to the key seen first."""
    best: Optional[str] = None
    for key, count in histogram.items():
        if best is None or count > histogram[best]:
            best = key
    return best


class ReturnGroup(StateSchema):
    """
    Returns of every variation of one parent product.

    total_count and average_value are derived from members on access and
    are never stored independently.
    """
    base_key: str
    representative_title: Optional[str] = None
    members: List[ReturnRecord] = Field(default_factory=list)
    total_quantity: int = 0
    total_value: float = 0.0
    distinct_variation_ids: List[str] = Field(default_factory=list)
    distinct_claim_ids: List[str] = Field(default_factory=list)
    status_histogram: Dict[str, int] = Field(default_factory=dict)
    reason_histogram: Dict[str, int] = Field(default_factory=dict)
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    @computed_field
    @property
    def total_count(self) -> int:
        return len(self.members)

    @computed_field
    @property
    def average_value(self) -> float:
        if not self.members:
            return 0.0
        return self.total_value / len(self.members)

    @computed_field
    @property
    def predominant_status(self) -> Optional[str]:
        return most_common(self.status_histogram)

    @computed_field
    @property
    def predominant_reason(self) -> Optional[str]:
        return most_common(self.reason_histogram)


class HierarchyResult(StateSchema):
    """Grouped returns plus the returns that belong to no group."""
    groups: List[ReturnGroup] = Field(default_factory=list)
    independents: List[ReturnRecord] = Field(default_factory=list)
