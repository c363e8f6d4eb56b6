"""
Pydantic schemas for the state handed to the presentation layer.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from returnsdesk.schemas.annotation import ReviewStatus
from returnsdesk.schemas.base import StateSchema
from returnsdesk.schemas.hierarchy import ReturnGroup
from returnsdesk.schemas.returns import AccountSelection, FilterCriteria, ReturnRecord


class FetchStatus(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SUCCESS = "success"
    ERROR = "error"


class ReturnsView(StateSchema):
    """Grouped returns plus loading/error state for one query."""
    groups: List[ReturnGroup] = Field(default_factory=list)
    independents: List[ReturnRecord] = Field(default_factory=list)
    annotations: Dict[str, ReviewStatus] = Field(default_factory=dict)
    total: int = 0
    current_page: int = 1
    page_size: int = 50
    total_pages: int = 0
    filters: FilterCriteria = Field(default_factory=FilterCriteria)
    selection: AccountSelection = Field(default_factory=AccountSelection)
    status: FetchStatus = FetchStatus.IDLE
    loading: bool = False
    refreshing: bool = False
    error: Optional[str] = None
    cached_at: Optional[datetime] = None


# ==================== Request Bodies ====================

class FilterUpdate(BaseModel):
    """Partial filter update; only fields that are sent are applied."""
    search: Optional[str] = None
    status: Optional[List[str]] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None


class AccountSelectionUpdate(BaseModel):
    account_ids: List[str] = Field(default_factory=list)


class PageUpdate(BaseModel):
    page: Optional[int] = Field(default=None, ge=1)
    page_size: Optional[int] = Field(default=None, ge=1, le=500)


class ReviewStatusUpdate(BaseModel):
    status: ReviewStatus
