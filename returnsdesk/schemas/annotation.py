"""
Pydantic schemas for locally assigned review statuses.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import field_validator

from returnsdesk.schemas.base import StateSchema


class ReviewStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"
    NO_ACTION = "no_action"


class Annotation(StateSchema):
    """Review status a user assigned to one return record."""
    record_id: str
    status: ReviewStatus
    assigned_at: datetime

    @field_validator('assigned_at')
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v
