"""
Pydantic schema for the persisted copy of the last good result set.
"""

from datetime import datetime
from typing import List

from pydantic import Field

from returnsdesk.schemas.base import StateSchema
from returnsdesk.schemas.returns import AccountSelection, FilterCriteria, ReturnRecord

# Bump whenever the stored layout changes; older snapshots are discarded.
SNAPSHOT_VERSION = 3


class PersistedSnapshot(StateSchema):
    version: int = SNAPSHOT_VERSION
    records: List[ReturnRecord] = Field(default_factory=list)
    total: int = 0
    current_page: int = 1
    filters: FilterCriteria = Field(default_factory=FilterCriteria)
    account_selection: AccountSelection = Field(default_factory=AccountSelection)
    timestamp: datetime
