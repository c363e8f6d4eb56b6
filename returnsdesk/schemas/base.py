"""
Base Schema Classes for Pydantic Models

RULE: Upstream payloads are read-only. Models that mirror upstream data
inherit from UpstreamSchema so they are frozen and tolerate new fields.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict


class UpstreamSchema(BaseModel):
    """
    Base class for read-only views of upstream service data.

    Features:
    - Frozen: records are never mutated after parsing
    - Unknown fields from the service are ignored (forward compatibility)
    - Population by field name or alias
    """
    model_config = ConfigDict(
        frozen=True,
        extra='ignore',
        populate_by_name=True,
    )


class StateSchema(BaseModel):
    """
    Base class for state owned by the returns desk (filters, snapshots,
    annotations, views).
    """
    model_config = ConfigDict(
        extra='ignore',
        populate_by_name=True,
    )


def coerce_id(value: Any) -> Any:
    """Upstream ids arrive as numbers or strings; keep them as strings."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value

