"""Observability record models.

Records are designed to be:
- Durable and append-only (sink decides storage).
- Easy to link across an order's lifetime via the venue order id.
- Safe by default (store summaries + selected fields, never credentials).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(tz=timezone.utc)


RecordKind = Literal["transition", "error"]


class ObservabilityRecord(BaseModel):
    """A durable, structured record derived from an order lifecycle message."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    kind: RecordKind

    # A stable label (e.g., "order_created", "order_inferred_closed").
    event_type: str

    # Which operation produced the record (e.g., "fetch_orders").
    stage: str

    order_id: str | None = None
    symbol: str | None = None

    occurred_at: datetime
    logged_at: datetime = Field(default_factory=utc_now)

    summary: dict[str, Any] = Field(default_factory=dict)
