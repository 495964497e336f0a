"""Order lifecycle messages emitted by the reconciler for observability."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from observability.models import utc_now


class _Event(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    order_id: str | None = None
    symbol: str | None = None
    ts: datetime = Field(default_factory=utc_now)


class OrderCreated(_Event):
    type: Literal["order_created"] = "order_created"
    side: str | None = None
    status: str
    price: float | None = None
    amount: float | None = None
    filled: float | None = None


class OrderCanceled(_Event):
    type: Literal["order_canceled"] = "order_canceled"
    cached: bool


class OrderUpdated(_Event):
    """A venue snapshot changed the status or fill of a cached order."""

    type: Literal["order_updated"] = "order_updated"
    previous_status: str | None = None
    status: str
    filled: float | None = None
    remaining: float | None = None


class OrderInferredClosed(_Event):
    """An open order vanished from the open-orders snapshot and was assumed filled.

    The venue cannot tell a fill apart from a cancel made through another
    channel (e.g. the web UI), so this may be wrong for externally canceled
    orders.
    """

    type: Literal["order_inferred_closed"] = "order_inferred_closed"
    amount: float | None = None
    price: float | None = None


class VenueError(_Event):
    type: Literal["venue_error"] = "venue_error"
    operation: str
    kind: str
    venue_code: str | None = None
    message: str
    payload: Any = None


OrderEvent = OrderCreated | OrderCanceled | OrderUpdated | OrderInferredClosed | VenueError
