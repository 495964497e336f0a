"""Canonical trading records produced by the Liqui adapter.

All records are frozen; updates go through `model_copy(update=...)`.
Optional fields use `None` for "unknown" so an absent value is never confused
with zero.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

OrderSide = Literal["buy", "sell"]
OrderType = Literal["limit"]
OrderStatus = Literal["open", "closed", "canceled"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"closed", "canceled"})


def iso8601(timestamp_ms: int | None) -> str | None:
    """Render a millisecond timestamp as an ISO 8601 UTC string."""
    if timestamp_ms is None:
        return None
    dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class _Timestamped(_Model):
    timestamp: int | None = None

    @property
    def datetime(self) -> str | None:
        return iso8601(self.timestamp)


class MarketPrecision(_Model):
    """Decimal places allowed for amounts and prices."""

    amount: int | None = None
    price: int | None = None


class MinMax(_Model):
    min: float | None = None
    max: float | None = None


class MarketLimits(_Model):
    amount: MinMax = Field(default_factory=MinMax)
    price: MinMax = Field(default_factory=MinMax)
    cost: MinMax = Field(default_factory=MinMax)


class Market(_Model):
    """A tradable pair as described by the venue's `info` endpoint."""

    id: str
    symbol: str
    base: str
    quote: str
    active: bool = True
    maker: float | None = None
    taker: float | None = None
    lot: float | None = None
    precision: MarketPrecision = Field(default_factory=MarketPrecision)
    limits: MarketLimits = Field(default_factory=MarketLimits)
    info: dict[str, Any] = Field(default_factory=dict)


class Ticker(_Timestamped):
    symbol: str | None = None
    high: float | None = None
    low: float | None = None
    bid: float | None = None
    ask: float | None = None
    vwap: float | None = None
    open: float | None = None
    close: float | None = None
    first: float | None = None
    last: float | None = None
    change: float | None = None
    percentage: float | None = None
    average: float | None = None
    base_volume: float | None = None
    quote_volume: float | None = None
    info: dict[str, Any] = Field(default_factory=dict)


class OrderBook(_Timestamped):
    """Bids sorted best (highest) first, asks sorted best (lowest) first."""

    symbol: str | None = None
    bids: list[tuple[float, float]] = Field(default_factory=list)
    asks: list[tuple[float, float]] = Field(default_factory=list)


class Trade(_Timestamped):
    id: str | None = None
    order: str | None = None
    symbol: str | None = None
    type: OrderType = "limit"
    side: OrderSide | str | None = None
    price: float | None = None
    amount: float | None = None
    info: dict[str, Any] = Field(default_factory=dict)


class Order(_Timestamped):
    """Canonical order state.

    When `amount` and `remaining` are both known, `filled = amount - remaining`
    and `cost = price * filled`. Use `with_fills` to keep that true after an
    update.
    """

    id: str
    symbol: str | None = None
    type: OrderType = "limit"
    side: OrderSide | str | None = None
    status: OrderStatus
    price: float | None = None
    amount: float | None = None
    filled: float | None = None
    remaining: float | None = None
    cost: float | None = None
    info: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def with_fills(self, **update: Any) -> "Order":
        """Apply `update`, then recompute `filled`/`cost` from amount and remaining."""
        order = self.model_copy(update=update) if update else self
        if order.amount is None or order.remaining is None:
            return order
        filled = order.amount - order.remaining
        cost = order.price * filled if order.price is not None else None
        return order.model_copy(update={"filled": filled, "cost": cost})


class BalanceEntry(_Model):
    free: float | None = None
    used: float | None = None
    total: float | None = None


class Balances(_Model):
    """Per-currency balances keyed by canonical currency code."""

    currencies: dict[str, BalanceEntry] = Field(default_factory=dict)
    open_orders: int | None = None
    info: dict[str, Any] = Field(default_factory=dict)

    def __getitem__(self, currency: str) -> BalanceEntry:
        return self.currencies[currency]

    def __contains__(self, currency: object) -> bool:
        return currency in self.currencies


class Fee(_Model):
    type: Literal["taker", "maker"]
    currency: str
    rate: float
    cost: float


class DepositAddress(_Model):
    currency: str
    address: str | None = None
    info: dict[str, Any] = Field(default_factory=dict)


class WithdrawalReceipt(_Model):
    id: str | None = None
    info: dict[str, Any] = Field(default_factory=dict)
