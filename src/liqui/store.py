"""Order store used by the reconciler.

The venue cannot list historical orders, so the store is the only place the
adapter remembers orders after they leave the open-orders snapshot, and the
only source for fields later responses omit (e.g. the original amount).
Entries live for the lifetime of the store and are never evicted.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from .models import Order


class OrderStore(Protocol):
    def get(self, order_id: str) -> Order | None:
        """Return the cached order, or None."""

    def put_many(self, orders: Mapping[str, Order]) -> None:
        """Insert/replace several orders at once."""

    def snapshot(self) -> dict[str, Order]:
        """Return a point-in-time copy of all cached orders."""

    def __contains__(self, order_id: object) -> bool: ...

    def __len__(self) -> int: ...


class InMemoryOrderStore:
    """Dict-backed store."""

    def __init__(self, orders: Mapping[str, Order] | None = None) -> None:
        self._orders: dict[str, Order] = dict(orders or {})

    def get(self, order_id: str) -> Order | None:
        return self._orders.get(order_id)

    def put_many(self, orders: Mapping[str, Order]) -> None:
        self._orders.update(orders)

    def snapshot(self) -> dict[str, Order]:
        return dict(self._orders)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._orders

    def __len__(self) -> int:
        return len(self._orders)
