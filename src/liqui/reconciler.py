"""Order lifecycle reconciliation.

Liqui only exposes the current open orders (`ActiveOrders`) and single-order
lookups (`OrderInfo`); there is no order-history feed. The reconciler keeps
every order it has seen in an `OrderStore` and derives terminal states the
venue never reports:

- `create_order` stores the new order, `closed` right away if the venue says
  it filled immediately.
- `cancel_order` marks the cached order `canceled` as soon as the venue
  accepts the cancel.
- `fetch_order` merges a venue snapshot into the cached order. Snapshot
  fields win; fields the venue omits (the original amount) are kept.
- `fetch_orders` merges the open-orders snapshot, then treats every cached
  `open` order missing from it as filled (`closed`).

That last step cannot tell a fill apart from a cancel made outside this
adapter (e.g. the venue's web UI). Such orders are reported `closed`.

Statuses never leave `closed`/`canceled` once reached. Each operation holds
one lock for its whole fetch-merge-write sequence, and the store is only
written after every venue call and every merge has succeeded.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from observability import ObservabilityRecorder

from .errors import ErrorKind, LiquiError
from .events import OrderCanceled, OrderCreated, OrderEvent, OrderInferredClosed, OrderUpdated, VenueError
from .markets import MarketCatalog
from .models import Order
from .normalize import filter_by_since_limit, parse_order, parse_orders
from .store import InMemoryOrderStore, OrderStore

logger = logging.getLogger(__name__)

# `order_id` echoed by `Trade` when the order filled completely on placement.
FILLED_IMMEDIATELY = "0"

# Recomputed from amount/remaining after every merge.
_DERIVED_FIELDS = frozenset({"filled", "cost"})


class TradeGateway(Protocol):
    async def private_post(self, method: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Send a signed trade-API call and return the success envelope."""


def _milliseconds() -> int:
    return int(time.time() * 1000)


def _float_or(value: Any, default: float) -> float:
    if value is None or value == "":
        return default
    return float(value)


def merge_order(cached: Order | None, snapshot: Order) -> Order:
    """Merge a venue snapshot into a cached order.

    Known snapshot fields replace cached ones; unknown (None) snapshot fields
    keep the cached value. A terminal cached status is never replaced.
    """
    if cached is None:
        return snapshot
    update = {
        name: value
        for name, value in snapshot
        if value is not None and name not in _DERIVED_FIELDS
    }
    if cached.is_terminal:
        update["status"] = cached.status
    return cached.with_fills(**update)


def infer_closed(order: Order) -> Order:
    """Close an open order that left the open-orders snapshot, assuming a full fill."""
    return order.with_fills(status="closed", remaining=0.0)


class OrderReconciler:
    """Create/cancel/lookup/list orders and keep the order store consistent."""

    def __init__(
        self,
        gateway: TradeGateway,
        catalog: MarketCatalog,
        *,
        store: OrderStore | None = None,
        clock: Callable[[], int] = _milliseconds,
        recorder: ObservabilityRecorder | None = None,
    ) -> None:
        self._gateway = gateway
        self._catalog = catalog
        self._store: OrderStore = store if store is not None else InMemoryOrderStore()
        self._clock = clock
        self._recorder = recorder
        self._lock = asyncio.Lock()

    @property
    def store(self) -> OrderStore:
        return self._store

    async def _emit(self, events: list[OrderEvent], *, stage: str) -> None:
        if self._recorder is None:
            return
        for event in events:
            kind = "error" if isinstance(event, VenueError) else "transition"
            await self._recorder.record_message(event, kind=kind, stage=stage)

    async def _call(
        self,
        stage: str,
        method: str,
        params: Mapping[str, Any],
        *,
        order_id: str | None = None,
        symbol: str | None = None,
    ) -> dict[str, Any]:
        """Call the venue, recording classified failures before re-raising."""
        try:
            return await self._gateway.private_post(method, params)
        except LiquiError as exc:
            logger.info("liqui %s failed: %s", method, exc)
            await self._emit(
                [
                    VenueError(
                        order_id=order_id,
                        symbol=symbol,
                        operation=stage,
                        kind=exc.kind.value,
                        venue_code=exc.venue_code,
                        message=exc.message,
                        payload=exc.payload,
                    )
                ],
                stage=stage,
            )
            raise

    async def create_order(
        self,
        symbol: str,
        side: str,
        amount: float,
        price: float,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> Order:
        """Place a limit order and cache it.

        The `Trade` reply echoes `init_order_id` (the new id), `remains` and
        `order_id`; `order_id == "0"` means the order filled immediately.
        """
        market = self._catalog.market(symbol)
        request: dict[str, Any] = {
            "pair": market.id,
            "type": side,
            "amount": self._catalog.amount_to_precision(symbol, amount),
            "rate": self._catalog.price_to_precision(symbol, price),
        }
        request.update(params or {})

        async with self._lock:
            response = await self._call("create_order", "Trade", request, symbol=symbol)
            result = response.get("return") or {}
            order_id = result.get("init_order_id")
            if order_id is None:
                raise LiquiError(
                    ErrorKind.EXCHANGE_ERROR,
                    "Trade response did not include init_order_id",
                    payload=response,
                )

            amount = float(amount)
            status = "closed" if str(result.get("order_id")) == FILLED_IMMEDIATELY else "open"
            order = Order(
                id=str(order_id),
                symbol=symbol,
                side=side,
                status=status,
                timestamp=self._clock(),
                price=float(price),
                amount=amount,
                remaining=_float_or(result.get("remains"), amount),
                info=response,
            ).with_fills()
            self._store.put_many({order.id: order})

        logger.info("liqui order %s created (%s %s %s @ %s): %s", order.id, side, amount, symbol, price, status)
        await self._emit(
            [
                OrderCreated(
                    order_id=order.id,
                    symbol=symbol,
                    side=side,
                    status=order.status,
                    price=order.price,
                    amount=order.amount,
                    filled=order.filled,
                )
            ],
            stage="create_order",
        )
        return order

    async def cancel_order(self, order_id: str, *, params: Mapping[str, Any] | None = None) -> Order | None:
        """Cancel an order; on success the cached entry becomes `canceled` at once.

        Ids missing from the store are still sent to the venue. Returns the
        updated cached order, or None when the id was not cached.
        """
        order_id = str(order_id)
        request: dict[str, Any] = {"order_id": order_id}
        request.update(params or {})

        async with self._lock:
            await self._call("cancel_order", "CancelOrder", request, order_id=order_id)
            cached = self._store.get(order_id)
            canceled = None
            if cached is not None:
                canceled = cached.model_copy(update={"status": "canceled"})
                self._store.put_many({order_id: canceled})

        logger.info("liqui order %s canceled", order_id)
        await self._emit(
            [
                OrderCanceled(
                    order_id=order_id,
                    symbol=canceled.symbol if canceled is not None else None,
                    cached=canceled is not None,
                )
            ],
            stage="cancel_order",
        )
        return canceled

    async def fetch_order(self, order_id: str) -> Order:
        """Look up one order and merge it into the store."""
        order_id = str(order_id)
        async with self._lock:
            response = await self._call("fetch_order", "OrderInfo", {"order_id": int(order_id)}, order_id=order_id)
            payload = (response.get("return") or {}).get(order_id)
            if payload is None:
                raise LiquiError(
                    ErrorKind.ORDER_NOT_FOUND,
                    f"OrderInfo did not return order {order_id}",
                    payload=response,
                )
            snapshot = parse_order({**payload, "id": order_id}, catalog=self._catalog)
            previous = self._store.get(order_id)
            merged = merge_order(previous, snapshot)
            self._store.put_many({order_id: merged})

        before = {order_id: previous} if previous is not None else {}
        await self._emit(_update_events(before, {order_id: merged}), stage="fetch_order")
        return merged

    async def _fetch_active(self, symbol: str | None) -> dict[str, Order]:
        request: dict[str, Any] = {}
        market = None
        if symbol is not None:
            market = self._catalog.market(symbol)
            request["pair"] = market.id
        response = await self._call("fetch_orders", "ActiveOrders", request, symbol=symbol)
        raw = response.get("return") or {}
        return {order.id: order for order in parse_orders(raw, market, catalog=self._catalog)}

    async def fetch_open_snapshot(self, symbol: str | None = None) -> set[str]:
        """Ids the venue currently lists as open. Does not touch the store."""
        async with self._lock:
            return set(await self._fetch_active(symbol))

    async def fetch_orders(
        self,
        symbol: str | None = None,
        since: int | None = None,
        limit: int | None = None,
    ) -> list[Order]:
        """Reconcile the store with the open-orders snapshot and list orders.

        With `symbol`, only that market's snapshot is fetched, so only that
        market's cached orders are candidates for inferred closure.
        """
        async with self._lock:
            snapshot = await self._fetch_active(symbol)
            cached = self._store.snapshot()

            updates: dict[str, Order] = {
                order_id: merge_order(cached.get(order_id), order) for order_id, order in snapshot.items()
            }
            inferred: list[Order] = []
            for order_id, order in cached.items():
                if order_id in snapshot or order.status != "open":
                    continue
                if symbol is not None and order.symbol != symbol:
                    continue
                closed = infer_closed(order)
                updates[order_id] = closed
                inferred.append(closed)

            self._store.put_many(updates)
            orders = {**cached, **updates}

        for order in inferred:
            logger.warning(
                "liqui order %s left the open set; assuming filled (could also be an external cancel)",
                order.id,
            )
        events = _update_events(cached, {k: v for k, v in updates.items() if k in snapshot})
        events.extend(
            OrderInferredClosed(order_id=o.id, symbol=o.symbol, amount=o.amount, price=o.price) for o in inferred
        )
        await self._emit(events, stage="fetch_orders")

        result = [o for o in orders.values() if symbol is None or o.symbol == symbol]
        return filter_by_since_limit(result, since, limit)

    async def fetch_open_orders(
        self, symbol: str | None = None, since: int | None = None, limit: int | None = None
    ) -> list[Order]:
        orders = await self.fetch_orders(symbol, since, limit)
        return [o for o in orders if o.status == "open"]

    async def fetch_closed_orders(
        self, symbol: str | None = None, since: int | None = None, limit: int | None = None
    ) -> list[Order]:
        orders = await self.fetch_orders(symbol, since, limit)
        return [o for o in orders if o.status == "closed"]


def _update_events(before: Mapping[str, Order], after: Mapping[str, Order]) -> list[OrderEvent]:
    """OrderUpdated for every order whose status or fill changed (or is new)."""
    events: list[OrderEvent] = []
    for order_id, order in after.items():
        previous = before.get(order_id)
        if previous is not None and previous.status == order.status and previous.filled == order.filled:
            continue
        events.append(
            OrderUpdated(
                order_id=order_id,
                symbol=order.symbol,
                previous_status=previous.status if previous is not None else None,
                status=order.status,
                filled=order.filled,
                remaining=order.remaining,
            )
        )
    return events
