"""Pure conversions from Liqui response shapes into canonical records.

Nothing here touches the order store; reconciling parsed orders with cached
state is the job of `liqui.reconciler`.

Venue conventions handled here:
- timestamps are seconds since the epoch (canonical records use milliseconds)
- trade sides are `ask`/`bid`
- order status is an integer code
- pair ids are lowercase `base_quote`
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, TypeVar

from .errors import ErrorKind, LiquiError
from .markets import DEFAULT_MAKER_FEE, MarketCatalog, common_currency_code, split_market_id
from .models import (
    BalanceEntry,
    Balances,
    Market,
    MarketLimits,
    MarketPrecision,
    MinMax,
    Order,
    OrderBook,
    Ticker,
    Trade,
)

_T = TypeVar("_T", Trade, Order)

ORDER_STATUSES: dict[int, str] = {
    0: "open",
    1: "closed",
    2: "canceled",
    3: "canceled",  # canceled after a partial fill
}

TRADE_SIDES: dict[str, str] = {"ask": "sell", "bid": "buy"}


def _safe_float(payload: Mapping[str, Any], key: str, default: float | None = None) -> float | None:
    value = payload.get(key)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _safe_int(payload: Mapping[str, Any], key: str) -> int | None:
    value = payload.get(key)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _safe_str(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    return str(value)


def seconds_to_ms(value: Any) -> int | None:
    """Convert a venue timestamp (seconds) into milliseconds."""
    if value is None or value == "":
        return None
    return int(float(value)) * 1000


def filter_by_since_limit(items: Iterable[_T], since: int | None = None, limit: int | None = None) -> list[_T]:
    """Order records chronologically, keep those at or after `since`, then the first `limit`."""
    result = sorted(items, key=lambda item: item.timestamp if item.timestamp is not None else 0)
    if since is not None:
        result = [item for item in result if item.timestamp is not None and item.timestamp >= since]
    if limit is not None:
        result = result[:limit]
    return result


def parse_market(market_id: str, raw: Mapping[str, Any]) -> Market:
    """Convert one entry of the `info` endpoint's `pairs` mapping."""
    base, quote = split_market_id(market_id)
    decimals = _safe_int(raw, "decimal_places")
    amount_limits = MinMax(min=_safe_float(raw, "min_amount"), max=_safe_float(raw, "max_amount"))
    fee = _safe_float(raw, "fee")
    return Market(
        id=market_id,
        symbol=f"{base}/{quote}",
        base=base,
        quote=quote,
        active=_safe_int(raw, "hidden") == 0,
        maker=DEFAULT_MAKER_FEE,
        taker=fee / 100 if fee is not None else None,
        lot=amount_limits.min,
        precision=MarketPrecision(amount=decimals, price=decimals),
        limits=MarketLimits(
            amount=amount_limits,
            price=MinMax(min=_safe_float(raw, "min_price"), max=_safe_float(raw, "max_price")),
            cost=MinMax(min=_safe_float(raw, "min_total")),
        ),
        info=dict(raw),
    )


def parse_markets(payload: Mapping[str, Any]) -> list[Market]:
    """Convert the `info` response (`{"server_time": ..., "pairs": {...}}`)."""
    pairs = payload.get("pairs") or {}
    return [parse_market(market_id, raw) for market_id, raw in pairs.items()]


def parse_ticker(raw: Mapping[str, Any], market: Market | None = None) -> Ticker:
    """Convert one ticker entry. Fields the venue does not report stay None."""
    return Ticker(
        symbol=market.symbol if market is not None else None,
        timestamp=seconds_to_ms(raw.get("updated")),
        high=_safe_float(raw, "high"),
        low=_safe_float(raw, "low"),
        bid=_safe_float(raw, "buy"),
        ask=_safe_float(raw, "sell"),
        last=_safe_float(raw, "last"),
        average=_safe_float(raw, "avg"),
        base_volume=_safe_float(raw, "vol_cur"),
        quote_volume=_safe_float(raw, "vol"),
        info=dict(raw),
    )


def parse_trade(
    raw: Mapping[str, Any],
    market: Market | None = None,
    *,
    catalog: MarketCatalog | None = None,
) -> Trade:
    """Convert a public trade or a trade-history entry.

    `rate` wins over `price` and `trade_id` wins over `tid` when both are present.
    """
    side = raw.get("type")
    side = TRADE_SIDES.get(side, side) if isinstance(side, str) else side

    price = _safe_float(raw, "rate") if "rate" in raw else _safe_float(raw, "price")
    trade_id = _safe_str(raw, "trade_id") if "trade_id" in raw else _safe_str(raw, "tid")

    if "pair" in raw and catalog is not None:
        market = catalog.market_by_id(raw["pair"]) or market

    return Trade(
        id=trade_id,
        order=_safe_str(raw, "order_id"),
        symbol=market.symbol if market is not None else None,
        timestamp=seconds_to_ms(raw.get("timestamp")),
        side=side,
        price=price,
        amount=_safe_float(raw, "amount"),
        info=dict(raw),
    )


def parse_trades(
    raw: Sequence[Mapping[str, Any]] | Mapping[str, Mapping[str, Any]],
    market: Market | None = None,
    *,
    catalog: MarketCatalog | None = None,
    since: int | None = None,
    limit: int | None = None,
) -> list[Trade]:
    """Convert a trade list, or a trade-history mapping keyed by trade id."""
    if isinstance(raw, Mapping):
        entries = [{"trade_id": key, **value} for key, value in raw.items()]
    else:
        entries = list(raw)
    trades = [parse_trade(entry, market, catalog=catalog) for entry in entries]
    return filter_by_since_limit(trades, since, limit)


def parse_order_status(code: Any) -> str:
    """Map the venue's integer status code; unknown codes are an error."""
    try:
        return ORDER_STATUSES[int(code)]
    except (KeyError, TypeError, ValueError):
        raise LiquiError(
            ErrorKind.EXCHANGE_ERROR,
            f"unrecognized order status code {code!r}",
        ) from None


def parse_order(
    raw: Mapping[str, Any],
    market: Market | None = None,
    *,
    catalog: MarketCatalog | None = None,
) -> Order:
    """Convert an `ActiveOrders`/`OrderInfo` entry (with its key merged in as `id`).

    `OrderInfo` reports `start_amount` (original size) and `amount` (remaining).
    `ActiveOrders` may omit `start_amount`, in which case `amount` is the
    remaining quantity and the original size is unknown here.
    """
    if market is None and catalog is not None:
        market = catalog.market_by_id(raw.get("pair"))

    remaining = _safe_float(raw, "amount")
    amount = _safe_float(raw, "start_amount") if "start_amount" in raw else None

    order = Order(
        id=str(raw["id"]),
        symbol=market.symbol if market is not None else None,
        side=raw.get("type"),
        status=parse_order_status(raw.get("status")),
        timestamp=seconds_to_ms(raw.get("timestamp_created")),
        price=_safe_float(raw, "rate"),
        amount=amount,
        remaining=remaining,
        info=dict(raw),
    )
    return order.with_fills()


def parse_orders(
    raw: Mapping[str, Mapping[str, Any]],
    market: Market | None = None,
    *,
    catalog: MarketCatalog | None = None,
) -> list[Order]:
    """Convert an id-keyed mapping of orders."""
    return [parse_order({**value, "id": key}, market, catalog=catalog) for key, value in raw.items()]


def parse_balance(raw: Mapping[str, Any]) -> Balances:
    """Convert the `getInfo` return payload.

    Only `free` funds are reported. With zero open orders nothing is reserved,
    so `used = 0` and `total = free`; otherwise both stay unknown.
    """
    open_orders = _safe_int(raw, "open_orders")
    funds = raw.get("funds") or {}
    currencies: dict[str, BalanceEntry] = {}
    for currency, value in funds.items():
        free = float(value) if value is not None else None
        if open_orders == 0:
            entry = BalanceEntry(free=free, used=0.0, total=free)
        else:
            entry = BalanceEntry(free=free)
        currencies[common_currency_code(currency)] = entry
    return Balances(currencies=currencies, open_orders=open_orders, info=dict(raw))


def _levels(raw: Iterable[Sequence[Any]] | None) -> list[tuple[float, float]]:
    levels: list[tuple[float, float]] = []
    for item in raw or []:
        if not item or len(item) < 2:
            continue
        levels.append((float(item[0]), float(item[1])))
    return levels


def parse_order_book(raw: Mapping[str, Any], market: Market | None = None) -> OrderBook:
    """Convert one `depth` entry, sorting bids descending and asks ascending."""
    bids = sorted(_levels(raw.get("bids")), key=lambda level: level[0], reverse=True)
    asks = sorted(_levels(raw.get("asks")), key=lambda level: level[0])
    return OrderBook(symbol=market.symbol if market is not None else None, bids=bids, asks=asks)
