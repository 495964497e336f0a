"""Canonical trading interface for Liqui.

`LiquiExchange` wires the transport, the market catalog and the order
reconciler together. Public market data is converted by `liqui.normalize`;
order state goes through `liqui.reconciler`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Literal

from config import LiquiConfig
from observability import ObservabilityRecorder

from .client import LiquiClient
from .errors import ErrorKind, LiquiError
from .markets import MarketCatalog
from .models import Balances, DepositAddress, Fee, Market, Order, OrderBook, Ticker, Trade, WithdrawalReceipt
from .normalize import parse_balance, parse_markets, parse_order_book, parse_ticker, parse_trades
from .reconciler import OrderReconciler
from .store import OrderStore

logger = logging.getLogger(__name__)

# Longest pair list the `ticker` endpoint accepts in one URL.
MAX_TICKER_URL_LENGTH = 2083


class LiquiExchange:
    """Liqui adapter exposing markets, tickers, order book, trades, balances and orders."""

    def __init__(
        self,
        config: LiquiConfig,
        *,
        client: LiquiClient | None = None,
        store: OrderStore | None = None,
        recorder: ObservabilityRecorder | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.config = config
        self.client = client or LiquiClient(config)
        self.catalog = MarketCatalog()
        reconciler_kwargs: dict[str, Any] = {"store": store, "recorder": recorder}
        if clock is not None:
            reconciler_kwargs["clock"] = clock
        self.reconciler = OrderReconciler(self.client, self.catalog, **reconciler_kwargs)

    @property
    def orders(self) -> dict[str, Order]:
        """Every order the adapter currently remembers, keyed by id."""
        return self.reconciler.store.snapshot()

    async def aclose(self) -> None:
        await self.client.aclose()

    # -- markets -----------------------------------------------------------

    async def fetch_markets(self) -> list[Market]:
        response = await self.client.public_get("info")
        return parse_markets(response)

    async def load_markets(self, reload: bool = False) -> Mapping[str, Market]:
        """Load markets once (or again with `reload`) and return them by symbol."""
        if reload or not self.catalog.loaded:
            markets = await self.fetch_markets()
            self.catalog.load(markets)
            logger.info("liqui loaded %d markets", len(markets))
        return self.catalog.markets

    def market(self, symbol: str) -> Market:
        return self.catalog.market(symbol)

    def calculate_fee(
        self,
        symbol: str,
        side: str,
        amount: float,
        price: float,
        taker_or_maker: Literal["taker", "maker"] = "taker",
    ) -> Fee:
        return self.catalog.calculate_fee(symbol, side, amount, price, taker_or_maker)

    # -- public market data ------------------------------------------------

    async def fetch_tickers(self, symbols: Sequence[str] | None = None) -> dict[str, Ticker]:
        """Fetch tickers for `symbols`, or for every market when omitted."""
        await self.load_markets()
        if symbols:
            ids = "-".join(self.catalog.market_ids(symbols))
        else:
            ids = "-".join(self.catalog.ids)
            if len(ids) > MAX_TICKER_URL_LENGTH:
                raise LiquiError(
                    ErrorKind.EXCHANGE_ERROR,
                    f"{len(self.catalog.ids)} symbols exceed the max URL length, "
                    "pass a list of symbols to fetch_tickers",
                )
        response = await self.client.public_get(f"ticker/{ids}")
        result: dict[str, Ticker] = {}
        for market_id, raw in response.items():
            market = self.catalog.market_by_id(market_id)
            if market is None:
                continue
            result[market.symbol] = parse_ticker(raw, market)
        return result

    async def fetch_ticker(self, symbol: str) -> Ticker:
        tickers = await self.fetch_tickers([symbol])
        try:
            return tickers[symbol]
        except KeyError:
            raise LiquiError(ErrorKind.EXCHANGE_ERROR, f"no ticker returned for {symbol}") from None

    async def fetch_order_book(self, symbol: str, limit: int | None = None) -> OrderBook:
        """Fetch the depth for one market (venue default 150 levels, max 2000)."""
        await self.load_markets()
        market = self.catalog.market(symbol)
        response = await self.client.public_get(f"depth/{market.id}", {"limit": limit})
        if market.id not in response:
            raise LiquiError(ErrorKind.EXCHANGE_ERROR, f"{symbol} order book is empty or not available")
        return parse_order_book(response[market.id], market)

    async def fetch_trades(self, symbol: str, since: int | None = None, limit: int | None = None) -> list[Trade]:
        await self.load_markets()
        market = self.catalog.market(symbol)
        response = await self.client.public_get(f"trades/{market.id}", {"limit": limit})
        return parse_trades(response.get(market.id) or [], market, catalog=self.catalog, since=since, limit=limit)

    # -- account -----------------------------------------------------------

    async def fetch_balance(self) -> Balances:
        await self.load_markets()
        response = await self.client.private_post("getInfo")
        return parse_balance(response.get("return") or {})

    async def fetch_my_trades(
        self, symbol: str | None = None, since: int | None = None, limit: int | None = None
    ) -> list[Trade]:
        """Own trade history (`TradeHistory`); `since` is in milliseconds."""
        await self.load_markets()
        market = None
        request: dict[str, Any] = {}
        if symbol is not None:
            market = self.catalog.market(symbol)
            request["pair"] = market.id
        if limit is not None:
            request["count"] = int(limit)
        if since is not None:
            request["since"] = int(since // 1000)
        response = await self.client.private_post("TradeHistory", request)
        return parse_trades(response.get("return") or {}, market, catalog=self.catalog, since=since, limit=limit)

    async def fetch_deposit_address(self, currency: str) -> DepositAddress:
        response = await self.client.private_post("CoinDepositAddress", {"coinName": currency})
        result = response.get("return") or {}
        return DepositAddress(currency=currency, address=result.get("address"), info=response)

    async def withdraw(self, currency: str, amount: float, address: str) -> WithdrawalReceipt:
        await self.load_markets()
        response = await self.client.private_post(
            "WithdrawCoin",
            {"coinName": currency, "amount": float(amount), "address": address},
        )
        result = response.get("return") or {}
        tx_id = result.get("tId")
        return WithdrawalReceipt(id=str(tx_id) if tx_id is not None else None, info=response)

    async def create_coupon(self, currency: str, amount: float, receiver: str | None = None) -> dict[str, Any]:
        """Create a coupon worth `amount` of `currency`; returns the venue payload (coupon code, transaction id)."""
        response = await self.client.private_post(
            "CreateCoupon",
            {"currency": currency, "amount": float(amount), "receiver": receiver},
        )
        return response.get("return") or {}

    async def redeem_coupon(self, coupon: str) -> dict[str, Any]:
        response = await self.client.private_post("RedeemCoupon", {"coupon": coupon})
        return response.get("return") or {}

    # -- orders ------------------------------------------------------------

    async def create_order(
        self,
        symbol: str,
        type: str,
        side: str,
        amount: float,
        price: float | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> Order:
        """Place an order. Only limit orders exist on this venue."""
        if type != "limit":
            raise LiquiError(ErrorKind.EXCHANGE_ERROR, "liqui allows limit orders only")
        if price is None:
            raise LiquiError(ErrorKind.INVALID_ORDER, "limit orders require a price")
        await self.load_markets()
        return await self.reconciler.create_order(symbol, side, amount, price, params=params)

    async def cancel_order(
        self, order_id: str, symbol: str | None = None, params: Mapping[str, Any] | None = None
    ) -> Order | None:
        await self.load_markets()
        return await self.reconciler.cancel_order(order_id, params=params)

    async def fetch_order(self, order_id: str, symbol: str | None = None) -> Order:
        await self.load_markets()
        return await self.reconciler.fetch_order(order_id)

    async def fetch_orders(
        self, symbol: str | None = None, since: int | None = None, limit: int | None = None
    ) -> list[Order]:
        await self.load_markets()
        return await self.reconciler.fetch_orders(symbol, since, limit)

    async def fetch_open_orders(
        self, symbol: str | None = None, since: int | None = None, limit: int | None = None
    ) -> list[Order]:
        await self.load_markets()
        return await self.reconciler.fetch_open_orders(symbol, since, limit)

    async def fetch_closed_orders(
        self, symbol: str | None = None, since: int | None = None, limit: int | None = None
    ) -> list[Order]:
        await self.load_markets()
        return await self.reconciler.fetch_closed_orders(symbol, since, limit)
