"""Market metadata: symbol <-> venue id mapping, precision and fees."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Literal

from .errors import ErrorKind, LiquiError
from .models import Fee, Market

DEFAULT_MAKER_FEE = 0.001
DEFAULT_TAKER_FEE = 0.0025

_COMMON_CURRENCY_CODES: dict[str, str] = {
    "XBT": "BTC",
    "BCC": "BCH",
    "DRK": "DASH",
    # the venue misspells DASH as DSH
    "DSH": "DASH",
}


def common_currency_code(currency: str) -> str:
    """Map venue-specific currency codes onto their common names."""
    code = currency.upper()
    return _COMMON_CURRENCY_CODES.get(code, code)


def split_market_id(market_id: str) -> tuple[str, str]:
    """`eth_btc` -> `("ETH", "BTC")`."""
    base, _, quote = market_id.upper().partition("_")
    return common_currency_code(base), common_currency_code(quote)


def _to_precision(value: float | str, places: int | None, rounding: str) -> str:
    number = Decimal(str(value))
    if places is None:
        return format(number, "f")
    quantum = Decimal(1).scaleb(-places)
    return format(number.quantize(quantum, rounding=rounding), "f")


class MarketCatalog:
    """In-memory index of loaded markets.

    Immutable once loaded; `load` replaces the whole index at once.
    """

    def __init__(self, markets: Iterable[Market] = ()) -> None:
        self._by_symbol: dict[str, Market] = {}
        self._by_id: dict[str, Market] = {}
        self.load(markets)

    def load(self, markets: Iterable[Market]) -> None:
        by_symbol = {m.symbol: m for m in markets}
        self._by_symbol = by_symbol
        self._by_id = {m.id: m for m in by_symbol.values()}

    @property
    def loaded(self) -> bool:
        return bool(self._by_symbol)

    @property
    def symbols(self) -> list[str]:
        return list(self._by_symbol)

    @property
    def ids(self) -> list[str]:
        return list(self._by_id)

    @property
    def markets(self) -> Mapping[str, Market]:
        return dict(self._by_symbol)

    def market(self, symbol: str) -> Market:
        """Look up a market by canonical symbol (`ETH/BTC`)."""
        try:
            return self._by_symbol[symbol]
        except KeyError:
            raise LiquiError(ErrorKind.EXCHANGE_ERROR, f"does not have market symbol {symbol}") from None

    def market_by_id(self, market_id: str | None) -> Market | None:
        """Look up a market by venue id (`eth_btc`); None if unknown."""
        if market_id is None:
            return None
        return self._by_id.get(market_id)

    def market_ids(self, symbols: Iterable[str]) -> list[str]:
        return [self.market(s).id for s in symbols]

    def symbol_for_id(self, market_id: str | None) -> str | None:
        market = self.market_by_id(market_id)
        return market.symbol if market is not None else None

    def amount_to_precision(self, symbol: str, amount: float | str) -> str:
        """Truncate an amount to the market's allowed decimal places."""
        return _to_precision(amount, self.market(symbol).precision.amount, ROUND_DOWN)

    def price_to_precision(self, symbol: str, price: float | str) -> str:
        """Round a price to the market's allowed decimal places."""
        return _to_precision(price, self.market(symbol).precision.price, ROUND_HALF_UP)

    def calculate_fee(
        self,
        symbol: str,
        side: str,
        amount: float,
        price: float,
        taker_or_maker: Literal["taker", "maker"] = "taker",
    ) -> Fee:
        """Estimate the fee for a fill.

        Buys pay the fee in the base currency (deducted from what is received);
        sells pay it in the quote currency.
        """
        market = self.market(symbol)
        rate = getattr(market, taker_or_maker)
        if rate is None:
            rate = DEFAULT_TAKER_FEE if taker_or_maker == "taker" else DEFAULT_MAKER_FEE
        cost = float(_to_precision(amount * rate, market.precision.price, ROUND_HALF_UP))
        if side == "sell":
            return Fee(type=taker_or_maker, currency=market.quote, rate=rate, cost=cost * price)
        return Fee(type=taker_or_maker, currency=market.base, rate=rate, cost=cost)

