"""Liqui venue adapter: signed transport, error classification and order reconciliation."""

from .client import LiquiClient
from .errors import ErrorKind, LiquiError, LiquiHttpError
from .exchange import LiquiExchange
from .markets import MarketCatalog
from .models import Balances, Market, Order, OrderBook, Ticker, Trade
from .reconciler import OrderReconciler
from .store import InMemoryOrderStore, OrderStore

__all__ = [
    "Balances",
    "ErrorKind",
    "InMemoryOrderStore",
    "LiquiClient",
    "LiquiError",
    "LiquiExchange",
    "LiquiHttpError",
    "Market",
    "MarketCatalog",
    "Order",
    "OrderBook",
    "OrderReconciler",
    "OrderStore",
    "Ticker",
    "Trade",
]
