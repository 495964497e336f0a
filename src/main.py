"""Demo entrypoint exercising the Liqui adapter against the live venue.

This module is a small manual "smoke test" that:

- Loads configuration from the environment.
- Loads markets and prints a ticker and the top of the order book.
- With credentials, prints balances and reconciles the cached orders.

It is not orchestration logic; it is a convenient integration harness.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from config import load_config
from liqui import LiquiExchange
from observability import DuckDBObservabilitySink, ObservabilityRecorder

logger = logging.getLogger(__name__)


async def run_demo() -> None:
    """Fetch public data for one symbol and, when possible, account state."""
    cfg = load_config()

    repo_root = Path(__file__).resolve().parent.parent
    db_path = os.getenv("OBSERVABILITY_DB_PATH", str(repo_root / "observability.duckdb"))
    recorder = ObservabilityRecorder(sink=DuckDBObservabilitySink(path=db_path))
    exchange = LiquiExchange(cfg.liqui, recorder=recorder)

    symbol = os.getenv("DEMO_SYMBOL", "ETH/BTC")
    try:
        markets = await exchange.load_markets()
        print(f"[markets] {len(markets)} loaded")

        ticker = await exchange.fetch_ticker(symbol)
        print(f"[ticker] {symbol}: bid={ticker.bid} ask={ticker.ask} last={ticker.last} at {ticker.datetime}")

        book = await exchange.fetch_order_book(symbol, limit=5)
        print(f"[book] {symbol}: best bid={book.bids[:1]} best ask={book.asks[:1]}")

        if not cfg.liqui.has_credentials:
            logger.info("no LIQUI_API_KEY/LIQUI_SECRET set; skipping private calls")
            return

        balances = await exchange.fetch_balance()
        for currency, entry in balances.currencies.items():
            if entry.free:
                print(f"[balance] {currency}: free={entry.free} total={entry.total}")

        for order in await exchange.fetch_orders(symbol):
            print(f"[order] {order.id} {order.side} {order.amount} @ {order.price}: {order.status}")
    finally:
        await exchange.aclose()
        await recorder.aclose()


def main() -> None:
    """CLI entrypoint for `liqui-demo` / `python src/main.py`."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run_demo())


if __name__ == "__main__":
    main()
