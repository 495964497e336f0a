from __future__ import annotations

import copy

import pytest


@pytest.fixture(autouse=True)
def _no_threads_in_unit_tests(monkeypatch: pytest.MonkeyPatch):
    """Run `asyncio.to_thread` inline for unit tests.

    The client uses `asyncio.to_thread` to avoid introducing an async HTTP
    dependency. In unit tests, this can create threadpool workers that keep the
    Python process alive longer than expected under some runtimes.
    """

    async def _to_thread(func, /, *args, **kwargs):  # noqa: ANN001, D401
        return func(*args, **kwargs)

    monkeypatch.setattr("liqui.client.asyncio.to_thread", _to_thread)
    yield



INFO_PAYLOAD = {
    "server_time": 1700000000,
    "pairs": {
        "eth_btc": {
            "decimal_places": 8,
            "min_price": 0.00000001,
            "max_price": 10,
            "min_amount": 0.0001,
            "max_amount": 100000,
            "min_total": 0.0001,
            "hidden": 0,
            "fee": 0.25,
        },
        "ltc_btc": {
            "decimal_places": 6,
            "min_price": 0.000001,
            "max_price": 10,
            "min_amount": 0.01,
            "max_amount": 100000,
            "min_total": 0.0001,
            "hidden": 1,
            "fee": 0.25,
        },
    },
}


@pytest.fixture
def catalog():
    """A catalog loaded with ETH/BTC (8 decimals) and a hidden LTC/BTC (6 decimals)."""
    from liqui.markets import MarketCatalog
    from liqui.normalize import parse_markets

    return MarketCatalog(parse_markets(INFO_PAYLOAD))


@pytest.fixture
def info_payload():
    return copy.deepcopy(INFO_PAYLOAD)
