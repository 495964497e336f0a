from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any
from urllib.parse import parse_qsl

import pytest
import requests

from config import LiquiConfig
from liqui.client import LiquiClient
from liqui.errors import ErrorKind, LiquiError, LiquiHttpError
from liqui.markets import MarketCatalog
from liqui.models import Order
from liqui.reconciler import OrderReconciler
from liqui.store import InMemoryOrderStore


class _FakeResponse:
    def __init__(self, payload: Any = None, *, status_code: int = 200, text: str | None = None) -> None:
        self._payload = payload
        self.status_code = status_code
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text

    def json(self) -> Any:
        return json.loads(self.text)


def _make_config(**overrides: Any) -> LiquiConfig:
    # Big rate to avoid unrelated sleeps in most unit tests.
    fields: dict[str, Any] = {"api_key": "test_key", "secret": "test_secret", "rate_limit": 10_000}
    fields.update(overrides)
    return LiquiConfig(**fields)


def _counter(start: int = 1):
    value = start - 1

    def _next() -> int:
        nonlocal value
        value += 1
        return value

    return _next


@pytest.mark.asyncio
async def test_public_get_builds_versioned_url(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, Any] = {}

    def fake_request(method: str, url: str, *, headers: dict[str, str], data: Any, timeout: float) -> _FakeResponse:
        seen.update(method=method, url=url, headers=headers, data=data, timeout=timeout)
        return _FakeResponse({"eth_btc": {"asks": [], "bids": []}})

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    client = LiquiClient(_make_config(api_key=None, secret=None))
    try:
        result = await client.public_get("depth/eth_btc", {"limit": 5, "ignored": None})
    finally:
        await client.aclose()

    assert result == {"eth_btc": {"asks": [], "bids": []}}
    assert seen["method"] == "GET"
    assert seen["url"] == "https://api.liqui.io/api/3/depth/eth_btc?limit=5"
    assert seen["data"] is None
    assert seen["headers"] == {}
    assert seen["timeout"] == 30.0


@pytest.mark.asyncio
async def test_private_post_signs_body(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, Any] = {}

    def fake_request(method: str, url: str, *, headers: dict[str, str], data: Any, timeout: float) -> _FakeResponse:
        seen.update(method=method, url=url, headers=headers, data=data)
        return _FakeResponse({"success": 1, "return": {"funds": {"btc": 1}}})

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    client = LiquiClient(_make_config(), nonce=_counter(1700000000000))
    try:
        result = await client.private_post("getInfo")
    finally:
        await client.aclose()

    assert result == {"success": 1, "return": {"funds": {"btc": 1}}}
    assert seen["method"] == "POST"
    assert seen["url"] == "https://api.liqui.io/tapi"
    assert parse_qsl(seen["data"]) == [("nonce", "1700000000000"), ("method", "getInfo")]
    assert seen["headers"]["Key"] == "test_key"
    expected = hmac.new(b"test_secret", seen["data"].encode(), hashlib.sha512).hexdigest()
    assert seen["headers"]["Sign"] == expected


@pytest.mark.asyncio
async def test_private_post_without_credentials_never_sends(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_request(*args: Any, **kwargs: Any) -> _FakeResponse:
        raise AssertionError("no request expected")

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    client = LiquiClient(_make_config(api_key=None, secret=None))
    with pytest.raises(LiquiError) as excinfo:
        await client.private_post("getInfo")
    assert excinfo.value.kind is ErrorKind.AUTHENTICATION
    assert client._request_worker_task is None


@pytest.mark.asyncio
async def test_failed_envelope_is_classified_and_not_retried(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = 0

    def fake_request(method: str, url: str, *, headers: dict[str, str], data: Any, timeout: float) -> _FakeResponse:
        nonlocal calls
        calls += 1
        return _FakeResponse({"success": 0, "code": 831, "error": "It is not enough BTC for purchase"})

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    client = LiquiClient(_make_config())
    try:
        with pytest.raises(LiquiError) as excinfo:
            await client.private_post("Trade", {"pair": "eth_btc"})
    finally:
        await client.aclose()

    assert excinfo.value.kind is ErrorKind.INSUFFICIENT_FUNDS
    assert excinfo.value.venue_code == "831"
    assert calls == 1


@pytest.mark.asyncio
async def test_envelope_wins_over_http_status(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_request(method: str, url: str, *, headers: dict[str, str], data: Any, timeout: float) -> _FakeResponse:
        return _FakeResponse({"success": 0, "error": "invalid api key"}, status_code=403)

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    client = LiquiClient(_make_config())
    try:
        with pytest.raises(LiquiError) as excinfo:
            await client.private_post("getInfo")
    finally:
        await client.aclose()
    assert excinfo.value.kind is ErrorKind.AUTHENTICATION


@pytest.mark.asyncio
async def test_retries_on_http_500_with_fresh_nonce(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("liqui.client.random.uniform", lambda _a, _b: 0.0)

    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)

    monkeypatch.setattr("liqui.client.asyncio.sleep", fake_sleep)

    bodies: list[str] = []

    def fake_request(method: str, url: str, *, headers: dict[str, str], data: Any, timeout: float) -> _FakeResponse:
        bodies.append(data)
        if len(bodies) < 3:
            return _FakeResponse(status_code=500, text="<html>bad gateway</html>")
        return _FakeResponse({"success": 1, "return": {}})

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    client = LiquiClient(_make_config(), nonce=_counter(10))
    try:
        result = await client.private_post("getInfo")
    finally:
        await client.aclose()

    assert result == {"success": 1, "return": {}}
    assert slept == [0.5, 1.0]
    assert [dict(parse_qsl(b))["nonce"] for b in bodies] == ["10", "11", "12"]


@pytest.mark.asyncio
async def test_retries_on_transport_error_then_gives_up(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("liqui.client.random.uniform", lambda _a, _b: 0.0)

    async def fake_sleep(seconds: float) -> None:
        return None

    monkeypatch.setattr("liqui.client.asyncio.sleep", fake_sleep)

    calls = 0

    def fake_request(*args: Any, **kwargs: Any) -> _FakeResponse:
        nonlocal calls
        calls += 1
        raise requests.ConnectionError("boom")

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    client = LiquiClient(_make_config(max_attempt=3))
    try:
        with pytest.raises(requests.ConnectionError):
            await client.public_get("info")
    finally:
        await client.aclose()
    assert calls == 3


@pytest.mark.asyncio
async def test_no_retry_on_http_400(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = 0

    def fake_request(method: str, url: str, *, headers: dict[str, str], data: Any, timeout: float) -> _FakeResponse:
        nonlocal calls
        calls += 1
        return _FakeResponse(status_code=400, text="Bad Request")

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    client = LiquiClient(_make_config())
    try:
        with pytest.raises(LiquiHttpError) as excinfo:
            await client.public_get("info")
    finally:
        await client.aclose()

    assert excinfo.value.status_code == 400
    assert excinfo.value.body == "Bad Request"
    assert calls == 1


@pytest.mark.asyncio
async def test_empty_success_body_returns_none(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_request(method: str, url: str, *, headers: dict[str, str], data: Any, timeout: float) -> _FakeResponse:
        return _FakeResponse(status_code=200, text="")

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    client = LiquiClient(_make_config())
    try:
        assert await client.public_get("info") is None
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_private_post_rejects_non_object(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_request(method: str, url: str, *, headers: dict[str, str], data: Any, timeout: float) -> _FakeResponse:
        return _FakeResponse([1, 2, 3])

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    client = LiquiClient(_make_config())
    try:
        with pytest.raises(LiquiError) as excinfo:
            await client.private_post("getInfo")
    finally:
        await client.aclose()
    assert excinfo.value.kind is ErrorKind.EXCHANGE_ERROR


def _no_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("liqui.client.random.uniform", lambda _a, _b: 0.0)

    async def fake_sleep(seconds: float) -> None:
        return None

    monkeypatch.setattr("liqui.client.asyncio.sleep", fake_sleep)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failure",
    [requests.ReadTimeout("read timed out"), _FakeResponse(status_code=502, text="Bad Gateway")],
)
async def test_trade_is_not_resent_after_it_may_have_reached_the_venue(
    monkeypatch: pytest.MonkeyPatch, failure: Any
) -> None:
    _no_sleep(monkeypatch)
    methods: list[str] = []

    def fake_request(method: str, url: str, *, headers: dict[str, str], data: Any, timeout: float) -> _FakeResponse:
        methods.append(dict(parse_qsl(data))["method"])
        if len(methods) == 1:
            if isinstance(failure, Exception):
                raise failure
            return failure
        return _FakeResponse({"success": 1, "return": {"init_order_id": 1, "order_id": 1, "remains": 1}})

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    client = LiquiClient(_make_config())
    try:
        with pytest.raises((requests.ReadTimeout, LiquiHttpError)):
            await client.private_post("Trade", {"pair": "eth_btc", "type": "buy", "amount": "1", "rate": "0.03"})
    finally:
        await client.aclose()
    assert methods == ["Trade"]


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["Trade", "CancelOrder", "WithdrawCoin", "CreateCoupon", "RedeemCoupon"])
async def test_non_idempotent_calls_retry_when_connecting_failed(monkeypatch: pytest.MonkeyPatch, method: str) -> None:
    _no_sleep(monkeypatch)
    calls = 0

    def fake_request(*args: Any, **kwargs: Any) -> _FakeResponse:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise requests.ConnectTimeout("connect timed out")
        return _FakeResponse({"success": 1, "return": {}})

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    client = LiquiClient(_make_config())
    try:
        assert await client.private_post(method) == {"success": 1, "return": {}}
    finally:
        await client.aclose()
    assert calls == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["getInfo", "ActiveOrders", "OrderInfo", "TradeHistory"])
async def test_read_only_calls_retry_after_read_timeout(monkeypatch: pytest.MonkeyPatch, method: str) -> None:
    _no_sleep(monkeypatch)
    calls = 0

    def fake_request(*args: Any, **kwargs: Any) -> _FakeResponse:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise requests.ReadTimeout("read timed out")
        return _FakeResponse({"success": 1, "return": {}})

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    client = LiquiClient(_make_config())
    try:
        assert await client.private_post(method) == {"success": 1, "return": {}}
    finally:
        await client.aclose()
    assert calls == 2


@pytest.mark.asyncio
async def test_failure_envelope_with_leading_whitespace_is_classified(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_request(method: str, url: str, *, headers: dict[str, str], data: Any, timeout: float) -> _FakeResponse:
        return _FakeResponse(text='\n  {"success":0,"code":"833","error":"bad status"}')

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    client = LiquiClient(_make_config())
    try:
        with pytest.raises(LiquiError) as excinfo:
            await client.private_post("OrderInfo", {"order_id": 555})
    finally:
        await client.aclose()
    assert excinfo.value.kind is ErrorKind.ORDER_NOT_FOUND
    assert excinfo.value.venue_code == "833"


@pytest.mark.asyncio
async def test_refused_cancel_behind_whitespace_keeps_cached_order_open(
    monkeypatch: pytest.MonkeyPatch, catalog: MarketCatalog
) -> None:
    def fake_request(method: str, url: str, *, headers: dict[str, str], data: Any, timeout: float) -> _FakeResponse:
        return _FakeResponse(text='\n{"success":0,"code":"833","error":"bad status"}')

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    store = InMemoryOrderStore(
        {"555": Order(id="555", symbol="ETH/BTC", status="open", price=0.03, amount=1.5, remaining=1.5).with_fills()}
    )
    client = LiquiClient(_make_config())
    reconciler = OrderReconciler(client, catalog, store=store)
    try:
        with pytest.raises(LiquiError):
            await reconciler.cancel_order("555")
    finally:
        await client.aclose()
    assert store.get("555").status == "open"


@pytest.mark.asyncio
async def test_whitespace_success_body_is_returned(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_request(method: str, url: str, *, headers: dict[str, str], data: Any, timeout: float) -> _FakeResponse:
        return _FakeResponse(text=' {"success":1,"return":{"open_orders":0}}\n')

    monkeypatch.setattr("liqui.client.requests.request", fake_request)

    client = LiquiClient(_make_config())
    try:
        assert await client.private_post("getInfo") == {"success": 1, "return": {"open_orders": 0}}
    finally:
        await client.aclose()
