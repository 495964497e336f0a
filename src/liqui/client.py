"""Async transport for the Liqui public and trade APIs.

This client implements a small async utility framework:

- Public methods create an `asyncio.Future`, enqueue `(api, path, params, future)`,
  and await the future's result.
- A single background worker consumes the queue serially.
- A token-bucket limiter gates outbound requests.

The HTTP call uses `requests` executed in a thread. Every response body goes
through the envelope classifier first; only bodies it does not recognize fall
back to plain HTTP status handling.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Callable, Mapping
from contextlib import suppress
from typing import Any, Literal
from urllib.parse import urlencode

import requests  # type: ignore

from config import LiquiConfig

from .auth import NonceGenerator, sign_private_request
from .classify import classify_response, raise_for_envelope
from .errors import ErrorKind, LiquiError, LiquiHttpError
from .rate_limit import TokenBucketRateLimiter

logger = logging.getLogger(__name__)

Api = Literal["public", "private"]

_BODY_SNIPPET = 240

# Trade-API methods that move funds or change order state. The venue has no
# idempotency key, so these are only retried when the request never left.
NON_IDEMPOTENT_METHODS = frozenset({"Trade", "CancelOrder", "WithdrawCoin", "CreateCoupon", "RedeemCoupon"})


class LiquiClient:
    """Rate-limited, serialized transport for Liqui (HMAC-SHA512 signing).

    Members:
    - Config: `config`
    - Nonce source: `nonce` (strictly increasing milliseconds by default)
    - Request Queue: `request_queue` (single asyncio.Queue)
    - Dedicated Worker Task: `_request_worker_task` (single background task)
    - Rate Limiter: `rate_limiter` (token bucket)
    """

    def __init__(self, config: LiquiConfig, *, nonce: Callable[[], int] | None = None):
        """Create a client using the given credentials and tuning configuration."""
        self.config = config
        self.nonce: Callable[[], int] = nonce or NonceGenerator()

        self.request_queue: asyncio.Queue[tuple[Api, str, dict[str, Any], asyncio.Future[Any]]] = asyncio.Queue()

        self.rate_limiter = TokenBucketRateLimiter(rate=config.rate_limit)
        self._request_worker_task: asyncio.Task[None] | None = None

    def _ensure_worker_started(self) -> None:
        """Start the single background worker task (lazily)."""
        if self._request_worker_task is not None and not self._request_worker_task.done():
            return
        loop = asyncio.get_running_loop()
        self._request_worker_task = loop.create_task(self._request_worker(), name="liqui-request-worker")

    async def _enqueue_request(self, api: Api, path: str, params: Mapping[str, Any] | None) -> Any:
        """Enqueue a request and await its result."""
        self._ensure_worker_started()
        fut: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        await self.request_queue.put((api, path, dict(params or {}), fut))
        return await fut

    async def _request_worker(self) -> None:
        """Consume the queue serially, resolve futures with results/errors."""
        while True:
            api, path, params, fut = await self.request_queue.get()
            try:
                result = await self._send_with_retries(api, path, params)
            except Exception as exc:  # noqa: BLE001 - propagate into awaiting task
                if not fut.cancelled():
                    fut.set_exception(exc)
            else:
                if not fut.cancelled():
                    fut.set_result(result)
            finally:
                self.request_queue.task_done()

    def _prepare(self, api: Api, path: str, params: dict[str, Any]) -> tuple[str, str, str | None, dict[str, str]]:
        """Return `(http_method, url, body, headers)` for one attempt.

        Private calls draw a fresh nonce on every attempt so a retry is never
        rejected as a replay.
        """
        if api == "private":
            signed = sign_private_request(
                path,
                params,
                nonce=self.nonce(),
                api_key=self.config.api_key,
                secret=self.config.secret,
            )
            return "POST", self.config.private_url, signed.body, signed.headers

        url = f"{self.config.public_base_url}/{path}{self._build_query_string(params)}"
        return "GET", url, None, {}

    async def _send_request(self, api: Api, path: str, params: dict[str, Any]) -> Any:
        """Sign and send a request, returning the decoded JSON response.

        Raises:
        - `LiquiError` when the response envelope reports failure
        - `LiquiHttpError` for non-2xx or undecodable responses
        - `requests.RequestException` for transport errors
        """
        http_method, url, body, headers = self._prepare(api, path, params)
        timeout = self.config.timeout
        logger.debug("liqui %s %s (%s)", http_method, path, api)

        def _do_request() -> Any:
            """Execute the HTTP request synchronously (runs in a worker thread)."""
            resp = requests.request(http_method, url, headers=headers, data=body, timeout=timeout)
            text = resp.text
            envelope = classify_response(text)

            if 200 <= resp.status_code < 300:
                if envelope is not None:
                    return envelope
                if not text:
                    return None
                try:
                    payload = resp.json()
                except ValueError:
                    raise LiquiHttpError(
                        status_code=resp.status_code, payload=None, body=text[:_BODY_SNIPPET]
                    ) from None
                # JSON the prefix check skipped (e.g. leading whitespace) is still an envelope.
                raise_for_envelope(payload)
                return payload

            raise LiquiHttpError(status_code=resp.status_code, payload=envelope, body=text[:_BODY_SNIPPET])

        return await asyncio.to_thread(_do_request)

    async def _send_with_retries(self, api: Api, path: str, params: dict[str, Any]) -> Any:
        """Send a request, retrying transport-level failures with backoff.

        Classified venue errors (`LiquiError`) are never retried here.
        Non-idempotent private methods are retried on connection failures only.
        """
        idempotent = not (api == "private" and path in NON_IDEMPOTENT_METHODS)
        attempt = 0
        start = time.monotonic()

        while True:
            try:
                await self.rate_limiter.acquire()
                return await self._send_request(api, path, params)
            except Exception as exc:  # noqa: BLE001 - classify and retry/raise
                attempt += 1
                if not _is_retryable_error(exc, idempotent=idempotent):
                    raise
                if attempt >= self.config.max_attempt:
                    raise

                delay = self.config.base_delay * (self.config.backoff_multiplier ** (attempt - 1))
                delay += random.uniform(0.0, delay * 0.1)  # small jitter

                if (time.monotonic() - start) + delay > self.config.max_delay:
                    raise
                logger.warning("liqui %s %s failed (%s); retry %d in %.2fs", api, path, exc, attempt, delay)
                await asyncio.sleep(delay)

    def _build_query_string(self, params: Mapping[str, Any]) -> str:
        """Build a query string from a dict, omitting None values.

        Booleans are encoded as "true"/"false".
        """
        filtered: dict[str, str] = {}
        for key, value in params.items():
            if value is None:
                continue
            if isinstance(value, bool):
                filtered[key] = "true" if value else "false"
            else:
                filtered[key] = str(value)

        if not filtered:
            return ""
        return "?" + urlencode(filtered)

    async def public_get(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        """GET a public endpoint, e.g. `info` or `ticker/eth_btc`."""
        return await self._enqueue_request("public", path, params)

    async def private_post(self, method: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """POST a signed trade-API call and return the whole success envelope.

        Missing credentials fail here, before anything is queued.
        """
        if not self.config.has_credentials:
            raise LiquiError(ErrorKind.AUTHENTICATION, f"{method} requires apiKey and secret credentials")
        response = await self._enqueue_request("private", method, params)
        if not isinstance(response, dict):
            raise LiquiError(ErrorKind.EXCHANGE_ERROR, f"{method} returned a non-object response", payload=response)
        return response

    async def aclose(self) -> None:
        """Stop the background worker."""
        task = self._request_worker_task
        self._request_worker_task = None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


def _is_retryable_error(exc: BaseException, *, idempotent: bool = True) -> bool:
    """Return True if the error is a transient transport failure.

    With `idempotent=False` only failures to connect qualify: a read timeout
    or an HTTP status means the venue may already have acted.
    """
    if not idempotent:
        return isinstance(exc, requests.ConnectionError)

    if isinstance(exc, LiquiHttpError):
        # Retry 429 and all 5xx.
        return exc.status_code == 429 or exc.status_code >= 500

    # Network/transport errors.
    return isinstance(exc, requests.RequestException)
