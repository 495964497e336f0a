"""Request signing for Liqui private (trade) API calls.

Private calls are POSTed as a urlencoded body of the form
`nonce=<n>&method=<endpoint>&<params...>`. The body bytes are signed with
HMAC-SHA512 keyed by the API secret; the hex digest goes in the `Sign` header
and the API key in the `Key` header.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from cryptography.hazmat.primitives import hashes, hmac  # type: ignore

from .errors import ErrorKind, LiquiError


@dataclass(frozen=True)
class SignedRequest:
    """Body and headers ready to POST to the private endpoint."""

    body: str
    headers: dict[str, str]


class NonceGenerator:
    """Strictly increasing millisecond nonces.

    The venue rejects a nonce that repeats or goes backwards for the same key,
    so two calls in the same millisecond still get distinct values.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            now_ms = int(self._clock() * 1000)
            self._last = max(now_ms, self._last + 1)
            return self._last


def sign_body(body: str, secret: str) -> str:
    """Return hex(HMAC-SHA512(secret, body))."""
    mac = hmac.HMAC(secret.encode("utf-8"), hashes.SHA512())
    mac.update(body.encode("utf-8"))
    return mac.finalize().hex()


def sign_private_request(
    path: str,
    params: Mapping[str, Any] | None,
    *,
    nonce: int,
    api_key: str | None,
    secret: str | None,
) -> SignedRequest:
    """Build the signed body/headers for a private endpoint call.

    Raises `LiquiError(AUTHENTICATION)` when credentials are missing, before
    anything touches the network.
    """
    if not api_key or not secret:
        raise LiquiError(ErrorKind.AUTHENTICATION, f"{path} requires apiKey and secret credentials")

    fields: dict[str, Any] = {"nonce": nonce, "method": path}
    for key, value in (params or {}).items():
        if value is None or key in fields:
            continue
        fields[key] = value
    body = urlencode(fields)

    return SignedRequest(
        body=body,
        headers={
            "Content-Type": "application/x-www-form-urlencoded",
            "Key": api_key,
            "Sign": sign_body(body, secret),
        },
    )
