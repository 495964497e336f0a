"""Classification of Liqui response envelopes into typed errors.

Liqui answers private calls with HTTP 200 and a body such as
`{"success": 1, "return": {...}}` or `{"success": 0, "code": "833", "error": "..."}`.
Forks of the same API encode `success` as an integer, a numeric string, a
`"true"`/`"false"` string or a real boolean, so the flag is normalized first.

`classify_response` only handles bodies it recognizes as JSON envelopes. For
anything else it returns `None` and the transport's default status-code
handling takes over.
"""

from __future__ import annotations

import json
from typing import Any, Final

from .errors import ErrorKind, LiquiError

# Venue error codes take precedence over the error message.
EXCEPTIONS_BY_CODE: Final[dict[str, ErrorKind]] = {
    "803": ErrorKind.INVALID_ORDER,  # amount below market minimum
    "804": ErrorKind.INVALID_ORDER,  # amount above market maximum
    "805": ErrorKind.INVALID_ORDER,  # price below market minimum
    "806": ErrorKind.INVALID_ORDER,  # price above market maximum
    "807": ErrorKind.INVALID_ORDER,  # cost below market minimum
    "831": ErrorKind.INSUFFICIENT_FUNDS,  # quote balance too low for a buy
    "832": ErrorKind.INSUFFICIENT_FUNDS,  # base balance too low for a sell
    "833": ErrorKind.ORDER_NOT_FOUND,  # unknown, closed or already canceled order id
}

EXACT_MESSAGES: Final[tuple[tuple[str, ErrorKind], ...]] = (
    ("invalid api key", ErrorKind.AUTHENTICATION),
    ("api key dont have trade permission", ErrorKind.AUTHENTICATION),
)

# Returned with errorCode 0, e.g. for a zero-amount order.
SUBSTRING_MESSAGES: Final[tuple[tuple[str, ErrorKind], ...]] = (
    ("invalid parameter", ErrorKind.INVALID_ORDER),
)

TRANSIENT_MESSAGES: Final[tuple[tuple[str, ErrorKind], ...]] = (
    ("Requests too often", ErrorKind.DDOS_PROTECTION),
    ("not available", ErrorKind.DDOS_PROTECTION),
    ("external service unavailable", ErrorKind.DDOS_PROTECTION),
)

_TRUTHY: Final[frozenset[Any]] = frozenset({"1", "true"})


def normalize_success(value: Any) -> bool:
    """Collapse the venue's bool-like `success` encodings into a bool.

    `1`, `True`, `"1"` and `"true"` are success; every other literal, and a
    missing value, is failure.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value in _TRUTHY
    if isinstance(value, int):
        return value == 1
    return False


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


def parse_envelope(body: Any) -> Any | None:
    """Return the decoded JSON object/array, or None if `body` is not one."""
    if not isinstance(body, str):
        return None
    if len(body) < 2:
        return None
    if body[0] not in "{[":
        return None
    try:
        return json.loads(body)
    except ValueError:
        return None


def raise_for_envelope(response: Any) -> None:
    """Raise `LiquiError` if a decoded envelope reports failure.

    Envelopes without a `success` key (public endpoints) pass through.
    """
    if not isinstance(response, dict) or "success" not in response:
        return
    if normalize_success(response.get("success")):
        return

    code = _as_text(response.get("code"))
    message = _as_text(response.get("error")) or ""
    feedback = json.dumps(response, separators=(",", ":"), default=str)

    if code is not None and code in EXCEPTIONS_BY_CODE:
        raise LiquiError(EXCEPTIONS_BY_CODE[code], feedback, venue_code=code, payload=response)

    for expected, kind in EXACT_MESSAGES:
        if message == expected:
            raise LiquiError(kind, feedback, venue_code=code, payload=response)
    for fragment, kind in SUBSTRING_MESSAGES:
        if fragment in message:
            raise LiquiError(kind, feedback, venue_code=code, payload=response)
    for expected, kind in TRANSIENT_MESSAGES:
        if message == expected:
            raise LiquiError(kind, feedback, venue_code=code, payload=response)

    raise LiquiError(
        ErrorKind.EXCHANGE_ERROR,
        f'unknown "error" value: {feedback}',
        venue_code=code,
        payload=response,
    )


def classify_response(body: Any) -> Any | None:
    """Inspect a raw response body.

    Returns the decoded envelope when it is recognized and successful, `None`
    when the body is not a JSON envelope at all (defer to default handling),
    and raises `LiquiError` when the envelope reports failure.
    """
    response = parse_envelope(body)
    if response is None:
        return None
    raise_for_envelope(response)
    return response
