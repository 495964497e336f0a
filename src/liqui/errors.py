"""Error types raised by the Liqui adapter.

Venue failures are reported through one exception type, `LiquiError`, tagged
with an `ErrorKind`. Callers branch on `exc.kind` rather than on subclasses.
HTTP-level failures that never reached a recognized response envelope surface
as `LiquiHttpError` instead.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Typed outcome of a failed venue call."""

    AUTHENTICATION = "authentication"
    INVALID_ORDER = "invalid_order"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    ORDER_NOT_FOUND = "order_not_found"
    DDOS_PROTECTION = "ddos_protection"
    EXCHANGE_ERROR = "exchange_error"


class LiquiError(RuntimeError):
    """A classified failure reported by (or on behalf of) the venue."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        venue_code: str | None = None,
        payload: Any = None,
    ) -> None:
        """Create an error carrying its kind, venue code and raw payload (if any)."""
        self.kind = kind
        self.message = message
        self.venue_code = venue_code
        self.payload = payload
        super().__init__(f"liqui {kind.value}: {message}")

    @property
    def retryable(self) -> bool:
        """True for rate-limit / transient-unavailability failures."""
        return self.kind is ErrorKind.DDOS_PROTECTION


class LiquiHttpError(RuntimeError):
    """HTTP-level error that the envelope classifier did not recognize."""

    def __init__(self, *, status_code: int, payload: Any | None, body: str | None = None):
        """Create an error capturing HTTP status code and parsed payload (if any)."""
        self.status_code = status_code
        self.payload = payload
        self.body = body
        super().__init__(f"Liqui API HTTP {status_code}: {payload if payload is not None else body}")
