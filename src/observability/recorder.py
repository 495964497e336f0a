"""Async recorder that writes observability records without blocking the event loop."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from .models import ObservabilityRecord, RecordKind, utc_now
from .sinks import ObservabilitySink

logger = logging.getLogger(__name__)

_SECRET_KEYS = ("api_key", "apiKey", "secret", "Sign", "Key", "password", "token")


def _safe_getattr(obj: Any, name: str) -> Any:
    """getattr that returns None for missing attributes."""
    return getattr(obj, name, None)


def _extract_event_type(message: Any) -> str:
    """Prefer `message.type` when present; otherwise fall back to the class name."""
    msg_type = _safe_getattr(message, "type")
    if isinstance(msg_type, str) and msg_type:
        return msg_type
    return type(message).__name__


def _extract_str(message: Any, name: str) -> str | None:
    value = _safe_getattr(message, name)
    if isinstance(value, str) and value:
        return value
    return None


def _extract_occurred_at(message: Any) -> datetime:
    """Extract a message timestamp, falling back to `utc_now()` when absent."""
    ts = _safe_getattr(message, "ts")
    if isinstance(ts, datetime):
        return ts
    return utc_now()


def _redact(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: ("[REDACTED]" if k in _SECRET_KEYS else _redact(v)) for k, v in data.items()}
    if isinstance(data, list):
        return [_redact(v) for v in data]
    return data


def _extract_summary(message: Any) -> dict[str, Any]:
    """Build a small, safe-to-store summary payload for a message.

    Raw venue payloads are dropped except on error records, where they are
    the only diagnostic available; secret-like keys are redacted either way.
    """
    if hasattr(message, "model_dump"):
        data = message.model_dump(mode="json", exclude={"ts", "type"})
    elif isinstance(message, dict):
        data = dict(message)
    else:
        data = {"repr": repr(message)}

    data.pop("info", None)
    return _redact(data)


class ObservabilityRecorder:
    """Queues records and writes them in a background task."""

    def __init__(self, *, sink: ObservabilitySink, max_queue_size: int = 10000) -> None:
        """Create a recorder backed by a synchronous sink.

        Args:
            sink: Storage backend used by the background writer.
            max_queue_size: Bound for in-memory buffering; records are dropped
                when full so trading calls never wait on observability.
        """
        self._sink = sink
        self._queue: asyncio.Queue[ObservabilityRecord | None] = asyncio.Queue(maxsize=max_queue_size)
        self._worker: asyncio.Task[None] | None = None
        self._closed = False

        self._write_failures = 0
        self._first_failure_at: datetime | None = None
        self._last_failure_at: datetime | None = None

    def _ensure_started(self) -> None:
        """Start the background writer task if it hasn't been started yet."""
        if self._worker is not None:
            return
        self._worker = asyncio.create_task(self._run_worker(), name="observability-writer")

    def _note_failure(self) -> None:
        now = utc_now()
        self._write_failures += 1
        self._first_failure_at = self._first_failure_at or now
        self._last_failure_at = now

    async def record_message(self, message: Any, *, kind: RecordKind, stage: str) -> None:
        """Record a message by enqueueing an ObservabilityRecord (non-blocking)."""
        if self._closed:
            return

        self._ensure_started()

        record = ObservabilityRecord(
            kind=kind,
            event_type=_extract_event_type(message),
            stage=stage,
            order_id=_extract_str(message, "order_id"),
            symbol=_extract_str(message, "symbol"),
            occurred_at=_extract_occurred_at(message),
            logged_at=utc_now(),
            summary=_extract_summary(message),
        )

        try:
            self._queue.put_nowait(record)
        except asyncio.QueueFull:
            logger.warning("observability queue full; dropping %s record", record.event_type)
            self._note_failure()

    async def aclose(self) -> None:
        """Flush and close the recorder.

        Safe to call multiple times.
        """
        if self._closed:
            return
        self._closed = True
        if self._worker is not None:
            await self._queue.put(None)
            await self._worker
        await asyncio.to_thread(self._sink.close)

    async def _run_worker(self) -> None:
        """Background loop that drains the queue and writes to the sink."""
        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    return
                await asyncio.to_thread(self._sink.write, item)
            except Exception:  # noqa: BLE001 - a failed write must not stop trading
                logger.exception("observability sink write failed")
                self._note_failure()
            finally:
                self._queue.task_done()

    def degraded_status(self) -> dict[str, Any]:
        """Return a minimal degraded-status snapshot."""
        return {
            "write_failures": self._write_failures,
            "first_failure_at": self._first_failure_at,
            "last_failure_at": self._last_failure_at,
        }
