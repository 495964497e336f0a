"""Observability sinks (storage backends)."""

from __future__ import annotations

import json
import threading
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import duckdb

from .models import ObservabilityRecord

_COLUMNS = ("logged_at", "occurred_at", "kind", "event_type", "stage", "order_id", "symbol", "summary_json")


class ObservabilitySink(Protocol):
    """A synchronous sink for observability records.

    The recorder calls sinks from a worker thread, so they may block.
    """

    def write(self, record: ObservabilityRecord) -> None:
        """Persist a single record."""

    def close(self) -> None:
        """Close any underlying resources."""


class InMemoryObservabilitySink:
    """In-memory sink for tests and local debugging."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[ObservabilityRecord] = []

    def write(self, record: ObservabilityRecord) -> None:
        with self._lock:
            self._records.append(record)

    def close(self) -> None:  # noqa: D401 - keep interface consistent
        """No-op."""

    def snapshot(self) -> Sequence[ObservabilityRecord]:
        """Return a point-in-time copy of all recorded entries."""
        with self._lock:
            return list(self._records)

    def order_history(self, order_id: str) -> Sequence[ObservabilityRecord]:
        """Records for one order, in write order."""
        with self._lock:
            return [r for r in self._records if r.order_id == order_id]


class DuckDBObservabilitySink:
    """DuckDB sink for durable local persistence.

    Records land in one embedded table; `order_history` reads an order back.
    """

    def __init__(self, *, path: str | Path, table: str = "order_lifecycle") -> None:
        """Create (or open) a DuckDB-backed sink at the given path."""
        self._path = Path(path)
        self._table = table
        self._lock = threading.Lock()
        self._conn = duckdb.connect(str(self._path))
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        create_sql = f"""
        create table if not exists {self._table} (
          logged_at timestamptz not null,
          occurred_at timestamptz not null,
          kind varchar not null,
          event_type varchar not null,
          stage varchar not null,
          order_id varchar,
          symbol varchar,
          summary_json varchar not null
        )
        """
        with self._lock:
            self._conn.execute(create_sql)

    def write(self, record: ObservabilityRecord) -> None:
        """Insert a single record; the summary is stored as stable JSON."""
        summary_json = json.dumps(record.summary, separators=(",", ":"), sort_keys=True, default=str)
        placeholders = ", ".join("?" for _ in _COLUMNS)
        insert_sql = f"insert into {self._table} ({', '.join(_COLUMNS)}) values ({placeholders})"
        with self._lock:
            self._conn.execute(
                insert_sql,
                [
                    record.logged_at,
                    record.occurred_at,
                    record.kind,
                    record.event_type,
                    record.stage,
                    record.order_id,
                    record.symbol,
                    summary_json,
                ],
            )

    def order_history(self, order_id: str) -> list[ObservabilityRecord]:
        """Read back every record stored for one order, oldest first."""
        select_sql = (
            "select epoch_ms(logged_at), epoch_ms(occurred_at), kind, event_type, stage, order_id, symbol, summary_json "
            f"from {self._table} where order_id = ? order by logged_at"
        )
        with self._lock:
            rows = self._conn.execute(select_sql, [order_id]).fetchall()
        return [_row_to_record(row) for row in rows]

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        with self._lock:
            self._conn.close()


def _from_epoch_ms(value: Any) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


def _row_to_record(row: Sequence[object]) -> ObservabilityRecord:
    logged_at, occurred_at, kind, event_type, stage, order_id, symbol, summary_json = row
    return ObservabilityRecord(
        logged_at=_from_epoch_ms(logged_at),
        occurred_at=_from_epoch_ms(occurred_at),
        kind=kind,
        event_type=event_type,
        stage=stage,
        order_id=order_id,
        symbol=symbol,
        summary=json.loads(str(summary_json)),
    )
