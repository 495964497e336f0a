"""Observability primitives.

This package records order lifecycle transitions and venue errors as durable
records:
- Capturing both "occurred at" and "logged at" timestamps.
- Persisting records to a sink (DuckDB or in-memory) without blocking the event loop.
"""

from .models import ObservabilityRecord
from .recorder import ObservabilityRecorder
from .sinks import DuckDBObservabilitySink, InMemoryObservabilitySink, ObservabilitySink

__all__ = [
    "DuckDBObservabilitySink",
    "InMemoryObservabilitySink",
    "ObservabilityRecord",
    "ObservabilityRecorder",
    "ObservabilitySink",
]
