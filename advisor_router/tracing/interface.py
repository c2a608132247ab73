"""TraceCollector ABC and an in-memory collector."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class TraceCollector(ABC):
    """Per-request structured trace events. The trace id is the chat request id."""

    @abstractmethod
    async def emit(self, trace_id: str, event_type: str, data: dict[str, Any]) -> None: ...

    @abstractmethod
    async def flush(self, trace_id: str) -> None: ...


class NullTraceCollector(TraceCollector):
    async def emit(self, trace_id: str, event_type: str, data: dict[str, Any]) -> None:
        return None

    async def flush(self, trace_id: str) -> None:
        return None


class MemoryTraceCollector(TraceCollector):
    """Keeps flushed events in ``records``, keyed by trace id."""

    def __init__(self) -> None:
        self._pending: dict[str, list[dict[str, Any]]] = {}
        self.records: dict[str, list[dict[str, Any]]] = {}

    async def emit(self, trace_id: str, event_type: str, data: dict[str, Any]) -> None:
        self._pending.setdefault(trace_id, []).append({"event": event_type, **data})

    async def flush(self, trace_id: str) -> None:
        self.records.setdefault(trace_id, []).extend(self._pending.pop(trace_id, []))

    def events(self, trace_id: str) -> list[str]:
        return [entry["event"] for entry in self.records.get(trace_id, [])]
