"""JSONL trace collector — one file per chat request."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

from advisor_router.tracing.interface import TraceCollector

logger = logging.getLogger(__name__)

# Never written to disk, whatever the caller passes in ``data``.
_REDACTED_KEYS = frozenset({"api_key", "apiKey", "authorization"})


class JSONLTraceCollector(TraceCollector):
    """Buffers route/augment/chat events per request and appends them to
    ``{trace_dir}/{request_id}.jsonl`` when the orchestrator flushes.
    """

    def __init__(self, trace_dir: str = "./traces") -> None:
        self._dir = Path(trace_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._buffers: dict[str, list[dict[str, Any]]] = {}

    @property
    def directory(self) -> Path:
        return self._dir

    async def emit(self, trace_id: str, event_type: str, data: dict[str, Any]) -> None:
        entry = {"ts": time.time(), "trace_id": trace_id, "event": event_type}
        entry.update({k: v for k, v in data.items() if k not in _REDACTED_KEYS})
        self._buffers.setdefault(trace_id, []).append(entry)

    async def flush(self, trace_id: str) -> None:
        entries = self._buffers.pop(trace_id, [])
        if not entries:
            return
        path = self._dir / f"{trace_id}.jsonl"
        try:
            with open(path, "a", encoding="utf-8") as f:
                f.writelines(json.dumps(entry, default=str) + "\n" for entry in entries)
        except OSError as exc:
            logger.warning("could not write trace %s: %s", path, exc)
