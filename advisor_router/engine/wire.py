"""Streaming wire decoders: local NDJSON chat stream and OpenAI-style SSE.

Both decoders work line by line. A line that cannot be decoded raises
``StreamParseWarning``; ``iter_fragments`` logs it, counts it and moves on,
so one corrupt chunk never loses the rest of the response.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from advisor_router.engine.errors import StreamParseWarning, UpstreamError
from advisor_router.engine.models import BackendKind

logger = logging.getLogger(__name__)


class LineDecoder(ABC):
    """Turns one wire line into an optional text fragment."""

    backend: BackendKind

    def __init__(self) -> None:
        self.done = False
        self.skipped = 0

    @abstractmethod
    def decode(self, line: str) -> str | None:
        ...

    def _text(self, content: Any, raw: str) -> str | None:
        if content is None:
            return None
        if not isinstance(content, str):
            raise StreamParseWarning(
                f"content is not text ({type(content).__name__}): {raw[:120]!r}",
                backend=self.backend,
            )
        return content or None

    def _load(self, payload: str) -> Any:
        try:
            return json.loads(payload)
        except json.JSONDecodeError as exc:
            raise StreamParseWarning(
                f"undecodable chunk: {payload[:120]!r} ({exc.msg})",
                backend=self.backend,
            ) from exc

    def _raise_inline_error(self, error: Any) -> None:
        if isinstance(error, dict):
            message = str(error.get("message") or error)
        else:
            message = str(error)
        raise UpstreamError(
            f"stream reported an error: {message}",
            status_code=200,
            body=message,
            backend=self.backend,
        )


class NDJSONDecoder(LineDecoder):
    """``{"message": {"content": "..."}, "done": false}`` — one object per line."""

    backend = BackendKind.LOCAL

    def decode(self, line: str) -> str | None:
        line = line.strip()
        if not line:
            return None
        data = self._load(line)
        if not isinstance(data, dict):
            raise StreamParseWarning(f"chunk is not an object: {line[:120]!r}", backend=self.backend)
        if data.get("error"):
            self._raise_inline_error(data["error"])
        if data.get("done"):
            self.done = True
        message = data.get("message") or {}
        if not isinstance(message, dict):
            raise StreamParseWarning(f"message is not an object: {line[:120]!r}", backend=self.backend)
        return self._text(message.get("content"), line)


class SSEDecoder(LineDecoder):
    """``data: {"choices": [{"delta": {"content": "..."}}]}`` ending in ``data: [DONE]``."""

    backend = BackendKind.REMOTE
    DONE_SENTINEL = "[DONE]"
    _FIELDS = ("event:", "id:", "retry:")

    def decode(self, line: str) -> str | None:
        line = line.strip()
        if not line or line.startswith(":") or line.startswith(self._FIELDS):
            return None
        payload = line[len("data:"):].strip() if line.startswith("data:") else line
        if payload == self.DONE_SENTINEL:
            self.done = True
            return None
        if not payload:
            return None
        data = self._load(payload)
        if not isinstance(data, dict):
            raise StreamParseWarning(f"event is not an object: {payload[:120]!r}", backend=self.backend)
        if data.get("error"):
            self._raise_inline_error(data["error"])
        choices = data.get("choices") or []
        if not isinstance(choices, list):
            raise StreamParseWarning(f"choices is not a list: {payload[:120]!r}", backend=self.backend)
        if not choices:
            return None
        choice = choices[0]
        delta = choice.get("delta") if isinstance(choice, dict) else choice
        if delta is None:
            return None
        if not isinstance(delta, dict):
            raise StreamParseWarning(f"choice has no delta object: {payload[:120]!r}", backend=self.backend)
        return self._text(delta.get("content"), payload)


async def iter_fragments(lines: AsyncIterator[str], decoder: LineDecoder) -> AsyncIterator[str]:
    """Yield text fragments in arrival order until the sentinel or end of stream."""
    async for line in lines:
        try:
            fragment = decoder.decode(line)
        except StreamParseWarning as warning:
            decoder.skipped += 1
            logger.warning("%s stream: skipped %s", decoder.backend.value, warning.message)
            continue
        if fragment:
            yield fragment
        if decoder.done:
            break
