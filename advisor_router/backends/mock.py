"""Scripted adapters — deterministic backends for tests and offline demo runs."""

from __future__ import annotations

import asyncio
import time
from typing import Any, AsyncIterator

from advisor_router.backends.interface import BackendAdapter
from advisor_router.engine.errors import ChatError, UnreachableError
from advisor_router.engine.models import BackendHealth, BackendKind, ChatConfig, HealthStatus


class ScriptedAdapter(BackendAdapter):
    """Streams pre-configured fragments in order.

    ``fail_after`` raises ``error`` (an ``UnreachableError`` by default) once
    that many fragments have been relayed. ``delay`` sleeps before every
    fragment, which gives tests a window to cancel or overlap calls.
    Every outgoing message array is recorded in ``calls``.
    """

    def __init__(
        self,
        kind: BackendKind,
        fragments: list[str] | None = None,
        *,
        model: str = "scripted",
        delay: float = 0.0,
        fail_after: int | None = None,
        error: ChatError | None = None,
        status: HealthStatus = HealthStatus.AVAILABLE,
        error_message: str | None = None,
    ) -> None:
        super().__init__(model)
        self.kind = kind
        self.fragments = list(fragments if fragments is not None else ["Hello", " from ", kind.value])
        self.delay = delay
        self.fail_after = fail_after
        self.error = error
        self.status = status
        self.error_message = error_message
        self.calls: list[list[dict[str, Any]]] = []
        self.configs: list[ChatConfig] = []
        self.prepare_count = 0
        self.health_checks = 0

    async def check_health(self) -> BackendHealth:
        self.health_checks += 1
        return BackendHealth(
            kind=self.kind,
            status=self.status,
            latency_ms=0.0,
            last_checked_at=time.time(),
            error_message=self.error_message,
            model=self._model,
        )

    async def prepare(self) -> None:
        self.reset_session()
        self.prepare_count += 1

    async def _stream(self, messages: list[dict[str, Any]], config: ChatConfig) -> AsyncIterator[str]:
        self.calls.append(messages)
        self.configs.append(config)
        for index, fragment in enumerate(self.fragments):
            if self.fail_after is not None and index >= self.fail_after:
                raise self.error or UnreachableError(
                    f"{self.label} backend dropped the connection", backend=self.kind,
                )
            if self.delay:
                await asyncio.sleep(self.delay)
            yield fragment
        if self.fail_after is not None and self.fail_after >= len(self.fragments):
            raise self.error or UnreachableError(
                f"{self.label} backend dropped the connection", backend=self.kind,
            )


class DemoScriptedAdapter(ScriptedAdapter):
    """Echo-style demo backend for running without any inference server."""

    async def _stream(self, messages: list[dict[str, Any]], config: ChatConfig) -> AsyncIterator[str]:
        self.calls.append(messages)
        self.configs.append(config)
        user_text = next(
            (m["content"] for m in reversed(messages) if m.get("role") == "user"),
            "",
        )
        reply = (
            f"[{self.label} demo] You asked: {user_text[:200]} "
            "Set USE_MOCK_BACKENDS=0 and start a local server for real output."
        )
        for word in reply.split(" "):
            if self.delay:
                await asyncio.sleep(self.delay)
            yield word + " "
