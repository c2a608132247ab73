"""ChatOrchestrator — the per-request entry point of the routing layer."""

from __future__ import annotations

import logging
import time
from contextlib import aclosing
from typing import AsyncIterator

from advisor_router.backends.interface import BackendAdapter
from advisor_router.engine.config import Preferences
from advisor_router.engine.errors import ChatError, ConfigurationError
from advisor_router.engine.models import (
    BackendKind,
    ChatEvent,
    ChatEventType,
    ChatMessage,
    ChatRequest,
    ChatResult,
    ChatRole,
    FailoverNotice,
    SearchAugmentation,
    StreamDelta,
)
from advisor_router.health.failover import FailoverController
from advisor_router.search.augmenter import WebSearchAugmenter
from advisor_router.tracing.interface import NullTraceCollector, TraceCollector

logger = logging.getLogger(__name__)


class ChatOrchestrator:
    """Public API: ``async for event in orchestrator.handle(request): ...``

    Emits an optional ``search`` event, one ``delta`` per streamed fragment
    in arrival order, then exactly one ``final`` or ``error`` event. The
    backend is read once from the controller at the start of the request and
    kept for the whole stream. Nothing is retried here.
    """

    def __init__(
        self,
        adapters: dict[BackendKind, BackendAdapter],
        controller: FailoverController,
        preferences: Preferences,
        augmenter: WebSearchAugmenter | None = None,
        trace_collector: TraceCollector | None = None,
    ) -> None:
        missing = [kind.value for kind in BackendKind if kind not in adapters]
        if missing:
            raise ConfigurationError(f"No adapter registered for: {', '.join(missing)}")
        self._adapters = adapters
        self._controller = controller
        self._preferences = preferences
        self._augmenter = augmenter
        self._trace = trace_collector or NullTraceCollector()
        # Backends whose session state must be (re)initialized before the next chat.
        self._stale: set[BackendKind] = set(adapters)
        controller.add_listener(self._on_switch)

    @property
    def preferences(self) -> Preferences:
        return self._preferences

    @preferences.setter
    def preferences(self, value: Preferences) -> None:
        self._preferences = value

    def adapter(self, kind: BackendKind) -> BackendAdapter:
        return self._adapters[kind]

    def _on_switch(self, notice: FailoverNotice) -> None:
        self._stale.add(notice.to_backend)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def _wants_search(self, request: ChatRequest) -> bool:
        return (
            self._augmenter is not None
            and self._augmenter.configured
            and request.web_search
            and self._preferences.web_search
            and self._augmenter.should_search(request.query)
        )

    # ------------------------------------------------------------------
    # Public handle
    # ------------------------------------------------------------------

    async def handle(self, request: ChatRequest) -> AsyncIterator[ChatEvent]:
        trace_id = request.request_id
        t_start = time.time()

        # 1. Route -----------------------------------------------------
        kind = self._controller.active_backend
        adapter = self._adapters[kind]
        config = self._preferences.chat_config(kind)
        await self._trace.emit(trace_id, "route", {
            "backend": kind.value,
            "preferred": self._controller.preferred_backend.value,
            "model": adapter.effective_model(config),
        })

        # 2. Augment ---------------------------------------------------
        augmentation: SearchAugmentation | None = None
        if self._wants_search(request):
            t_search = time.time()
            augmentation = await self._augmenter.search(request.query)
            await self._trace.emit(trace_id, "augment", {
                "attempted": True,
                "used": augmentation is not None,
                "citations": len(augmentation.citations) if augmentation else 0,
                "latency_ms": round((time.time() - t_search) * 1000, 2),
            })
            yield ChatEvent(
                type=ChatEventType.SEARCH,
                data={
                    "used": augmentation is not None,
                    "citations": augmentation.citations if augmentation else [],
                    "results": [r.model_dump() for r in augmentation.results] if augmentation else [],
                },
                request_id=trace_id,
            )

        # 3. Build messages --------------------------------------------
        prompt = WebSearchAugmenter.augment(request.query, augmentation)
        user_message = ChatMessage(role=ChatRole.USER, content=request.query)
        messages = [*request.history, ChatMessage(role=ChatRole.USER, content=prompt)]

        result = ChatResult(
            text="",
            backend=kind,
            model=adapter.effective_model(config),
            augmented=augmentation is not None,
            citations=augmentation.citations if augmentation else [],
            user_message=user_message,
            prompt=prompt,
        )

        # 4. Stream ----------------------------------------------------
        parts: list[str] = []
        final: StreamDelta | None = None
        try:
            try:
                if kind in self._stale and not adapter.busy:
                    await adapter.prepare()
                    self._stale.discard(kind)
                    result = result.model_copy(update={"model": adapter.effective_model(config)})

                async with aclosing(adapter.chat(messages, config)) as stream:
                    async for delta in stream:
                        if delta.is_final:
                            final = delta
                            continue
                        parts.append(delta.text)
                        yield ChatEvent(type=ChatEventType.DELTA, delta=delta, request_id=trace_id)
            except ChatError as exc:
                text = "".join(parts)
                logger.warning(
                    "chat on %s failed after %d chars: %s", kind.value, len(text), exc.message,
                )
                await self._trace.emit(trace_id, "chat_error", {
                    "backend": kind.value,
                    "model": result.model,
                    "code": exc.code,
                    "chars": len(text),
                    "deltas": len(parts),
                    "latency_ms": round((time.time() - t_start) * 1000, 2),
                    "incomplete": True,
                })
                yield ChatEvent(
                    type=ChatEventType.ERROR,
                    result=result.model_copy(update={
                        "text": text,
                        "incomplete": True,
                        "error": exc.to_info(),
                    }),
                    request_id=trace_id,
                )
                return

            # 5. Finalize ----------------------------------------------
            text = final.text if final is not None else "".join(parts)
            await self._trace.emit(trace_id, "chat_done", {
                "backend": kind.value,
                "model": result.model,
                "chars": len(text),
                "deltas": len(parts),
                "latency_ms": round((time.time() - t_start) * 1000, 2),
                "incomplete": False,
            })
            yield ChatEvent(
                type=ChatEventType.FINAL,
                result=result.model_copy(update={"text": text}),
                request_id=trace_id,
            )
        finally:
            await self._trace.flush(trace_id)
