"""BackendAdapter ABC — one concrete inference backend and its wire format."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from advisor_router.engine.errors import BusyError
from advisor_router.engine.models import (
    BackendHealth,
    BackendKind,
    ChatConfig,
    ChatMessage,
    ChatRole,
    StreamDelta,
)

logger = logging.getLogger(__name__)


class BackendAdapter(ABC):
    """Generic chat contract over one backend.

    Subclasses implement ``check_health`` and ``_stream`` (raw text
    fragments). ``chat`` adds the shared behaviour: system-prompt
    prepending, the single-in-flight rule, and the final delta carrying the
    accumulated text. Adapters never retry.
    """

    kind: BackendKind

    def __init__(self, model: str) -> None:
        self._configured_model = model
        self._model = model
        self._in_flight = False
        self._parts: list[str] = []

    # -- identity -----------------------------------------------------------

    @property
    def model_id(self) -> str:
        return self._model

    def effective_model(self, config: ChatConfig) -> str:
        """The resolved model replaces the configured one; explicit overrides win."""
        if config.model == self._configured_model:
            return self._model
        return config.model

    @property
    def busy(self) -> bool:
        return self._in_flight

    @property
    def label(self) -> str:
        return self.kind.value

    # -- health / session ---------------------------------------------------

    @abstractmethod
    async def check_health(self) -> BackendHealth: ...

    async def prepare(self) -> None:
        """(Re)initialize per-backend session state before serving chats."""

    def reset_session(self) -> None:
        self._model = self._configured_model

    # -- chat ---------------------------------------------------------------

    @abstractmethod
    def _stream(
        self,
        messages: list[dict[str, Any]],
        config: ChatConfig,
    ) -> AsyncIterator[str]: ...

    @staticmethod
    def build_messages(messages: list[ChatMessage], config: ChatConfig) -> list[dict[str, Any]]:
        """Wire message array. The adapter-level system prompt is always prepended."""
        outgoing = [m.to_wire() for m in messages]
        if config.system_prompt:
            outgoing.insert(0, {"role": ChatRole.SYSTEM.value, "content": config.system_prompt})
        return outgoing

    async def chat(self, messages: list[ChatMessage], config: ChatConfig) -> AsyncIterator[StreamDelta]:
        if self._in_flight:
            raise BusyError(
                f"{self.label} backend is already generating a response",
                backend=self.kind,
                remediation=["Wait for the current response to finish, or cancel it"],
            )
        self._in_flight = True
        self._parts = []
        try:
            outgoing = self.build_messages(messages, config)
            logger.info(
                "%s chat: model=%s messages=%d", self.label, self.effective_model(config), len(outgoing),
            )
            async for fragment in self._stream(outgoing, config):
                self._parts.append(fragment)
                yield StreamDelta(text=fragment)
            yield StreamDelta(text="".join(self._parts), is_final=True)
        finally:
            self._in_flight = False
