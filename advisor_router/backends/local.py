"""LocalAdapter — local inference server speaking the Ollama chat API."""

from __future__ import annotations

import logging
import time
from typing import Any, AsyncIterator

import httpx

from advisor_router.backends.interface import BackendAdapter
from advisor_router.engine.config import DEFAULT_LOCAL_MODEL, DEFAULT_LOCAL_URL
from advisor_router.engine.errors import (
    ChatError,
    ConfigurationError,
    local_remediation,
    translate_transport_error,
    upstream_error,
)
from advisor_router.engine.models import BackendHealth, BackendKind, ChatConfig, HealthStatus
from advisor_router.engine.wire import NDJSONDecoder, iter_fragments

logger = logging.getLogger(__name__)


class LocalAdapter(BackendAdapter):
    """``GET /api/tags`` for health, ``POST /api/chat`` NDJSON stream for chat.

    When the configured model is not installed but others are, the first
    installed model is used instead.
    """

    kind = BackendKind.LOCAL

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str = DEFAULT_LOCAL_URL,
        model: str = DEFAULT_LOCAL_MODEL,
        ping_timeout: float = 3.0,
        chat_timeout: float = 120.0,
    ) -> None:
        super().__init__(model)
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._ping_timeout = ping_timeout
        self._chat_timeout = httpx.Timeout(chat_timeout, connect=ping_timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    def _remediation(self) -> list[str]:
        return local_remediation(self._base_url, self._configured_model)

    # -- models -------------------------------------------------------------

    async def list_models(self) -> list[str]:
        url = f"{self._base_url}/api/tags"
        try:
            response = await self._client.get(url, timeout=self._ping_timeout)
        except httpx.HTTPError as exc:
            raise translate_transport_error(
                exc, backend=self.kind, target="local inference server",
                remediation=self._remediation(),
            ) from exc
        if not response.is_success:
            raise upstream_error(
                response.status_code, response.text, backend=self.kind,
                target="local inference server", remediation=self._remediation(),
            )
        try:
            data = response.json()
        except ValueError:
            data = {}
        return [m["name"] for m in data.get("models") or [] if isinstance(m, dict) and m.get("name")]

    def resolve_model(self, installed: list[str]) -> str:
        if not installed:
            raise ConfigurationError(
                f"No models installed on the local server. Run \"ollama pull {self._configured_model}\" first.",
                backend=self.kind,
                remediation=self._remediation(),
            )
        if self._configured_model in installed:
            return self._configured_model
        substitute = installed[0]
        if substitute != self._model:
            logger.info(
                "local model %s not installed, using %s instead",
                self._configured_model, substitute,
            )
        return substitute

    # -- health / session ---------------------------------------------------

    async def check_health(self) -> BackendHealth:
        t0 = time.time()
        try:
            installed = await self.list_models()
            self._model = self.resolve_model(installed)
        except ConfigurationError as exc:
            return BackendHealth(
                kind=self.kind,
                status=HealthStatus.UNAVAILABLE,
                latency_ms=round((time.time() - t0) * 1000, 2),
                last_checked_at=time.time(),
                error_message=exc.message,
            )
        except ChatError as exc:
            return BackendHealth(
                kind=self.kind,
                status=HealthStatus.UNAVAILABLE,
                last_checked_at=time.time(),
                error_message=exc.message,
            )
        return BackendHealth(
            kind=self.kind,
            status=HealthStatus.AVAILABLE,
            latency_ms=round((time.time() - t0) * 1000, 2),
            last_checked_at=time.time(),
            model=self._model,
        )

    async def prepare(self) -> None:
        self.reset_session()
        self._model = self.resolve_model(await self.list_models())

    # -- chat ---------------------------------------------------------------

    async def _stream(self, messages: list[dict[str, Any]], config: ChatConfig) -> AsyncIterator[str]:
        payload = {
            "model": self.effective_model(config),
            "messages": messages,
            "stream": True,
            "options": {
                "temperature": config.temperature,
                "num_predict": config.max_tokens,
            },
        }
        decoder = NDJSONDecoder()
        try:
            async with self._client.stream(
                "POST", f"{self._base_url}/api/chat", json=payload, timeout=self._chat_timeout,
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise upstream_error(
                        response.status_code, body, backend=self.kind,
                        target="local inference server", remediation=self._remediation(),
                    )
                async for fragment in iter_fragments(response.aiter_lines(), decoder):
                    yield fragment
        except httpx.HTTPError as exc:
            raise translate_transport_error(
                exc, backend=self.kind, target="local inference server",
                remediation=self._remediation(),
            ) from exc
        if decoder.skipped:
            logger.warning("local stream finished with %d malformed line(s) skipped", decoder.skipped)
