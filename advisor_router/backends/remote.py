"""RemoteAdapter — OpenAI-compatible endpoint, reached only through the CORS proxy."""

from __future__ import annotations

import logging
import time
from typing import Any, AsyncIterator

import httpx

from advisor_router.backends.interface import BackendAdapter
from advisor_router.engine.config import DEFAULT_PROXY_URL, DEFAULT_REMOTE_MODEL
from advisor_router.engine.errors import (
    PROXY_HINT,
    ConfigurationError,
    remote_remediation,
    translate_transport_error,
    upstream_error,
)
from advisor_router.engine.models import (
    BackendHealth,
    BackendKind,
    ChatConfig,
    HealthStatus,
    ServiceHealth,
)
from advisor_router.engine.wire import SSEDecoder, iter_fragments

logger = logging.getLogger(__name__)

_PROBE_STATUS = {
    "available": HealthStatus.AVAILABLE,
    "degraded": HealthStatus.DEGRADED,
    "unavailable": HealthStatus.UNAVAILABLE,
}


class RemoteAdapter(BackendAdapter):
    """Every call goes to the proxy: ``/proxy`` for chat, ``/health/remote`` for health."""

    kind = BackendKind.REMOTE

    def __init__(
        self,
        client: httpx.AsyncClient,
        proxy_url: str = DEFAULT_PROXY_URL,
        endpoint: str | None = None,
        api_key: str | None = None,
        model: str = DEFAULT_REMOTE_MODEL,
        ping_timeout: float = 3.0,
        probe_timeout: float = 8.0,
        chat_timeout: float = 120.0,
    ) -> None:
        super().__init__(model)
        self._client = client
        self._proxy_url = proxy_url.rstrip("/")
        self._endpoint = endpoint.rstrip("/") if endpoint else None
        self._api_key = api_key
        self._ping_timeout = ping_timeout
        self._probe_timeout = probe_timeout
        self._chat_timeout = httpx.Timeout(chat_timeout, connect=ping_timeout)

    @property
    def configured(self) -> bool:
        return bool(self._endpoint and self._api_key)

    @property
    def proxy_url(self) -> str:
        return self._proxy_url

    def _remediation(self) -> list[str]:
        return remote_remediation(self._endpoint)

    def _require_config(self) -> None:
        if not self.configured:
            raise ConfigurationError(
                "Remote endpoint and API key must be configured",
                backend=self.kind,
                remediation=["Set the remote endpoint URL and API key in preferences"],
            )

    # -- health -------------------------------------------------------------

    async def check_proxy(self) -> ServiceHealth:
        t0 = time.time()
        try:
            response = await self._client.get(f"{self._proxy_url}/health", timeout=self._ping_timeout)
        except httpx.HTTPError as exc:
            return ServiceHealth(
                status=HealthStatus.UNAVAILABLE,
                last_checked_at=time.time(),
                error_message=f"Proxy server is not reachable: {exc}. {PROXY_HINT}",
            )
        if not response.is_success:
            return ServiceHealth(
                status=HealthStatus.UNAVAILABLE,
                last_checked_at=time.time(),
                error_message=f"Proxy server returned status {response.status_code}",
            )
        return ServiceHealth(
            status=HealthStatus.AVAILABLE,
            latency_ms=round((time.time() - t0) * 1000, 2),
            last_checked_at=time.time(),
        )

    async def check_health(self) -> BackendHealth:
        if not self.configured:
            return BackendHealth(
                kind=self.kind,
                status=HealthStatus.UNAVAILABLE,
                last_checked_at=time.time(),
                error_message="No remote endpoint configured",
                model=self._model,
            )

        t0 = time.time()
        try:
            response = await self._client.post(
                f"{self._proxy_url}/health/remote",
                json={"endpoint": self._endpoint, "apiKey": self._api_key, "model": self._model},
                timeout=self._probe_timeout,
            )
        except httpx.HTTPError as exc:
            return BackendHealth(
                kind=self.kind,
                status=HealthStatus.UNAVAILABLE,
                last_checked_at=time.time(),
                error_message=f"Remote health check via proxy failed: {exc}. {PROXY_HINT}",
                model=self._model,
            )

        if not response.is_success:
            return BackendHealth(
                kind=self.kind,
                status=HealthStatus.UNAVAILABLE,
                last_checked_at=time.time(),
                error_message=f"Remote health check returned status {response.status_code}",
                model=self._model,
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        status = _PROBE_STATUS.get(str(data.get("status")), HealthStatus.UNAVAILABLE)
        latency = data.get("latency_ms")
        return BackendHealth(
            kind=self.kind,
            status=status,
            latency_ms=latency if latency is not None else round((time.time() - t0) * 1000, 2),
            last_checked_at=time.time(),
            error_message=None if status is HealthStatus.AVAILABLE else data.get("message"),
            model=self._model,
        )

    async def prepare(self) -> None:
        self.reset_session()
        self._require_config()

    # -- chat ---------------------------------------------------------------

    async def _stream(self, messages: list[dict[str, Any]], config: ChatConfig) -> AsyncIterator[str]:
        self._require_config()
        envelope = {
            "endpoint": self._endpoint,
            "apiKey": self._api_key,
            "body": {
                "model": self.effective_model(config),
                "messages": messages,
                "stream": True,
                "temperature": config.temperature,
                "max_tokens": config.max_tokens,
            },
        }
        decoder = SSEDecoder()
        try:
            async with self._client.stream(
                "POST", f"{self._proxy_url}/proxy", json=envelope, timeout=self._chat_timeout,
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise upstream_error(
                        response.status_code, body, backend=self.kind,
                        target="remote endpoint (via proxy)", remediation=self._remediation(),
                    )
                async for fragment in iter_fragments(response.aiter_lines(), decoder):
                    yield fragment
        except httpx.HTTPError as exc:
            raise translate_transport_error(
                exc, backend=self.kind, target=f"proxy at {self._proxy_url}",
                remediation=[PROXY_HINT] + self._remediation()[:-1],
            ) from exc
        if not decoder.done:
            logger.info("remote stream closed without [DONE] sentinel")
        if decoder.skipped:
            logger.warning("remote stream finished with %d malformed event(s) skipped", decoder.skipped)
