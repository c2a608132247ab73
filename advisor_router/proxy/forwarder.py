"""ProxyForwarder — relays chat-completion calls to an arbitrary OpenAI-compatible endpoint."""

from __future__ import annotations

import logging
import time
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

FALLBACK_PROBE_MODEL = "gpt-3.5-turbo"


class ProxyRequest(BaseModel):
    """``POST /proxy`` envelope. Fields are optional so the app can answer 400 itself."""
    endpoint: str | None = None
    api_key: str | None = Field(default=None, alias="apiKey")
    body: dict[str, Any] | None = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def complete(self) -> bool:
        return bool(self.endpoint and self.api_key and self.body)

    @property
    def stream(self) -> bool:
        return bool((self.body or {}).get("stream"))


class RemoteProbeRequest(BaseModel):
    endpoint: str | None = None
    api_key: str | None = Field(default=None, alias="apiKey")
    model: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class RemoteProbeResult(BaseModel):
    status: Literal["available", "degraded", "unavailable"]
    message: str
    latency_ms: float | None = None


class ProxyForwarder:
    """Attaches the bearer credential and forwards to ``{endpoint}/chat/completions``.

    ``forward`` returns the upstream response unread (``stream=True``); the
    caller relays its bytes and must close it. Transport errors propagate as
    ``httpx`` exceptions so the HTTP layer can map them to status codes.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        models_timeout: float = 3.0,
        completion_probe_timeout: float = 5.0,
        forward_timeout: float = 120.0,
    ) -> None:
        self._client = client
        self._models_timeout = models_timeout
        self._completion_probe_timeout = completion_probe_timeout
        self._forward_timeout = httpx.Timeout(forward_timeout, connect=models_timeout * 2)

    @staticmethod
    def _headers(api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _url(endpoint: str, path: str) -> str:
        return f"{endpoint.rstrip('/')}/{path}"

    async def forward(self, request: ProxyRequest) -> httpx.Response:
        if not request.complete:
            raise ValueError("Missing required fields: endpoint, apiKey, or body")
        url = self._url(request.endpoint, "chat/completions")
        logger.info(
            "proxying to %s (model=%s, stream=%s)",
            url, request.body.get("model"), request.stream,
        )
        upstream = self._client.build_request(
            "POST",
            url,
            json=request.body,
            headers=self._headers(request.api_key),
            timeout=self._forward_timeout,
        )
        response = await self._client.send(upstream, stream=True)
        logger.info("upstream responded %d", response.status_code)
        return response

    async def probe_remote(self, request: RemoteProbeRequest) -> RemoteProbeResult:
        """Two-stage check: ``GET /models``, then a 1-token completion when that is not 2xx."""
        if not (request.endpoint and request.api_key):
            raise ValueError("Missing required fields: endpoint or apiKey")
        headers = self._headers(request.api_key)
        t0 = time.time()

        def elapsed() -> float:
            return round((time.time() - t0) * 1000, 2)

        try:
            response = await self._client.get(
                self._url(request.endpoint, "models"),
                headers=headers,
                timeout=self._models_timeout,
            )
            if response.is_success:
                logger.info("remote probe: /models OK")
                return RemoteProbeResult(
                    status="available", message="Remote endpoint is reachable", latency_ms=elapsed(),
                )

            logger.info("remote probe: /models returned %d, trying chat completion", response.status_code)
            response = await self._client.post(
                self._url(request.endpoint, "chat/completions"),
                headers=headers,
                json={
                    "model": request.model or FALLBACK_PROBE_MODEL,
                    "messages": [{"role": "user", "content": "test"}],
                    "max_tokens": 1,
                    "stream": False,
                },
                timeout=self._completion_probe_timeout,
            )
        except httpx.HTTPError as exc:
            logger.info("remote probe failed: %s", exc)
            return RemoteProbeResult(status="unavailable", message=str(exc) or type(exc).__name__)

        if not response.is_success:
            logger.info("remote probe: chat completion returned %d", response.status_code)
            return RemoteProbeResult(
                status="unavailable", message=f"Endpoint returned status {response.status_code}",
            )

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and payload.get("error"):
            error = payload["error"]
            detail = error.get("message") if isinstance(error, dict) else str(error)
            return RemoteProbeResult(
                status="degraded",
                message=f"Endpoint is reachable but completion failed: {detail}",
                latency_ms=elapsed(),
            )
        return RemoteProbeResult(
            status="available", message="Remote endpoint is reachable", latency_ms=elapsed(),
        )
