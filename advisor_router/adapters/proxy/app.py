"""FastAPI CORS proxy — lets a browser reach OpenAI-compatible endpoints."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import ValidationError
from starlette.background import BackgroundTask

from advisor_router.engine.config import Preferences
from advisor_router.engine.errors import remote_remediation
from advisor_router.proxy.forwarder import ProxyForwarder, ProxyRequest, RemoteProbeRequest

logger = logging.getLogger(__name__)

DEFAULT_PROXY_PORT = 3002


def transport_error_response(exc: httpx.HTTPError, endpoint: str | None) -> JSONResponse:
    """Network-level failure → 5xx carrying the underlying error text verbatim."""
    if isinstance(exc, httpx.TimeoutException):
        status, label = 504, "Upstream request timed out"
    elif isinstance(exc, httpx.ConnectError):
        status, label = 503, "Cannot connect to upstream endpoint"
    else:
        status, label = 502, "Proxy server error"
    return JSONResponse(
        status_code=status,
        content={
            "error": label,
            "message": str(exc) or type(exc).__name__,
            "remediation": remote_remediation(endpoint)[:2],
        },
    )


async def _read_json(request: Request) -> dict | None:
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def create_app(forwarder: ProxyForwarder | None = None) -> FastAPI:
    client: httpx.AsyncClient | None = None
    if forwarder is None:
        client = httpx.AsyncClient()
        forwarder = ProxyForwarder(client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if client is not None:
            await client.aclose()

    app = FastAPI(title="Advisor CORS Proxy", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post("/proxy")
    async def proxy(request: Request) -> Response:
        try:
            envelope = ProxyRequest.model_validate(await _read_json(request) or {})
        except ValidationError:
            envelope = ProxyRequest()
        if not envelope.complete:
            return JSONResponse(
                status_code=400,
                content={"error": "Missing required fields: endpoint, apiKey, or body"},
            )

        try:
            upstream = await forwarder.forward(envelope)
        except httpx.HTTPError as exc:
            logger.warning("proxy request to %s failed: %s", envelope.endpoint, exc)
            return transport_error_response(exc, envelope.endpoint)

        if not upstream.is_success:
            try:
                details = (await upstream.aread()).decode("utf-8", errors="replace")
            finally:
                await upstream.aclose()
            logger.warning("upstream returned %d: %s", upstream.status_code, details[:200])
            return JSONResponse(
                status_code=upstream.status_code,
                content={"error": f"API returned status {upstream.status_code}", "details": details},
            )

        if envelope.stream:
            return StreamingResponse(
                upstream.aiter_bytes(),
                media_type="text/event-stream",
                headers={
                    "Cache-Control": "no-cache",
                    "X-Accel-Buffering": "no",
                },
                background=BackgroundTask(upstream.aclose),
            )

        try:
            content = await upstream.aread()
        except httpx.HTTPError as exc:
            return transport_error_response(exc, envelope.endpoint)
        finally:
            await upstream.aclose()
        return Response(
            content=content,
            status_code=upstream.status_code,
            media_type=upstream.headers.get("content-type", "application/json"),
        )

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok", "message": "Proxy server is running"})

    @app.post("/health/remote")
    async def health_remote(request: Request) -> JSONResponse:
        try:
            probe = RemoteProbeRequest.model_validate(await _read_json(request) or {})
        except ValidationError:
            probe = RemoteProbeRequest()
        if not (probe.endpoint and probe.api_key):
            return JSONResponse(
                status_code=400,
                content={"error": "Missing required fields: endpoint or apiKey"},
            )
        result = await forwarder.probe_remote(probe)
        return JSONResponse(result.model_dump())

    return app


# Module-level instance for ``uvicorn advisor_router.adapters.proxy.app:app``
app = create_app()


def serve() -> None:
    """Entry-point for ``advisor-proxy`` console script."""
    import os

    import uvicorn

    Preferences.from_env().configure_logging()
    uvicorn.run(
        "advisor_router.adapters.proxy.app:app",
        host=os.environ.get("PROXY_HOST", "127.0.0.1"),
        port=int(os.environ.get("PROXY_PORT", DEFAULT_PROXY_PORT)),
        log_level="info",
    )
