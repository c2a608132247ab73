"""FastAPI SSE adapter — thin translation layer, no routing logic."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ValidationError

from advisor_router import create_runtime
from advisor_router.engine.config import Preferences, parse_backend
from advisor_router.engine.errors import ConfigurationError
from advisor_router.engine.models import ChatRequest
from advisor_router.engine.runtime import AdvisorRuntime

logger = logging.getLogger(__name__)


class BackendPreference(BaseModel):
    backend: str


def create_app(runtime: AdvisorRuntime | None = None, *, start_monitor: bool = True) -> FastAPI:
    runtime = runtime or create_runtime()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_monitor:
            await runtime.start()
        try:
            yield
        finally:
            await runtime.stop()

    app = FastAPI(title="Advisor Chat API", version="0.1.0", lifespan=lifespan)
    app.state.runtime = runtime

    @app.post("/chat")
    async def chat(request: Request) -> StreamingResponse:
        try:
            body = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=422, detail="Request body must be a JSON object") from exc
        try:
            chat_request = ChatRequest.model_validate(body)
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=json.loads(exc.json())) from exc

        async def sse_stream():
            async for event in runtime.orchestrator.handle(chat_request):
                payload = json.dumps(event.model_dump(mode="json"), default=str)
                yield f"event: {event.type.value}\ndata: {payload}\n\n"

        return StreamingResponse(
            sse_stream(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok", **runtime.status()})

    @app.put("/preferences/backend")
    async def set_backend(preference: BackendPreference) -> JSONResponse:
        try:
            kind = parse_backend(preference.backend)
        except ConfigurationError as exc:
            return JSONResponse(status_code=400, content=exc.to_info().model_dump(mode="json"))
        runtime.set_preferred(kind)
        return JSONResponse(runtime.controller.state.model_dump(mode="json"))

    return app


def serve() -> None:
    """Entry-point for ``advisor-web`` console script."""
    import os

    import uvicorn

    Preferences.from_env().configure_logging()
    uvicorn.run(
        "advisor_router.adapters.web_fastapi.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=int(os.environ.get("PORT", 8000)),
        log_level="info",
    )
