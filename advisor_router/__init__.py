"""advisor_router — health-driven routing of chat completions between a local
inference server and a remote OpenAI-compatible endpoint.

Usage::

    from advisor_router import create_runtime
    from advisor_router.engine.models import ChatRequest

    async with create_runtime() as runtime:
        async for event in runtime.orchestrator.handle(ChatRequest(query="hi")):
            print(event)
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()  # reads .env into os.environ (no-op if file missing)

import httpx

from advisor_router.backends.interface import BackendAdapter
from advisor_router.backends.local import LocalAdapter
from advisor_router.backends.mock import DemoScriptedAdapter
from advisor_router.backends.remote import RemoteAdapter
from advisor_router.engine.config import Preferences
from advisor_router.engine.models import BackendKind, ChatEvent, ChatEventType, ChatRequest
from advisor_router.engine.orchestrator import ChatOrchestrator
from advisor_router.engine.runtime import AdvisorRuntime
from advisor_router.health.failover import FailoverController
from advisor_router.health.monitor import HealthMonitor
from advisor_router.search.augmenter import WebSearchAugmenter
from advisor_router.tracing.jsonl_tracer import JSONLTraceCollector

__all__ = [
    "AdvisorRuntime",
    "ChatEvent",
    "ChatEventType",
    "ChatOrchestrator",
    "ChatRequest",
    "Preferences",
    "create_runtime",
]


def create_runtime(
    preferences: Preferences | None = None,
    *,
    preferences_file: str | None = None,
    use_mock_backends: bool | None = None,
    adapters: dict[BackendKind, BackendAdapter] | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AdvisorRuntime:
    """Wire all components and return a runtime (not yet started).

    Environment variables (all optional, see ``Preferences.from_env``):
      PREFERENCES_FILE   — dashboard JSON preference record overlaid on env
      USE_MOCK_BACKENDS  — set to ``1`` to serve from scripted demo backends
    """
    if preferences is None:
        path = preferences_file or os.environ.get("PREFERENCES_FILE")
        preferences = Preferences.from_file(path) if path else Preferences.from_env()
    mock = use_mock_backends if use_mock_backends is not None else os.environ.get("USE_MOCK_BACKENDS") == "1"

    # -- components --
    owned_client = http_client is None
    client = http_client or httpx.AsyncClient()

    if adapters is not None:
        adapters = dict(adapters)
    elif mock:
        adapters = {
            BackendKind.LOCAL: DemoScriptedAdapter(BackendKind.LOCAL, model=preferences.local_model, delay=0.02),
            BackendKind.REMOTE: DemoScriptedAdapter(BackendKind.REMOTE, model=preferences.remote_model, delay=0.02),
        }
    else:
        adapters = {
            BackendKind.LOCAL: LocalAdapter(
                client,
                base_url=preferences.local_url,
                model=preferences.local_model,
            ),
            BackendKind.REMOTE: RemoteAdapter(
                client,
                proxy_url=preferences.proxy_url,
                endpoint=preferences.remote_endpoint,
                api_key=preferences.remote_api_key,
                model=preferences.remote_model,
                probe_timeout=preferences.probe_timeout,
            ),
        }

    augmenter = WebSearchAugmenter(
        api_key=preferences.search_api_key,
        model=preferences.search_model,
        base_url=preferences.search_base_url,
        timeout=preferences.search_timeout,
    )
    controller = FailoverController(preferences.preferred_backend)
    monitor = HealthMonitor(
        adapters[BackendKind.LOCAL],
        adapters[BackendKind.REMOTE],
        controller,
        augmenter=augmenter,
        interval=preferences.health_interval,
        probe_timeout=preferences.probe_timeout,
    )
    orchestrator = ChatOrchestrator(
        adapters,
        controller,
        preferences,
        augmenter=augmenter,
        trace_collector=JSONLTraceCollector(preferences.trace_dir),
    )

    return AdvisorRuntime(
        preferences=preferences,
        adapters=adapters,
        controller=controller,
        monitor=monitor,
        orchestrator=orchestrator,
        augmenter=augmenter,
        http_client=client if owned_client else None,
    )
