"""Shared fixtures for advisor_router tests."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Callable

import httpx
import pytest

from advisor_router.backends.mock import ScriptedAdapter
from advisor_router.engine.config import Preferences
from advisor_router.engine.models import (
    BackendHealth,
    BackendKind,
    ChatConfig,
    HealthSnapshot,
    HealthStatus,
)
from advisor_router.health.failover import FailoverController
from advisor_router.tracing.interface import MemoryTraceCollector
from advisor_router.tracing.jsonl_tracer import JSONLTraceCollector


# -- wire helpers -----------------------------------------------------------

def ndjson(*fragments: str) -> bytes:
    """Local chat stream: one object per fragment, then the done marker."""
    lines = [json.dumps({"message": {"role": "assistant", "content": f}, "done": False}) for f in fragments]
    lines.append(json.dumps({"message": {"role": "assistant", "content": ""}, "done": True}))
    return ("\n".join(lines) + "\n").encode()


def sse(*fragments: str, done: bool = True) -> bytes:
    """Remote chat stream: one ``data:`` event per fragment, then ``[DONE]``."""
    events = [
        "data: " + json.dumps({"choices": [{"index": 0, "delta": {"content": f}}]}) + "\n\n"
        for f in fragments
    ]
    if done:
        events.append("data: [DONE]\n\n")
    return "".join(events).encode()


async def aiter_lines(*lines: str) -> AsyncIterator[str]:
    for line in lines:
        yield line


def mock_client(handler: Callable[[httpx.Request], Any]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def snapshot(
    local: HealthStatus = HealthStatus.AVAILABLE,
    remote: HealthStatus = HealthStatus.AVAILABLE,
    tick: int = 1,
) -> HealthSnapshot:
    return HealthSnapshot(
        local=BackendHealth(kind=BackendKind.LOCAL, status=local),
        remote=BackendHealth(kind=BackendKind.REMOTE, status=remote),
        tick=tick,
    )


# -- fixtures ---------------------------------------------------------------

@pytest.fixture
def preferences(tmp_path):
    return Preferences(
        system_prompt="You are a customer-intelligence advisor.",
        health_interval=1.0,
        probe_timeout=0.5,
        trace_dir=str(tmp_path / "traces"),
    )


@pytest.fixture
def chat_config():
    return ChatConfig(model="scripted", system_prompt="Be brief.")


@pytest.fixture
def controller():
    return FailoverController(BackendKind.LOCAL)


@pytest.fixture
def local_scripted():
    return ScriptedAdapter(BackendKind.LOCAL, ["Hello", ", ", "world"])


@pytest.fixture
def remote_scripted():
    return ScriptedAdapter(BackendKind.REMOTE, ["Remote", " reply"])


@pytest.fixture
def trace_collector():
    return MemoryTraceCollector()


@pytest.fixture
def jsonl_tracer(tmp_path):
    return JSONLTraceCollector(trace_dir=str(tmp_path / "traces"))
