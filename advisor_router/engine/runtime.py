"""AdvisorRuntime — the wired set of components one process runs."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from advisor_router.backends.interface import BackendAdapter
from advisor_router.engine.config import Preferences
from advisor_router.engine.models import BackendKind
from advisor_router.engine.orchestrator import ChatOrchestrator
from advisor_router.health.failover import FailoverController
from advisor_router.health.monitor import HealthMonitor
from advisor_router.search.augmenter import WebSearchAugmenter

logger = logging.getLogger(__name__)


class AdvisorRuntime:
    def __init__(
        self,
        preferences: Preferences,
        adapters: dict[BackendKind, BackendAdapter],
        controller: FailoverController,
        monitor: HealthMonitor,
        orchestrator: ChatOrchestrator,
        augmenter: WebSearchAugmenter | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.preferences = preferences
        self.adapters = adapters
        self.controller = controller
        self.monitor = monitor
        self.orchestrator = orchestrator
        self.augmenter = augmenter
        self._http_client = http_client

    async def start(self) -> None:
        self.monitor.start()

    async def stop(self) -> None:
        await self.monitor.stop()
        if self.augmenter is not None:
            await self.augmenter.aclose()
        if self._http_client is not None:
            await self._http_client.aclose()

    async def __aenter__(self) -> "AdvisorRuntime":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    def set_preferred(self, kind: BackendKind) -> None:
        """Takes effect for routing on the next health tick."""
        self.preferences = self.preferences.with_preferred(kind)
        self.orchestrator.preferences = self.preferences
        self.controller.set_preferred(kind)

    def status(self) -> dict[str, Any]:
        return {
            "snapshot": self.monitor.snapshot.model_dump(mode="json"),
            "failover": self.controller.state.model_dump(mode="json"),
            "notices": [n.model_dump(mode="json") for n in self.controller.notices],
            "probing": self.monitor.probing,
        }
