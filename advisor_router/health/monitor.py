"""HealthMonitor — fixed-interval concurrent probing of every hop."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, TypeVar

from advisor_router.backends.interface import BackendAdapter
from advisor_router.engine.errors import ConfigurationError
from advisor_router.engine.models import (
    BackendHealth,
    HealthSnapshot,
    HealthStatus,
    ServiceHealth,
)
from advisor_router.health.failover import FailoverController

logger = logging.getLogger(__name__)

H = TypeVar("H", bound=ServiceHealth)


class HealthMonitor:
    """Probes local, proxy, remote and search concurrently every ``interval`` seconds.

    Each probe is time-boxed by ``probe_timeout``; a probe that times out or
    raises is published as Unavailable. The previous snapshot stays visible
    until all probes of a tick finish, then the new one replaces it in one
    assignment and is handed to the ``FailoverController``.
    """

    def __init__(
        self,
        local: BackendAdapter,
        remote: BackendAdapter,
        controller: FailoverController,
        augmenter: Any | None = None,
        interval: float = 10.0,
        probe_timeout: float = 8.0,
    ) -> None:
        if probe_timeout >= interval:
            raise ConfigurationError(
                f"probe_timeout ({probe_timeout}s) must be below the tick interval ({interval}s)",
            )
        self._local = local
        self._remote = remote
        self._controller = controller
        self._augmenter = augmenter
        self._interval = interval
        self._probe_timeout = probe_timeout
        self._snapshot = HealthSnapshot()
        self._probing = False
        self._tick = 0
        self._task: asyncio.Task | None = None

    # -- reads --------------------------------------------------------------

    @property
    def snapshot(self) -> HealthSnapshot:
        return self._snapshot

    @property
    def probing(self) -> bool:
        """True while a tick's probes are in flight."""
        return self._probing

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -- probing ------------------------------------------------------------

    async def _probe(
        self,
        name: str,
        check: Callable[[], Awaitable[H]],
        fallback: Callable[[str], H],
    ) -> H:
        try:
            return await asyncio.wait_for(check(), timeout=self._probe_timeout)
        except asyncio.TimeoutError:
            logger.warning("%s health probe timed out after %.1fs", name, self._probe_timeout)
            return fallback("health probe timed out")
        except Exception as exc:
            logger.warning("%s health probe failed: %s", name, exc)
            return fallback(str(exc))

    def _backend_fallback(self, adapter: BackendAdapter) -> Callable[[str], BackendHealth]:
        def build(message: str) -> BackendHealth:
            return BackendHealth(
                kind=adapter.kind,
                status=HealthStatus.UNAVAILABLE,
                last_checked_at=time.time(),
                error_message=message,
                model=adapter.model_id,
            )
        return build

    @staticmethod
    def _service_fallback(message: str) -> ServiceHealth:
        return ServiceHealth(
            status=HealthStatus.UNAVAILABLE,
            last_checked_at=time.time(),
            error_message=message,
        )

    async def _check_proxy(self) -> ServiceHealth:
        check = getattr(self._remote, "check_proxy", None)
        if check is None:
            return ServiceHealth(status=HealthStatus.AVAILABLE, last_checked_at=time.time())
        return await check()

    async def _check_search(self) -> ServiceHealth:
        if self._augmenter is None:
            return ServiceHealth(
                status=HealthStatus.UNAVAILABLE,
                last_checked_at=time.time(),
                error_message="Web search is not configured",
            )
        return await self._augmenter.check_health()

    async def tick(self) -> HealthSnapshot:
        """Run one probe cycle, publish the snapshot, then evaluate failover."""
        self._probing = True
        try:
            local, proxy, remote, search = await asyncio.gather(
                self._probe("local", self._local.check_health, self._backend_fallback(self._local)),
                self._probe("proxy", self._check_proxy, self._service_fallback),
                self._probe("remote", self._remote.check_health, self._backend_fallback(self._remote)),
                self._probe("search", self._check_search, self._service_fallback),
            )
        finally:
            self._probing = False

        self._tick += 1
        snapshot = HealthSnapshot(local=local, remote=remote, proxy=proxy, search=search, tick=self._tick)
        self._snapshot = snapshot
        logger.debug(
            "tick %d: local=%s remote=%s proxy=%s search=%s",
            snapshot.tick, local.status.value, remote.status.value,
            proxy.status.value, search.status.value,
        )
        await self._controller.evaluate(snapshot)
        return snapshot

    # -- loop ---------------------------------------------------------------

    async def run(self) -> None:
        while True:
            started = time.monotonic()
            try:
                await self.tick()
            except Exception:
                logger.exception("health tick failed")
            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, self._interval - elapsed))

    def start(self) -> None:
        if self.running:
            return
        logger.info(
            "health monitor started (interval=%.1fs, probe_timeout=%.1fs)",
            self._interval, self._probe_timeout,
        )
        self._task = asyncio.create_task(self.run(), name="advisor-health-monitor")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("health monitor stopped")
