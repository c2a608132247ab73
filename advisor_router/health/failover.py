"""FailoverController — derives the active backend from health snapshots."""

from __future__ import annotations

import inspect
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Union

from advisor_router.engine.models import (
    BackendKind,
    FailoverNotice,
    FailoverState,
    HealthSnapshot,
    NoticeKind,
)

logger = logging.getLogger(__name__)

SwitchListener = Callable[[FailoverNotice], Union[None, Awaitable[None]]]


class FailoverController:
    """Owns the one ``FailoverState`` value. Written only by ``evaluate``/``set_preferred``.

    Rule per tick: the preferred backend when it is Available, else the other
    backend when that one is Available, else whatever is already active.
    Degraded and Checking count as not usable. Until the first snapshot is
    evaluated the active backend is the preferred one, without a notice.
    """

    def __init__(self, preferred: BackendKind, max_notices: int = 50) -> None:
        self._state = FailoverState(preferred_backend=preferred, active_backend=preferred)
        self._listeners: list[SwitchListener] = []
        self._notices: deque[FailoverNotice] = deque(maxlen=max_notices)

    # -- reads --------------------------------------------------------------

    @property
    def state(self) -> FailoverState:
        return self._state

    @property
    def active_backend(self) -> BackendKind:
        return self._state.active_backend

    @property
    def preferred_backend(self) -> BackendKind:
        return self._state.preferred_backend

    @property
    def notices(self) -> list[FailoverNotice]:
        return list(self._notices)

    # -- writes -------------------------------------------------------------

    def add_listener(self, callback: SwitchListener) -> None:
        self._listeners.append(callback)

    def set_preferred(self, kind: BackendKind) -> None:
        if kind is self._state.preferred_backend:
            return
        logger.info("preferred backend set to %s", kind.value)
        self._state = self._state.model_copy(update={"preferred_backend": kind})

    def compute_active(self, snapshot: HealthSnapshot) -> BackendKind:
        preferred = self._state.preferred_backend
        if snapshot.for_backend(preferred).is_available:
            return preferred
        if snapshot.for_backend(preferred.other).is_available:
            return preferred.other
        return self._state.active_backend

    async def evaluate(self, snapshot: HealthSnapshot) -> FailoverNotice | None:
        """Apply one published snapshot. Returns the notice when the active backend changed."""
        current = self._state.active_backend
        target = self.compute_active(snapshot)
        if target is current:
            return None

        kind = NoticeKind.FAILBACK if target is self._state.preferred_backend else NoticeKind.FAILOVER
        reason = snapshot.for_backend(current).error_message
        if kind is NoticeKind.FAILOVER:
            message = f"Switched from {current.value} to {target.value} backend"
            if reason:
                message += f" ({current.value}: {reason})"
        else:
            message = f"Switched back to preferred {target.value} backend"

        now = time.time()
        notice = FailoverNotice(
            kind=kind, from_backend=current, to_backend=target, message=message, timestamp=now,
        )
        self._state = self._state.model_copy(update={"active_backend": target, "last_switch_at": now})
        self._notices.append(notice)
        logger.info("%s: %s -> %s", kind.value, current.value, target.value)

        for callback in list(self._listeners):
            try:
                result = callback(notice)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("failover listener %r failed", callback)
        return notice
