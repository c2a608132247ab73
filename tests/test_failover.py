"""Tests for FailoverController — transition table, notices, listeners."""

from __future__ import annotations

import pytest

from advisor_router.engine.models import BackendKind, HealthStatus, NoticeKind
from advisor_router.health.failover import FailoverController

from conftest import snapshot

A = HealthStatus.AVAILABLE
U = HealthStatus.UNAVAILABLE
D = HealthStatus.DEGRADED
C = HealthStatus.CHECKING
LOCAL = BackendKind.LOCAL
REMOTE = BackendKind.REMOTE


def _snap(preferred: BackendKind, preferred_status: HealthStatus, other_status: HealthStatus):
    if preferred is LOCAL:
        return snapshot(local=preferred_status, remote=other_status)
    return snapshot(local=other_status, remote=preferred_status)


class TestTransitionTable:

    @pytest.mark.parametrize("preferred", [LOCAL, REMOTE])
    @pytest.mark.parametrize("other_status", [A, U])
    async def test_preferred_available_wins(self, preferred, other_status):
        controller = FailoverController(preferred)
        await controller.evaluate(_snap(preferred, U, A))  # start on the other backend
        await controller.evaluate(_snap(preferred, A, other_status))
        assert controller.active_backend is preferred

    @pytest.mark.parametrize("preferred", [LOCAL, REMOTE])
    async def test_preferred_down_other_up(self, preferred):
        controller = FailoverController(preferred)
        notice = await controller.evaluate(_snap(preferred, U, A))
        assert controller.active_backend is preferred.other
        assert notice.kind is NoticeKind.FAILOVER

    @pytest.mark.parametrize("preferred", [LOCAL, REMOTE])
    async def test_both_down_keeps_current(self, preferred):
        controller = FailoverController(preferred)
        assert await controller.evaluate(_snap(preferred, U, U)) is None
        assert controller.active_backend is preferred

        await controller.evaluate(_snap(preferred, U, A))
        assert await controller.evaluate(_snap(preferred, U, U)) is None
        assert controller.active_backend is preferred.other

    @pytest.mark.parametrize("status", [D, C])
    async def test_degraded_and_checking_are_not_usable(self, status):
        controller = FailoverController(LOCAL)
        await controller.evaluate(snapshot(local=status, remote=A))
        assert controller.active_backend is REMOTE


class TestNotices:

    async def test_round_trip_fires_one_notice_each_way(self):
        controller = FailoverController(REMOTE)

        notice = await controller.evaluate(snapshot(local=A, remote=U))
        assert controller.active_backend is LOCAL
        assert notice.kind is NoticeKind.FAILOVER
        assert (notice.from_backend, notice.to_backend) == (REMOTE, LOCAL)
        assert len(controller.notices) == 1

        # Same health on the next tick: no new notice.
        assert await controller.evaluate(snapshot(local=A, remote=U)) is None
        assert len(controller.notices) == 1

        notice = await controller.evaluate(snapshot(local=A, remote=A))
        assert controller.active_backend is REMOTE
        assert notice.kind is NoticeKind.FAILBACK
        assert [n.kind for n in controller.notices] == [NoticeKind.FAILOVER, NoticeKind.FAILBACK]

    async def test_first_tick_defaults_to_preferred_without_notice(self):
        controller = FailoverController(LOCAL)
        assert controller.active_backend is LOCAL
        assert controller.state.last_switch_at is None

        assert await controller.evaluate(snapshot(local=A, remote=A)) is None
        assert controller.notices == []
        assert controller.state.last_switch_at is None

    async def test_switch_records_time_and_reason(self):
        controller = FailoverController(LOCAL)
        snap = snapshot(local=U, remote=A)
        snap = snap.model_copy(update={"local": snap.local.model_copy(update={"error_message": "refused"})})
        notice = await controller.evaluate(snap)
        assert controller.state.last_switch_at == notice.timestamp
        assert "refused" in notice.message

    async def test_history_is_bounded(self):
        controller = FailoverController(LOCAL, max_notices=2)
        for _ in range(2):
            await controller.evaluate(snapshot(local=U, remote=A))
            await controller.evaluate(snapshot(local=A, remote=A))
        assert len(controller.notices) == 2
        assert controller.notices[-1].kind is NoticeKind.FAILBACK


class TestListenersAndPreference:

    async def test_sync_and_async_listeners_called_once_per_switch(self):
        controller = FailoverController(LOCAL)
        seen_sync, seen_async = [], []

        async def on_switch(notice):
            seen_async.append(notice.to_backend)

        controller.add_listener(lambda notice: seen_sync.append(notice.to_backend))
        controller.add_listener(on_switch)

        await controller.evaluate(snapshot(local=U, remote=A))
        await controller.evaluate(snapshot(local=U, remote=A))
        assert seen_sync == [REMOTE]
        assert seen_async == [REMOTE]

    async def test_failing_listener_does_not_block_switch(self):
        controller = FailoverController(LOCAL)

        def broken(notice):
            raise RuntimeError("listener bug")

        controller.add_listener(broken)
        notice = await controller.evaluate(snapshot(local=U, remote=A))
        assert notice is not None
        assert controller.active_backend is REMOTE

    async def test_set_preferred_applies_on_next_evaluation(self):
        controller = FailoverController(LOCAL)
        controller.set_preferred(REMOTE)
        assert controller.state.preferred_backend is REMOTE
        assert controller.active_backend is LOCAL

        notice = await controller.evaluate(snapshot(local=A, remote=A))
        assert controller.active_backend is REMOTE
        assert notice.kind is NoticeKind.FAILBACK
