"""TimerController 单元测试

验证：本地状态机在发请求前拒绝非法操作、start 的单会话不变量、
422 冲突、stop 幂等、pause 备注、reconcile。
"""

import asyncio
import json
from datetime import UTC, datetime

import httpx
import pytest
from taskpulse.client.exceptions import (
    AlreadyRunningConflict,
    InvalidTransition,
    RequestRejected,
    TransientFetchError,
)
from taskpulse.client.timer import TimerController, TimerSessionStore
from taskpulse.core.models import TimerAction, TimerSession, TimerState


def _ok_timer_routes(backend, *task_ids: str) -> None:
    for task_id in task_ids:
        for action in TimerAction:
            backend.add("POST", f"/tasks/{task_id}/timer/{action}", (200, {"ok": True}))


@pytest.fixture
def controller(api) -> TimerController:
    return TimerController(api, owner_id="u1")


class TestStart:
    """idle -> running"""

    async def test_start_holds_running_session(self, controller, backend):
        _ok_timer_routes(backend, "T1")
        before = datetime.now(UTC)

        transition = await controller.start("T1", task_title="Write docs")

        assert transition.from_state == TimerState.IDLE
        assert transition.to_state == TimerState.RUNNING
        session = controller.session
        assert session.task_id == "T1"
        assert session.owner_id == "u1"
        assert session.state == TimerState.RUNNING
        assert session.started_at >= before
        assert session.source == "local"
        assert len(backend.calls("POST", "/tasks/T1/timer/start")) == 1

    async def test_start_other_task_replaces_session(self, controller, backend):
        """同一时刻最多一个 running/paused 会话"""
        _ok_timer_routes(backend, "A", "B")

        await controller.start("A")
        await controller.start("B")

        assert controller.session.task_id == "B"
        assert controller.state_of("A") == TimerState.IDLE
        assert controller.state_of("B") == TimerState.RUNNING

    async def test_start_twice_rejected_locally(self, controller, backend):
        _ok_timer_routes(backend, "T1")
        await controller.start("T1")

        with pytest.raises(InvalidTransition):
            await controller.start("T1")

        assert len(backend.calls("POST", "/tasks/T1/timer/start")) == 1

    async def test_conflict_maps_to_already_running(self, controller, backend):
        """服务端 422 -> AlreadyRunningConflict，不重试，本地其他会话保持失效"""
        _ok_timer_routes(backend, "A")
        backend.add(
            "POST",
            "/tasks/B/timer/start",
            (422, {"detail": "Another timer is already active"}),
        )
        await controller.start("A")

        with pytest.raises(AlreadyRunningConflict) as exc_info:
            await controller.start("B")

        error = exc_info.value
        assert isinstance(error, RequestRejected)
        assert error.task_id == "B"
        assert error.detail == "Another timer is already active"
        assert controller.session is None
        assert len(backend.calls("POST", "/tasks/B/timer/start")) == 1

    async def test_empty_task_id(self, controller, backend):
        with pytest.raises(ValueError):
            await controller.start("")
        assert backend.requests == []


class TestPauseResume:
    """running <-> paused"""

    @pytest.mark.parametrize("action", ["pause", "resume"])
    async def test_rejected_before_network_when_idle(self, controller, backend, action: str):
        with pytest.raises(InvalidTransition) as exc_info:
            await getattr(controller, action)("T1")

        assert exc_info.value.from_state == TimerState.IDLE
        assert backend.requests == []

    async def test_pause_sends_note(self, controller, backend):
        _ok_timer_routes(backend, "T1")
        await controller.start("T1")

        transition = await controller.pause("T1", note="lunch")

        assert transition.to_state == TimerState.PAUSED
        assert controller.state_of("T1") == TimerState.PAUSED
        request = backend.calls("POST", "/tasks/T1/timer/pause")[0]
        assert json.loads(request.content) == {"note": "lunch"}

    async def test_pause_without_note_sends_no_body(self, controller, backend):
        _ok_timer_routes(backend, "T1")
        await controller.start("T1")
        await controller.pause("T1")

        assert backend.calls("POST", "/tasks/T1/timer/pause")[0].content == b""

    async def test_resume_resets_started_at(self, controller, backend):
        _ok_timer_routes(backend, "T1")
        await controller.start("T1")
        first_start = controller.session.started_at
        await controller.pause("T1")

        transition = await controller.resume("T1")

        assert transition.to_state == TimerState.RUNNING
        assert controller.session.started_at >= first_start

    async def test_resume_while_running_rejected(self, controller, backend):
        _ok_timer_routes(backend, "T1")
        await controller.start("T1")

        with pytest.raises(InvalidTransition):
            await controller.resume("T1")
        assert backend.calls("POST", "/tasks/T1/timer/resume") == []

    async def test_server_failure_keeps_state(self, controller, backend):
        _ok_timer_routes(backend, "T1")
        await controller.start("T1")
        backend.add("POST", "/tasks/T1/timer/pause", (500, {"detail": "boom"}))

        with pytest.raises(TransientFetchError):
            await controller.pause("T1")

        assert controller.state_of("T1") == TimerState.RUNNING


class TestStop:
    """running|paused -> idle，幂等"""

    async def test_stop_running(self, controller, backend):
        _ok_timer_routes(backend, "T1")
        await controller.start("T1")

        transition = await controller.stop("T1")

        assert transition.from_state == TimerState.RUNNING
        assert transition.to_state == TimerState.IDLE
        assert transition.noop is False
        assert controller.session is None

    async def test_stop_paused(self, controller, backend):
        _ok_timer_routes(backend, "T1")
        await controller.start("T1")
        await controller.pause("T1")

        transition = await controller.stop("T1")

        assert transition.from_state == TimerState.PAUSED
        assert controller.session is None

    @pytest.mark.parametrize("status", [400, 404, 409, 422])
    async def test_stop_twice_is_noop(self, controller, backend, status: int):
        """第二次 stop：服务端无计时器可停，视为成功的空操作"""
        _ok_timer_routes(backend, "T1")
        await controller.start("T1")
        await controller.stop("T1")
        backend.add("POST", "/tasks/T1/timer/stop", (status, {"detail": "No active timer"}))

        transition = await controller.stop("T1")

        assert transition.noop is True
        assert transition.to_state == TimerState.IDLE
        assert controller.session is None

    async def test_stop_always_reaches_server(self, controller, backend):
        """本地 idle 时仍发出请求（本地状态可能落后于服务端）"""
        _ok_timer_routes(backend, "T1")

        transition = await controller.stop("T1")

        assert transition.from_state == TimerState.IDLE
        assert transition.noop is False
        assert len(backend.calls("POST", "/tasks/T1/timer/stop")) == 1

    async def test_stop_server_error_propagates(self, controller, backend):
        _ok_timer_routes(backend, "T1")
        await controller.start("T1")
        backend.add("POST", "/tasks/T1/timer/stop", (500, {"detail": "db down"}))

        with pytest.raises(TransientFetchError):
            await controller.stop("T1")

        assert controller.state_of("T1") == TimerState.RUNNING


class TestReconcile:
    """以服务端真相覆盖本地会话"""

    def test_reconcile_replaces_session(self, controller):
        controller.store.hold(TimerSession(task_id="A", state=TimerState.RUNNING))

        controller.reconcile(TimerSession(task_id="B", state=TimerState.PAUSED))

        assert controller.session.task_id == "B"
        assert controller.session.owner_id == "u1"
        assert controller.state_of("A") == TimerState.IDLE

    def test_reconcile_none_clears(self, controller):
        controller.store.hold(TimerSession(task_id="A", state=TimerState.RUNNING))
        controller.reconcile(None)
        assert controller.session is None


class TestTimerSessionStore:
    """本地会话存储"""

    def test_hold_idle_session_clears(self):
        store = TimerSessionStore()
        store.hold(TimerSession(task_id="A", state=TimerState.RUNNING))
        store.hold(TimerSession(task_id="A", state=TimerState.IDLE))
        assert store.session is None

    def test_clear_other_task_is_ignored(self):
        store = TimerSessionStore()
        store.hold(TimerSession(task_id="A", state=TimerState.RUNNING))
        store.clear("B")
        assert store.state_of("A") == TimerState.RUNNING

    def test_invalidate_others_returns_previous(self):
        store = TimerSessionStore()
        store.hold(TimerSession(task_id="A", state=TimerState.PAUSED))
        assert store.invalidate_others("A") is None
        previous = store.invalidate_others("B")
        assert previous.task_id == "A"
        assert store.session is None

    def test_epoch_counts_local_changes_only(self):
        store = TimerSessionStore()
        store.hold(TimerSession(task_id="A", state=TimerState.RUNNING))
        assert store.epoch == 1
        store.replace(TimerSession(task_id="B", state=TimerState.PAUSED))
        store.replace(None)
        assert store.epoch == 1
        store.invalidate_others("A")
        assert store.epoch == 1
        store.clear("A")
        assert store.epoch == 2


class TestOrdering:
    """同一 (owner, task) 的操作按发出顺序执行，不同任务互不阻塞"""

    async def test_same_task_transitions_applied_in_issue_order(self, controller, backend):
        start_received = asyncio.Event()
        release_start = asyncio.Event()
        order: list[str] = []

        async def held_start(request: httpx.Request) -> httpx.Response:
            order.append("start")
            start_received.set()
            await release_start.wait()
            return httpx.Response(200, json={"ok": True})

        def stop(request: httpx.Request) -> httpx.Response:
            order.append("stop")
            return httpx.Response(200, json={"ok": True})

        backend.add("POST", "/tasks/T1/timer/start", held_start)
        backend.add("POST", "/tasks/T1/timer/stop", stop)

        start_task = asyncio.create_task(controller.start("T1"))
        await start_received.wait()
        stop_task = asyncio.create_task(controller.stop("T1"))
        for _ in range(5):
            await asyncio.sleep(0)

        # stop 在 start 完成前不会发出
        assert order == ["start"]
        assert not stop_task.done()
        assert list(controller._locks) == [("u1", "T1")]

        release_start.set()
        await start_task
        transition = await stop_task

        assert order == ["start", "stop"]
        assert transition.from_state == TimerState.RUNNING
        assert transition.noop is False
        assert controller.state_of("T1") == TimerState.IDLE
        assert controller._locks == {}

    async def test_other_task_not_blocked(self, controller, backend):
        release_first = asyncio.Event()
        first_received = asyncio.Event()

        async def held_start(request: httpx.Request) -> httpx.Response:
            first_received.set()
            await release_first.wait()
            return httpx.Response(200, json={"ok": True})

        backend.add("POST", "/tasks/T1/timer/start", held_start)
        backend.add("POST", "/tasks/T2/timer/stop", (200, {"ok": True}))

        first = asyncio.create_task(controller.start("T1"))
        await first_received.wait()

        transition = await asyncio.wait_for(controller.stop("T2"), timeout=1)

        assert transition.to_state == TimerState.IDLE
        assert len(backend.calls("POST", "/tasks/T2/timer/stop")) == 1
        assert not first.done()
        release_first.set()
        await first
        assert controller.session.task_id == "T1"

    async def test_locks_released_after_use(self, controller, backend):
        """空闲 lock 在操作结束后移除"""
        _ok_timer_routes(backend, "T1", "T2")

        await controller.start("T1")
        await controller.stop("T1")
        await controller.stop("T2")
        with pytest.raises(InvalidTransition):
            await controller.pause("T2")

        assert controller._locks == {}
        assert controller._lock_users == {}


class TestMutationEpoch:
    """刷新期间发生本地计时器操作时，不用过时的解析结果覆盖会话"""

    async def test_local_actions_bump_epoch(self, controller, backend):
        _ok_timer_routes(backend, "T1")
        epochs = [controller.mutation_epoch]

        await controller.start("T1")
        epochs.append(controller.mutation_epoch)
        await controller.pause("T1")
        epochs.append(controller.mutation_epoch)
        await controller.stop("T1")
        epochs.append(controller.mutation_epoch)

        assert epochs == sorted(set(epochs))

    async def test_reconcile_skipped_after_local_start(self, controller, backend):
        _ok_timer_routes(backend, "T1")
        epoch = controller.mutation_epoch

        await controller.start("T1")
        applied = controller.reconcile(None, since_epoch=epoch)

        assert applied is False
        assert controller.state_of("T1") == TimerState.RUNNING

    def test_reconcile_applied_without_local_changes(self, controller):
        epoch = controller.mutation_epoch

        applied = controller.reconcile(
            TimerSession(task_id="T1", state=TimerState.PAUSED), since_epoch=epoch
        )

        assert applied is True
        assert controller.state_of("T1") == TimerState.PAUSED
        assert controller.mutation_epoch == epoch
