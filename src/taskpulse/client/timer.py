"""TimerController -- 计时器状态机（start / pause / resume / stop）

服务端是计时器状态的唯一真相来源；本地只保存一个 TimerSession，
并在每次加载时通过 reconcile() 与服务端对齐。

单会话不变量：同一用户同一时刻最多一个 running/paused 会话。
start(B) 在发出请求之前就让本地持有的 A 会话失效。
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import structlog
from pydantic import BaseModel, Field

from ..core.models import (
    TimerAction,
    TimerSession,
    TimerState,
    next_state,
    validate_transition,
)
from .exceptions import (
    AlreadyRunningConflict,
    InvalidTransition,
    NotFound,
    RequestRejected,
    TaskPulseError,
)
from .http import ApiClient

log = structlog.get_logger()

# stop 时这些状态码表示"服务端没有可停止的计时器"
_NOTHING_TO_STOP_STATUSES = {400, 404, 409, 422}


class TimerTransition(BaseModel):
    """一次计时器操作的结果"""

    task_id: str
    action: TimerAction
    from_state: TimerState
    to_state: TimerState
    noop: bool = Field(default=False, description="stop 时服务端无计时器可停")
    session: TimerSession | None = Field(default=None, description="操作后的本地会话")


class TimerSessionStore:
    """本地计时会话 -- 单写者，最多持有一个会话"""

    def __init__(self) -> None:
        self._session: TimerSession | None = None
        self._epoch = 0

    @property
    def session(self) -> TimerSession | None:
        return self._session

    @property
    def epoch(self) -> int:
        """本地变更计数：hold / invalidate_others / clear 各自递增，replace 不递增"""
        return self._epoch

    def state_of(self, task_id: str) -> TimerState:
        """任务在本地视图中的计时器状态"""
        if self._session is not None and self._session.task_id == task_id:
            return self._session.state
        return TimerState.IDLE

    def hold(self, session: TimerSession) -> None:
        """持有新会话，替换任何已有会话（保证最多一个）"""
        if not session.is_held:
            self.clear(session.task_id)
            return
        previous = self._session
        if previous is not None and previous.task_id != session.task_id:
            log.info(
                "timer_session_replaced",
                previous_task_id=previous.task_id,
                task_id=session.task_id,
            )
        self._session = session
        self._epoch += 1

    def invalidate_others(self, task_id: str) -> TimerSession | None:
        """让其他任务的本地会话失效，返回被清除的会话"""
        previous = self._session
        if previous is not None and previous.task_id != task_id:
            self._session = None
            self._epoch += 1
            log.info(
                "timer_session_invalidated",
                previous_task_id=previous.task_id,
                task_id=task_id,
            )
            return previous
        return None

    def clear(self, task_id: str | None = None) -> None:
        """清除会话；指定 task_id 时只清除该任务的会话"""
        if task_id is None or (self._session is not None and self._session.task_id == task_id):
            self._session = None
        self._epoch += 1

    def replace(self, session: TimerSession | None) -> None:
        """用服务端真相覆盖本地会话"""
        if session is None or not session.is_held:
            self._session = None
        else:
            self._session = session


class TimerController:
    """计时器控制器

    同一 (owner, task) 的操作通过 asyncio.Lock 串行化，保证按发出顺序执行；
    不同任务之间的操作互不排序。
    """

    def __init__(
        self,
        api: ApiClient,
        owner_id: str = "",
        store: TimerSessionStore | None = None,
    ) -> None:
        self._api = api
        self._owner_id = owner_id
        self._store = store or TimerSessionStore()
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._lock_users: dict[tuple[str, str], int] = {}

    @property
    def store(self) -> TimerSessionStore:
        return self._store

    @property
    def session(self) -> TimerSession | None:
        return self._store.session

    def state_of(self, task_id: str) -> TimerState:
        return self._store.state_of(task_id)

    @property
    def mutation_epoch(self) -> int:
        """本地会话变更计数，刷新开始时记录，用于 reconcile(since_epoch=...)"""
        return self._store.epoch

    @asynccontextmanager
    async def _serialized(self, task_id: str) -> AsyncIterator[None]:
        """同一 (owner, task) 的操作按发出顺序执行（asyncio.Lock 先到先得）

        最后一个使用者退出时移除 lock，避免字典随任务数无限增长。
        """
        key = (self._owner_id, task_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                self._locks.pop(key, None)

    def _check(self, task_id: str, action: TimerAction) -> TimerState:
        """本地状态机校验，非法流转在发请求之前抛出"""
        if not task_id:
            raise ValueError("task_id 不能为空")
        current = self._store.state_of(task_id)
        if not validate_transition(current, action):
            log.info(
                "timer_transition_rejected",
                task_id=task_id,
                from_state=current,
                action=action,
            )
            raise InvalidTransition(task_id, current, action)
        return current

    async def start(self, task_id: str, task_title: str = "") -> TimerTransition:
        """idle -> running

        Raises:
            InvalidTransition: 本地已在该任务上计时
            AlreadyRunningConflict: 服务端返回 422（已有其他活动计时器），不自动重试
        """
        async with self._serialized(task_id):
            current = self._check(task_id, TimerAction.START)
            # 先让本地其他会话失效，避免界面同时显示两个活动任务
            self._store.invalidate_others(task_id)

            try:
                await self._api.post(f"/tasks/{task_id}/timer/start")
            except RequestRejected as e:
                log.warning("timer_start_conflict", task_id=task_id, detail=e.detail)
                raise AlreadyRunningConflict(task_id, detail=e.detail) from e

            session = TimerSession(
                task_id=task_id,
                owner_id=self._owner_id,
                state=TimerState.RUNNING,
                started_at=datetime.now(UTC),
                task_title=task_title,
                source="local",
            )
            self._store.hold(session)
            log.info("timer_started", task_id=task_id)
            return TimerTransition(
                task_id=task_id,
                action=TimerAction.START,
                from_state=current,
                to_state=TimerState.RUNNING,
                session=session,
            )

    async def stop(self, task_id: str) -> TimerTransition:
        """running|paused -> idle

        幂等：本地状态可能落后于服务端，因此总是发出请求；
        服务端表示无计时器可停时视为成功的空操作。
        """
        if not task_id:
            raise ValueError("task_id 不能为空")
        async with self._serialized(task_id):
            current = self._store.state_of(task_id)
            noop = False
            try:
                await self._api.post(f"/tasks/{task_id}/timer/stop")
            except TaskPulseError as e:
                if not self._is_nothing_to_stop(e):
                    raise
                noop = True
                log.info(
                    "timer_stop_noop",
                    task_id=task_id,
                    local_state=current,
                    status_code=e.status_code,
                )

            self._store.clear(task_id)
            if not noop:
                log.info("timer_stopped", task_id=task_id, from_state=current)
            return TimerTransition(
                task_id=task_id,
                action=TimerAction.STOP,
                from_state=current,
                to_state=TimerState.IDLE,
                noop=noop,
            )

    async def pause(self, task_id: str, note: str | None = None) -> TimerTransition:
        """running -> paused，可附带备注"""
        return await self._pause_or_resume(task_id, TimerAction.PAUSE, note)

    async def resume(self, task_id: str, note: str | None = None) -> TimerTransition:
        """paused -> running，started_at 重新计算"""
        return await self._pause_or_resume(task_id, TimerAction.RESUME, note)

    async def _pause_or_resume(
        self, task_id: str, action: TimerAction, note: str | None
    ) -> TimerTransition:
        async with self._serialized(task_id):
            current = self._check(task_id, action)
            body = {"note": note} if note else None
            await self._api.post(f"/tasks/{task_id}/timer/{action}", json=body)

            target = next_state(current, action)
            held = self._store.session
            update: dict = {"state": target}
            if target == TimerState.RUNNING:
                update["started_at"] = datetime.now(UTC)
            session = held.model_copy(update=update) if held is not None else TimerSession(
                task_id=task_id, owner_id=self._owner_id, state=target
            )
            self._store.hold(session)
            log.info("timer_transitioned", task_id=task_id, action=action, to_state=target)
            return TimerTransition(
                task_id=task_id,
                action=action,
                from_state=current,
                to_state=target,
                session=session,
            )

    def reconcile(self, session: TimerSession | None, since_epoch: int | None = None) -> bool:
        """以服务端真相覆盖本地会话（每次加载/刷新时调用）

        Args:
            session: 服务端解析出的会话，None 表示没有计时器
            since_epoch: 获取 session 之前记录的 mutation_epoch；
                之后本地有过 start/stop/pause/resume 时 session 可能已过时，不覆盖

        Returns:
            是否已覆盖本地会话
        """
        if since_epoch is not None and since_epoch != self._store.epoch:
            log.info(
                "timer_reconcile_skipped",
                since_epoch=since_epoch,
                current_epoch=self._store.epoch,
                task_id=session.task_id if session else None,
            )
            return False
        previous = self._store.session
        if session is not None and not session.owner_id:
            session = session.model_copy(update={"owner_id": self._owner_id})
        self._store.replace(session)
        if previous != self._store.session:
            log.info(
                "timer_session_reconciled",
                previous_task_id=previous.task_id if previous else None,
                task_id=session.task_id if session else None,
                inferred=session.inferred if session else False,
            )
        return True

    @staticmethod
    def _is_nothing_to_stop(error: TaskPulseError) -> bool:
        if isinstance(error, NotFound | RequestRejected):
            return True
        return error.status_code in _NOTHING_TO_STOP_STATUSES
