"""ActiveTimerResolver -- 跨接口推断当前计时器状态

没有推送通道，也没有在所有界面上都权威的单一接口，按优先级依次尝试：
1. GET /tasks/my/active-timer：明确回答（找到 / null）即采用；
   404 时先看 time-summary 是否标记了活动任务，没有才视为"没有计时器"
2. 该接口不可用或出错时，扫描 GET /tasks/my/time-summary 中 has_active_timer 的任务，
   合成 running 会话（inferred=True：该接口无法区分 paused 与 running）
3. 两者都失败：报告"未知"，不抛出 -- 计时器查询是建议性的，不能阻塞仪表盘渲染
"""

from collections.abc import Iterable, Mapping

import structlog
from pydantic import BaseModel, Field

from ..core.decoder import ResilientDecoder, as_mapping
from ..core.models import ActiveTimerInfo, Task, TimerSession, TimerState
from .exceptions import NotFound
from .http import ApiClient
from .timer import TimerController

log = structlog.get_logger()

SOURCE_ACTIVE_TIMER = "active_timer"
SOURCE_TIME_SUMMARY = "time_summary"
SOURCE_UNKNOWN = "unknown"

_TRUTHY_FLAGS = (True, "true", "True", "1")


class TimerResolution(BaseModel):
    """一次解析的结果

    definitive=False 表示两个来源都失败，调用方应保留本地会话而不是清空它。
    """

    session: TimerSession | None = Field(default=None)
    source: str = Field(default=SOURCE_UNKNOWN)
    definitive: bool = Field(default=False)

    @property
    def state(self) -> TimerState:
        return self.session.state if self.session is not None else TimerState.IDLE


class _NotDefinitive(Exception):
    """active-timer 接口返回了无法判定的形态"""


class ActiveTimerResolver:
    """活动计时器解析器"""

    def __init__(
        self,
        api: ApiClient,
        owner_id: str = "",
        decoder: ResilientDecoder | None = None,
    ) -> None:
        self._api = api
        self._owner_id = owner_id
        self._decoder = decoder or ResilientDecoder()

    async def resolve(self) -> TimerResolution:
        """按优先级解析当前用户的计时器状态，从不抛出"""
        # 1. 专用 active-timer 接口
        primary_error: Exception | None = None
        try:
            return await self._from_active_timer()
        except Exception as e:
            primary_error = e
            log.warning(
                "active_timer_endpoint_failed_attempting_summary",
                error=str(e),
                error_type=type(e).__name__,
            )

        # 2. time-summary 兜底
        try:
            return await self._from_time_summary()
        except Exception as summary_error:
            # 3. 两者均失败：未知，不向上传播
            log.warning(
                "active_timer_unresolved",
                primary_error=str(primary_error),
                summary_error=str(summary_error),
            )
            return TimerResolution(session=None, source=SOURCE_UNKNOWN, definitive=False)

    async def _from_active_timer(self) -> TimerResolution:
        try:
            raw = await self._api.get("/tasks/my/active-timer")
        except NotFound:
            return await self._after_not_found()

        data = as_mapping(raw)
        if "active_timer" in data:
            timer_raw = data["active_timer"]
            if timer_raw is None:
                return TimerResolution(session=None, source=SOURCE_ACTIVE_TIMER, definitive=True)
        elif "task_id" in data:
            # 部分后端版本直接返回计时器对象
            timer_raw = data
        else:
            raise _NotDefinitive(f"unexpected active-timer payload keys: {sorted(data)}")

        if not isinstance(timer_raw, Mapping):
            raise _NotDefinitive("active_timer is not an object")

        session = self._decoder.timer_session(timer_raw, owner_id=self._owner_id)
        if not session.task_id:
            raise _NotDefinitive("active_timer without task_id")

        log.debug("active_timer_resolved", task_id=session.task_id, state=session.state)
        return TimerResolution(session=session, source=SOURCE_ACTIVE_TIMER, definitive=True)

    async def _after_not_found(self) -> TimerResolution:
        """404：没有计时器，或后端未部署该接口

        time-summary 标记了活动任务时采用推断结果；否则（含 time-summary 失败）按"没有计时器"处理。
        """
        try:
            inferred = await self._from_time_summary()
        except Exception as e:
            log.debug("active_timer_not_found", summary_error=str(e))
            return TimerResolution(session=None, source=SOURCE_ACTIVE_TIMER, definitive=True)
        if inferred.session is None:
            log.debug("active_timer_not_found")
            return TimerResolution(session=None, source=SOURCE_ACTIVE_TIMER, definitive=True)
        return inferred

    async def _from_time_summary(self) -> TimerResolution:
        raw = await self._api.get("/tasks/my/time-summary")

        for entry in self._decoder.time_summary_entries(raw):
            if entry.get("has_active_timer") not in _TRUTHY_FLAGS:
                continue
            task_id = self._decoder.identifier(entry, "task_id", "id")
            if not task_id:
                continue
            session = TimerSession(
                task_id=task_id,
                owner_id=self._owner_id,
                state=TimerState.RUNNING,
                started_at=None,
                task_title=self._decoder.string(entry, "task_title", "action", "title"),
                inferred=True,
                source=SOURCE_TIME_SUMMARY,
            )
            log.info("active_timer_inferred_from_summary", task_id=task_id)
            return TimerResolution(session=session, source=SOURCE_TIME_SUMMARY, definitive=True)

        return TimerResolution(session=None, source=SOURCE_TIME_SUMMARY, definitive=True)

    async def resolve_and_reconcile(self, controller: TimerController) -> TimerResolution:
        """解析并把结果同步到本地会话

        未知时，或解析期间本地执行过计时器操作时，保留本地会话等待下次刷新确认。
        """
        epoch = controller.mutation_epoch
        resolution = await self.resolve()
        if resolution.definitive:
            controller.reconcile(resolution.session, since_epoch=epoch)
        return resolution

    async def client_active_timers(self) -> dict[str, ActiveTimerInfo]:
        """客户透明视图：其项目内的活动计时器，task_id -> 计时信息

        404 或任何失败降级为空映射，不向调用方报错。
        """
        try:
            raw = await self._api.get("/client/active-timers")
        except NotFound:
            return {}
        except Exception as e:
            log.warning(
                "client_active_timers_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return {}

        timers: dict[str, ActiveTimerInfo] = {}
        for item in self._decoder.list_payload(raw, "active_timers"):
            info = self._decoder.active_timer(item)
            if info.task_id:
                timers[info.task_id] = info
        return timers

    @staticmethod
    def mark_worked_on(tasks: Iterable[Task], timers: Mapping[str, ActiveTimerInfo]) -> list[Task]:
        """按透明视图映射标记任务；不在映射中的任务标记为未在进行"""
        return [
            task.model_copy(
                update={
                    "is_being_worked_on": task.id in timers,
                    "active_timer": timers.get(task.id),
                }
            )
            for task in tasks
        ]

    @staticmethod
    def mark_own_session(tasks: Iterable[Task], session: TimerSession | None) -> list[Task]:
        """按本地会话标记员工自己的任务"""
        active_id = session.task_id if session is not None and session.is_held else None
        return [
            task.model_copy(update={"is_being_worked_on": task.id == active_id})
            for task in tasks
        ]
