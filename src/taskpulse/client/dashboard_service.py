"""DashboardService -- 角色仪表盘获取 + 组合 + 刷新闸门

流程（每个刷新周期）：
1. 获取角色对应的原始 payload（数据类请求，失败向上抛出）
2. 交给 DashboardComposer 纯函数组合为摘要
3. 通过 RefreshGate 丢弃被更新刷新取代的结果

任务看板（staff / client）在同一周期内叠加建议性的计时器信息，
计时器查询失败不影响主数据。
"""

import asyncio

import structlog
from pydantic import BaseModel, Field

from ..core.aggregator import TaskAggregator
from ..core.composer import DashboardComposer
from ..core.decoder import ResilientDecoder
from ..core.models import (
    AdminSummary,
    ClientSummary,
    DashboardSummary,
    ProjectTaskStats,
    Role,
    StaffSummary,
    Task,
    TimerSession,
)
from .http import ApiClient
from .refresh import RefreshGate
from .resolver import ActiveTimerResolver, TimerResolution
from .task_service import TaskService
from .timer import TimerController

log = structlog.get_logger()


class TaskBoardView(BaseModel):
    """一次刷新得到的任务看板"""

    role: Role
    tasks: list[Task] = Field(default_factory=list)
    session: TimerSession | None = Field(default=None, description="员工视图的本地会话")
    timer_source: str = Field(default="unknown")
    project_stats: dict[str, ProjectTaskStats] = Field(default_factory=dict)
    total_logged_minutes: int = Field(default=0, ge=0)


class DashboardService:
    """仪表盘服务 -- 依赖在构造时注入"""

    def __init__(
        self,
        api: ApiClient,
        composer: DashboardComposer | None = None,
        decoder: ResilientDecoder | None = None,
    ) -> None:
        self._api = api
        self._decoder = decoder or ResilientDecoder()
        self._composer = composer or DashboardComposer(self._decoder)
        self._gates: dict[Role, RefreshGate[DashboardSummary]] = {
            role: RefreshGate(name=f"dashboard:{role}") for role in Role
        }

    async def fetch_admin(self) -> AdminSummary:
        """GET /admin/dashboard（403 -> AccessDenied）"""
        raw = await self._api.get("/admin/dashboard")
        return self._composer.compose_admin(raw)

    async def fetch_staff(self) -> StaffSummary:
        """GET /tasks/my/active + GET /tasks/my，两个请求互相独立，并发获取"""
        active_raw, all_raw = await asyncio.gather(
            self._api.get("/tasks/my/active"),
            self._api.get("/tasks/my"),
        )
        return self._composer.compose_staff(active_raw, all_raw)

    async def fetch_client(self) -> ClientSummary:
        """GET /client/projects"""
        raw = await self._api.get("/client/projects")
        return self._composer.compose_client(raw)

    async def fetch(self, role: Role | str) -> DashboardSummary:
        role = Role(role)
        if role == Role.ADMIN:
            summary: DashboardSummary = await self.fetch_admin()
        elif role == Role.STAFF:
            summary = await self.fetch_staff()
        else:
            summary = await self.fetch_client()
        log.info("dashboard_composed", role=role)
        return summary

    async def refresh(self, role: Role | str) -> DashboardSummary | None:
        """带序号的刷新；被更新刷新取代时返回 None，最新结果见 latest()"""
        role = Role(role)
        return await self._gates[role].run(lambda: self.fetch(role))

    def latest(self, role: Role | str) -> DashboardSummary | None:
        return self._gates[Role(role)].value


class TaskBoardService:
    """任务看板：主数据 + 建议性计时器信息"""

    def __init__(
        self,
        tasks: TaskService,
        resolver: ActiveTimerResolver,
        controller: TimerController,
        aggregator: TaskAggregator | None = None,
    ) -> None:
        self._tasks = tasks
        self._resolver = resolver
        self._controller = controller
        self._aggregator = aggregator or TaskAggregator()
        self._gates: dict[Role, RefreshGate[TaskBoardView]] = {
            role: RefreshGate(name=f"board:{role}") for role in (Role.STAFF, Role.CLIENT)
        }

    async def _fetch_staff(self) -> tuple[list[Task], TimerResolution, int]:
        """任务列表（失败抛出）+ 计时器解析（失败降级）+ 请求发出前的本地变更计数"""
        epoch = self._controller.mutation_epoch
        tasks, resolution = await asyncio.gather(
            self._tasks.my_tasks(),
            self._resolver.resolve(),
        )
        return tasks, resolution, epoch

    async def load_staff(self) -> TaskBoardView:
        """员工看板（不经过刷新闸门）"""
        return self._build_staff_view(await self._fetch_staff())

    def _build_staff_view(
        self, fetched: tuple[list[Task], TimerResolution, int]
    ) -> TaskBoardView:
        tasks, resolution, epoch = fetched
        # 与服务端真相对齐；两个来源都失败，或刷新期间本地计时器有过操作时保留本地会话
        if resolution.definitive:
            self._controller.reconcile(resolution.session, since_epoch=epoch)
        session = self._controller.session
        marked = ActiveTimerResolver.mark_own_session(tasks, session)
        return TaskBoardView(
            role=Role.STAFF,
            tasks=self._aggregator.sort_for_display(marked),
            session=session,
            timer_source=resolution.source,
            project_stats=self._aggregator.aggregate(marked),
            total_logged_minutes=self._aggregator.total_logged_minutes(marked),
        )

    async def load_client(self) -> TaskBoardView:
        """客户看板：tickets 展开的任务 + 项目统计 + 透明视图计时标记"""
        tickets_raw, timers = await asyncio.gather(
            self._tasks.client_tickets_raw(),
            self._resolver.client_active_timers(),
        )
        tasks, seeds = self._aggregator.flatten_tickets(tickets_raw)
        marked = ActiveTimerResolver.mark_worked_on(tasks, timers)
        return TaskBoardView(
            role=Role.CLIENT,
            tasks=self._aggregator.sort_for_display(marked),
            timer_source="client_active_timers",
            project_stats=self._aggregator.aggregate(marked, seeds),
            total_logged_minutes=self._aggregator.total_logged_minutes(marked),
        )

    async def refresh(self, role: Role | str) -> TaskBoardView | None:
        role = Role(role)
        if role not in self._gates:
            raise ValueError(f"任务看板不支持角色: {role}")
        if role == Role.STAFF:
            # 会话对齐放在 finalize 中：过期刷新不会覆盖更新的计时器状态
            return await self._gates[role].run(self._fetch_staff, self._build_staff_view)
        return await self._gates[role].run(self.load_client)

    def latest(self, role: Role | str) -> TaskBoardView | None:
        gate = self._gates.get(Role(role))
        return gate.value if gate is not None else None
