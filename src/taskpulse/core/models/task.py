"""Task / TimerSession Domain Model

Task 由后端在 ticket 拆分时创建，本客户端只读取并通过状态/计时器操作改变它。
TimerSession 是客户端本地唯一跨刷新保留的状态。
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import HELD_STATES, TaskPriority, TaskStatus, TimerState


class ActiveTimerInfo(BaseModel):
    """服务端活动计时器记录（客户透明视图 / active-timer 接口）"""

    task_id: str = Field(default="", description="任务 ID")
    status: str = Field(default="active", description="active / paused，原样保留")
    start_time: datetime | None = Field(default=None, description="开始时间，未知为 None")
    task_title: str = Field(default="", description="任务标题")
    user_id: str = Field(default="", description="计时者 ID")
    user_name: str = Field(default="", description="计时者名称")

    @property
    def is_paused(self) -> bool:
        return self.status == TimerState.PAUSED


class Task(BaseModel):
    """Task 数据模型

    status 为开放集合：未知值按原样透传。
    is_being_worked_on 为派生字段，由 ActiveTimerResolver 计算，不信任服务端。
    """

    id: str = Field(description="服务端分配的不可变 ID，缺失时为空串")
    title: str = Field(default="", description="任务标题（action 或 title）")
    assigned_to: str = Field(default="", description="被分配用户 ID")
    status: str = Field(default=TaskStatus.PENDING, description="任务状态")
    priority: str = Field(default=TaskPriority.MEDIUM, description="优先级")
    project_id: str | None = Field(default=None, description="所属项目 ID")
    ticket_id: str | None = Field(default=None, description="所属 ticket ID")
    project_name: str = Field(default="", description="项目名称（列表上下文）")
    ticket_message: str = Field(default="", description="ticket 内容（客户视图）")
    total_time_minutes: int = Field(default=0, ge=0, description="累计记录分钟数")
    created_at: datetime = Field(description="创建时间")
    is_being_worked_on: bool = Field(default=False, description="是否正在计时（派生）")
    active_timer: ActiveTimerInfo | None = Field(default=None, description="透明视图计时信息")

    @property
    def is_active(self) -> bool:
        return self.status == TaskStatus.IN_PROGRESS

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED


class TimerSession(BaseModel):
    """计时会话 -- 单用户同一时刻最多一个 running/paused 会话

    inferred=True 表示会话由 time-summary 接口推断，
    该接口无法区分 paused 与 running，state 一律为 running。
    """

    task_id: str = Field(description="任务 ID")
    owner_id: str = Field(default="", description="计时者 ID")
    state: TimerState = Field(default=TimerState.IDLE, description="本地计时器状态")
    started_at: datetime | None = Field(
        default=None,
        description="最近一次进入 running 的时间（resume 时重算），未知为 None",
    )
    task_title: str = Field(default="", description="任务标题")
    inferred: bool = Field(default=False, description="是否为推断结果（精度受限）")
    source: str = Field(default="local", description="来源：local / active_timer / time_summary")

    @property
    def is_held(self) -> bool:
        """是否占用计时器（running 或 paused）"""
        return self.state in HELD_STATES


class TimeLogEntry(BaseModel):
    """计时历史记录"""

    id: str = Field(default="")
    task_id: str = Field(default="")
    action: str = Field(default="", description="start / pause / resume / stop")
    timestamp: datetime = Field(description="记录时间")
    note: str = Field(default="")
    duration_minutes: int = Field(default=0, ge=0)
