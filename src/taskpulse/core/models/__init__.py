"""taskpulse Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .dashboard import (
    AdminSummary,
    ClientSummary,
    DashboardSummary,
    ProjectTaskStats,
    StaffSummary,
)
from .enums import (
    HELD_STATES,
    VALID_TRANSITIONS,
    Role,
    TaskPriority,
    TaskStatus,
    TimerAction,
    TimerState,
    next_state,
    validate_transition,
)
from .project import Project, ProjectClient, ProjectTicket
from .task import ActiveTimerInfo, Task, TimeLogEntry, TimerSession

__all__ = [
    # 枚举
    "TaskStatus",
    "TaskPriority",
    "TimerState",
    "TimerAction",
    "Role",
    # 状态机
    "VALID_TRANSITIONS",
    "HELD_STATES",
    "validate_transition",
    "next_state",
    # Task
    "Task",
    "TimerSession",
    "ActiveTimerInfo",
    "TimeLogEntry",
    # Project
    "Project",
    "ProjectClient",
    "ProjectTicket",
    # Dashboard
    "ProjectTaskStats",
    "AdminSummary",
    "StaffSummary",
    "ClientSummary",
    "DashboardSummary",
]
