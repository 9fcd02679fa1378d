"""taskpulse Client -- 后端 API 访问、计时器控制与仪表盘刷新

client 包的公开接口导出。
"""

# 配置与服务
from .config import ClientConfig, load_client_config
from .dashboard_service import DashboardService, TaskBoardService, TaskBoardView

# 异常
from .exceptions import (
    AccessDenied,
    AlreadyRunningConflict,
    AuthRequired,
    InvalidTransition,
    NotFound,
    RequestRejected,
    TaskPulseError,
    TransientFetchError,
)
from .http import ApiClient
from .protocols import StaticTokenProvider, TokenProvider
from .refresh import RefreshGate
from .resolver import ActiveTimerResolver, TimerResolution
from .task_service import TaskService
from .timer import TimerController, TimerSessionStore, TimerTransition

__all__ = [
    "ApiClient",
    "TokenProvider",
    "StaticTokenProvider",
    "ClientConfig",
    "load_client_config",
    "TaskService",
    "TimerController",
    "TimerSessionStore",
    "TimerTransition",
    "ActiveTimerResolver",
    "TimerResolution",
    "RefreshGate",
    "DashboardService",
    "TaskBoardService",
    "TaskBoardView",
    "TaskPulseError",
    "AuthRequired",
    "AccessDenied",
    "NotFound",
    "InvalidTransition",
    "RequestRejected",
    "AlreadyRunningConflict",
    "TransientFetchError",
]
