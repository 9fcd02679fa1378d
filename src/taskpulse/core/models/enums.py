"""枚举定义 -- 任务状态、优先级、计时器状态机、角色

包含 TimerState 状态机、VALID_TRANSITIONS 合法流转映射，
以及 TaskStatus / TaskPriority / Role 枚举。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """Task 状态 -- 开放集合，未知值按原样透传（以 str 保存）"""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(StrEnum):
    """Task 优先级，缺省为 medium"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TimerState(StrEnum):
    """客户端本地的计时器视图"""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class TimerAction(StrEnum):
    """计时器操作（对应 POST /tasks/{id}/timer/{action}）"""

    START = "start"
    STOP = "stop"
    PAUSE = "pause"
    RESUME = "resume"


class Role(StrEnum):
    """仪表盘角色"""

    ADMIN = "admin"
    STAFF = "staff"
    CLIENT = "client"


# 计时器合法流转：idle --start--> running --pause--> paused --resume--> running
# running/paused --stop--> idle
VALID_TRANSITIONS: dict[TimerState, dict[TimerAction, TimerState]] = {
    TimerState.IDLE: {TimerAction.START: TimerState.RUNNING},
    TimerState.RUNNING: {
        TimerAction.PAUSE: TimerState.PAUSED,
        TimerAction.STOP: TimerState.IDLE,
    },
    TimerState.PAUSED: {
        TimerAction.RESUME: TimerState.RUNNING,
        TimerAction.STOP: TimerState.IDLE,
    },
}

# 持有计时器的状态（单用户同一时刻最多一个）
HELD_STATES: set[TimerState] = {TimerState.RUNNING, TimerState.PAUSED}


def validate_transition(from_state: TimerState, action: TimerAction) -> bool:
    """验证计时器操作在当前状态下是否合法

    Args:
        from_state: 当前状态
        action: 要执行的操作

    Returns:
        True 如果流转合法，否则 False
    """
    return action in VALID_TRANSITIONS.get(from_state, {})


def next_state(from_state: TimerState, action: TimerAction) -> TimerState:
    """返回操作后的目标状态，非法流转抛出 KeyError"""
    return VALID_TRANSITIONS[from_state][action]
