"""Client 异常体系

- 数据类请求（任务列表、仪表盘主数据）的失败总是向上抛出
- 建议性查询（活动计时器交叉校验）在内部降级，不抛出
"""


class TaskPulseError(Exception):
    """client 包基础异常"""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        detail: str = "",
        recoverable: bool = True,
    ) -> None:
        """
        Args:
            message: 可直接展示的错误描述
            status_code: HTTP 状态码，本地错误为 None
            detail: 后端返回的 detail 文本
            recoverable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.detail = detail
        self.recoverable = recoverable


class AuthRequired(TaskPulseError):
    """没有可用 token（不发请求）或后端返回 401"""

    def __init__(
        self,
        message: str = "需要登录：未找到有效的认证 token",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, recoverable=False)


class AccessDenied(TaskPulseError):
    """后端返回 403，原样交给调用方，不重试"""

    def __init__(self, message: str, detail: str = "") -> None:
        super().__init__(message, status_code=403, detail=detail, recoverable=False)


class NotFound(TaskPulseError):
    """404 -- 建议性接口上视为"无数据"而非错误"""

    def __init__(self, message: str, detail: str = "") -> None:
        super().__init__(message, status_code=404, detail=detail, recoverable=False)


class InvalidTransition(TaskPulseError):
    """本地状态机拒绝的计时器操作，在发出任何请求之前抛出"""

    def __init__(self, task_id: str, from_state: str, action: str) -> None:
        super().__init__(
            f"非法计时器操作: 任务 {task_id} 处于 {from_state}，不能执行 {action}",
            recoverable=False,
        )
        self.task_id = task_id
        self.from_state = from_state
        self.action = action


class RequestRejected(TaskPulseError):
    """后端返回 422（校验失败 / 状态冲突）"""

    def __init__(self, message: str, detail: str = "") -> None:
        super().__init__(message, status_code=422, detail=detail, recoverable=False)


class AlreadyRunningConflict(RequestRejected):
    """start 时后端返回 422：该用户已有另一个活动计时器

    调用方可据此提供"停止当前任务并开始此任务"的选项。
    """

    def __init__(self, task_id: str, detail: str = "") -> None:
        message = f"无法开始任务 {task_id} 的计时：已有其他计时器在运行"
        if detail:
            message = f"{message} -- {detail}"
        super().__init__(message, detail=detail)
        self.task_id = task_id


class TransientFetchError(TaskPulseError):
    """其他非 2xx 响应、网络故障或无效 JSON"""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        detail: str = "",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, detail=detail, recoverable=True)
        self.original_error = original_error
