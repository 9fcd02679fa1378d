"""structlog 配置 + CLI 调用上下文

每次 CLI 调用生成 invocation_id，与命令、角色、用户一起绑定到 structlog contextvars，
之后的 api_request_* / timer_* 等事件都带上这些字段，便于在聚合日志中按调用串联。

日志统一写 stderr，stdout 只留给命令的 JSON 结果。
"""

import logging
import os
import sys

import structlog
from ulid import ULID

LOG_FORMATS = ("dev", "json")


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def setup_logging(log_format: str | None = None, level: str | None = None) -> None:
    """初始化 structlog（经由标准库 logging 输出）

    参数优先，其次环境变量：
    - TASKPULSE_LOG_FORMAT: "dev"（默认）或 "json"，未知值按 dev 处理
    - TASKPULSE_LOG_LEVEL: 默认 WARNING，CLI 输出不被 info 事件淹没
    """
    log_format = log_format or os.environ.get("TASKPULSE_LOG_FORMAT", "dev")
    level = level or os.environ.get("TASKPULSE_LOG_LEVEL", "WARNING")

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_renderer(log_format),
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    # httpx 自身的请求日志与 api_request_* 事件重复
    logging.getLogger("httpx").setLevel(logging.WARNING)


def bind_invocation_context(
    command: str,
    *,
    user_id: str | None = None,
    role: str | None = None,
) -> str:
    """为一次 CLI 调用绑定日志上下文，返回 invocation_id

    先清空已有 contextvars；为 None 的字段不绑定。
    """
    invocation_id = str(ULID())
    context = {"invocation_id": invocation_id, "command": command}
    if user_id:
        context["user_id"] = user_id
    if role:
        context["role"] = str(role)
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**context)
    return invocation_id
