"""ClientConfig -- API 客户端配置加载

从环境变量加载配置，不硬编码后端地址。
"""

import os

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()

DEFAULT_TIMEOUT_S = 30


class ClientConfig(BaseModel):
    """API 客户端配置 -- 从环境变量加载

    环境变量:
        TASKPULSE_API_URL: 后端基础地址（默认 http://localhost:8000）
        TASKPULSE_API_TOKEN: bearer token（CLI 使用）
        TASKPULSE_API_TIMEOUT_S: 请求超时（秒，默认 30）
        TASKPULSE_USER_ID: 当前用户 ID（计时会话归属）
    """

    api_base_url: str = Field(
        default="http://localhost:8000",
        description="后端 API 基础 URL",
    )
    api_token: SecretStr = Field(
        default=SecretStr(""),
        description="bearer token（为空表示未登录）",
    )
    timeout_s: int = Field(
        default=DEFAULT_TIMEOUT_S,
        ge=1,
        description="HTTP 请求超时（秒）",
    )
    user_id: str = Field(
        default="",
        description="当前用户 ID",
    )


def load_client_config() -> ClientConfig:
    """从环境变量加载客户端配置

    环境变量映射:
        TASKPULSE_API_URL -> api_base_url
        TASKPULSE_API_TOKEN -> api_token
        TASKPULSE_API_TIMEOUT_S -> timeout_s（非法值记录 warning 并使用默认值）
        TASKPULSE_USER_ID -> user_id

    Returns:
        ClientConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("TASKPULSE_API_URL"):
        kwargs["api_base_url"] = val

    if val := os.environ.get("TASKPULSE_API_TOKEN"):
        kwargs["api_token"] = SecretStr(val)

    if val := os.environ.get("TASKPULSE_API_TIMEOUT_S"):
        try:
            timeout = int(val)
            if timeout < 1:
                raise ValueError(val)
            kwargs["timeout_s"] = timeout
        except ValueError:
            log.warning(
                "invalid_timeout_config",
                env_var="TASKPULSE_API_TIMEOUT_S",
                value=val,
                fallback=DEFAULT_TIMEOUT_S,
            )

    if val := os.environ.get("TASKPULSE_USER_ID"):
        kwargs["user_id"] = val

    return ClientConfig(**kwargs)
