"""ApiClient -- 带认证的 httpx 封装

所有请求携带 Bearer token 与 JSON 头，并把 HTTP 状态映射到异常体系：
401 -> AuthRequired, 403 -> AccessDenied, 404 -> NotFound,
422 -> RequestRejected, 其他非 2xx / 网络故障 -> TransientFetchError。
没有 token 时直接失败，不发出请求。
"""

import time
from typing import Any

import httpx
import structlog
from ulid import ULID

from .config import ClientConfig
from .exceptions import (
    AccessDenied,
    AuthRequired,
    NotFound,
    RequestRejected,
    TaskPulseError,
    TransientFetchError,
)
from .protocols import StaticTokenProvider, TokenProvider

log = structlog.get_logger()

# 错误 detail 截断长度
DETAIL_MAX_LENGTH = 300


def _extract_detail(response: httpx.Response) -> str:
    """提取后端错误 detail（FastAPI 字符串或校验错误列表）"""
    try:
        body = response.json()
    except ValueError:
        return response.text[:DETAIL_MAX_LENGTH].strip()

    if isinstance(body, dict):
        detail = body.get("detail", body.get("message", ""))
        if isinstance(detail, str):
            return detail[:DETAIL_MAX_LENGTH]
        if isinstance(detail, list):
            messages = [
                str(item.get("msg", item)) if isinstance(item, dict) else str(item)
                for item in detail
            ]
            return "; ".join(messages)[:DETAIL_MAX_LENGTH]
        if isinstance(detail, dict):
            return str(detail.get("message", detail))[:DETAIL_MAX_LENGTH]
    return ""


def _with_detail(message: str, detail: str) -> str:
    return f"{message} -- {detail}" if detail else message


class ApiClient:
    """后端 HTTP 客户端

    token_provider 与 http_client 在构造时注入，方便测试替身。
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: str = "http://localhost:8000",
        timeout_s: int = 30,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """初始化 API 客户端

        Args:
            token_provider: 提供 bearer token 的外部协作者
            base_url: 后端基础 URL
            timeout_s: 请求超时（秒）
            http_client: 外部传入的 httpx.AsyncClient，None 时内部创建并负责关闭
        """
        self._token_provider = token_provider
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout_s)

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        token_provider: TokenProvider | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "ApiClient":
        """按 ClientConfig 构造，未提供 token_provider 时使用配置中的 token"""
        provider = token_provider or StaticTokenProvider(config.api_token.get_secret_value())
        return cls(
            token_provider=provider,
            base_url=config.api_base_url,
            timeout_s=config.timeout_s,
            http_client=http_client,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def patch(self, path: str, json: Any = None) -> Any:
        return await self.request("PATCH", path, json=json)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """发送请求并返回解码后的 JSON（空响应体返回 {}）

        Raises:
            AuthRequired: 没有 token（不发请求）或 401
            AccessDenied: 403
            NotFound: 404
            RequestRejected: 422
            TransientFetchError: 其他非 2xx、网络故障、无效 JSON
        """
        token = await self._token_provider.get_token()
        if not token:
            log.warning("api_request_without_token", method=method, path=path)
            raise AuthRequired()

        request_id = str(ULID())
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-Request-ID": request_id,
        }
        start_time = time.monotonic()

        with structlog.contextvars.bound_contextvars(
            request_id=request_id, method=method, path=path
        ):
            try:
                response = await self._http.request(
                    method,
                    f"{self._base_url}{path}",
                    headers=headers,
                    json=json,
                    params=params,
                    timeout=self._timeout_s,
                )
            except httpx.TransportError as e:
                log.warning(
                    "api_request_transport_error",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise TransientFetchError(
                    f"{method} {path} 请求失败: 无法连接后端 ({type(e).__name__})",
                    original_error=e,
                ) from e

            duration_ms = int((time.monotonic() - start_time) * 1000)
            status = response.status_code

            if response.is_success:
                log.debug("api_request_completed", status_code=status, duration_ms=duration_ms)
                return self._decode_body(method, path, response)

            detail = _extract_detail(response)
            log.info(
                "api_request_failed",
                status_code=status,
                duration_ms=duration_ms,
                detail=detail,
            )
            raise self._map_error(method, path, status, detail)

    @staticmethod
    def _decode_body(method: str, path: str, response: httpx.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise TransientFetchError(
                f"{method} {path} 返回了无效 JSON",
                status_code=response.status_code,
                original_error=e,
            ) from e

    @staticmethod
    def _map_error(method: str, path: str, status: int, detail: str) -> TaskPulseError:
        if status == 401:
            return AuthRequired(_with_detail("认证已失效，请重新登录", detail), status_code=401)
        if status == 403:
            return AccessDenied(_with_detail(f"访问被拒绝: {method} {path}", detail), detail=detail)
        if status == 404:
            return NotFound(_with_detail(f"资源不存在: {method} {path}", detail), detail=detail)
        if status == 422:
            return RequestRejected(
                _with_detail(f"请求被拒绝: {method} {path} (HTTP 422)", detail), detail=detail
            )
        return TransientFetchError(
            _with_detail(f"{method} {path} 失败: HTTP {status}", detail),
            status_code=status,
            detail=detail,
        )
