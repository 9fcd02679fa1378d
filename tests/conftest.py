"""全局 pytest 配置 -- 基于 httpx.MockTransport 的假后端 + ApiClient fixture"""

from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio
from taskpulse.client.http import ApiClient
from taskpulse.client.protocols import StaticTokenProvider

BASE_URL = "http://api.test"

Route = httpx.Response | tuple[int, Any] | Callable[[httpx.Request], Any]


class FakeBackend:
    """按 (method, path) 路由的假后端，记录收到的全部请求

    未注册的路由返回 404。
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Route] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, route: Route) -> None:
        self.routes[(method.upper(), path)] = route

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"detail": "Not Found"})
        if isinstance(route, httpx.Response):
            return route
        if isinstance(route, tuple):
            status, body = route
            return httpx.Response(status, json=body)
        result = route(request)
        if isinstance(result, httpx.Response):
            return result
        return await result


@pytest.fixture
def backend() -> FakeBackend:
    """空路由表的假后端"""
    return FakeBackend()


@pytest_asyncio.fixture
async def api(backend: FakeBackend) -> AsyncGenerator[ApiClient, None]:
    """指向假后端的已认证 ApiClient"""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(backend.handle))
    client = ApiClient(
        StaticTokenProvider("test-token"),
        base_url=BASE_URL,
        http_client=http_client,
    )
    yield client
    await http_client.aclose()
