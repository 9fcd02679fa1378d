"""TokenProvider 协议 -- 认证 token 的外部来源

token 存储不在本包范围内，这里只消费"一个 bearer token 或者没有"。
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class TokenProvider(Protocol):
    """提供 bearer token 的外部协作者"""

    async def get_token(self) -> str | None:
        """返回当前 token，未登录时返回 None"""
        ...


class StaticTokenProvider:
    """固定 token（CLI / 测试使用）"""

    def __init__(self, token: str | None) -> None:
        self._token = token or None

    async def get_token(self) -> str | None:
        return self._token
