"""RefreshGate -- 丢弃被更新刷新取代的过期响应

每次刷新分配单调递增序号；响应到达时若序号已不是最新发出的，
结果（包括失败）直接丢弃，不覆盖更新的状态。
"""

from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

import structlog

log = structlog.get_logger()

T = TypeVar("T")


class RefreshGate(Generic[T]):
    """单个数据视图的刷新序号闸门"""

    def __init__(self, name: str = "refresh") -> None:
        self._name = name
        self._issued = 0
        self._accepted_seq = 0
        self._value: T | None = None

    @property
    def latest_issued(self) -> int:
        return self._issued

    @property
    def accepted_seq(self) -> int:
        """当前保留结果对应的序号，0 表示尚无结果"""
        return self._accepted_seq

    @property
    def value(self) -> T | None:
        """最近一次被接受的结果"""
        return self._value

    def issue(self) -> int:
        """发出新刷新，返回其序号"""
        self._issued += 1
        return self._issued

    def is_current(self, seq: int) -> bool:
        return seq == self._issued

    def accept(self, seq: int, value: T) -> bool:
        """提交刷新结果，过期序号返回 False 且不改变状态"""
        if not self.is_current(seq):
            log.info(
                "stale_refresh_discarded",
                gate=self._name,
                seq=seq,
                latest_issued=self._issued,
            )
            return False
        self._value = value
        self._accepted_seq = seq
        return True

    async def run(
        self,
        fetch: Callable[[], Awaitable[Any]],
        finalize: Callable[[Any], T] | None = None,
    ) -> T | None:
        """执行一次带序号的刷新

        Args:
            fetch: 获取数据的协程函数
            finalize: 仅在结果仍为最新时调用（可修改本地状态的步骤放在这里）

        Returns:
            被接受的结果；过期时返回 None（当前保留值见 value）

        Raises:
            fetch 抛出的异常 -- 仅当该刷新仍是最新时；过期刷新的失败被丢弃
        """
        seq = self.issue()
        try:
            fetched = await fetch()
        except Exception as e:
            if self.is_current(seq):
                raise
            log.info(
                "stale_refresh_failure_discarded",
                gate=self._name,
                seq=seq,
                error_type=type(e).__name__,
            )
            return None

        if not self.is_current(seq):
            log.info(
                "stale_refresh_discarded",
                gate=self._name,
                seq=seq,
                latest_issued=self._issued,
            )
            return None

        value = finalize(fetched) if finalize is not None else fetched
        self.accept(seq, value)
        return value
