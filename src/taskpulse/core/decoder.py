"""ResilientDecoder -- 容错 JSON -> 领域模型映射

所有 payload 在进入领域逻辑之前都经过此模块，后端 schema 漂移只在这里被吸收。
所有方法不抛异常：
- 字符串缺失或类型错误 -> ""
- 计数缺失 -> 0
- 日期宽松解析，必需时间戳失败 -> 解码时刻（now），可选时间戳失败 -> None
- 多形态字段按策略列表依次尝试，第一个命中者胜出
"""

import math
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

import structlog

from .config import (
    DEFAULT_PROJECT_PLAN,
    DEFAULT_PROJECT_STATUS,
    SOCIAL_LINKS_DELIMITER,
)
from .models import (
    ActiveTimerInfo,
    Project,
    ProjectClient,
    ProjectTicket,
    Task,
    TaskPriority,
    TaskStatus,
    TimeLogEntry,
    TimerSession,
    TimerState,
)

log = structlog.get_logger()


class _Miss:
    """策略未命中标记"""

    def __repr__(self) -> str:
        return "MISS"


MISS = _Miss()

# 解码策略：输入原始 mapping，命中返回值，未命中返回 MISS
Strategy = Callable[[Mapping[str, Any]], Any]


def first_hit(raw: Mapping[str, Any], strategies: Iterable[Strategy], default: Any = None) -> Any:
    """按顺序尝试策略，返回第一个命中值，全部未命中返回 default"""
    for strategy in strategies:
        value = strategy(raw)
        if value is not MISS:
            return value
    return default


# ============================================================
# 策略工厂
# ============================================================


def list_at(key: str) -> Strategy:
    """数组形式：raw[key] 为 list 时命中，元素转为字符串"""

    def _strategy(raw: Mapping[str, Any]) -> Any:
        value = raw.get(key)
        if isinstance(value, list):
            return [str(item).strip() for item in value if item is not None and str(item).strip()]
        return MISS

    return _strategy


def delimited_at(key: str, delimiter: str = SOCIAL_LINKS_DELIMITER) -> Strategy:
    """分隔字符串形式：raw[key] 为 str 时按分隔符切分"""

    def _strategy(raw: Mapping[str, Any]) -> Any:
        value = raw.get(key)
        if isinstance(value, str):
            return [part.strip() for part in value.split(delimiter) if part.strip()]
        return MISS

    return _strategy


def mapping_at(key: str) -> Strategy:
    """嵌套对象：raw[key] 为 dict 时命中"""

    def _strategy(raw: Mapping[str, Any]) -> Any:
        value = raw.get(key)
        if isinstance(value, Mapping):
            return value
        return MISS

    return _strategy


def first_mapping_in_list_at(key: str) -> Strategy:
    """join 查询返回的单元素数组：取第一个 dict 元素"""

    def _strategy(raw: Mapping[str, Any]) -> Any:
        value = raw.get(key)
        if isinstance(value, list):
            for item in value:
                if isinstance(item, Mapping):
                    return item
        return MISS

    return _strategy


def str_at(key: str) -> Strategy:
    """非空字符串"""

    def _strategy(raw: Mapping[str, Any]) -> Any:
        value = raw.get(key)
        if isinstance(value, str) and value:
            return value
        return MISS

    return _strategy


def id_at(key: str) -> Strategy:
    """标识符：字符串或整数（整数转为字符串），bool 不算"""

    def _strategy(raw: Mapping[str, Any]) -> Any:
        value = raw.get(key)
        if isinstance(value, bool):
            return MISS
        if isinstance(value, str) and value:
            return value
        if isinstance(value, int):
            return str(value)
        return MISS

    return _strategy


def int_at(key: str) -> Strategy:
    """计数：int / 整数值 float / 数字字符串，负数截断为 0"""

    def _strategy(raw: Mapping[str, Any]) -> Any:
        value = raw.get(key)
        if isinstance(value, bool):
            return MISS
        if isinstance(value, int):
            return max(value, 0)
        if isinstance(value, float):
            # NaN 与 ±inf（JSON 中的 NaN / Infinity / 1e400）无法转换为计数
            return max(int(value), 0) if math.isfinite(value) else MISS
        if isinstance(value, str):
            try:
                return max(int(value.strip()), 0)
            except ValueError:
                return MISS
        return MISS

    return _strategy


def nested(key: str, inner: Strategy) -> Strategy:
    """在 raw[key]（dict）内应用 inner 策略"""

    def _strategy(raw: Mapping[str, Any]) -> Any:
        value = raw.get(key)
        if isinstance(value, Mapping):
            return inner(value)
        return MISS

    return _strategy


# ============================================================
# 标量辅助
# ============================================================


def as_mapping(value: Any) -> Mapping[str, Any]:
    """非 dict 一律视为空 dict"""
    return value if isinstance(value, Mapping) else {}


def as_mapping_list(value: Any) -> list[Mapping[str, Any]]:
    """非 list 视为空 list，并丢弃非 dict 元素"""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def parse_datetime(value: Any) -> datetime | None:
    """宽松解析时间

    支持 ISO-8601（含尾部 Z、纯日期）、epoch 秒、datetime 对象。
    无时区的结果按 UTC 处理，失败返回 None。
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        return None
    elif isinstance(value, int | float):
        try:
            return datetime.fromtimestamp(value, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _datetime_at(key: str) -> Strategy:
    def _strategy(raw: Mapping[str, Any]) -> Any:
        parsed = parse_datetime(raw.get(key))
        return parsed if parsed is not None else MISS

    return _strategy


class ResilientDecoder:
    """容错解码器

    所有方法均不抛出异常；缺失的必需标识符解码为空串哨兵。
    """

    @staticmethod
    def datetime_or_now(raw: Mapping[str, Any], *keys: str) -> datetime:
        """必需时间戳：依次尝试 keys，全部失败返回解码时刻"""
        value = first_hit(raw, [_datetime_at(k) for k in keys], MISS)
        if value is MISS:
            return datetime.now(UTC)
        return value

    @staticmethod
    def datetime_or_none(raw: Mapping[str, Any], *keys: str) -> datetime | None:
        """可选时间戳：调用方需要区分"未知"与"刚刚发生"时使用"""
        return first_hit(raw, [_datetime_at(k) for k in keys], None)

    @staticmethod
    def string(raw: Mapping[str, Any], *keys: str, default: str = "") -> str:
        return first_hit(raw, [str_at(k) for k in keys], default)

    @staticmethod
    def identifier(raw: Mapping[str, Any], *keys: str) -> str:
        return first_hit(raw, [id_at(k) for k in keys], "")

    @staticmethod
    def count(raw: Mapping[str, Any], *keys: str) -> int:
        return first_hit(raw, [int_at(k) for k in keys], 0)

    @staticmethod
    def list_payload(raw: Any, *keys: str) -> list[Mapping[str, Any]]:
        """列表接口 payload：{key: [...]} 或裸数组"""
        if isinstance(raw, list):
            return as_mapping_list(raw)
        mapping = as_mapping(raw)
        for key in keys:
            if isinstance(mapping.get(key), list):
                return as_mapping_list(mapping[key])
        if mapping:
            log.debug("list_payload_key_missing", expected_keys=list(keys))
        return []

    # ------------------------------------------------------------
    # Task
    # ------------------------------------------------------------

    @classmethod
    def task(
        cls,
        raw: Any,
        *,
        project_id: str | None = None,
        project_name: str = "",
        ticket_id: str | None = None,
        ticket_message: str = "",
    ) -> Task:
        """解码单个任务

        task 自身携带的 project/ticket 信息优先，缺失时继承调用方提供的上下文。
        """
        data = as_mapping(raw)
        own_project_id = first_hit(
            data, [id_at("project_id"), nested("project", id_at("id"))], None
        )
        own_ticket_id = first_hit(
            data, [id_at("ticket_id"), nested("ticket", id_at("id"))], None
        )
        active_timer_raw = data.get("active_timer")

        return Task(
            id=cls.identifier(data, "id", "task_id"),
            title=cls.string(data, "title", "action", "task_title"),
            assigned_to=first_hit(
                data,
                [id_at("assigned_to"), id_at("assigned_to_id"), nested("assignee", id_at("id"))],
                "",
            ),
            status=cls.string(data, "status", default=TaskStatus.PENDING),
            priority=cls.string(data, "priority", default=TaskPriority.MEDIUM).lower(),
            project_id=own_project_id or project_id or None,
            ticket_id=own_ticket_id or ticket_id or None,
            project_name=first_hit(
                data,
                [str_at("project_name"), nested("project", str_at("name"))],
                project_name,
            ),
            ticket_message=first_hit(
                data,
                [str_at("ticket_message"), nested("ticket", str_at("message"))],
                ticket_message,
            ),
            total_time_minutes=cls.count(data, "total_time_minutes"),
            created_at=cls.datetime_or_now(data, "created_at"),
            active_timer=(
                cls.active_timer(active_timer_raw)
                if isinstance(active_timer_raw, Mapping)
                else None
            ),
        )

    @classmethod
    def tasks(cls, raw: Any, *keys: str) -> list[Task]:
        """解码任务列表 payload（默认 key 为 tasks）"""
        return [cls.task(item) for item in cls.list_payload(raw, *(keys or ("tasks",)))]

    # ------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------

    @classmethod
    def active_timer(cls, raw: Any) -> ActiveTimerInfo:
        data = as_mapping(raw)
        return ActiveTimerInfo(
            task_id=first_hit(data, [id_at("task_id"), nested("task", id_at("id"))], ""),
            status=cls.string(data, "status", default="active"),
            start_time=cls.datetime_or_none(data, "start_time", "started_at"),
            task_title=first_hit(
                data,
                [
                    str_at("task_title"),
                    nested("task", str_at("action")),
                    nested("task", str_at("title")),
                ],
                "",
            ),
            user_id=first_hit(data, [id_at("user_id"), nested("user", id_at("id"))], ""),
            user_name=first_hit(
                data,
                [
                    str_at("user_name"),
                    str_at("staff_name"),
                    nested("user", str_at("full_name")),
                    nested("user", str_at("username")),
                ],
                "",
            ),
        )

    @classmethod
    def timer_session(
        cls, raw: Any, owner_id: str = "", source: str = "active_timer"
    ) -> TimerSession:
        """active-timer 接口记录 -> 本地会话（可区分 paused / running）"""
        info = cls.active_timer(raw)
        state = TimerState.PAUSED if info.is_paused else TimerState.RUNNING
        return TimerSession(
            task_id=info.task_id,
            owner_id=info.user_id or owner_id,
            state=state,
            started_at=info.start_time,
            task_title=info.task_title,
            inferred=False,
            source=source,
        )

    @classmethod
    def time_summary_entries(cls, raw: Any) -> list[Mapping[str, Any]]:
        """time-summary payload 形态不固定：裸数组 / tasks / task_summaries / summary.tasks"""
        if isinstance(raw, list):
            return as_mapping_list(raw)
        data = as_mapping(raw)
        entries = first_hit(
            data,
            [
                _list_of_mappings_at("tasks"),
                _list_of_mappings_at("task_summaries"),
                nested("summary", _list_of_mappings_at("tasks")),
            ],
            [],
        )
        return entries

    @classmethod
    def time_log(cls, raw: Any) -> TimeLogEntry:
        data = as_mapping(raw)
        return TimeLogEntry(
            id=cls.identifier(data, "id"),
            task_id=cls.identifier(data, "task_id"),
            action=cls.string(data, "action", "event_type"),
            timestamp=cls.datetime_or_now(data, "timestamp", "created_at"),
            note=cls.string(data, "note", "notes"),
            duration_minutes=cls.count(data, "duration_minutes"),
        )

    # ------------------------------------------------------------
    # Project
    # ------------------------------------------------------------

    @classmethod
    def project_client(cls, raw: Any) -> ProjectClient:
        data = as_mapping(raw)
        return ProjectClient(
            id=cls.identifier(data, "id"),
            email=cls.string(data, "email"),
            username=cls.string(data, "username"),
            full_name=cls.string(data, "full_name"),
        )

    @classmethod
    def ticket(
        cls, raw: Any, *, project_id: str | None = None, project_name: str = ""
    ) -> ProjectTicket:
        data = as_mapping(raw)
        ticket_id = cls.identifier(data, "id")
        message = cls.string(data, "message")
        tasks = [
            cls.task(
                item,
                project_id=project_id,
                project_name=project_name,
                ticket_id=ticket_id or None,
                ticket_message=message,
            )
            for item in cls.list_payload(data, "active_tasks", "tasks")
        ]
        return ProjectTicket(
            id=ticket_id,
            message=message,
            status=cls.string(data, "status", default="unknown"),
            active_tasks_count=first_hit(data, [int_at("active_tasks_count")], len(tasks)),
            active_tasks=tasks,
            created_at=cls.datetime_or_now(data, "created_at"),
            updated_at=cls.datetime_or_none(data, "updated_at"),
        )

    @classmethod
    def project(cls, raw: Any) -> Project:
        data = as_mapping(raw)
        project_id = cls.identifier(data, "id")
        name = cls.string(data, "name")

        social_links = first_hit(
            data,
            [
                list_at("social_links"),
                list_at("socials"),
                delimited_at("social_links"),
                delimited_at("socials"),
            ],
            [],
        )
        client_raw = first_hit(
            data,
            [mapping_at("client"), mapping_at("clients"), first_mapping_in_list_at("clients")],
            None,
        )

        return Project(
            id=project_id,
            name=name,
            description=cls.string(data, "description"),
            client_id=first_hit(data, [id_at("client_id")], None),
            website_url=first_hit(data, [str_at("website_url"), str_at("website")], None),
            social_links=social_links,
            plan=cls.string(data, "plan", default=DEFAULT_PROJECT_PLAN),
            contract_subscription_date=cls.datetime_or_none(data, "contract_subscription_date"),
            status=cls.string(data, "status", default=DEFAULT_PROJECT_STATUS),
            created_by=first_hit(data, [id_at("created_by")], None),
            created_at=cls.datetime_or_now(data, "created_at"),
            updated_at=cls.datetime_or_none(data, "updated_at"),
            client=cls.project_client(client_raw) if client_raw is not None else None,
            open_tickets_count=cls.count(data, "open_tickets_count"),
            open_tasks_count=cls.count(data, "open_tasks_count"),
            open_tickets=[
                cls.ticket(item, project_id=project_id or None, project_name=name)
                for item in cls.list_payload(data, "open_tickets")
            ],
        )

    @classmethod
    def projects(cls, raw: Any) -> list[Project]:
        return [cls.project(item) for item in cls.list_payload(raw, "projects")]


def _list_of_mappings_at(key: str) -> Strategy:
    def _strategy(raw: Mapping[str, Any]) -> Any:
        value = raw.get(key)
        if isinstance(value, list):
            return as_mapping_list(value)
        return MISS

    return _strategy
