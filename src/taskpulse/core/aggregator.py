"""TaskAggregator -- 按项目分组统计任务

每次聚合都从头重建 ProjectTaskStats，不做增量修改。
累加满足交换律：任务列表的任意排列产生相同结果。
"""

from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from .decoder import (
    ResilientDecoder,
    first_hit,
    first_mapping_in_list_at,
    id_at,
    mapping_at,
    str_at,
)
from .models import ProjectTaskStats, Task, TaskStatus

log = structlog.get_logger()


class _Bucket:
    """单个项目的可变计数器，仅在一次聚合内部使用"""

    __slots__ = ("names", "active", "completed", "total")

    def __init__(self) -> None:
        self.names: set[str] = set()
        self.active = 0
        self.completed = 0
        self.total = 0

    def freeze(self, project_id: str) -> ProjectTaskStats:
        return ProjectTaskStats(
            project_id=project_id,
            # 名称冲突时取最小者，保证与迭代顺序无关
            project_name=min(self.names) if self.names else "",
            active_tasks=self.active,
            completed_tasks=self.completed,
            total_tasks=self.total,
        )


class TaskAggregator:
    """任务聚合器"""

    def __init__(self, decoder: ResilientDecoder | None = None) -> None:
        self._decoder = decoder or ResilientDecoder()

    def aggregate(
        self,
        tasks: Iterable[Task],
        seed_projects: Mapping[str, str] | None = None,
    ) -> dict[str, ProjectTaskStats]:
        """按项目 ID 聚合任务统计

        Args:
            tasks: 任务集合（只遍历一次）
            seed_projects: project_id -> project_name，即使没有任务也建立零计数桶

        Returns:
            project_id -> ProjectTaskStats；无法解析项目 ID 的任务不计入任何桶
        """
        buckets: dict[str, _Bucket] = {}
        for project_id, project_name in (seed_projects or {}).items():
            if not project_id:
                continue
            bucket = buckets.setdefault(project_id, _Bucket())
            if project_name:
                bucket.names.add(project_name)

        dropped = 0
        for task in tasks:
            if not task.project_id:
                dropped += 1
                continue
            bucket = buckets.setdefault(task.project_id, _Bucket())
            if task.project_name:
                bucket.names.add(task.project_name)
            bucket.total += 1
            if task.status == TaskStatus.IN_PROGRESS:
                bucket.active += 1
            elif task.status == TaskStatus.COMPLETED:
                bucket.completed += 1

        if dropped:
            log.debug("tasks_without_project_dropped", count=dropped)

        return {project_id: bucket.freeze(project_id) for project_id, bucket in buckets.items()}

    def flatten_tickets(self, tickets_raw: Any) -> tuple[list[Task], dict[str, str]]:
        """展开 /client/tickets payload

        任务继承所属 ticket 的 project_id / project_name / ticket_id / ticket_message。

        Returns:
            (tasks, seed_projects) -- seed_projects 包含每个 ticket 的项目，即使该 ticket 没有任务
        """
        tasks: list[Task] = []
        seed_projects: dict[str, str] = {}

        for ticket in self._decoder.list_payload(tickets_raw, "tickets"):
            project = first_hit(
                ticket,
                [
                    mapping_at("project"),
                    mapping_at("projects"),
                    first_mapping_in_list_at("projects"),
                ],
                {},
            )
            project_id = first_hit(project, [id_at("id")], None) or first_hit(
                ticket, [id_at("project_id")], None
            )
            project_name = first_hit(project, [str_at("name")], "")
            if project_id:
                seed_projects.setdefault(project_id, project_name)
                if project_name and not seed_projects[project_id]:
                    seed_projects[project_id] = project_name

            ticket_id = self._decoder.identifier(ticket, "id") or None
            ticket_message = self._decoder.string(ticket, "message")
            for raw_task in self._decoder.list_payload(ticket, "tasks", "active_tasks"):
                tasks.append(
                    self._decoder.task(
                        raw_task,
                        project_id=project_id,
                        project_name=project_name,
                        ticket_id=ticket_id,
                        ticket_message=ticket_message,
                    )
                )

        return tasks, seed_projects

    def aggregate_tickets(self, tickets_raw: Any) -> dict[str, ProjectTaskStats]:
        """从 ticket payload 直接计算项目统计"""
        tasks, seed_projects = self.flatten_tickets(tickets_raw)
        return self.aggregate(tasks, seed_projects)

    @staticmethod
    def sort_for_display(tasks: Iterable[Task]) -> list[Task]:
        """展示顺序：in_progress 优先，其次按创建时间从新到旧"""
        return sorted(
            tasks,
            key=lambda t: (not t.is_active, -t.created_at.timestamp()),
        )

    @staticmethod
    def total_logged_minutes(tasks: Iterable[Task]) -> int:
        return sum(t.total_time_minutes for t in tasks)
