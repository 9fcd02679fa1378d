"""TaskService -- 任务/ticket/计时日志查询与状态更新

所有查询都是数据类请求：失败总是向上抛出，不用空结果掩盖。
"""

from typing import Any

import structlog

from ..core.aggregator import TaskAggregator
from ..core.decoder import ResilientDecoder, as_mapping
from ..core.models import Project, ProjectTaskStats, Task, TimeLogEntry
from .http import ApiClient

log = structlog.get_logger()


class TaskService:
    """任务业务服务"""

    def __init__(
        self,
        api: ApiClient,
        decoder: ResilientDecoder | None = None,
        aggregator: TaskAggregator | None = None,
    ) -> None:
        self._api = api
        self._decoder = decoder or ResilientDecoder()
        self._aggregator = aggregator or TaskAggregator(self._decoder)

    async def my_tasks(self, status: str | None = None) -> list[Task]:
        """GET /tasks/my -- 当前用户的全部任务，可按 status 过滤"""
        params = {"status": status} if status else None
        raw = await self._api.get("/tasks/my", params=params)
        tasks = self._decoder.tasks(raw)
        log.info("my_tasks_loaded", count=len(tasks), status=status)
        return tasks

    async def my_active_tasks(self) -> list[Task]:
        """GET /tasks/my/active"""
        raw = await self._api.get("/tasks/my/active")
        return self._decoder.tasks(raw)

    async def all_tasks(self) -> list[Task]:
        """GET /admin/tasks -- 仅管理员"""
        raw = await self._api.get("/admin/tasks")
        return self._decoder.tasks(raw)

    async def client_tickets_raw(self) -> Any:
        """GET /client/tickets 原始 payload"""
        return await self._api.get("/client/tickets")

    async def client_tasks(self) -> list[Task]:
        """客户视图：从其 tickets 中展开任务，任务继承 ticket 的项目上下文"""
        raw = await self.client_tickets_raw()
        tasks, _ = self._aggregator.flatten_tickets(raw)
        log.info("client_tasks_loaded", count=len(tasks))
        return tasks

    async def project_task_stats(self) -> dict[str, ProjectTaskStats]:
        """客户全部项目的任务统计"""
        raw = await self.client_tickets_raw()
        stats = self._aggregator.aggregate_tickets(raw)
        log.info("project_task_stats_computed", project_count=len(stats))
        return stats

    async def project_task_stats_by_id(self, project_id: str) -> ProjectTaskStats | None:
        """单个项目的任务统计，项目不在客户 tickets 中时返回 None"""
        stats = await self.project_task_stats()
        return stats.get(project_id)

    async def client_projects(self) -> list[Project]:
        """GET /client/projects"""
        raw = await self._api.get("/client/projects")
        return self._decoder.projects(raw)

    async def time_logs(self, task_id: str) -> list[TimeLogEntry]:
        """GET /tasks/{id}/time-logs"""
        raw = await self._api.get(f"/tasks/{task_id}/time-logs")
        items = self._decoder.list_payload(raw, "time_logs")
        return [self._decoder.time_log(item) for item in items]

    async def update_status(self, task_id: str, status: str) -> Task | None:
        """PATCH /tasks/{id}/status

        Returns:
            响应中携带 task 时返回解码后的 Task，否则 None
        """
        raw = await self._api.patch(f"/tasks/{task_id}/status", json={"status": status})
        log.info("task_status_updated", task_id=task_id, status=status)
        task_raw = as_mapping(raw).get("task")
        return self._decoder.task(task_raw) if isinstance(task_raw, dict) else None
