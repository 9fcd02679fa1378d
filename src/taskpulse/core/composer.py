"""DashboardComposer -- 按角色组合仪表盘摘要

三个组合函数均为纯函数（无网络 I/O），输入为预先获取的原始 payload，
任何字段都不假设存在。
"""

from typing import Any

from .config import NO_PLAN, UNNAMED_PROJECT
from .decoder import (
    ResilientDecoder,
    as_mapping,
    first_hit,
    int_at,
    mapping_at,
    str_at,
)
from .models import AdminSummary, ClientSummary, StaffSummary, TaskStatus


class DashboardComposer:
    """角色仪表盘组合器"""

    def __init__(self, decoder: ResilientDecoder | None = None) -> None:
        self._decoder = decoder or ResilientDecoder()

    def compose_admin(self, raw: Any) -> AdminSummary:
        """展开 dashboard.{projects,clients,staff,tickets,tasks} 子对象

        payload 缺少 dashboard 包装时直接在顶层查找。
        """
        data = as_mapping(raw)
        dashboard = first_hit(data, [mapping_at("dashboard")], data)

        def section(name: str) -> dict:
            return dict(as_mapping(dashboard.get(name)))

        projects = section("projects")
        return AdminSummary(
            total_projects=self._decoder.count(projects, "total"),
            active_projects=self._decoder.count(projects, "active"),
            completed_projects=self._decoder.count(projects, "completed"),
            total_clients=self._decoder.count(section("clients"), "total"),
            total_staff=self._decoder.count(section("staff"), "total"),
            open_tickets=self._decoder.count(section("tickets"), "open"),
            active_tasks=self._decoder.count(section("tasks"), "active"),
        )

    def compose_staff(self, active_raw: Any, all_raw: Any) -> StaffSummary:
        """员工摘要

        - active_tasks: 信任 active 接口直接给出的 total_tasks（定向查询），缺失时用其列表长度
        - completed_tasks: 全量列表中 status=completed 的条目数
        - distinct_projects: 全量列表中非空项目 ID 集合的大小，同一项目不重复计数
        """
        active_data = as_mapping(active_raw)
        active_tasks = first_hit(
            active_data,
            [int_at("total_tasks")],
            len(self._decoder.list_payload(active_raw, "tasks")),
        )

        all_tasks = self._decoder.tasks(all_raw)
        completed = sum(1 for t in all_tasks if t.status == TaskStatus.COMPLETED)
        project_ids = {t.project_id for t in all_tasks if t.project_id}

        return StaffSummary(
            active_tasks=active_tasks,
            completed_tasks=completed,
            distinct_projects=len(project_ids),
        )

    def compose_client(self, raw: Any) -> ClientSummary:
        """客户摘要

        primary_plan 取第一个项目的 plan，列表为空或无 plan 时为 "No Plan"。
        """
        data = as_mapping(raw)
        projects = self._decoder.list_payload(raw, "projects")

        project_names = [first_hit(p, [str_at("name")], UNNAMED_PROJECT) for p in projects]
        open_tickets = sum(self._decoder.count(p, "open_tickets_count") for p in projects)
        primary_plan = first_hit(projects[0], [str_at("plan")], NO_PLAN) if projects else NO_PLAN

        return ClientSummary(
            total_projects=first_hit(data, [int_at("total_projects")], len(projects)),
            open_tickets_count=open_tickets,
            project_names=project_names,
            primary_plan=primary_plan,
        )
