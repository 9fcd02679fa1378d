"""仪表盘汇总模型 -- ProjectTaskStats + 三种角色摘要

所有模型在每次刷新时从头重建，不做增量修改。
"""

from typing import Literal

from pydantic import BaseModel, Field

from ..config import NO_PLAN
from .enums import Role


class ProjectTaskStats(BaseModel):
    """单个项目的任务统计"""

    project_id: str
    project_name: str = Field(default="")
    active_tasks: int = Field(default=0, ge=0, description="status=in_progress 计数")
    completed_tasks: int = Field(default=0, ge=0, description="status=completed 计数")
    total_tasks: int = Field(default=0, ge=0, description="任务总数")

    @property
    def completion_percentage(self) -> float:
        """完成百分比，total_tasks 为 0 时恰好为 0"""
        if self.total_tasks == 0:
            return 0.0
        return self.completed_tasks / self.total_tasks * 100

    @property
    def has_active_work(self) -> bool:
        return self.active_tasks > 0


class AdminSummary(BaseModel):
    """管理员仪表盘"""

    role: Literal[Role.ADMIN] = Role.ADMIN
    total_projects: int = Field(default=0, ge=0)
    active_projects: int = Field(default=0, ge=0)
    completed_projects: int = Field(default=0, ge=0)
    total_clients: int = Field(default=0, ge=0)
    total_staff: int = Field(default=0, ge=0)
    open_tickets: int = Field(default=0, ge=0)
    active_tasks: int = Field(default=0, ge=0)


class StaffSummary(BaseModel):
    """员工仪表盘

    distinct_projects 由任务中出现的项目 ID 集合推导，而非服务端计数。
    """

    role: Literal[Role.STAFF] = Role.STAFF
    active_tasks: int = Field(default=0, ge=0)
    completed_tasks: int = Field(default=0, ge=0)
    distinct_projects: int = Field(default=0, ge=0)


class ClientSummary(BaseModel):
    """客户仪表盘

    primary_plan 取项目列表第一个项目的套餐（有意为之的近似）。
    """

    role: Literal[Role.CLIENT] = Role.CLIENT
    total_projects: int = Field(default=0, ge=0)
    open_tickets_count: int = Field(default=0, ge=0)
    project_names: list[str] = Field(default_factory=list)
    primary_plan: str = Field(default=NO_PLAN)


DashboardSummary = AdminSummary | StaffSummary | ClientSummary
