"""Project Domain Model -- 客户项目（含 open tickets 与其活动任务）"""

from datetime import datetime

from pydantic import BaseModel, Field

from ..config import (
    DEFAULT_PROJECT_PLAN,
    DEFAULT_PROJECT_STATUS,
    PRIORITY_HIGH_THRESHOLD,
    PRIORITY_MEDIUM_THRESHOLD,
)
from .task import Task


class ProjectClient(BaseModel):
    """项目所属客户"""

    id: str = Field(default="")
    email: str = Field(default="")
    username: str = Field(default="")
    full_name: str = Field(default="")

    @property
    def display_name(self) -> str:
        return self.full_name or self.username


class ProjectTicket(BaseModel):
    """项目下的 ticket（列表接口只返回 open 子集）"""

    id: str = Field(default="")
    message: str = Field(default="")
    status: str = Field(default="unknown")
    active_tasks_count: int = Field(default=0, ge=0)
    active_tasks: list[Task] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime | None = None


class Project(BaseModel):
    """Project 数据模型"""

    id: str = Field(default="")
    name: str = Field(default="")
    description: str = Field(default="")
    client_id: str | None = None
    website_url: str | None = None
    social_links: list[str] = Field(default_factory=list)
    plan: str = Field(default=DEFAULT_PROJECT_PLAN)
    contract_subscription_date: datetime | None = None
    status: str = Field(default=DEFAULT_PROJECT_STATUS)
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    client: ProjectClient | None = None
    open_tickets_count: int = Field(default=0, ge=0)
    open_tasks_count: int = Field(default=0, ge=0)
    open_tickets: list[ProjectTicket] = Field(default_factory=list)

    @property
    def priority(self) -> str:
        """按活动条目数（open tickets + open tasks）推导项目优先级"""
        total_active = self.open_tickets_count + self.open_tasks_count
        if total_active >= PRIORITY_HIGH_THRESHOLD:
            return "High"
        if total_active >= PRIORITY_MEDIUM_THRESHOLD:
            return "Medium"
        if total_active > 0:
            return "Low"
        return "None"

    @property
    def status_display_name(self) -> str:
        """in_development -> In Development"""
        words = self.status.replace("_", " ").split(" ")
        return " ".join(w[:1].upper() + w[1:].lower() for w in words)
