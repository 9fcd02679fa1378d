"""Domain Models 单元测试"""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError
from taskpulse.core.models import (
    ActiveTimerInfo,
    Project,
    ProjectClient,
    ProjectTaskStats,
    Task,
    TimerSession,
    TimerState,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


class TestProjectTaskStats:
    """ProjectTaskStats 派生字段"""

    def test_zero_tasks_completion_is_zero(self):
        """没有任务的项目完成率恰好为 0"""
        stats = ProjectTaskStats(project_id="P1")
        assert stats.completion_percentage == 0.0
        assert stats.has_active_work is False

    def test_completion_percentage(self):
        stats = ProjectTaskStats(
            project_id="P1", active_tasks=1, completed_tasks=1, total_tasks=4
        )
        assert stats.completion_percentage == 25.0
        assert stats.has_active_work is True


class TestProject:
    """Project 优先级与展示名"""

    @pytest.mark.parametrize(
        "tickets,tasks,expected",
        [
            (6, 4, "High"),
            (10, 5, "High"),
            (3, 2, "Medium"),
            (1, 0, "Low"),
            (0, 0, "None"),
        ],
    )
    def test_priority_from_open_items(self, tickets: int, tasks: int, expected: str):
        project = Project(created_at=NOW, open_tickets_count=tickets, open_tasks_count=tasks)
        assert project.priority == expected

    def test_status_display_name(self):
        project = Project(created_at=NOW, status="in_development")
        assert project.status_display_name == "In Development"

    def test_defaults(self):
        project = Project(created_at=NOW)
        assert project.plan == "Starter Launch"
        assert project.status == "in_development"
        assert project.social_links == []

    def test_client_display_name_falls_back_to_username(self):
        assert ProjectClient(username="ann").display_name == "ann"
        assert ProjectClient(username="ann", full_name="Ann Lee").display_name == "Ann Lee"


class TestTaskAndSession:
    """Task / TimerSession 派生属性"""

    def test_task_status_helpers(self):
        task = Task(id="T1", status="in_progress", created_at=NOW)
        assert task.is_active is True
        assert task.is_completed is False

    def test_unknown_status_passes_through(self):
        """未知状态原样保留"""
        task = Task(id="T1", status="blocked", created_at=NOW)
        assert task.status == "blocked"
        assert task.is_active is False

    def test_negative_minutes_rejected(self):
        with pytest.raises(ValidationError):
            Task(id="T1", created_at=NOW, total_time_minutes=-1)

    @pytest.mark.parametrize(
        "state,held",
        [(TimerState.IDLE, False), (TimerState.RUNNING, True), (TimerState.PAUSED, True)],
    )
    def test_session_is_held(self, state: TimerState, held: bool):
        assert TimerSession(task_id="T1", state=state).is_held is held

    def test_active_timer_paused_flag(self):
        assert ActiveTimerInfo(task_id="T1", status="paused").is_paused is True
        assert ActiveTimerInfo(task_id="T1").is_paused is False
