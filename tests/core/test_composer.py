"""DashboardComposer 单元测试"""

import json

from taskpulse.core.composer import DashboardComposer
from taskpulse.core.models import Role

composer = DashboardComposer()


class TestComposeAdmin:
    """管理员摘要"""

    def test_nested_dashboard(self):
        raw = {
            "dashboard": {
                "projects": {"total": 4, "active": 2, "completed": 1},
                "clients": {"total": 3},
                "staff": {"total": 2},
                "tickets": {"open": 7},
                "tasks": {"active": 5},
            }
        }
        summary = composer.compose_admin(raw)

        assert summary.role == Role.ADMIN
        assert summary.total_projects == 4
        assert summary.active_projects == 2
        assert summary.completed_projects == 1
        assert summary.total_clients == 3
        assert summary.total_staff == 2
        assert summary.open_tickets == 7
        assert summary.active_tasks == 5

    def test_without_wrapper(self):
        summary = composer.compose_admin({"projects": {"total": "6"}})
        assert summary.total_projects == 6
        assert summary.total_clients == 0

    def test_empty_payload(self):
        summary = composer.compose_admin({})
        assert summary.model_dump(exclude={"role"}) == {
            "total_projects": 0,
            "active_projects": 0,
            "completed_projects": 0,
            "total_clients": 0,
            "total_staff": 0,
            "open_tickets": 0,
            "active_tasks": 0,
        }


class TestComposeStaff:
    """员工摘要"""

    ALL_TASKS = {
        "tasks": [
            {"id": "T1", "project_id": "P1", "status": "completed"},
            {"id": "T2", "project_id": "P1", "status": "in_progress"},
            {"id": "T3", "project_id": "P2", "status": "completed"},
            {"id": "T4", "status": "pending"},
        ]
    }

    def test_distinct_projects_not_double_counted(self):
        summary = composer.compose_staff({"total_tasks": 1}, self.ALL_TASKS)

        assert summary.role == Role.STAFF
        assert summary.active_tasks == 1
        assert summary.completed_tasks == 2
        assert summary.distinct_projects == 2

    def test_active_count_falls_back_to_list_length(self):
        active = {"tasks": [{"id": "T2"}, {"id": "T5"}]}
        assert composer.compose_staff(active, {}).active_tasks == 2

    def test_total_tasks_trusted_over_list(self):
        active = {"total_tasks": 9, "tasks": [{"id": "T2"}]}
        assert composer.compose_staff(active, {}).active_tasks == 9

    def test_empty_payloads(self):
        summary = composer.compose_staff({}, {})
        assert summary.active_tasks == 0
        assert summary.completed_tasks == 0
        assert summary.distinct_projects == 0


class TestComposeClient:
    """客户摘要"""

    def test_empty_payload_defaults(self):
        summary = composer.compose_client({})

        assert summary.role == Role.CLIENT
        assert summary.total_projects == 0
        assert summary.open_tickets_count == 0
        assert summary.project_names == []
        assert summary.primary_plan == "No Plan"

    def test_projects(self):
        raw = {
            "projects": [
                {"name": "Site", "plan": "Growth", "open_tickets_count": 2},
                {"open_tickets_count": "3", "plan": "Starter Launch"},
            ]
        }
        summary = composer.compose_client(raw)

        assert summary.total_projects == 2
        assert summary.project_names == ["Site", "Unnamed Project"]
        assert summary.open_tickets_count == 5
        assert summary.primary_plan == "Growth"

    def test_non_finite_counts_ignored(self):
        """超出范围的数字（1e400 / Infinity）按缺失计数处理"""
        raw = json.loads(
            '{"total_projects": Infinity,'
            ' "projects": [{"name": "A", "open_tickets_count": 1e400}]}'
        )
        summary = composer.compose_client(raw)

        assert summary.total_projects == 1
        assert summary.open_tickets_count == 0
        assert summary.project_names == ["A"]

    def test_admin_non_finite_counts_ignored(self):
        raw = json.loads('{"dashboard": {"projects": {"total": -Infinity, "active": 2}}}')
        summary = composer.compose_admin(raw)
        assert summary.total_projects == 0
        assert summary.active_projects == 2

    def test_server_total_preferred(self):
        raw = {"total_projects": 5, "projects": [{"name": "Site"}]}
        summary = composer.compose_client(raw)
        assert summary.total_projects == 5
        assert summary.primary_plan == "No Plan"
