"""CLI 入口模块 -- python -m taskpulse <command>

支持的命令：
  dashboard <admin|staff|client>     获取并组合角色仪表盘摘要
  board <staff|client>               任务看板（任务 + 计时器标记 + 项目统计）
  active-timer                       解析当前用户的活动计时器
  project-stats                      客户项目的任务统计
  timer <start|stop|pause|resume> <task_id> [note]
"""

import asyncio
import json
import sys
from typing import Any

from pydantic import BaseModel

from .client import (
    ActiveTimerResolver,
    ApiClient,
    DashboardService,
    TaskBoardService,
    TaskPulseError,
    TaskService,
    TimerController,
    load_client_config,
)
from .core.models import Role, TimerAction
from .logging_config import bind_invocation_context, setup_logging

USAGE = """用法: python -m taskpulse <command>
命令:
  dashboard <admin|staff|client>     角色仪表盘摘要
  board <staff|client>               任务看板
  active-timer                       当前活动计时器
  project-stats                      客户项目任务统计
  timer <start|stop|pause|resume> <task_id> [note]"""


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print(USAGE)
        sys.exit(1)

    setup_logging()
    command, args = sys.argv[1], sys.argv[2:]

    try:
        if command == "dashboard" and len(args) == 1 and args[0] in list(Role):
            result = asyncio.run(show_dashboard(Role(args[0])))
        elif command == "board" and args in (["staff"], ["client"]):
            result = asyncio.run(show_board(Role(args[0])))
        elif command == "active-timer" and not args:
            result = asyncio.run(show_active_timer())
        elif command == "project-stats" and not args:
            result = asyncio.run(show_project_stats())
        elif command == "timer" and len(args) in (2, 3) and args[0] in list(TimerAction):
            result = asyncio.run(run_timer(TimerAction(args[0]), args[1], *args[2:]))
        else:
            print(f"未知命令: {' '.join(sys.argv[1:])}")
            print(USAGE)
            sys.exit(1)
    except TaskPulseError as e:
        print(f"错误: {e.message}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(_to_jsonable(result), ensure_ascii=False, indent=2))


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {k: _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_jsonable(v) for v in value]
    return value


def _api(command: str, role: Role | None = None) -> tuple[ApiClient, str]:
    config = load_client_config()
    bind_invocation_context(command, user_id=config.user_id, role=role)
    return ApiClient.from_config(config), config.user_id


async def show_dashboard(role: Role) -> BaseModel:
    api, _ = _api("dashboard", role)
    async with api:
        return await DashboardService(api).fetch(role)


async def show_board(role: Role) -> BaseModel | None:
    api, user_id = _api("board", role)
    async with api:
        board = TaskBoardService(
            TaskService(api),
            ActiveTimerResolver(api, owner_id=user_id),
            TimerController(api, owner_id=user_id),
        )
        return await board.refresh(role)


async def show_active_timer() -> dict:
    api, user_id = _api("active-timer")
    async with api:
        resolution = await ActiveTimerResolver(api, owner_id=user_id).resolve()
    return {
        "state": resolution.state,
        "source": resolution.source,
        "definitive": resolution.definitive,
        "session": _to_jsonable(resolution.session),
    }


async def show_project_stats() -> dict:
    api, _ = _api("project-stats", Role.CLIENT)
    async with api:
        stats = await TaskService(api).project_task_stats()
    return {
        project_id: {
            **item.model_dump(mode="json"),
            "completion_percentage": round(item.completion_percentage, 1),
        }
        for project_id, item in stats.items()
    }


async def run_timer(action: TimerAction, task_id: str, note: str | None = None) -> BaseModel:
    """执行单次计时器操作

    CLI 进程之间不保留会话，先与服务端对齐再执行，避免本地状态机误拒。
    """
    api, user_id = _api(f"timer {action}", Role.STAFF)
    async with api:
        controller = TimerController(api, owner_id=user_id)
        await ActiveTimerResolver(api, owner_id=user_id).resolve_and_reconcile(controller)
        if action == TimerAction.START:
            return await controller.start(task_id)
        if action == TimerAction.STOP:
            return await controller.stop(task_id)
        if action == TimerAction.PAUSE:
            return await controller.pause(task_id, note)
        return await controller.resume(task_id, note)


if __name__ == "__main__":
    main()
