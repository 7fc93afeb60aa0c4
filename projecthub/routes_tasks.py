"""
projecthub/routes_tasks.py

Task endpoints.

The workflow engine (tasks.py) does not check roles, so every endpoint here
authorizes against the project that governs the task (its own project, or
its requirement's):

- reads  -> project:view
- writes -> task:mutate

Tasks with no project at all are only reachable by their creator, their
assignee, or a global admin; anyone else gets 404.
"""

from __future__ import annotations

import sqlite3
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from projecthub import tasks
from projecthub.access_policy import Permission
from projecthub.config import IS_DEV
from projecthub.db import get_db
from projecthub.dependencies import check_project_permission, require_caller, require_project_permission
from projecthub.errors import NotFound
from projecthub.models import Task, User
from projecthub.projects import ProjectAccess
from projecthub.schemas import (
    BulkStatusRequest,
    BulkStatusResponse,
    MessageResponse,
    TaskCreateRequest,
    TaskStatsResponse,
    TaskUpdateRequest,
)

router = APIRouter(
    prefix="/api/tasks",
    tags=["tasks"],
)


def _authorize(
    conn: sqlite3.Connection,
    caller: User,
    permission: Permission,
    project_id: Optional[int],
    requirement_id: Optional[int],
    creator_id: int,
    assignee_id: Optional[int],
    task_id: Optional[int] = None,
) -> None:
    scope = tasks.scope_project_id(conn, project_id, requirement_id)
    if scope is not None:
        check_project_permission(conn, scope, caller, permission)
        return

    if caller.is_global_admin or caller.id in (creator_id, assignee_id):
        return
    if IS_DEV:
        print(f"[TASKS] Unscoped task hidden: task_id={task_id}, user_id={caller.id}")
    raise NotFound("Task", task_id)


def _authorize_task(conn: sqlite3.Connection, task: Task, caller: User, permission: Permission) -> None:
    _authorize(
        conn, caller, permission,
        task.project_id, task.requirement_id, task.creator_id, task.assignee_id, task.id,
    )


@router.get("", response_model=List[Task])
def list_tasks(
    project_id: Optional[int] = Query(None),
    requirement_id: Optional[int] = Query(None),
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    """Tasks of a project and/or requirement. At least one filter is required."""
    scope = tasks.scope_project_id(conn, project_id, requirement_id)
    if scope is not None:
        check_project_permission(conn, scope, caller, Permission.PROJECT_VIEW)
    elif requirement_id is not None:
        raise NotFound("Requirement", requirement_id)
    return tasks.list_tasks(conn, project_id=project_id, requirement_id=requirement_id)


@router.post("", response_model=Task, status_code=201)
def create_task(
    request: TaskCreateRequest,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    data = request.model_dump(exclude_unset=True)
    _authorize(
        conn, caller, Permission.TASK_MUTATE,
        data.get("project_id"), data.get("requirement_id"), caller.id, data.get("assignee_id"),
    )
    return tasks.create_task(conn, data, caller.id)


@router.patch("/status", response_model=BulkStatusResponse)
def bulk_update_status(
    request: BulkStatusRequest,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    """Move many tasks to one status. The caller must be allowed to mutate every one of them."""
    for task in tasks.get_tasks(conn, request.task_ids):
        _authorize_task(conn, task, caller, Permission.TASK_MUTATE)

    updated = tasks.bulk_update_status(conn, request.task_ids, request.status)
    return {"updated": updated, "status": request.status}


@router.get("/stats/{project_id}", response_model=TaskStatsResponse)
def task_stats(
    project_id: int,
    access: ProjectAccess = Depends(require_project_permission(Permission.PROJECT_VIEW)),
    conn: sqlite3.Connection = Depends(get_db),
):
    return tasks.compute_stats(conn, project_id)


@router.get("/{task_id}", response_model=Task)
def get_task(
    task_id: int,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    task = tasks.get_task(conn, task_id)
    _authorize_task(conn, task, caller, Permission.PROJECT_VIEW)
    return task


@router.put("/{task_id}", response_model=Task)
def update_task(
    task_id: int,
    request: TaskUpdateRequest,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    task = tasks.get_task(conn, task_id)
    _authorize_task(conn, task, caller, Permission.TASK_MUTATE)
    return tasks.update_task(conn, task_id, request.model_dump(exclude_unset=True), caller.id)


@router.delete("/{task_id}", response_model=MessageResponse)
def delete_task(
    task_id: int,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    task = tasks.get_task(conn, task_id)
    _authorize_task(conn, task, caller, Permission.TASK_MUTATE)
    tasks.delete_task(conn, task_id, caller.id)
    return {"message": "Task deleted"}
