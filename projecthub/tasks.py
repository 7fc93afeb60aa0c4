"""
projecthub/tasks.py

Task workflow engine.

Status is a free selector over todo / in_progress / review / done; any
state can move to any other. The one side effect is the completion date:

    non-done -> done      completed_date = now
    done     -> non-done  completed_date = None
    otherwise             unchanged

so completed_date is set if and only if status is done.

This module does not know about roles. Callers (routes_tasks.py) check
access_policy.can_mutate_task on the task's project before calling in.
Dependencies are an advisory list of task ids: no existence check, no cycle
detection.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from projecthub.accounts import user_exists
from projecthub.config import IS_DEV
from projecthub.db import (
    dump_id_list,
    now_utc,
    placeholders,
    to_db_time,
    to_utc,
    transaction,
)
from projecthub.errors import NotFound, ValidationError
from projecthub.models import Task, TaskPriority, TaskStatus

TASK_COLUMNS = (
    "id, title, description, status, priority, estimated_hours, actual_hours, "
    "start_date, due_date, completed_date, dependencies, project_id, requirement_id, "
    "assignee_id, creator_id, created_at, updated_at"
)

STATUS_ORDER_SQL = (
    "CASE status WHEN 'todo' THEN 0 WHEN 'in_progress' THEN 1 "
    "WHEN 'review' THEN 2 ELSE 3 END"
)
PRIORITY_ORDER_SQL = (
    "CASE priority WHEN 'low' THEN 0 WHEN 'medium' THEN 1 "
    "WHEN 'high' THEN 2 ELSE 3 END"
)

# Columns a patch may touch (completed_date is derived, creator_id is fixed)
UPDATABLE_FIELDS = (
    "title", "description", "status", "priority", "estimated_hours", "actual_hours",
    "start_date", "due_date", "assignee_id", "dependencies",
)


# ============================================================================
# State machine
# ============================================================================

def apply_status_transition(
    old_status: Optional[TaskStatus],
    new_status: TaskStatus,
    completed_date: Optional[datetime],
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """
    Return the completed_date that goes with moving old_status -> new_status.

    old_status None means the task is being created.
    """
    new_status = TaskStatus(new_status)
    was_done = old_status is not None and TaskStatus(old_status) == TaskStatus.done

    if new_status == TaskStatus.done and not was_done:
        return now or now_utc()
    if new_status != TaskStatus.done:
        return None
    return completed_date


def compute_elapsed_hours(task: Task, now: Optional[datetime] = None) -> Optional[float]:
    """Hours from start_date to completion (or to now while open). None without a start date."""
    if task.start_date is None:
        return None
    end = task.completed_date if task.status == TaskStatus.done and task.completed_date else (now or now_utc())
    delta = to_utc(end) - to_utc(task.start_date)
    return round(max(delta.total_seconds(), 0) / 3600, 2)


def _hydrate(row: sqlite3.Row) -> Task:
    task = Task.from_row(row)
    task.elapsed_hours = compute_elapsed_hours(task)
    return task


# ============================================================================
# Validation
# ============================================================================

def _parse_datetime(value: Any, field: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, str):
        try:
            return to_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            pass
    raise ValidationError(f"{field} is not a valid date", field=field)


def _parse_hours(value: Any, field: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        hours = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)
    if hours < 0:
        raise ValidationError(f"{field} must not be negative", field=field)
    return hours


def _parse_id(value: Any, field: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field)


def _clean_task_fields(data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}

    if "title" in data or not partial:
        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("title is required", field="title")
        if len(title.strip()) > 100:
            raise ValidationError("title must be at most 100 characters", field="title")
        cleaned["title"] = title.strip()

    if "description" in data:
        cleaned["description"] = data["description"] or None

    if data.get("status") is not None:
        try:
            cleaned["status"] = TaskStatus(data["status"])
        except ValueError:
            raise ValidationError(f"invalid task status: {data['status']!r}", field="status")

    if data.get("priority") is not None:
        try:
            cleaned["priority"] = TaskPriority(data["priority"])
        except ValueError:
            raise ValidationError(f"invalid task priority: {data['priority']!r}", field="priority")

    for field in ("estimated_hours", "actual_hours"):
        if field in data:
            cleaned[field] = _parse_hours(data[field], field)

    for field in ("start_date", "due_date"):
        if field in data:
            cleaned[field] = _parse_datetime(data[field], field)

    for field in ("project_id", "requirement_id", "assignee_id"):
        if field in data:
            cleaned[field] = _parse_id(data[field], field)

    # A null dependency list in a patch keeps the stored one
    if data.get("dependencies") is not None:
        deps = data["dependencies"]
        if not isinstance(deps, (list, tuple)):
            raise ValidationError("dependencies must be a list of task ids", field="dependencies")
        cleaned["dependencies"] = [_parse_id(d, "dependencies") for d in deps]

    return cleaned


def _require_reference(conn: sqlite3.Connection, table: str, entity: str, ref_id: int) -> None:
    soft_delete = table in ("projects", "requirements")
    sql = f"SELECT 1 FROM {table} WHERE id = ?" + (" AND deleted_at IS NULL" if soft_delete else "")
    if conn.execute(sql, (ref_id,)).fetchone() is None:
        raise NotFound(entity, ref_id)


# ============================================================================
# Queries
# ============================================================================

def get_task(conn: sqlite3.Connection, task_id: int) -> Task:
    row = conn.execute(f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = ?", (task_id,)).fetchone()
    if row is None:
        raise NotFound("Task", task_id)
    return _hydrate(row)


def get_tasks(conn: sqlite3.Connection, task_ids: Iterable[int]) -> List[Task]:
    ids = list(dict.fromkeys(int(i) for i in task_ids))
    if not ids:
        return []
    rows = conn.execute(
        f"SELECT {TASK_COLUMNS} FROM tasks WHERE id IN ({placeholders(len(ids))})",
        tuple(ids),
    ).fetchall()
    return [_hydrate(r) for r in rows]


def list_tasks(
    conn: sqlite3.Connection,
    project_id: Optional[int] = None,
    requirement_id: Optional[int] = None,
) -> List[Task]:
    """
    Tasks of a project and/or requirement, ordered by status, then priority
    (urgent first), due date and newest first.
    """
    if project_id is None and requirement_id is None:
        raise ValidationError("project_id or requirement_id is required")

    where: List[str] = []
    params: List[Any] = []
    if project_id is not None:
        where.append("project_id = ?")
        params.append(project_id)
    if requirement_id is not None:
        where.append("requirement_id = ?")
        params.append(requirement_id)

    rows = conn.execute(
        f"""
        SELECT {TASK_COLUMNS}
        FROM tasks
        WHERE {" AND ".join(where)}
        ORDER BY {STATUS_ORDER_SQL} ASC,
                 {PRIORITY_ORDER_SQL} DESC,
                 due_date IS NULL, due_date ASC,
                 created_at DESC, id DESC
        """,
        params,
    ).fetchall()
    return [_hydrate(r) for r in rows]


def scope_project_id(
    conn: sqlite3.Connection,
    project_id: Optional[int],
    requirement_id: Optional[int],
) -> Optional[int]:
    """Project that governs access to a task: its own, else its requirement's."""
    if project_id is not None:
        return project_id
    if requirement_id is not None:
        row = conn.execute(
            "SELECT project_id FROM requirements WHERE id = ?", (requirement_id,)
        ).fetchone()
        if row:
            return row["project_id"]
    return None


# ============================================================================
# Commands
# ============================================================================

def create_task(conn: sqlite3.Connection, data: Dict[str, Any], creator_id: int) -> Task:
    cleaned = _clean_task_fields(data, partial=False)

    if cleaned.get("project_id") is not None:
        _require_reference(conn, "projects", "Project", cleaned["project_id"])
    if cleaned.get("requirement_id") is not None:
        _require_reference(conn, "requirements", "Requirement", cleaned["requirement_id"])
        owning = scope_project_id(conn, None, cleaned["requirement_id"])
        if cleaned.get("project_id") is not None and owning != cleaned["project_id"]:
            raise ValidationError("requirement belongs to a different project", field="requirement_id")
    if cleaned.get("assignee_id") is not None and not user_exists(conn, cleaned["assignee_id"]):
        raise NotFound("Assignee", cleaned["assignee_id"])

    status = cleaned.get("status", TaskStatus.todo)
    now = now_utc()
    completed_date = apply_status_transition(None, status, None, now)

    with transaction(conn):
        cur = conn.execute(
            f"""
            INSERT INTO tasks (
                title, description, status, priority, estimated_hours, actual_hours,
                start_date, due_date, completed_date, dependencies,
                project_id, requirement_id, assignee_id, creator_id,
                created_at, updated_at
            ) VALUES ({placeholders(16)})
            """,
            (
                cleaned["title"],
                cleaned.get("description"),
                status.value,
                cleaned.get("priority", TaskPriority.medium).value,
                cleaned.get("estimated_hours"),
                cleaned.get("actual_hours"),
                to_db_time(cleaned.get("start_date")),
                to_db_time(cleaned.get("due_date")),
                to_db_time(completed_date),
                dump_id_list(cleaned.get("dependencies")),
                cleaned.get("project_id"),
                cleaned.get("requirement_id"),
                cleaned.get("assignee_id"),
                creator_id,
                to_db_time(now),
                to_db_time(now),
            ),
        )
        task_id = cur.lastrowid

    print(f"[TASKS] Created task_id={task_id}, project_id={cleaned.get('project_id')}, "
          f"status={status.value}, creator_id={creator_id}")
    return get_task(conn, task_id)


def update_task(conn: sqlite3.Connection, task_id: int, patch: Dict[str, Any], caller_id: int) -> Task:
    """
    Partial update. Fields absent from patch keep their values; the status
    transition decides completed_date.
    """
    cleaned = _clean_task_fields(patch, partial=True)
    # project/requirement are fixed after creation
    cleaned.pop("project_id", None)
    cleaned.pop("requirement_id", None)

    with transaction(conn):
        task = get_task(conn, task_id)

        new_assignee = cleaned.get("assignee_id")
        if new_assignee is not None and new_assignee != task.assignee_id and not user_exists(conn, new_assignee):
            raise NotFound("Assignee", new_assignee)

        new_status = cleaned.get("status", task.status)
        completed_date = apply_status_transition(task.status, new_status, task.completed_date)

        assignments = []
        values: List[Any] = []
        for field in UPDATABLE_FIELDS:
            if field not in cleaned:
                continue
            value = cleaned[field]
            if isinstance(value, (TaskStatus, TaskPriority)):
                value = value.value
            elif isinstance(value, datetime):
                value = to_db_time(value)
            elif field == "dependencies":
                value = dump_id_list(value)
            assignments.append(f"{field} = ?")
            values.append(value)

        assignments += ["completed_date = ?", "updated_at = ?"]
        values += [to_db_time(completed_date), to_db_time(now_utc())]

        conn.execute(
            f"UPDATE tasks SET {', '.join(assignments)} WHERE id = ?",
            (*values, task_id),
        )

    if IS_DEV:
        print(f"[TASKS] Updated task_id={task_id} by user_id={caller_id}: "
              f"fields={sorted(cleaned)}, status {task.status.value} -> {TaskStatus(new_status).value}")
    return get_task(conn, task_id)


def bulk_update_status(conn: sqlite3.Connection, task_ids: Iterable[int], new_status: Any) -> int:
    """
    Move many tasks to one status with the single-task transition rule.

    Runs as at most two multi-row UPDATEs in one transaction: tasks entering
    done get stamped, tasks already done keep their date, any other target
    status clears it. Unknown ids are ignored. Returns the number of tasks
    matched.
    """
    ids = list(dict.fromkeys(_parse_id(i, "task_ids") for i in task_ids or []))
    if not ids:
        raise ValidationError("task_ids must be a non-empty list", field="task_ids")
    try:
        new_status = TaskStatus(new_status)
    except ValueError:
        raise ValidationError(f"invalid task status: {new_status!r}", field="status")

    in_clause = placeholders(len(ids))
    now = to_db_time(now_utc())

    with transaction(conn):
        matched = conn.execute(
            f"SELECT COUNT(*) AS n FROM tasks WHERE id IN ({in_clause})", tuple(ids)
        ).fetchone()["n"]

        if new_status == TaskStatus.done:
            conn.execute(
                f"""
                UPDATE tasks SET status = 'done', completed_date = ?, updated_at = ?
                WHERE id IN ({in_clause}) AND status != 'done'
                """,
                (now, now, *ids),
            )
        else:
            conn.execute(
                f"""
                UPDATE tasks SET status = ?, completed_date = NULL, updated_at = ?
                WHERE id IN ({in_clause})
                """,
                (new_status.value, now, *ids),
            )

    print(f"[TASKS] Bulk status -> {new_status.value}: requested={len(ids)}, matched={matched}")
    return matched


def delete_task(conn: sqlite3.Connection, task_id: int, caller_id: int) -> None:
    """Hard delete; tasks have no soft-delete."""
    with transaction(conn):
        cur = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        if cur.rowcount == 0:
            raise NotFound("Task", task_id)
    print(f"[TASKS] Deleted task_id={task_id} by user_id={caller_id}")


def compute_stats(conn: sqlite3.Connection, project_id: int) -> Dict[str, Any]:
    """
    Counts by status and priority for a project's tasks, and the completion
    rate in percent (2 decimals, 0 when there are no tasks).
    """
    _require_reference(conn, "projects", "Project", project_id)

    status_counts = {s.value: 0 for s in TaskStatus}
    priority_counts = {p.value: 0 for p in TaskPriority}

    rows = conn.execute(
        "SELECT status, priority, COUNT(*) AS n FROM tasks WHERE project_id = ? GROUP BY status, priority",
        (project_id,),
    ).fetchall()
    for row in rows:
        status_counts[row["status"]] += row["n"]
        priority_counts[row["priority"]] += row["n"]

    total = sum(status_counts.values())
    completed = status_counts[TaskStatus.done.value]
    completion_rate = round(completed / total * 100, 2) if total else 0

    return {
        "total_tasks": total,
        "completed_tasks": completed,
        "completion_rate": completion_rate,
        "status_counts": status_counts,
        "priority_counts": priority_counts,
    }
