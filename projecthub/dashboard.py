"""
projecthub/dashboard.py

Read-only aggregates for the dashboard views. Project-scoped reports need
can_view on the project; the personal summary only reads the caller's own
rows.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, List

from projecthub import access_policy
from projecthub.accounts import require_user
from projecthub.config import IS_DEV
from projecthub.membership_store import MembershipStore
from projecthub.models import RequirementStatus, TaskStatus
from projecthub.projects import deny, resolve_access
from projecthub.tasks import compute_stats

MAX_ACTIVITY_LIMIT = 50


def _require_view(conn: sqlite3.Connection, project_id: int, caller_id: int, action: str) -> None:
    access = resolve_access(conn, project_id, caller_id)
    if not access_policy.can_view(access.membership, access.is_global_admin):
        deny(access, caller_id, action)


def dashboard_stats(conn: sqlite3.Connection, user_id: int) -> Dict[str, int]:
    """Live projects the user belongs to, tasks assigned to them, and how many of those are open."""
    require_user(conn, user_id)

    project_count = len(MembershipStore(conn).project_ids_for_user(user_id))

    row = conn.execute(
        """
        SELECT
            COUNT(*) AS total,
            COALESCE(SUM(CASE WHEN status != 'done' THEN 1 ELSE 0 END), 0) AS pending
        FROM tasks
        WHERE assignee_id = ?
        """,
        (user_id,),
    ).fetchone()

    return {
        "project_count": project_count,
        "task_count": row["total"],
        "pending_task_count": row["pending"],
    }


def project_stats(conn: sqlite3.Connection, project_id: int, caller_id: int) -> Dict[str, Any]:
    _require_view(conn, project_id, caller_id, "view project stats")

    task_summary = compute_stats(conn, project_id)

    requirement_counts = {s.value: 0 for s in RequirementStatus}
    for row in conn.execute(
        """
        SELECT status, COUNT(*) AS n
        FROM requirements
        WHERE project_id = ? AND deleted_at IS NULL
        GROUP BY status
        """,
        (project_id,),
    ):
        requirement_counts[row["status"]] = row["n"]

    member_count = conn.execute(
        "SELECT COUNT(*) AS n FROM project_members WHERE project_id = ?", (project_id,)
    ).fetchone()["n"]

    return {
        "project_id": project_id,
        "task_stats": task_summary["status_counts"],
        "requirement_stats": requirement_counts,
        "member_count": member_count,
        "progress": task_summary["completion_rate"],
    }


def project_activities(
    conn: sqlite3.Connection,
    project_id: int,
    caller_id: int,
    limit: int = 10,
) -> List[Dict[str, Any]]:
    """
    Most recently updated tasks and requirements of a project, newest first.

    Each entry carries the acting user: the assignee for tasks, the author
    for requirements.
    """
    _require_view(conn, project_id, caller_id, "view project activity")
    limit = max(1, min(int(limit), MAX_ACTIVITY_LIMIT))

    rows = conn.execute(
        """
        SELECT * FROM (
            SELECT 'task' AS type, t.id, t.title, t.status, t.updated_at,
                   u.id AS user_id, u.username
            FROM tasks t
            LEFT JOIN users u ON u.id = t.assignee_id
            WHERE t.project_id = ?
            UNION ALL
            SELECT 'requirement' AS type, r.id, r.title, r.status, r.updated_at,
                   u.id AS user_id, u.username
            FROM requirements r
            LEFT JOIN users u ON u.id = r.created_by
            WHERE r.project_id = ? AND r.deleted_at IS NULL
        )
        ORDER BY updated_at DESC
        LIMIT ?
        """,
        (project_id, project_id, limit),
    ).fetchall()

    return [
        {
            "type": r["type"],
            "id": r["id"],
            "title": r["title"],
            "status": r["status"],
            "updated_at": r["updated_at"],
            "user": {"id": r["user_id"], "username": r["username"]} if r["user_id"] else None,
        }
        for r in rows
    ]


def task_distribution(conn: sqlite3.Connection, project_id: int, caller_id: int) -> List[Dict[str, Any]]:
    """Assigned task count per project member; members with no tasks report 0."""
    _require_view(conn, project_id, caller_id, "view task distribution")

    counts = {
        r["assignee_id"]: (r["total"], r["open"])
        for r in conn.execute(
            """
            SELECT assignee_id,
                   COUNT(*) AS total,
                   SUM(CASE WHEN status != ? THEN 1 ELSE 0 END) AS open
            FROM tasks
            WHERE project_id = ? AND assignee_id IS NOT NULL
            GROUP BY assignee_id
            """,
            (TaskStatus.done.value, project_id),
        )
    }

    distribution = []
    for member in MembershipStore(conn).list_by_project(project_id):
        total, open_count = counts.get(member.user_id, (0, 0))
        distribution.append({
            "user_id": member.user_id,
            "username": member.username,
            "role": member.role.value,
            "task_count": total,
            "open_task_count": open_count,
        })

    if IS_DEV:
        print(f"[DASHBOARD] Task distribution project_id={project_id}: members={len(distribution)}")
    return distribution
