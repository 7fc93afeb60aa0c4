"""
projecthub/requirements.py

Requirements belong to exactly one project and are soft-deleted.

Access:
- read             -> can_view
- create / update  -> can_edit_requirement
- delete           -> can_delete_requirement
"""

from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional

from projecthub import access_policy
from projecthub.config import IS_DEV
from projecthub.db import now_utc, to_db_time, transaction
from projecthub.errors import NotFound, ValidationError
from projecthub.models import Requirement, RequirementPriority, RequirementStatus
from projecthub.projects import ProjectAccess, deny, resolve_access

REQUIREMENT_COLUMNS = (
    "id, title, description, priority, status, acceptance_criteria, project_id, "
    "created_by, deleted_at, created_at, updated_at"
)

EDITABLE_FIELDS = ("title", "description", "priority", "status", "acceptance_criteria")


def _clean_requirement_fields(data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
    cleaned: Dict[str, Any] = {}

    if "title" in data or not partial:
        title = data.get("title")
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("title is required", field="title")
        if len(title.strip()) > 200:
            raise ValidationError("title must be at most 200 characters", field="title")
        cleaned["title"] = title.strip()

    for field in ("description", "acceptance_criteria"):
        if field in data:
            cleaned[field] = data[field] or None

    if data.get("priority") is not None:
        try:
            cleaned["priority"] = RequirementPriority(data["priority"])
        except ValueError:
            raise ValidationError(f"invalid requirement priority: {data['priority']!r}", field="priority")

    if data.get("status") is not None:
        try:
            cleaned["status"] = RequirementStatus(data["status"])
        except ValueError:
            raise ValidationError(f"invalid requirement status: {data['status']!r}", field="status")

    return cleaned


def _load_requirement(conn: sqlite3.Connection, requirement_id: int) -> Requirement:
    row = conn.execute(
        f"SELECT {REQUIREMENT_COLUMNS} FROM requirements WHERE id = ? AND deleted_at IS NULL",
        (requirement_id,),
    ).fetchone()
    if row is None:
        raise NotFound("Requirement", requirement_id)
    return Requirement.from_row(row)


def _access_for(conn: sqlite3.Connection, requirement_id: int, caller_id: int) -> tuple[Requirement, ProjectAccess]:
    requirement = _load_requirement(conn, requirement_id)
    return requirement, resolve_access(conn, requirement.project_id, caller_id)


def create_requirement(
    conn: sqlite3.Connection,
    project_id: int,
    data: Dict[str, Any],
    caller_id: int,
) -> Requirement:
    cleaned = _clean_requirement_fields(data, partial=False)

    now = to_db_time(now_utc())
    with transaction(conn):
        access = resolve_access(conn, project_id, caller_id)
        if not access_policy.can_edit_requirement(access.membership, access.is_global_admin):
            deny(access, caller_id, "create requirements")

        cur = conn.execute(
            """
            INSERT INTO requirements (
                title, description, priority, status, acceptance_criteria,
                project_id, created_by, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                cleaned["title"],
                cleaned.get("description"),
                cleaned.get("priority", RequirementPriority.medium).value,
                cleaned.get("status", RequirementStatus.draft).value,
                cleaned.get("acceptance_criteria"),
                project_id,
                caller_id,
                now,
                now,
            ),
        )
        requirement_id = cur.lastrowid

    print(f"[REQUIREMENTS] Created requirement_id={requirement_id}, project_id={project_id}, user_id={caller_id}")
    return _load_requirement(conn, requirement_id)


def get_requirement(conn: sqlite3.Connection, requirement_id: int, caller_id: int) -> Requirement:
    requirement, access = _access_for(conn, requirement_id, caller_id)
    if not access_policy.can_view(access.membership, access.is_global_admin):
        deny(access, caller_id, "view requirements")
    return requirement


def list_requirements(
    conn: sqlite3.Connection,
    project_id: int,
    caller_id: int,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
) -> List[Requirement]:
    """Live requirements of a project, most recently updated first."""
    access = resolve_access(conn, project_id, caller_id)
    if not access_policy.can_view(access.membership, access.is_global_admin):
        deny(access, caller_id, "view requirements")

    where = ["project_id = ?", "deleted_at IS NULL"]
    params: List[Any] = [project_id]

    if status:
        try:
            params.append(RequirementStatus(status).value)
        except ValueError:
            raise ValidationError(f"invalid requirement status: {status!r}", field="status")
        where.append("status = ?")
    if priority:
        try:
            params.append(RequirementPriority(priority).value)
        except ValueError:
            raise ValidationError(f"invalid requirement priority: {priority!r}", field="priority")
        where.append("priority = ?")
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        where.append("(title LIKE ? OR description LIKE ?)")
        params += [pattern, pattern]

    rows = conn.execute(
        f"""
        SELECT {REQUIREMENT_COLUMNS}
        FROM requirements
        WHERE {" AND ".join(where)}
        ORDER BY updated_at DESC, id DESC
        """,
        params,
    ).fetchall()

    if IS_DEV:
        print(f"[REQUIREMENTS] List project_id={project_id}: status={status!r}, "
              f"priority={priority!r}, search={search!r}, results={len(rows)}")
    return [Requirement.from_row(r) for r in rows]


def update_requirement(
    conn: sqlite3.Connection,
    requirement_id: int,
    patch: Dict[str, Any],
    caller_id: int,
) -> Requirement:
    cleaned = _clean_requirement_fields(patch, partial=True)

    with transaction(conn):
        _, access = _access_for(conn, requirement_id, caller_id)
        if not access_policy.can_edit_requirement(access.membership, access.is_global_admin):
            deny(access, caller_id, "edit requirements")

        if cleaned:
            assignments = []
            values: List[Any] = []
            for field in EDITABLE_FIELDS:
                if field not in cleaned:
                    continue
                value = cleaned[field]
                if isinstance(value, (RequirementPriority, RequirementStatus)):
                    value = value.value
                assignments.append(f"{field} = ?")
                values.append(value)
            assignments.append("updated_at = ?")
            values.append(to_db_time(now_utc()))
            conn.execute(
                f"UPDATE requirements SET {', '.join(assignments)} WHERE id = ?",
                (*values, requirement_id),
            )

    if IS_DEV:
        print(f"[REQUIREMENTS] Updated requirement_id={requirement_id}, fields={sorted(cleaned)}")
    return _load_requirement(conn, requirement_id)


def delete_requirement(conn: sqlite3.Connection, requirement_id: int, caller_id: int) -> None:
    """Soft delete. Tasks pointing at the requirement keep their reference."""
    with transaction(conn):
        _, access = _access_for(conn, requirement_id, caller_id)
        if not access_policy.can_delete_requirement(access.membership, access.is_global_admin):
            deny(access, caller_id, "delete requirements")

        now = to_db_time(now_utc())
        conn.execute(
            "UPDATE requirements SET deleted_at = ?, updated_at = ? WHERE id = ?",
            (now, now, requirement_id),
        )

    print(f"[REQUIREMENTS] Deleted requirement_id={requirement_id} by user_id={caller_id}")
