"""
projecthub/projects.py

Project aggregate: the project entity plus the membership operations that
guard it.

Every operation resolves the caller's membership first and asks
access_policy before touching the Membership Store:

- project missing (or soft-deleted)        -> NotFound
- caller has no membership (view/edit)     -> NotFound (existence is not leaked)
- membership present but role insufficient -> Forbidden
- owner removal / owner role change        -> InvariantViolation, for any caller who can see the project

Exactly one owner per project: the owner membership is created in the same
transaction as the project and no path here can delete it or change its role.
"""

from __future__ import annotations

import math
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from projecthub import access_policy
from projecthub.accounts import require_user
from projecthub.config import DEFAULT_PAGE_SIZE, IS_DEV, MAX_PAGE_SIZE
from projecthub.db import now_utc, to_db_time, to_utc, transaction
from projecthub.errors import DuplicateMembership, Forbidden, InvariantViolation, NotFound, ValidationError
from projecthub.membership_store import MembershipStore
from projecthub.models import MemberRole, Membership, Project, ProjectStatus

PROJECT_COLUMNS = (
    "id, name, description, status, start_date, end_date, created_by, "
    "deleted_at, created_at, updated_at"
)

PROJECT_COLUMNS_P = ", ".join("p." + c.strip() for c in PROJECT_COLUMNS.split(","))

EDITABLE_FIELDS = ("name", "description", "status", "start_date", "end_date")

SORTABLE_COLUMNS = {
    "created_at": "created_at",
    "createdAt": "created_at",
    "updated_at": "updated_at",
    "name": "name",
    "status": "status",
    "start_date": "start_date",
    "end_date": "end_date",
}


@dataclass
class ProjectAccess:
    """Resolved caller context for one project."""
    project: Project
    membership: Optional[Membership]
    is_global_admin: bool

    @property
    def role(self) -> Optional[str]:
        return self.membership.role.value if self.membership else None


# ---------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------
def _parse_datetime(value: Any, field: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, str):
        try:
            return to_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            raise ValidationError(f"{field} is not a valid date", field=field)
    raise ValidationError(f"{field} is not a valid date", field=field)


def _clean_project_fields(data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
    """Validate the provided fields and return them normalized. Unknown keys are ignored."""
    cleaned: Dict[str, Any] = {}

    if "name" in data or not partial:
        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name is required", field="name")
        name = name.strip()
        if len(name) > 100:
            raise ValidationError("name must be at most 100 characters", field="name")
        cleaned["name"] = name

    if "description" in data:
        cleaned["description"] = data["description"] or None

    if "status" in data and data["status"] is not None:
        try:
            cleaned["status"] = ProjectStatus(data["status"])
        except ValueError:
            raise ValidationError(f"invalid project status: {data['status']!r}", field="status")

    for field in ("start_date", "end_date"):
        if field in data:
            cleaned[field] = _parse_datetime(data[field], field)

    return cleaned


def _check_date_order(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start is not None and end is not None and end < start:
        raise ValidationError("end_date must not be before start_date", field="end_date")


# ---------------------------------------------------------
# Resolution
# ---------------------------------------------------------
def _load_project(conn: sqlite3.Connection, project_id: int) -> Optional[Project]:
    row = conn.execute(
        f"SELECT {PROJECT_COLUMNS} FROM projects WHERE id = ? AND deleted_at IS NULL",
        (project_id,),
    ).fetchone()
    return Project.from_row(row) if row else None


def resolve_access(conn: sqlite3.Connection, project_id: int, caller_id: int) -> ProjectAccess:
    """
    Load the project and the caller's membership on it.

    Raises NotFound when the project is missing, or when the caller is
    neither a member nor a global admin.
    """
    project = _load_project(conn, project_id)
    if project is None:
        raise NotFound("Project", project_id)

    caller = require_user(conn, caller_id, label="Caller")
    membership = MembershipStore(conn).get(project_id, caller_id)

    if membership is None and not caller.is_global_admin:
        if IS_DEV:
            print(f"[PROJECTS] Non-member access: project_id={project_id}, user_id={caller_id}")
        raise NotFound("Project", project_id)

    return ProjectAccess(project=project, membership=membership, is_global_admin=caller.is_global_admin)


def deny(access: ProjectAccess, caller_id: int, action: str) -> None:
    print(f"[PROJECTS] Forbidden: action={action}, project_id={access.project.id}, "
          f"user_id={caller_id}, role={access.role}")
    raise Forbidden(f"Insufficient project role to {action}")


# ---------------------------------------------------------
# Project CRUD
# ---------------------------------------------------------
def create_project(conn: sqlite3.Connection, data: Dict[str, Any], creator_id: int) -> Project:
    """Create a project and its owner membership atomically."""
    cleaned = _clean_project_fields(data, partial=False)
    _check_date_order(cleaned.get("start_date"), cleaned.get("end_date"))
    require_user(conn, creator_id, label="Creator")

    now = to_db_time(now_utc())
    with transaction(conn):
        cur = conn.execute(
            """
            INSERT INTO projects (name, description, status, start_date, end_date, created_by, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                cleaned["name"],
                cleaned.get("description"),
                cleaned.get("status", ProjectStatus.planning).value,
                to_db_time(cleaned.get("start_date")),
                to_db_time(cleaned.get("end_date")),
                creator_id,
                now,
                now,
            ),
        )
        project_id = cur.lastrowid
        MembershipStore(conn).create(project_id, creator_id, MemberRole.owner)

    print(f"[PROJECTS] Created project_id={project_id} by user_id={creator_id}")
    return get_project(conn, project_id, creator_id)


def get_project(conn: sqlite3.Connection, project_id: int, caller_id: int) -> Project:
    access = resolve_access(conn, project_id, caller_id)
    if not access_policy.can_view(access.membership, access.is_global_admin):
        deny(access, caller_id, "view project")

    project = access.project
    project.members = MembershipStore(conn).list_by_project(project_id)
    return project


def list_projects(
    conn: sqlite3.Connection,
    caller_id: int,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    sort: str = "created_at",
    order: str = "desc",
) -> Dict[str, Any]:
    """
    Projects visible to the caller (memberships; everything for global admins),
    newest first by default, with pagination metadata.
    """
    caller = require_user(conn, caller_id, label="Caller")

    page = max(1, int(page))
    limit = max(1, min(int(limit), MAX_PAGE_SIZE))
    sort_column = SORTABLE_COLUMNS.get(sort)
    if sort_column is None:
        raise ValidationError(f"cannot sort by {sort!r}", field="sort")
    direction = "ASC" if str(order).lower() == "asc" else "DESC"

    where = ["p.deleted_at IS NULL"]
    params: List[Any] = []
    if not caller.is_global_admin:
        where.append("EXISTS (SELECT 1 FROM project_members m WHERE m.project_id = p.id AND m.user_id = ?)")
        params.append(caller_id)
    if status:
        try:
            params.append(ProjectStatus(status).value)
        except ValueError:
            raise ValidationError(f"invalid project status: {status!r}", field="status")
        where.append("p.status = ?")

    where_sql = " AND ".join(where)
    total = conn.execute(
        f"SELECT COUNT(*) AS n FROM projects p WHERE {where_sql}", params
    ).fetchone()["n"]

    rows = conn.execute(
        f"""
        SELECT {PROJECT_COLUMNS_P}
        FROM projects p
        WHERE {where_sql}
        ORDER BY p.{sort_column} {direction}, p.id {direction}
        LIMIT ? OFFSET ?
        """,
        (*params, limit, (page - 1) * limit),
    ).fetchall()

    store = MembershipStore(conn)
    projects = []
    for row in rows:
        project = Project.from_row(row)
        project.members = store.list_by_project(project.id)
        projects.append(project)

    if IS_DEV:
        print(f"[PROJECTS] List: user_id={caller_id}, status={status!r}, page={page}, results={len(projects)}/{total}")

    return {
        "projects": projects,
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    }


def update_project(conn: sqlite3.Connection, project_id: int, patch: Dict[str, Any], caller_id: int) -> Project:
    """Partial update; only the fields present in patch change."""
    cleaned = _clean_project_fields(patch, partial=True)

    with transaction(conn):
        access = resolve_access(conn, project_id, caller_id)
        if not access_policy.can_edit_project(access.membership, access.is_global_admin):
            deny(access, caller_id, "edit project")

        current = access.project
        _check_date_order(
            cleaned["start_date"] if "start_date" in cleaned else current.start_date,
            cleaned["end_date"] if "end_date" in cleaned else current.end_date,
        )

        if cleaned:
            assignments = []
            values: List[Any] = []
            for field in EDITABLE_FIELDS:
                if field not in cleaned:
                    continue
                value = cleaned[field]
                if isinstance(value, ProjectStatus):
                    value = value.value
                elif isinstance(value, datetime):
                    value = to_db_time(value)
                assignments.append(f"{field} = ?")
                values.append(value)
            assignments.append("updated_at = ?")
            values.append(to_db_time(now_utc()))
            conn.execute(
                f"UPDATE projects SET {', '.join(assignments)} WHERE id = ?",
                (*values, project_id),
            )

    if IS_DEV:
        print(f"[PROJECTS] Updated project_id={project_id}, fields={sorted(cleaned)}")
    return get_project(conn, project_id, caller_id)


def delete_project(conn: sqlite3.Connection, project_id: int, caller_id: int) -> None:
    """
    Soft-delete a project (owner only).

    Requirements are soft-deleted with it; tasks have no soft-delete and are
    removed. Memberships are kept so the owner invariant still holds for the
    archived row; they go away with the row itself (ON DELETE CASCADE).
    """
    with transaction(conn):
        access = resolve_access(conn, project_id, caller_id)
        if not access_policy.can_delete_project(access.membership, access.is_global_admin):
            deny(access, caller_id, "delete project")

        now = to_db_time(now_utc())
        conn.execute(
            "UPDATE projects SET deleted_at = ?, updated_at = ? WHERE id = ?",
            (now, now, project_id),
        )
        req_cur = conn.execute(
            "UPDATE requirements SET deleted_at = ?, updated_at = ? WHERE project_id = ? AND deleted_at IS NULL",
            (now, now, project_id),
        )
        task_cur = conn.execute("DELETE FROM tasks WHERE project_id = ?", (project_id,))

    print(f"[PROJECTS] Deleted project_id={project_id} by user_id={caller_id} "
          f"(requirements={req_cur.rowcount}, tasks={task_cur.rowcount})")


# ---------------------------------------------------------
# Membership operations
# ---------------------------------------------------------
def _parse_role(role: Any) -> MemberRole:
    try:
        return MemberRole(role)
    except ValueError:
        raise ValidationError(f"invalid member role: {role!r}", field="role")


def list_members(conn: sqlite3.Connection, project_id: int, caller_id: int) -> List[Membership]:
    access = resolve_access(conn, project_id, caller_id)
    if not access_policy.can_view(access.membership, access.is_global_admin):
        deny(access, caller_id, "view members")
    return MembershipStore(conn).list_by_project(project_id)


def add_member(
    conn: sqlite3.Connection,
    project_id: int,
    target_user_id: int,
    role: Any,
    caller_id: int,
) -> Membership:
    """Owner adds a user with a non-owner role."""
    role = _parse_role(role)
    if role == MemberRole.owner:
        raise InvariantViolation("A project has exactly one owner; the owner role cannot be assigned")

    with transaction(conn):
        access = resolve_access(conn, project_id, caller_id)
        if not access_policy.can_manage_members(access.membership, access.is_global_admin):
            deny(access, caller_id, "add members")

        store = MembershipStore(conn)
        if store.get(project_id, target_user_id) is not None:
            raise DuplicateMembership(project_id, target_user_id)
        require_user(conn, target_user_id)
        membership = store.create(project_id, target_user_id, role)

    print(f"[MEMBERS] Added user_id={target_user_id} to project_id={project_id} "
          f"as {role.value} by user_id={caller_id}")
    return _with_user(conn, membership)


def remove_member(conn: sqlite3.Connection, project_id: int, target_user_id: int, caller_id: int) -> None:
    """
    Remove a member. The owner can never be removed, by anyone. A member may
    always remove themselves; removing someone else needs the owner.
    """
    removing_self = target_user_id == caller_id

    with transaction(conn):
        # Non-members get NotFound before the target is looked up
        access = None
        if removing_self:
            if _load_project(conn, project_id) is None:
                raise NotFound("Project", project_id)
        else:
            access = resolve_access(conn, project_id, caller_id)

        store = MembershipStore(conn)
        target = store.get(project_id, target_user_id)
        if target is None:
            raise NotFound("Membership", f"{project_id}/{target_user_id}")

        if target.role == MemberRole.owner:
            print(f"[MEMBERS] Rejected owner removal: project_id={project_id}, "
                  f"owner_id={target_user_id}, caller_id={caller_id}")
            raise InvariantViolation("The project owner cannot be removed")

        if access is not None and not access_policy.can_manage_members(access.membership, access.is_global_admin):
            deny(access, caller_id, "remove members")

        store.remove(project_id, target_user_id)

    print(f"[MEMBERS] Removed user_id={target_user_id} from project_id={project_id} by user_id={caller_id}")


def update_member_role(
    conn: sqlite3.Connection,
    project_id: int,
    target_user_id: int,
    new_role: Any,
    caller_id: int,
) -> Membership:
    """
    Change a non-owner member's role to another non-owner role.

    Owner or admin callers only; an admin target can only be changed by the
    owner. The write is a compare-and-swap on the role read in this
    transaction.
    """
    new_role = _parse_role(new_role)

    with transaction(conn):
        access = resolve_access(conn, project_id, caller_id)
        if not access_policy.has_permission(
            access.membership, access_policy.Permission.MEMBERS_UPDATE_ROLE, access.is_global_admin
        ):
            deny(access, caller_id, "change member roles")

        store = MembershipStore(conn)
        target = store.get(project_id, target_user_id)
        if target is None:
            raise NotFound("Membership", f"{project_id}/{target_user_id}")

        if target.role == MemberRole.owner or new_role == MemberRole.owner:
            print(f"[MEMBERS] Rejected owner role change: project_id={project_id}, "
                  f"target_id={target_user_id}, new_role={new_role.value}")
            raise InvariantViolation("The owner role cannot be assigned or changed")

        if not access_policy.can_update_member_role(access.membership, target.role, access.is_global_admin):
            deny(access, caller_id, f"change the role of an {target.role.value}")

        updated = store.update_role(project_id, target_user_id, new_role, expected_role=target.role)

    print(f"[MEMBERS] Role change project_id={project_id}, user_id={target_user_id}: "
          f"{target.role.value} -> {new_role.value} by user_id={caller_id}")
    return _with_user(conn, updated)


def _with_user(conn: sqlite3.Connection, membership: Membership) -> Membership:
    """Fill username/email for a membership returned to the caller."""
    for member in MembershipStore(conn).list_by_project(membership.project_id):
        if member.user_id == membership.user_id:
            return member
    return membership
