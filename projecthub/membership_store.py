"""
projecthub/membership_store.py

The (project, user, role) relation. Single source of truth for
authorization decisions.

This is a plain relation store: it enforces uniqueness and existence of
rows and nothing else. Owner protection and role escalation rules live in
access_policy.py and projects.py.
"""

from __future__ import annotations

import sqlite3
from typing import List, Optional

from projecthub.config import IS_DEV
from projecthub.db import now_utc, to_db_time
from projecthub.errors import Conflict, DuplicateMembership, NotFound
from projecthub.models import MemberRole, Membership


class MembershipStore:
    """Membership rows for one database connection."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def get(self, project_id: int, user_id: int) -> Optional[Membership]:
        row = self.conn.execute(
            """
            SELECT id, project_id, user_id, role, joined_at, created_at, updated_at
            FROM project_members
            WHERE project_id = ? AND user_id = ?
            """,
            (project_id, user_id),
        ).fetchone()
        return Membership.from_row(row) if row else None

    def list_by_project(self, project_id: int) -> List[Membership]:
        """All members of a project with username/email, owner first."""
        rows = self.conn.execute(
            """
            SELECT
                m.id, m.project_id, m.user_id, m.role, m.joined_at,
                m.created_at, m.updated_at,
                u.username, u.email
            FROM project_members m
            JOIN users u ON u.id = m.user_id
            WHERE m.project_id = ?
            ORDER BY
                CASE m.role
                    WHEN 'owner' THEN 0
                    WHEN 'admin' THEN 1
                    WHEN 'member' THEN 2
                    ELSE 3
                END,
                m.joined_at
            """,
            (project_id,),
        ).fetchall()
        return [Membership.from_row(r) for r in rows]

    def create(self, project_id: int, user_id: int, role: MemberRole | str) -> Membership:
        role = MemberRole(role)
        now = to_db_time(now_utc())
        try:
            cur = self.conn.execute(
                """
                INSERT INTO project_members (project_id, user_id, role, joined_at, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (project_id, user_id, role.value, now, now, now),
            )
        except sqlite3.IntegrityError as e:
            if "unique" in str(e).lower():
                raise DuplicateMembership(project_id, user_id) from e
            raise

        if IS_DEV:
            print(f"[MEMBERS] Created membership id={cur.lastrowid}: "
                  f"project_id={project_id}, user_id={user_id}, role={role.value}")
        return self.get(project_id, user_id)

    def update_role(
        self,
        project_id: int,
        user_id: int,
        new_role: MemberRole | str,
        expected_role: MemberRole | str | None = None,
    ) -> Membership:
        """
        Set a member's role.

        With expected_role the write only applies if the stored role still
        equals it (compare-and-swap); a lost race raises Conflict.
        Writing the same role twice is a no-op in effect.
        """
        new_role = MemberRole(new_role)
        now = to_db_time(now_utc())

        if expected_role is None:
            cur = self.conn.execute(
                "UPDATE project_members SET role = ?, updated_at = ? WHERE project_id = ? AND user_id = ?",
                (new_role.value, now, project_id, user_id),
            )
        else:
            cur = self.conn.execute(
                """
                UPDATE project_members SET role = ?, updated_at = ?
                WHERE project_id = ? AND user_id = ? AND role = ?
                """,
                (new_role.value, now, project_id, user_id, MemberRole(expected_role).value),
            )

        if cur.rowcount == 0:
            if self.get(project_id, user_id) is None:
                raise NotFound("Membership", f"{project_id}/{user_id}")
            print(f"[MEMBERS] Role changed concurrently: project_id={project_id}, "
                  f"user_id={user_id}, expected={MemberRole(expected_role).value}")
            raise Conflict("Membership changed by another request, retry")

        if IS_DEV:
            print(f"[MEMBERS] Role updated: project_id={project_id}, user_id={user_id}, role={new_role.value}")
        return self.get(project_id, user_id)

    def remove(self, project_id: int, user_id: int) -> None:
        cur = self.conn.execute(
            "DELETE FROM project_members WHERE project_id = ? AND user_id = ?",
            (project_id, user_id),
        )
        if cur.rowcount == 0:
            raise NotFound("Membership", f"{project_id}/{user_id}")

        if IS_DEV:
            print(f"[MEMBERS] Removed: project_id={project_id}, user_id={user_id}")

    def project_ids_for_user(self, user_id: int) -> List[int]:
        """Live (not soft-deleted) projects the user belongs to."""
        rows = self.conn.execute(
            """
            SELECT m.project_id
            FROM project_members m
            JOIN projects p ON p.id = m.project_id
            WHERE m.user_id = ? AND p.deleted_at IS NULL
            ORDER BY m.project_id
            """,
            (user_id,),
        ).fetchall()
        return [r["project_id"] for r in rows]
