"""
projecthub/access_policy.py

Project-scoped access policy.

Every decision is a function of the caller's resolved membership on the
project (or None for non-members) and whether the caller is a global admin
user. Global admins bypass project-scoped permission checks; they never
bypass the owner invariants enforced in projects.py.

Pure Python logic - no FastAPI imports, no database access.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Set

from projecthub.models import MemberRole, Membership


class Permission(str, Enum):
    """Operations gated by project membership."""

    PROJECT_VIEW = "project:view"
    PROJECT_EDIT = "project:edit"
    PROJECT_DELETE = "project:delete"
    MEMBERS_MANAGE = "members:manage"
    MEMBERS_UPDATE_ROLE = "members:update_role"
    TASK_MUTATE = "task:mutate"
    REQUIREMENT_EDIT = "requirement:edit"
    REQUIREMENT_DELETE = "requirement:delete"


# ============================================================================
# Role to Permissions Mapping
# ============================================================================

ROLE_PERMISSIONS: Dict[str, Set[Permission]] = {
    "owner": {
        Permission.PROJECT_VIEW,
        Permission.PROJECT_EDIT,
        Permission.PROJECT_DELETE,
        Permission.MEMBERS_MANAGE,
        Permission.MEMBERS_UPDATE_ROLE,
        Permission.TASK_MUTATE,
        Permission.REQUIREMENT_EDIT,
        Permission.REQUIREMENT_DELETE,
    },
    "admin": {
        # Admin edits the project and its children but cannot delete it,
        # add or remove members, or touch other admins' roles.
        Permission.PROJECT_VIEW,
        Permission.PROJECT_EDIT,
        Permission.MEMBERS_UPDATE_ROLE,
        Permission.TASK_MUTATE,
        Permission.REQUIREMENT_EDIT,
        Permission.REQUIREMENT_DELETE,
    },
    "member": {
        Permission.PROJECT_VIEW,
        Permission.TASK_MUTATE,
        Permission.REQUIREMENT_EDIT,
    },
    "viewer": {
        Permission.PROJECT_VIEW,
    },
}


def _role_of(membership: Optional[Membership]) -> str:
    if membership is None:
        return ""
    role = membership.role
    return role.value if isinstance(role, MemberRole) else str(role)


def permissions_for(membership: Optional[Membership], is_global_admin: bool = False) -> Set[Permission]:
    """
    Effective permissions for a caller on one project.

    Returns every permission for global admins, the role's set for members,
    and an empty set for non-members.
    """
    if is_global_admin:
        return set(Permission)
    return set(ROLE_PERMISSIONS.get(_role_of(membership), set()))


def has_permission(
    membership: Optional[Membership],
    permission: Permission,
    is_global_admin: bool = False,
) -> bool:
    return permission in permissions_for(membership, is_global_admin)


# ============================================================================
# Named checks
# ============================================================================

def can_view(membership: Optional[Membership], is_global_admin: bool = False) -> bool:
    """Any role, including viewer."""
    return has_permission(membership, Permission.PROJECT_VIEW, is_global_admin)


def can_edit_project(membership: Optional[Membership], is_global_admin: bool = False) -> bool:
    """Owner or admin."""
    return has_permission(membership, Permission.PROJECT_EDIT, is_global_admin)


def can_delete_project(membership: Optional[Membership], is_global_admin: bool = False) -> bool:
    """Owner only."""
    return has_permission(membership, Permission.PROJECT_DELETE, is_global_admin)


def can_manage_members(membership: Optional[Membership], is_global_admin: bool = False) -> bool:
    """Owner only: adding members and removing someone other than yourself."""
    return has_permission(membership, Permission.MEMBERS_MANAGE, is_global_admin)


def can_mutate_task(membership: Optional[Membership], is_global_admin: bool = False) -> bool:
    """Owner, admin or member. Viewers are read-only."""
    return has_permission(membership, Permission.TASK_MUTATE, is_global_admin)


def can_edit_requirement(membership: Optional[Membership], is_global_admin: bool = False) -> bool:
    return has_permission(membership, Permission.REQUIREMENT_EDIT, is_global_admin)


def can_delete_requirement(membership: Optional[Membership], is_global_admin: bool = False) -> bool:
    return has_permission(membership, Permission.REQUIREMENT_DELETE, is_global_admin)


def can_update_member_role(
    membership: Optional[Membership],
    target_role: MemberRole | str,
    is_global_admin: bool = False,
) -> bool:
    """
    Owner or admin may change a member's role, except that only the owner
    may change the role of an admin.

    Whether the owner role is involved at all is an invariant, not a
    permission; projects.update_member_role rejects that before calling here.
    """
    if not has_permission(membership, Permission.MEMBERS_UPDATE_ROLE, is_global_admin):
        return False
    if MemberRole(target_role) == MemberRole.admin:
        return is_global_admin or _role_of(membership) == MemberRole.owner.value
    return True
