"""
projecthub/dependencies.py

Reusable FastAPI dependencies: bearer-token authentication and
project-permission enforcement.
"""

from __future__ import annotations

import sqlite3
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Path
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from projecthub import access_policy
from projecthub.access_policy import Permission
from projecthub.accounts import decode_access_token, get_user
from projecthub.config import IS_DEV
from projecthub.db import get_db
from projecthub.errors import AuthenticationError
from projecthub.models import User
from projecthub.projects import ProjectAccess, deny, resolve_access

# auto_error=False so a missing header is a 401 like any other bad token
security = HTTPBearer(auto_error=False)


def require_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    conn: sqlite3.Connection = Depends(get_db),
) -> User:
    """
    Resolve the authenticated user from the Authorization header.

    Raises:
        HTTPException(401): missing/invalid/expired token, or the user no
        longer exists
    """
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        user_id = decode_access_token(credentials.credentials)
    except AuthenticationError as e:
        if IS_DEV:
            print(f"[AUTH] Rejected token: {e.message}")
        raise HTTPException(status_code=401, detail=e.message)

    user = get_user(conn, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def check_project_permission(
    conn: sqlite3.Connection,
    project_id: int,
    caller: User,
    permission: Permission,
) -> ProjectAccess:
    """Resolve the caller's access on a project and require one permission."""
    access = resolve_access(conn, project_id, caller.id)
    if not access_policy.has_permission(access.membership, permission, access.is_global_admin):
        deny(access, caller.id, permission.value)
    return access


def require_project_permission(permission: Permission) -> Callable:
    """
    FastAPI dependency factory for project-scoped authorization.

    The route must take a `project_id` path parameter. Non-members get 404,
    members without the permission get 403 (via the exception handlers in
    main.py).

    Usage in routes:
        @router.get("/stats/{project_id}")
        def stats(access: ProjectAccess = Depends(require_project_permission(Permission.PROJECT_VIEW))):
            ...
    """
    def _check_permission(
        project_id: int = Path(...),
        caller: User = Depends(require_caller),
        conn: sqlite3.Connection = Depends(get_db),
    ) -> ProjectAccess:
        access = check_project_permission(conn, project_id, caller, permission)
        if IS_DEV:
            print(f"[AUTHZ] Granted {permission.value}: project_id={project_id}, "
                  f"user_id={caller.id}, role={access.role}")
        return access

    return _check_permission
