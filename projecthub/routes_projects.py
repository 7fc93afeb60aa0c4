"""
projecthub/routes_projects.py

Project, membership and per-project requirement endpoints.

Every endpoint requires a bearer token. Authorization is decided inside the
project services (projects.py / requirements.py); this module only shapes
requests and responses.
"""

from __future__ import annotations

import sqlite3
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from projecthub import projects, requirements
from projecthub.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from projecthub.db import get_db
from projecthub.dependencies import require_caller
from projecthub.models import Membership, Project, ProjectStatus, Requirement, RequirementPriority, RequirementStatus, User
from projecthub.schemas import (
    MemberAddRequest,
    MemberRoleUpdateRequest,
    MessageResponse,
    ProjectCreateRequest,
    ProjectListResponse,
    ProjectUpdateRequest,
    RequirementCreateRequest,
)

router = APIRouter(
    prefix="/api/projects",
    tags=["projects"],
)


# ---------------------------------------------------------
# Projects
# ---------------------------------------------------------
@router.get("", response_model=ProjectListResponse)
def list_projects(
    status: Optional[ProjectStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort: str = Query("created_at"),
    order: str = Query("desc"),
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    """Projects the caller is a member of, paginated."""
    return projects.list_projects(
        conn,
        caller.id,
        status=status.value if status else None,
        page=page,
        limit=limit,
        sort=sort,
        order=order,
    )


@router.post("", response_model=Project, status_code=201)
def create_project(
    request: ProjectCreateRequest,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    return projects.create_project(conn, request.model_dump(exclude_unset=True), caller.id)


@router.get("/{project_id}", response_model=Project)
def get_project(
    project_id: int,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    return projects.get_project(conn, project_id, caller.id)


@router.put("/{project_id}", response_model=Project)
def update_project(
    project_id: int,
    request: ProjectUpdateRequest,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    return projects.update_project(conn, project_id, request.model_dump(exclude_unset=True), caller.id)


@router.delete("/{project_id}", response_model=MessageResponse)
def delete_project(
    project_id: int,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    projects.delete_project(conn, project_id, caller.id)
    return {"message": "Project deleted"}


# ---------------------------------------------------------
# Members
# ---------------------------------------------------------
@router.get("/{project_id}/members", response_model=List[Membership])
def list_members(
    project_id: int,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    return projects.list_members(conn, project_id, caller.id)


@router.post("/{project_id}/members", response_model=Membership, status_code=201)
def add_member(
    project_id: int,
    request: MemberAddRequest,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    return projects.add_member(conn, project_id, request.user_id, request.role, caller.id)


@router.put("/{project_id}/members/{user_id}", response_model=Membership)
def update_member_role(
    project_id: int,
    user_id: int,
    request: MemberRoleUpdateRequest,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    return projects.update_member_role(conn, project_id, user_id, request.role, caller.id)


@router.delete("/{project_id}/members/{user_id}", response_model=MessageResponse)
def remove_member(
    project_id: int,
    user_id: int,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    projects.remove_member(conn, project_id, user_id, caller.id)
    return {"message": "Member removed"}


# ---------------------------------------------------------
# Requirements of a project
# ---------------------------------------------------------
@router.get("/{project_id}/requirements", response_model=List[Requirement])
def list_requirements(
    project_id: int,
    status: Optional[RequirementStatus] = Query(None),
    priority: Optional[RequirementPriority] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    return requirements.list_requirements(
        conn,
        project_id,
        caller.id,
        status=status.value if status else None,
        priority=priority.value if priority else None,
        search=search,
    )


@router.post("/{project_id}/requirements", response_model=Requirement, status_code=201)
def create_requirement(
    project_id: int,
    request: RequirementCreateRequest,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    return requirements.create_requirement(conn, project_id, request.model_dump(exclude_unset=True), caller.id)
