"""
projecthub/schemas.py

Request and response bodies for the HTTP layer.

Request models check shape and types only; business validation (empty
names, date order, title length) happens in the services so the same rules
apply to every caller. Update models are partial: routes pass
model_dump(exclude_unset=True) so omitted fields are left alone.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from projecthub.models import (
    MemberRole,
    Project,
    ProjectStatus,
    RequirementPriority,
    RequirementStatus,
    TaskPriority,
    TaskStatus,
    User,
)


def _strip(v: Any) -> Any:
    return v.strip() if isinstance(v, str) else v


# ========================================================================
# AUTH
# ========================================================================

class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str

    @field_validator("username", "email", mode="before")
    @classmethod
    def trim(cls, v):
        return _strip(v)


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: User


class ProfileUpdateRequest(BaseModel):
    username: Optional[str] = None
    avatar_url: Optional[str] = None


# ========================================================================
# PROJECTS + MEMBERS
# ========================================================================

class ProjectCreateRequest(BaseModel):
    name: str = Field(..., description="Project name (1-100 chars)")
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("name", mode="before")
    @classmethod
    def trim_name(cls, v):
        return _strip(v)


class ProjectUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class ProjectListResponse(BaseModel):
    projects: List[Project] = Field(default_factory=list)
    pagination: Pagination


class MemberAddRequest(BaseModel):
    user_id: int
    role: MemberRole = MemberRole.member


class MemberRoleUpdateRequest(BaseModel):
    role: MemberRole


# ========================================================================
# REQUIREMENTS
# ========================================================================

class RequirementCreateRequest(BaseModel):
    title: str
    description: Optional[str] = None
    priority: Optional[RequirementPriority] = None
    status: Optional[RequirementStatus] = None
    acceptance_criteria: Optional[str] = None


class RequirementUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[RequirementPriority] = None
    status: Optional[RequirementStatus] = None
    acceptance_criteria: Optional[str] = None


# ========================================================================
# TASKS
# ========================================================================

class TaskCreateRequest(BaseModel):
    title: str
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    dependencies: Optional[List[int]] = None
    project_id: Optional[int] = None
    requirement_id: Optional[int] = None
    assignee_id: Optional[int] = None


class TaskUpdateRequest(BaseModel):
    """project_id and requirement_id are fixed once a task exists."""
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    dependencies: Optional[List[int]] = None
    assignee_id: Optional[int] = None


class BulkStatusRequest(BaseModel):
    task_ids: List[int] = Field(..., min_length=1)
    status: TaskStatus


class BulkStatusResponse(BaseModel):
    updated: int
    status: TaskStatus


class TaskStatsResponse(BaseModel):
    total_tasks: int
    completed_tasks: int
    completion_rate: float
    status_counts: Dict[str, int]
    priority_counts: Dict[str, int]


# ========================================================================
# DASHBOARD
# ========================================================================

class DashboardStatsResponse(BaseModel):
    project_count: int
    task_count: int
    pending_task_count: int


class ProjectStatsResponse(BaseModel):
    project_id: int
    task_stats: Dict[str, int]
    requirement_stats: Dict[str, int]
    member_count: int
    progress: float


class ActivityUser(BaseModel):
    id: int
    username: Optional[str] = None


class ActivityItem(BaseModel):
    type: str
    id: int
    title: str
    status: str
    updated_at: datetime
    user: Optional[ActivityUser] = None


class MemberTaskCount(BaseModel):
    user_id: int
    username: Optional[str] = None
    role: MemberRole
    task_count: int
    open_task_count: int


class MessageResponse(BaseModel):
    message: str
