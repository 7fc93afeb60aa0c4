from __future__ import annotations

import sqlite3
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from projecthub.db import from_db_time, load_id_list


# Enums
class UserRole(str, Enum):
    user = "user"
    admin = "admin"


class MemberRole(str, Enum):
    owner = "owner"
    admin = "admin"
    member = "member"
    viewer = "viewer"


class ProjectStatus(str, Enum):
    planning = "planning"
    in_progress = "in_progress"
    completed = "completed"
    on_hold = "on_hold"
    cancelled = "cancelled"


class RequirementPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class RequirementStatus(str, Enum):
    draft = "draft"
    review = "review"
    approved = "approved"
    rejected = "rejected"
    implemented = "implemented"


class TaskStatus(str, Enum):
    todo = "todo"
    in_progress = "in_progress"
    review = "review"
    done = "done"


class TaskPriority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


# Models
class User(BaseModel):
    id: int
    username: str
    email: str
    role: UserRole = UserRole.user
    avatar_url: Optional[str] = None
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_global_admin(self) -> bool:
        return self.role == UserRole.admin

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "User":
        return cls(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            role=row["role"],
            avatar_url=row["avatar_url"],
            deleted_at=from_db_time(row["deleted_at"]),
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
        )


class Membership(BaseModel):
    id: int
    project_id: int
    user_id: int
    role: MemberRole
    joined_at: datetime
    created_at: datetime
    updated_at: datetime
    # Joined from users for display; absent when read without the join
    username: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Membership":
        keys = row.keys()
        return cls(
            id=row["id"],
            project_id=row["project_id"],
            user_id=row["user_id"],
            role=row["role"],
            joined_at=from_db_time(row["joined_at"]),
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
            username=row["username"] if "username" in keys else None,
            email=row["email"] if "email" in keys else None,
        )


class Project(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    status: ProjectStatus = ProjectStatus.planning
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_by: int
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    members: List[Membership] = Field(default_factory=list)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Project":
        return cls(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            status=row["status"],
            start_date=from_db_time(row["start_date"]),
            end_date=from_db_time(row["end_date"]),
            created_by=row["created_by"],
            deleted_at=from_db_time(row["deleted_at"]),
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
        )


class Requirement(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    priority: RequirementPriority = RequirementPriority.medium
    status: RequirementStatus = RequirementStatus.draft
    acceptance_criteria: Optional[str] = None
    project_id: int
    created_by: int
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Requirement":
        return cls(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            priority=row["priority"],
            status=row["status"],
            acceptance_criteria=row["acceptance_criteria"],
            project_id=row["project_id"],
            created_by=row["created_by"],
            deleted_at=from_db_time(row["deleted_at"]),
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
        )


class Task(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.todo
    priority: TaskPriority = TaskPriority.medium
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    dependencies: List[int] = Field(default_factory=list)
    project_id: Optional[int] = None
    requirement_id: Optional[int] = None
    assignee_id: Optional[int] = None
    creator_id: int
    created_at: datetime
    updated_at: datetime
    elapsed_hours: Optional[float] = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Task":
        return cls(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            status=row["status"],
            priority=row["priority"],
            estimated_hours=row["estimated_hours"],
            actual_hours=row["actual_hours"],
            start_date=from_db_time(row["start_date"]),
            due_date=from_db_time(row["due_date"]),
            completed_date=from_db_time(row["completed_date"]),
            dependencies=load_id_list(row["dependencies"]),
            project_id=row["project_id"],
            requirement_id=row["requirement_id"],
            assignee_id=row["assignee_id"],
            creator_id=row["creator_id"],
            created_at=from_db_time(row["created_at"]),
            updated_at=from_db_time(row["updated_at"]),
        )
