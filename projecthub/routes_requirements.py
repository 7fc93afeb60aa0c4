"""
projecthub/routes_requirements.py

Single-requirement endpoints. Listing and creation live under
/api/projects/{project_id}/requirements in routes_projects.py.
"""

from __future__ import annotations

import sqlite3

from fastapi import APIRouter, Depends

from projecthub import requirements
from projecthub.db import get_db
from projecthub.dependencies import require_caller
from projecthub.models import Requirement, User
from projecthub.schemas import MessageResponse, RequirementUpdateRequest

router = APIRouter(
    prefix="/api/requirements",
    tags=["requirements"],
)


@router.get("/{requirement_id}", response_model=Requirement)
def get_requirement(
    requirement_id: int,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    return requirements.get_requirement(conn, requirement_id, caller.id)


@router.put("/{requirement_id}", response_model=Requirement)
def update_requirement(
    requirement_id: int,
    request: RequirementUpdateRequest,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    return requirements.update_requirement(
        conn, requirement_id, request.model_dump(exclude_unset=True), caller.id
    )


@router.delete("/{requirement_id}", response_model=MessageResponse)
def delete_requirement(
    requirement_id: int,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    requirements.delete_requirement(conn, requirement_id, caller.id)
    return {"message": "Requirement deleted"}
