"""
projecthub/routes_dashboard.py

Dashboard read endpoints.
"""

from __future__ import annotations

import sqlite3
from typing import List

from fastapi import APIRouter, Depends, Query

from projecthub import dashboard
from projecthub.db import get_db
from projecthub.dependencies import require_caller
from projecthub.models import User
from projecthub.schemas import ActivityItem, DashboardStatsResponse, MemberTaskCount, ProjectStatsResponse

router = APIRouter(
    prefix="/api/dashboard",
    tags=["dashboard"],
)


@router.get("/stats", response_model=DashboardStatsResponse)
def dashboard_stats(
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    return dashboard.dashboard_stats(conn, caller.id)


@router.get("/projects/{project_id}/stats", response_model=ProjectStatsResponse)
def project_stats(
    project_id: int,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    return dashboard.project_stats(conn, project_id, caller.id)


@router.get("/projects/{project_id}/activities", response_model=List[ActivityItem])
def project_activities(
    project_id: int,
    limit: int = Query(10, ge=1, le=dashboard.MAX_ACTIVITY_LIMIT),
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    return dashboard.project_activities(conn, project_id, caller.id, limit=limit)


@router.get("/projects/{project_id}/task-distribution", response_model=List[MemberTaskCount])
def task_distribution(
    project_id: int,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    return dashboard.task_distribution(conn, project_id, caller.id)
