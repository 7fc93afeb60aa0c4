# ---------------------------------------------------------
# projecthub/main.py
# ProjectHub - project, requirement and task tracking backend
#
# Run: uvicorn projecthub.main:app --reload (from repo root)
#
# - FastAPI + SQLite
# - /auth/*            : register, login, current user
# - /api/projects      : projects + role-scoped membership
# - /api/requirements  : requirements (soft delete)
# - /api/tasks         : task workflow (status transitions, bulk status, stats)
# - /api/dashboard     : aggregates
# ---------------------------------------------------------

from __future__ import annotations

import sqlite3
from contextlib import asynccontextmanager
from typing import Dict

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from projecthub import accounts
from projecthub.config import CORS_ORIGINS, ENV, IS_DEV, IS_PROD
from projecthub.db import get_db, init_db
from projecthub.dependencies import require_caller
from projecthub.errors import (
    AuthenticationError,
    DuplicateMembership,
    Forbidden,
    InvariantViolation,
    NotFound,
    ProjectHubError,
    ValidationError,
)
from projecthub.models import User
from projecthub.routes_dashboard import router as dashboard_router
from projecthub.routes_projects import router as projects_router
from projecthub.routes_requirements import router as requirements_router
from projecthub.routes_tasks import router as tasks_router
from projecthub.schemas import LoginRequest, MessageResponse, ProfileUpdateRequest, RegisterRequest, TokenResponse

# Most specific class wins (Conflict resolves through Forbidden)
ERROR_STATUS = {
    NotFound: 404,
    Forbidden: 403,
    ValidationError: 400,
    DuplicateMembership: 400,
    InvariantViolation: 400,
    AuthenticationError: 401,
}


def status_for(exc: ProjectHubError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    print(f"[STARTUP] ProjectHub backend ready (env={ENV})")
    yield


# ---------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------
app = FastAPI(title="ProjectHub Backend", version="0.1", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if IS_PROD else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(projects_router)
app.include_router(requirements_router)
app.include_router(tasks_router)
app.include_router(dashboard_router)


# ---------------------------------------------------------
# Error translation
# ---------------------------------------------------------
@app.exception_handler(ProjectHubError)
async def handle_domain_error(request: Request, exc: ProjectHubError) -> JSONResponse:
    status_code = status_for(exc)
    if IS_DEV or status_code >= 500:
        print(f"[ERROR] {request.method} {request.url.path} -> {status_code} "
              f"{type(exc).__name__}: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


@app.exception_handler(sqlite3.Error)
async def handle_db_error(request: Request, exc: sqlite3.Error) -> JSONResponse:
    # Never expose SQL details to clients
    print(f"[ERROR] {request.method} {request.url.path} -> 500 database error: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Database error"})


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    print(f"[ERROR] {request.method} {request.url.path} -> 500 {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ---------------------------------------------------------
# Routes
# ---------------------------------------------------------
@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


# Auth endpoints
@app.post("/auth/register", response_model=TokenResponse, status_code=201)
def register(req: RegisterRequest, conn: sqlite3.Connection = Depends(get_db)):
    user = accounts.register_user(conn, req.username, req.email, req.password)
    return TokenResponse(access_token=accounts.create_access_token(user), user=user)


@app.post("/auth/login", response_model=TokenResponse)
def login(req: LoginRequest, conn: sqlite3.Connection = Depends(get_db)):
    user = accounts.authenticate(conn, req.email, req.password)
    print(f"[AUTH] Login: user_id={user.id}")
    return TokenResponse(access_token=accounts.create_access_token(user), user=user)


@app.get("/auth/me", response_model=User)
def me(caller: User = Depends(require_caller)):
    return caller


@app.put("/auth/me", response_model=User)
def update_me(
    req: ProfileUpdateRequest,
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    return accounts.update_profile(conn, caller.id, username=req.username, avatar_url=req.avatar_url)


@app.delete("/auth/me", response_model=MessageResponse)
def delete_me(
    caller: User = Depends(require_caller),
    conn: sqlite3.Connection = Depends(get_db),
):
    accounts.soft_delete_user(conn, caller.id)
    return {"message": "Account deleted"}
