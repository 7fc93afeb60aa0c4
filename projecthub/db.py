# projecthub/db.py
# SQLite connection helpers, transactions and schema bootstrap

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path as FsPath
from typing import Generator, Iterable, List, Optional

from projecthub import config


def resolve_db_path() -> str:
    """Return the SQLite file path from config (read at call time so tests can override it)."""
    raw = config.DATABASE_PATH
    if raw == ":memory:" or FsPath(raw).is_absolute():
        return raw
    return str(FsPath(__file__).resolve().parent / raw)


def connect(db_path: Optional[str] = None) -> sqlite3.Connection:
    """
    Open a SQLite connection with Row factory and foreign keys enabled.

    check_same_thread is off because FastAPI runs sync dependencies and
    handlers on different worker threads within one request.
    """
    conn = sqlite3.connect(db_path or resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def get_db() -> Generator[sqlite3.Connection, None, None]:
    """FastAPI dependency: one connection per request, always closed."""
    conn = connect()
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Generator[sqlite3.Connection, None, None]:
    """
    Run a block inside one write transaction.

    BEGIN IMMEDIATE takes the database write lock before the first read, so
    read-then-write sequences (membership checks followed by a mutation)
    cannot interleave with another writer. Nested use joins the outer
    transaction.
    """
    if conn.in_transaction:
        yield conn
        return

    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except Exception:
        conn.rollback()
        raise
    else:
        conn.commit()


# ---------------------------------------------------------
# Value helpers
# ---------------------------------------------------------
def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC so stored values compare consistently."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    value = to_utc(value)
    return value.isoformat() if value else None


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return to_utc(datetime.fromisoformat(value))


def dump_id_list(ids: Optional[Iterable[int]]) -> str:
    return json.dumps([int(i) for i in ids or []])


def load_id_list(raw: Optional[str]) -> List[int]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        print(f"[DB] Warning: unreadable id list {raw[:40]!r}, treating as empty")
        return []
    return [int(i) for i in data] if isinstance(data, list) else []


def placeholders(count: int) -> str:
    """Return '?, ?, ?' for an IN clause."""
    return ", ".join("?" for _ in range(count))


# ---------------------------------------------------------
# Schema
# ---------------------------------------------------------
SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT NOT NULL UNIQUE,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'user' CHECK (role IN ('user', 'admin')),
        avatar_url TEXT,
        deleted_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'planning'
            CHECK (status IN ('planning', 'in_progress', 'completed', 'on_hold', 'cancelled')),
        start_date TEXT,
        end_date TEXT,
        created_by INTEGER NOT NULL REFERENCES users(id),
        deleted_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS project_members (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        project_id INTEGER NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
        user_id INTEGER NOT NULL REFERENCES users(id),
        role TEXT NOT NULL DEFAULT 'member'
            CHECK (role IN ('owner', 'admin', 'member', 'viewer')),
        joined_at TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (project_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS requirements (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT,
        priority TEXT NOT NULL DEFAULT 'medium'
            CHECK (priority IN ('low', 'medium', 'high', 'critical')),
        status TEXT NOT NULL DEFAULT 'draft'
            CHECK (status IN ('draft', 'review', 'approved', 'rejected', 'implemented')),
        acceptance_criteria TEXT,
        project_id INTEGER NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
        created_by INTEGER NOT NULL REFERENCES users(id),
        deleted_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL DEFAULT 'todo'
            CHECK (status IN ('todo', 'in_progress', 'review', 'done')),
        priority TEXT NOT NULL DEFAULT 'medium'
            CHECK (priority IN ('low', 'medium', 'high', 'urgent')),
        estimated_hours REAL,
        actual_hours REAL,
        start_date TEXT,
        due_date TEXT,
        completed_date TEXT,
        dependencies TEXT NOT NULL DEFAULT '[]',
        project_id INTEGER REFERENCES projects(id) ON DELETE CASCADE,
        requirement_id INTEGER REFERENCES requirements(id) ON DELETE CASCADE,
        assignee_id INTEGER REFERENCES users(id),
        creator_id INTEGER NOT NULL REFERENCES users(id),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_project_members_user ON project_members(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_requirements_project ON requirements(project_id, updated_at)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_requirement ON tasks(requirement_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_assignee ON tasks(assignee_id)",
]


def init_db(conn: Optional[sqlite3.Connection] = None) -> None:
    """Create tables and indexes if missing. Safe to call repeatedly."""
    own_conn = conn is None
    if own_conn:
        conn = connect()
    try:
        for statement in SCHEMA:
            conn.execute(statement)
        conn.commit()
        if config.IS_DEV:
            print(f"[DB] Schema ensured ({len(SCHEMA)} statements)")
    finally:
        if own_conn:
            conn.close()
