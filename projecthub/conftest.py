"""
projecthub/conftest.py

Shared fixtures: a fresh SQLite file per test, real users and a project
whose members cover every role. No authorization shortcuts; every test goes
through real membership rows.
"""

import itertools

import pytest
from fastapi.testclient import TestClient

from projecthub import accounts, config
from projecthub.db import connect, init_db, transaction
from projecthub.membership_store import MembershipStore
from projecthub.models import MemberRole, UserRole
from projecthub.projects import create_project

TEST_PASSWORD = "Passw0rd1"


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Point DATABASE_PATH at a temp file and create the schema."""
    path = str(tmp_path / "projecthub_test.db")
    monkeypatch.setattr(config, "DATABASE_PATH", path)
    # Hashing cost is irrelevant to these tests
    monkeypatch.setattr(accounts, "PBKDF2_ITERATIONS", 1000)
    init_db()
    return path


@pytest.fixture
def conn(db_path):
    conn = connect()
    yield conn
    conn.close()


@pytest.fixture
def make_user(conn):
    counter = itertools.count(1)

    def _make(username=None, role=UserRole.user):
        username = username or f"user{next(counter)}"
        return accounts.register_user(conn, username, f"{username}@example.com", TEST_PASSWORD, role=role)

    return _make


@pytest.fixture
def users(make_user):
    """One user per project role, plus an outsider and a global admin."""
    return {
        "owner": make_user("owner"),
        "admin": make_user("admin"),
        "admin2": make_user("admin2"),
        "member": make_user("member"),
        "viewer": make_user("viewer"),
        "outsider": make_user("outsider"),
        "root": make_user("root", role=UserRole.admin),
    }


@pytest.fixture
def project(conn, users):
    """Project owned by users['owner'] with admin, admin2, member and viewer memberships."""
    proj = create_project(conn, {"name": "Apollo", "description": "Moonshot"}, users["owner"].id)
    store = MembershipStore(conn)
    with transaction(conn):
        store.create(proj.id, users["admin"].id, MemberRole.admin)
        store.create(proj.id, users["admin2"].id, MemberRole.admin)
        store.create(proj.id, users["member"].id, MemberRole.member)
        store.create(proj.id, users["viewer"].id, MemberRole.viewer)
    return proj


@pytest.fixture
def client(db_path):
    from projecthub.main import app

    return TestClient(app)


@pytest.fixture
def auth(users):
    """Authorization headers per user key."""
    return {
        key: {"Authorization": f"Bearer {accounts.create_access_token(user)}"}
        for key, user in users.items()
    }