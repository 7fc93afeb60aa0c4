"""
projecthub/test_api.py

End-to-end tests through the FastAPI app: authentication, status-code
translation of domain errors, and task authorization at the route layer.

Run:
    pytest projecthub/test_api.py -v
"""

import jwt
import pytest

from projecthub import config


class TestAuth:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_register_login_me(self, client):
        resp = client.post("/auth/register", json={
            "username": "alice", "email": "Alice@Example.com", "password": "Secr3tpass",
        })
        assert resp.status_code == 201
        assert resp.json()["user"]["email"] == "alice@example.com"

        login = client.post("/auth/login", json={"email": "alice@example.com", "password": "Secr3tpass"})
        assert login.status_code == 200
        token = login.json()["access_token"]

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["username"] == "alice"

    def test_duplicate_registration(self, client):
        body = {"username": "bob", "email": "bob@example.com", "password": "Secr3tpass"}
        assert client.post("/auth/register", json=body).status_code == 201
        assert client.post("/auth/register", json=body).status_code == 400

    def test_weak_password(self, client):
        resp = client.post("/auth/register", json={
            "username": "carol", "email": "carol@example.com", "password": "short",
        })
        assert resp.status_code == 400

    def test_bad_login(self, client, users):
        resp = client.post("/auth/login", json={"email": "owner@example.com", "password": "wrong"})
        assert resp.status_code == 401

    def test_protected_requires_token(self, client, db_path):
        assert client.get("/api/projects").status_code == 401

    def test_garbage_and_expired_tokens(self, client, users):
        assert client.get("/auth/me", headers={"Authorization": "Bearer nope"}).status_code == 401

        expired = jwt.encode({"sub": str(users["owner"].id), "exp": 1}, config.SECRET_KEY, algorithm=config.ALGORITHM)
        resp = client.get("/auth/me", headers={"Authorization": f"Bearer {expired}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token expired"

    def test_deleted_user_token_rejected(self, client, auth):
        assert client.delete("/auth/me", headers=auth["outsider"]).status_code == 200
        assert client.get("/auth/me", headers=auth["outsider"]).status_code == 401


class TestProjectRoutes:

    def test_create_and_list(self, client, auth):
        resp = client.post("/api/projects", json={"name": "X"}, headers=auth["owner"])
        assert resp.status_code == 201
        body = resp.json()
        assert [(m["username"], m["role"]) for m in body["members"]] == [("owner", "owner")]

        listing = client.get("/api/projects", headers=auth["owner"]).json()
        assert listing["pagination"]["total"] == 1
        assert listing["projects"][0]["id"] == body["id"]

    def test_blank_name_is_400(self, client, auth):
        assert client.post("/api/projects", json={"name": "  "}, headers=auth["owner"]).status_code == 400

    def test_error_translation(self, client, project, auth, users):
        pid = project.id
        # non-member -> 404, insufficient role -> 403
        assert client.get(f"/api/projects/{pid}", headers=auth["outsider"]).status_code == 404
        assert client.delete(f"/api/projects/{pid}", headers=auth["admin"]).status_code == 403
        # owner invariants -> 400
        resp = client.delete(f"/api/projects/{pid}/members/{users['owner'].id}", headers=auth["owner"])
        assert resp.status_code == 400
        # duplicate -> 400
        resp = client.post(f"/api/projects/{pid}/members",
                           json={"user_id": users["member"].id, "role": "viewer"}, headers=auth["owner"])
        assert resp.status_code == 400
        # unknown enum in body -> 422 from request validation
        resp = client.put(f"/api/projects/{pid}/members/{users['member'].id}",
                          json={"role": "superuser"}, headers=auth["owner"])
        assert resp.status_code == 422

    def test_member_role_update_scenario(self, client, project, auth, users):
        pid, target = project.id, users["admin2"].id
        resp = client.put(f"/api/projects/{pid}/members/{target}", json={"role": "member"}, headers=auth["admin"])
        assert resp.status_code == 403

        resp = client.put(f"/api/projects/{pid}/members/{target}", json={"role": "member"}, headers=auth["owner"])
        assert resp.status_code == 200
        assert resp.json()["role"] == "member"

    def test_requirement_routes(self, client, project, auth):
        resp = client.post(f"/api/projects/{project.id}/requirements", json={"title": "R1"}, headers=auth["member"])
        assert resp.status_code == 201
        rid = resp.json()["id"]

        assert client.get(f"/api/requirements/{rid}", headers=auth["viewer"]).status_code == 200
        assert client.put(f"/api/requirements/{rid}", json={"status": "review"},
                          headers=auth["viewer"]).status_code == 403
        assert client.delete(f"/api/requirements/{rid}", headers=auth["member"]).status_code == 403
        assert client.delete(f"/api/requirements/{rid}", headers=auth["admin"]).status_code == 200
        assert client.get(f"/api/requirements/{rid}", headers=auth["owner"]).status_code == 404


class TestTaskRoutes:

    @pytest.fixture
    def task_id(self, client, project, auth):
        resp = client.post("/api/tasks", json={"title": "T", "project_id": project.id}, headers=auth["member"])
        assert resp.status_code == 201
        return resp.json()["id"]

    def test_viewer_reads_but_cannot_mutate(self, client, project, auth, task_id):
        assert client.get(f"/api/tasks/{task_id}", headers=auth["viewer"]).status_code == 200
        assert client.get("/api/tasks", params={"project_id": project.id}, headers=auth["viewer"]).status_code == 200
        assert client.put(f"/api/tasks/{task_id}", json={"status": "done"}, headers=auth["viewer"]).status_code == 403
        assert client.delete(f"/api/tasks/{task_id}", headers=auth["viewer"]).status_code == 403
        assert client.post("/api/tasks", json={"title": "V", "project_id": project.id},
                           headers=auth["viewer"]).status_code == 403

    def test_outsider_gets_404(self, client, auth, task_id):
        assert client.get(f"/api/tasks/{task_id}", headers=auth["outsider"]).status_code == 404

    def test_status_round_trip(self, client, auth, task_id):
        done = client.put(f"/api/tasks/{task_id}", json={"status": "done"}, headers=auth["member"]).json()
        assert done["completed_date"] is not None

        reopened = client.put(f"/api/tasks/{task_id}", json={"status": "todo"}, headers=auth["member"]).json()
        assert reopened["completed_date"] is None

    def test_bulk_status(self, client, project, auth, task_id):
        other = client.post("/api/tasks", json={"title": "U", "project_id": project.id},
                            headers=auth["owner"]).json()["id"]

        resp = client.patch("/api/tasks/status", json={"task_ids": [task_id, other], "status": "done"},
                            headers=auth["member"])
        assert resp.status_code == 200
        assert resp.json()["updated"] == 2

        assert client.patch("/api/tasks/status", json={"task_ids": [task_id], "status": "todo"},
                            headers=auth["viewer"]).status_code == 403

        stats = client.get(f"/api/tasks/stats/{project.id}", headers=auth["viewer"]).json()
        assert stats["completion_rate"] == 100.0

    def test_list_without_filter_is_400(self, client, auth, users):
        assert client.get("/api/tasks", headers=auth["owner"]).status_code == 400

    def test_unscoped_task_private_to_creator_and_assignee(self, client, auth, users):
        resp = client.post("/api/tasks", json={"title": "Personal", "assignee_id": users["member"].id},
                           headers=auth["owner"])
        assert resp.status_code == 201
        tid = resp.json()["id"]

        assert client.get(f"/api/tasks/{tid}", headers=auth["owner"]).status_code == 200
        assert client.get(f"/api/tasks/{tid}", headers=auth["member"]).status_code == 200
        assert client.get(f"/api/tasks/{tid}", headers=auth["root"]).status_code == 200
        assert client.get(f"/api/tasks/{tid}", headers=auth["viewer"]).status_code == 404


class TestDashboardRoutes:

    def test_stats_endpoints(self, client, project, auth):
        client.post("/api/tasks", json={"title": "T", "project_id": project.id}, headers=auth["owner"])

        assert client.get("/api/dashboard/stats", headers=auth["owner"]).json()["project_count"] == 1
        stats = client.get(f"/api/dashboard/projects/{project.id}/stats", headers=auth["viewer"])
        assert stats.status_code == 200
        assert stats.json()["progress"] == 0

        activities = client.get(f"/api/dashboard/projects/{project.id}/activities", headers=auth["viewer"])
        assert activities.status_code == 200
        assert activities.json()[0]["type"] == "task"

        dist = client.get(f"/api/dashboard/projects/{project.id}/task-distribution", headers=auth["viewer"])
        assert len(dist.json()) == 5

        assert client.get(f"/api/dashboard/projects/{project.id}/stats",
                          headers=auth["outsider"]).status_code == 404
