"""
projecthub_client/test_api_client.py

Unit tests for the HTTP client. requests is patched; no server needed.
"""

from unittest import mock

import pytest
import requests

from projecthub_client import config
from projecthub_client.api_client import ApiError, ProjectHubClient, is_public_endpoint

BASE = "http://api.test"


def fake_response(status_code=200, body=None):
    resp = mock.Mock(spec=requests.Response)
    resp.status_code = status_code
    resp.content = b"{}" if body is not None else b""
    resp.json.return_value = body
    resp.text = ""
    resp.reason = "reason"
    return resp


@pytest.fixture
def client():
    return ProjectHubClient(base_url=BASE, token="tok")


def test_public_paths():
    assert is_public_endpoint("/auth/login")
    assert not is_public_endpoint("/api/projects")


def test_login_stores_token():
    c = ProjectHubClient(base_url=BASE)
    with mock.patch("projecthub_client.api_client.requests.request") as req:
        req.return_value = fake_response(200, {"access_token": "abc", "user": {"id": 1}})
        user = c.login("a@example.com", "pw")

    assert user == {"id": 1}
    assert c.token == "abc"
    _, kwargs = req.call_args
    assert "Authorization" not in kwargs["headers"]


def test_bearer_header_attached(client):
    with mock.patch("projecthub_client.api_client.requests.request") as req:
        req.return_value = fake_response(200, {"projects": [], "pagination": {}})
        client.list_projects(status=None, page=2)

    args, kwargs = req.call_args
    assert args == ("GET", f"{BASE}/api/projects")
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    # None-valued params are dropped
    assert "status" not in kwargs["params"]
    assert kwargs["params"]["page"] == 2


def test_protected_call_without_token_fails_fast():
    c = ProjectHubClient(base_url=BASE)
    with mock.patch("projecthub_client.api_client.requests.request") as req:
        with pytest.raises(ApiError) as exc:
            c.get_project(1)
    assert exc.value.status_code == 401
    req.assert_not_called()


def test_error_detail_surfaces(client):
    with mock.patch("projecthub_client.api_client.requests.request") as req:
        req.return_value = fake_response(403, {"detail": "Insufficient project role to add members"})
        with pytest.raises(ApiError) as exc:
            client.add_member(1, 2, "member")

    assert exc.value.status_code == 403
    assert "add members" in exc.value.detail


def test_connection_error_wrapped(client):
    with mock.patch("projecthub_client.api_client.requests.request",
                    side_effect=requests.exceptions.ConnectionError("boom")):
        with pytest.raises(ApiError) as exc:
            client.dashboard_stats()
    assert exc.value.status_code is None


def test_bulk_update_status_body(client):
    with mock.patch("projecthub_client.api_client.requests.request") as req:
        req.return_value = fake_response(200, {"updated": 2, "status": "done"})
        assert client.bulk_update_status((1, 2), "done") == 2

    args, kwargs = req.call_args
    assert args[0] == "PATCH"
    assert kwargs["json"] == {"task_ids": [1, 2], "status": "done"}


class TestConfig:

    def test_production_requires_https(self):
        with pytest.raises(ValueError):
            config.validate_api_url("http://example.com", "production")
        with pytest.raises(ValueError):
            config.validate_api_url("https://localhost:8000", "staging")
        config.validate_api_url("http://127.0.0.1:8000", "local")

    def test_env_url_wins(self, monkeypatch):
        monkeypatch.setenv("PROJECTHUB_API_URL", "http://127.0.0.1:9000/")
        monkeypatch.setattr(config, "ENV", "local")
        assert config.get_api_base_url() == "http://127.0.0.1:9000"

    def test_missing_url_outside_local(self, monkeypatch):
        monkeypatch.delenv("PROJECTHUB_API_URL", raising=False)
        monkeypatch.setattr(config, "ENV", "production")
        with pytest.raises(RuntimeError):
            config.get_api_base_url()
