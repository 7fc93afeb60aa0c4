"""
projecthub_client/api_client.py
HTTP client for the ProjectHub backend.

- Attaches Authorization: Bearer <token> to every protected endpoint
- One request function (api_request) for all calls
- Non-2xx responses raise ApiError carrying the status code and the
  backend's "detail" message
- Tokens are never printed
"""

from typing import Any, Dict, Iterable, List, Literal, Optional

import requests

from projecthub_client.config import IS_DEV, REQUEST_TIMEOUT, get_api_base_url

PUBLIC_PATHS = ("/auth/login", "/auth/register", "/health")

__all__ = ["ApiError", "ProjectHubClient", "is_public_endpoint"]


class ApiError(Exception):
    """A request failed: transport error (status_code None) or a non-2xx response."""

    def __init__(self, status_code: Optional[int], detail: str):
        super().__init__(f"{status_code}: {detail}" if status_code else detail)
        self.status_code = status_code
        self.detail = detail


def is_public_endpoint(path: str) -> bool:
    return path in PUBLIC_PATHS


def _error_detail(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200] or resp.reason or "Request failed"
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, list):
        # FastAPI request validation errors
        return "; ".join(str(d.get("msg", d)) for d in detail)
    return str(detail or body)


class ProjectHubClient:
    """
    Thin wrapper over the REST API. login()/register() store the access
    token; every later call sends it.
    """

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None, timeout: int = REQUEST_TIMEOUT):
        self.base_url = (base_url or get_api_base_url()).rstrip("/")
        self.token = token
        self.timeout = timeout

    # ---------------------------------------------------------
    # Transport
    # ---------------------------------------------------------
    def auth_header(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def api_request(
        self,
        method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"],
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        Raises:
            ApiError: connection failure, timeout, or a non-2xx status
        """
        headers = {"Accept": "application/json"}
        if not is_public_endpoint(path):
            if not self.token:
                raise ApiError(401, "Authentication required. Please log in.")
            headers.update(self.auth_header())

        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            resp = requests.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            if IS_DEV:
                print(f"[API] Timeout on {method} {path}")
            raise ApiError(None, f"Request timed out after {self.timeout}s")
        except requests.exceptions.ConnectionError:
            if IS_DEV:
                print(f"[API] Connection error on {method} {path}")
            raise ApiError(None, f"Cannot connect to backend at {self.base_url}")

        if resp.status_code >= 400:
            detail = _error_detail(resp)
            if IS_DEV:
                print(f"[API] {method} {path} -> {resp.status_code}: {detail}")
            raise ApiError(resp.status_code, detail)

        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    # ---------------------------------------------------------
    # Auth
    # ---------------------------------------------------------
    def register(self, username: str, email: str, password: str) -> Dict[str, Any]:
        data = self.api_request("POST", "/auth/register", json={
            "username": username, "email": email, "password": password,
        })
        self.token = data["access_token"]
        return data["user"]

    def login(self, email: str, password: str) -> Dict[str, Any]:
        data = self.api_request("POST", "/auth/login", json={"email": email, "password": password})
        self.token = data["access_token"]
        return data["user"]

    def logout(self) -> None:
        self.token = None

    def current_user(self) -> Dict[str, Any]:
        return self.api_request("GET", "/auth/me")

    def update_profile(self, username: Optional[str] = None, avatar_url: Optional[str] = None) -> Dict[str, Any]:
        body = {k: v for k, v in (("username", username), ("avatar_url", avatar_url)) if v is not None}
        return self.api_request("PUT", "/auth/me", json=body)

    # ---------------------------------------------------------
    # Projects + members
    # ---------------------------------------------------------
    def list_projects(
        self,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
        sort: str = "created_at",
        order: str = "desc",
    ) -> Dict[str, Any]:
        return self.api_request("GET", "/api/projects", params={
            "status": status, "page": page, "limit": limit, "sort": sort, "order": order,
        })

    def get_project(self, project_id: int) -> Dict[str, Any]:
        return self.api_request("GET", f"/api/projects/{project_id}")

    def create_project(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.api_request("POST", "/api/projects", json=data)

    def update_project(self, project_id: int, patch: Dict[str, Any]) -> Dict[str, Any]:
        return self.api_request("PUT", f"/api/projects/{project_id}", json=patch)

    def delete_project(self, project_id: int) -> None:
        self.api_request("DELETE", f"/api/projects/{project_id}")

    def list_members(self, project_id: int) -> List[Dict[str, Any]]:
        return self.api_request("GET", f"/api/projects/{project_id}/members")

    def add_member(self, project_id: int, user_id: int, role: str = "member") -> Dict[str, Any]:
        return self.api_request("POST", f"/api/projects/{project_id}/members", json={
            "user_id": user_id, "role": role,
        })

    def update_member_role(self, project_id: int, user_id: int, role: str) -> Dict[str, Any]:
        return self.api_request("PUT", f"/api/projects/{project_id}/members/{user_id}", json={"role": role})

    def remove_member(self, project_id: int, user_id: int) -> None:
        self.api_request("DELETE", f"/api/projects/{project_id}/members/{user_id}")

    # ---------------------------------------------------------
    # Requirements
    # ---------------------------------------------------------
    def list_requirements(
        self,
        project_id: int,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        return self.api_request("GET", f"/api/projects/{project_id}/requirements", params={
            "status": status, "priority": priority, "search": search,
        })

    def create_requirement(self, project_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.api_request("POST", f"/api/projects/{project_id}/requirements", json=data)

    def get_requirement(self, requirement_id: int) -> Dict[str, Any]:
        return self.api_request("GET", f"/api/requirements/{requirement_id}")

    def update_requirement(self, requirement_id: int, patch: Dict[str, Any]) -> Dict[str, Any]:
        return self.api_request("PUT", f"/api/requirements/{requirement_id}", json=patch)

    def delete_requirement(self, requirement_id: int) -> None:
        self.api_request("DELETE", f"/api/requirements/{requirement_id}")

    # ---------------------------------------------------------
    # Tasks
    # ---------------------------------------------------------
    def list_tasks(self, project_id: Optional[int] = None, requirement_id: Optional[int] = None) -> List[Dict[str, Any]]:
        return self.api_request("GET", "/api/tasks", params={
            "project_id": project_id, "requirement_id": requirement_id,
        })

    def get_task(self, task_id: int) -> Dict[str, Any]:
        return self.api_request("GET", f"/api/tasks/{task_id}")

    def create_task(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.api_request("POST", "/api/tasks", json=data)

    def update_task(self, task_id: int, patch: Dict[str, Any]) -> Dict[str, Any]:
        return self.api_request("PUT", f"/api/tasks/{task_id}", json=patch)

    def delete_task(self, task_id: int) -> None:
        self.api_request("DELETE", f"/api/tasks/{task_id}")

    def bulk_update_status(self, task_ids: Iterable[int], status: str) -> int:
        data = self.api_request("PATCH", "/api/tasks/status", json={
            "task_ids": list(task_ids), "status": status,
        })
        return data["updated"]

    def task_stats(self, project_id: int) -> Dict[str, Any]:
        return self.api_request("GET", f"/api/tasks/stats/{project_id}")

    # ---------------------------------------------------------
    # Dashboard
    # ---------------------------------------------------------
    def dashboard_stats(self) -> Dict[str, Any]:
        return self.api_request("GET", "/api/dashboard/stats")

    def project_stats(self, project_id: int) -> Dict[str, Any]:
        return self.api_request("GET", f"/api/dashboard/projects/{project_id}/stats")

    def project_activities(self, project_id: int, limit: int = 10) -> List[Dict[str, Any]]:
        return self.api_request("GET", f"/api/dashboard/projects/{project_id}/activities", params={"limit": limit})

    def task_distribution(self, project_id: int) -> List[Dict[str, Any]]:
        return self.api_request("GET", f"/api/dashboard/projects/{project_id}/task-distribution")
