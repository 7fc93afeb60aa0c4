"""
projecthub/errors.py

Error taxonomy raised by the core (stores, policy, services).

The core never formats HTTP responses; main.py is the single place these
are translated to status codes. Storage errors (sqlite3.Error) are not
wrapped and propagate as-is.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ProjectHubError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context


class ValidationError(ProjectHubError):
    """Malformed or missing input (empty name, end date before start date)."""


class NotFound(ProjectHubError):
    """Referenced entity absent, including absent memberships on view paths."""

    def __init__(self, entity: str, entity_id: Optional[Any] = None, message: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(message or f"{entity} not found", entity=entity, entity_id=entity_id)


class Forbidden(ProjectHubError):
    """Entity and membership exist but the role is insufficient."""


class Conflict(Forbidden):
    """A membership row changed between the permission check and the write."""


class DuplicateMembership(ProjectHubError):
    """(project, user) pair already has a membership."""

    def __init__(self, project_id: int, user_id: int):
        super().__init__(
            f"User {user_id} is already a member of project {project_id}",
            project_id=project_id,
            user_id=user_id,
        )


class InvariantViolation(ProjectHubError):
    """Attempt to remove the owner or move a role to/from owner."""


class AuthenticationError(ProjectHubError):
    """Bad credentials or unusable token."""
