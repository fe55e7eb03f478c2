from __future__ import annotations

import uuid
from typing import Any, Dict, Optional, Protocol

from .errors import AccessDenied, NotFound
from .models import ProjectRecord
from .repository import IntakeRepository


class AccessChecker(Protocol):
    def has_access(self, project_id: str, user_id: str) -> bool:
        ...


class MembershipAccessChecker:
    """
    Grants access to project owners and members recorded in the repository.
    """

    def __init__(self, repository: IntakeRepository):
        self.repo = repository

    def has_access(self, project_id: str, user_id: str) -> bool:
        if not user_id:
            return False
        project = self.repo.get_project(project_id)
        if not project:
            return False
        return project.owner_id == user_id or self.repo.is_member(project_id, user_id)


def require_access(checker: AccessChecker, project_id: str, user_id: str) -> None:
    if not checker.has_access(project_id, user_id):
        raise AccessDenied("Access denied")


class ProjectDirectory:
    """Creates projects and records who may work on them."""

    def __init__(self, repository: IntakeRepository, access: AccessChecker):
        self.repo = repository
        self.access = access

    def create_project(self, owner_id: str, title: str, metadata: Optional[Dict[str, Any]] = None) -> ProjectRecord:
        if not owner_id:
            raise AccessDenied("Unauthorized")
        project = ProjectRecord(id=str(uuid.uuid4()), owner_id=owner_id, title=title or "Untitled project", metadata=dict(metadata or {}))
        self.repo.save_project(project)
        self.repo.add_member(project.id, owner_id)
        return project

    def add_member(self, project_id: str, user_id: str, requested_by: str) -> None:
        if not self.repo.get_project(project_id):
            raise NotFound(f"Project not found: {project_id}")
        require_access(self.access, project_id, requested_by)
        self.repo.add_member(project_id, user_id)

    def get_project(self, project_id: str, user_id: str) -> ProjectRecord:
        project = self.repo.get_project(project_id)
        if not project:
            raise NotFound(f"Project not found: {project_id}")
        require_access(self.access, project_id, user_id)
        return project
