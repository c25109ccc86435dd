"""
project_service/access.py

Access control for projects.

A user may act on a project iff they are its owner or one of its members.
There is no role hierarchy and no group expansion. Checks fail closed:
a missing project or an empty user id is simply "no access".
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Union

try:
    from project_service.config import IS_DEV
    from project_service.db import PROJECTS, DocumentStore
    from project_service.models import Project
except ModuleNotFoundError:
    from config import IS_DEV
    from db import PROJECTS, DocumentStore
    from models import Project


def user_has_access(
    user_id: Optional[str],
    project: Union[Project, Mapping[str, Any], None],
) -> bool:
    """
    Pure access-closure check: owner OR member.

    Accepts a Project model or a raw stored document. Returns False for
    a missing project or an empty user id.
    """
    if not user_id or project is None:
        return False

    if isinstance(project, Project):
        owner = project.owner
        members = project.members
    else:
        owner = project.get("owner")
        members = project.get("members") or []

    return user_id == owner or user_id in members


class AccessControl:
    """Store-backed evaluator used before every project mutation."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def has_access(self, user_id: Optional[str], project_id: Optional[str]) -> bool:
        if not user_id or not project_id:
            return False

        doc = await self.store.find_by_id(PROJECTS, project_id)
        allowed = user_has_access(user_id, doc)

        if IS_DEV:
            print(f"[ACCESS] user_id={user_id}, project_id={project_id}, "
                  f"exists={doc is not None}, allowed={allowed}")
        return allowed
