"""
project_service/orchestrator.py

Composition layer for project/task operations.

Every mutation runs the same sequence:
1. caller identity present       (UnauthorizedError otherwise)
2. caller has access to project  (ForbiddenError otherwise)
3. ProjectTaskManager operation  (its error propagates, nothing is published)
4. publish the change event      (failure is logged and swallowed)

The event is only published after step 3 has committed, and a publish
failure never changes the result returned for step 3.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

try:
    from project_service.access import AccessControl, user_has_access
    from project_service.consistency import ProjectTaskManager
    from project_service.errors import (
        ForbiddenError,
        NotFoundError,
        ProjectServiceError,
        UnauthorizedError,
    )
    from project_service.events import ChangeType, EventEmitter
    from project_service.models import Project, ProjectSpec, ProjectTask, TaskSpec
except ModuleNotFoundError:
    from access import AccessControl, user_has_access
    from consistency import ProjectTaskManager
    from errors import ForbiddenError, NotFoundError, ProjectServiceError, UnauthorizedError
    from events import ChangeType, EventEmitter
    from models import Project, ProjectSpec, ProjectTask, TaskSpec


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise UnauthorizedError("User ID claim is missing or invalid.")
    return user_id


class MutationOrchestrator:
    def __init__(
        self,
        access: AccessControl,
        manager: ProjectTaskManager,
        emitter: EventEmitter,
    ) -> None:
        self.access = access
        self.manager = manager
        self.emitter = emitter

    async def _authorize(self, user_id: Optional[str], project_id: str) -> str:
        user_id = _require_user(user_id)
        if not await self.access.has_access(user_id, project_id):
            print(f"[ACCESS] Denied: user_id={user_id}, project_id={project_id}")
            raise ForbiddenError("You do not have access to this project.")
        return user_id

    async def _notify(self, change_type: ChangeType, payload: Any) -> None:
        try:
            await self.emitter.publish(change_type, payload)
        except (ProjectServiceError, ValueError) as exc:
            # The mutation is already committed; the event is best-effort
            print(f"[EVENTS] ERROR: publish {change_type.value} failed: {exc}")
        except Exception as exc:
            print(f"[EVENTS] ERROR: publish {change_type.value} failed unexpectedly: {exc!r}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def list_projects(self, user_id: Optional[str], owner: Optional[str] = None) -> List[Project]:
        """Unfiltered listing: every project is returned regardless of caller access."""
        _require_user(user_id)
        return await self.manager.list_projects(owner=owner)

    async def get_project(self, user_id: Optional[str], project_id: str) -> Project:
        user_id = _require_user(user_id)
        project = await self.manager.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project with ID {project_id} not found.")
        if not user_has_access(user_id, project):
            raise ForbiddenError("You do not have access to this project.")
        return project

    async def get_task(self, user_id: Optional[str], project_id: str, task_id: str) -> ProjectTask:
        project = await self.get_project(user_id, project_id)
        if task_id not in project.task_ids:
            raise NotFoundError(f"Task with ID {task_id} not found in project {project_id}.")
        task = await self.manager.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task with ID {task_id} not found.")
        return task

    # ------------------------------------------------------------------
    # Project mutations
    # ------------------------------------------------------------------
    async def create_project(
        self,
        user_id: Optional[str],
        spec: ProjectSpec,
        task_specs: Sequence[TaskSpec] = (),
    ) -> Project:
        """The caller must fall inside the new project's owner/member closure."""
        user_id = _require_user(user_id)
        if user_id != spec.owner and user_id not in spec.members:
            raise ForbiddenError("Creator must be the project owner or a listed member.")

        project = await self.manager.create_project(spec, task_specs)
        await self._notify(ChangeType.PROJECT_CREATED, project.to_payload())
        return project

    async def update_project(self, user_id: Optional[str], project_id: str, spec: ProjectSpec) -> Project:
        await self._authorize(user_id, project_id)
        project = await self.manager.update_project(project_id, spec)
        await self._notify(ChangeType.PROJECT_UPDATED, project.to_payload())
        return project

    async def set_project_status(self, user_id: Optional[str], project_id: str, status: str) -> Project:
        await self._authorize(user_id, project_id)
        project = await self.manager.set_project_status(project_id, status)
        await self._notify(ChangeType.PROJECT_UPDATED, project.to_payload())
        return project

    async def remove_project(self, user_id: Optional[str], project_id: str) -> None:
        await self._authorize(user_id, project_id)
        await self.manager.remove_project(project_id)
        await self._notify(ChangeType.PROJECT_DELETED, {"projectId": project_id})

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------
    async def add_member(self, user_id: Optional[str], project_id: str, member_id: str) -> bool:
        await self._authorize(user_id, project_id)
        added = await self.manager.add_member(project_id, member_id)
        if added:
            await self._notify(ChangeType.MEMBER_ADDED, {"projectId": project_id, "userId": member_id})
        return added

    async def remove_member(self, user_id: Optional[str], project_id: str, member_id: str) -> None:
        await self._authorize(user_id, project_id)
        await self.manager.remove_member(project_id, member_id)
        await self._notify(ChangeType.MEMBER_REMOVED, {"projectId": project_id, "userId": member_id})

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------
    async def add_task(self, user_id: Optional[str], project_id: str, spec: TaskSpec) -> ProjectTask:
        await self._authorize(user_id, project_id)
        task = await self.manager.add_task(project_id, spec)
        await self._notify(ChangeType.TASK_ADDED, {"projectId": project_id, "task": task.to_payload()})
        return task

    async def update_task(
        self, user_id: Optional[str], project_id: str, task_id: str, spec: TaskSpec
    ) -> ProjectTask:
        """Access is granted per project, so the task must be attached to the project in the path."""
        await self._authorize(user_id, project_id)
        project = await self.manager.get_project(project_id)
        if project is None or task_id not in project.task_ids:
            raise NotFoundError(f"Task with ID {task_id} not found in project {project_id}.")
        task = await self.manager.update_task(task_id, spec)
        await self._notify(ChangeType.TASK_UPDATED, {"projectId": project_id, "task": task.to_payload()})
        return task

    async def remove_task(self, user_id: Optional[str], project_id: str, task_id: str) -> None:
        await self._authorize(user_id, project_id)
        await self.manager.detach_and_delete_task(project_id, task_id)
        await self._notify(ChangeType.TASK_DELETED, {"projectId": project_id, "taskId": task_id})
