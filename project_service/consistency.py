"""
project_service/consistency.py

Project/Task consistency manager.

This is the only component that writes a project's taskIds and members.
Array changes go through the store's single-statement push/pull so that
concurrent attaches, detaches and membership edits on the same project
never lose each other's writes.

Multi-document sequences are best-effort, not atomic:
- create_project inserts tasks first, then the project. If the project
  insert (or a later task insert) fails, the tasks already inserted stay
  behind as orphans.
- detach_and_delete_task removes the reference first, then the task. If the
  task delete fails, the task stays behind as an orphan but no project ever
  points at a missing task.
- A store call that overruns its deadline raises OperationTimeout, but the
  worker thread is not cancelled and its write may still commit. The caller
  sees Timeout for a change that landed, and no event is published for it.
Nothing is compensated automatically; failures are printed for operators.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Union

try:
    from project_service.config import IS_DEV
    from project_service.db import PROJECTS, TASKS, DocumentStore
    from project_service.errors import (
        InternalError,
        NotAMemberError,
        NotFoundError,
        ProjectServiceError,
        TaskNotAttachedError,
    )
    from project_service.models import (
        Project,
        ProjectSpec,
        ProjectStatus,
        ProjectTask,
        TaskSpec,
        dedupe,
        parse_project_status,
        parse_task_status,
        utcnow,
    )
except ModuleNotFoundError:
    from config import IS_DEV
    from db import PROJECTS, TASKS, DocumentStore
    from errors import (
        InternalError,
        NotAMemberError,
        NotFoundError,
        ProjectServiceError,
        TaskNotAttachedError,
    )
    from models import (
        Project,
        ProjectSpec,
        ProjectStatus,
        ProjectTask,
        TaskSpec,
        dedupe,
        parse_project_status,
        parse_task_status,
        utcnow,
    )


def build_task(spec: TaskSpec) -> ProjectTask:
    """Turn caller fields into a ProjectTask. Raises InvalidStatusError on a bad status."""
    return ProjectTask(
        title=spec.title,
        description=spec.description,
        assigned_to=spec.assigned_to,
        due_date=spec.due_date,
        status=parse_task_status(spec.status),
    )


def _project_fields(spec: ProjectSpec) -> Dict[str, Any]:
    # Everything a caller may overwrite; never taskIds or status
    data = spec.model_dump(by_alias=True, mode="json")
    data["members"] = dedupe(data.get("members") or [])
    return data


class ProjectTaskManager:
    """Owns every mutation path that touches the Projects and Tasks collections."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------
    async def create_project(self, spec: ProjectSpec, task_specs: Sequence[TaskSpec] = ()) -> Project:
        """
        Create every task, then the project referencing them in input order.

        All statuses are parsed before the first write, so an InvalidStatus
        leaves the store untouched. The project always starts as NotStarted.
        """
        tasks = [build_task(ts) for ts in task_specs]

        task_ids: List[str] = []
        try:
            for task in tasks:
                task_ids.append(await self.create_task(task))

            project = Project(
                name=spec.name,
                description=spec.description,
                start_date=spec.start_date,
                end_date=spec.end_date,
                members=dedupe(spec.members),
                owner=spec.owner,
                task_ids=task_ids,
                status=ProjectStatus.NotStarted,
            )
            project_id = await self.store.insert(PROJECTS, project.to_document())
        except ProjectServiceError:
            if task_ids:
                print(f"[PROJECTS] ERROR: create_project failed after inserting tasks; "
                      f"orphaned task_ids={task_ids}")
            raise

        if IS_DEV:
            print(f"[PROJECTS] Created project_id={project_id}, owner={spec.owner}, tasks={len(task_ids)}")
        return project.model_copy(update={"id": project_id})

    async def get_project(self, project_id: str) -> Optional[Project]:
        doc = await self.store.find_by_id(PROJECTS, project_id)
        if doc is None:
            return None
        return Project.model_validate(doc)

    async def list_projects(self, owner: Optional[str] = None) -> List[Project]:
        predicate = {"owner": owner} if owner else None
        docs = await self.store.find_all(PROJECTS, predicate)
        return [Project.model_validate(d) for d in docs]

    async def _require_project(self, project_id: str) -> Project:
        project = await self.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project with ID {project_id} not found.")
        return project

    async def update_project(self, project_id: str, spec: ProjectSpec) -> Project:
        """Overwrite name, description, dates, members and owner. taskIds and status are untouched."""
        updated = await self.store.set_fields(PROJECTS, project_id, _project_fields(spec))
        if not updated:
            raise NotFoundError(f"Project with ID {project_id} not found.")
        return await self._require_project(project_id)

    async def set_project_status(self, project_id: str, status: Union[str, ProjectStatus]) -> Project:
        new_status = parse_project_status(status)
        updated = await self.store.set_fields(PROJECTS, project_id, {"status": new_status.value})
        if not updated:
            raise NotFoundError(f"Project with ID {project_id} not found.")
        return await self._require_project(project_id)

    async def remove_project(self, project_id: str) -> None:
        """Delete the project record only. Its tasks are not cascaded and become orphans."""
        project = await self._require_project(project_id)
        if not await self.store.delete(PROJECTS, project_id):
            raise NotFoundError(f"Project with ID {project_id} not found.")

        if project.task_ids:
            print(f"[PROJECTS] Removed project_id={project_id}; "
                  f"{len(project.task_ids)} task(s) left without a project: {project.task_ids}")

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------
    async def add_member(self, project_id: str, user_id: str) -> bool:
        """Add with set semantics. True if added, False if already a member."""
        added = await self.store.push_to_array(PROJECTS, project_id, "members", user_id, unique=True)
        if added:
            return True
        await self._require_project(project_id)
        return False

    async def remove_member(self, project_id: str, user_id: str) -> None:
        removed = await self.store.pull_from_array(PROJECTS, project_id, "members", user_id)
        if removed:
            return
        await self._require_project(project_id)
        raise NotAMemberError("User not a member of the project.")

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------
    async def create_task(self, task: ProjectTask) -> str:
        """Insert a standalone task and return its id. It is not attached to any project."""
        if task.created_at is None:
            task = task.model_copy(update={"created_at": utcnow()})
        return await self.store.insert(TASKS, task.to_document())

    async def get_task(self, task_id: str) -> Optional[ProjectTask]:
        doc = await self.store.find_by_id(TASKS, task_id)
        if doc is None:
            return None
        return ProjectTask.model_validate(doc)

    async def attach_task(self, project_id: str, task_id: str) -> bool:
        """
        Append task_id to the project's taskIds.

        Raises NotFoundError for a missing project or task. Returns False when
        the store reports no modification (the id was already attached).
        """
        if await self.store.find_by_id(TASKS, task_id) is None:
            raise NotFoundError(f"Task with ID {task_id} not found.")

        attached = await self.store.push_to_array(PROJECTS, project_id, "taskIds", task_id, unique=True)
        if attached:
            return True
        await self._require_project(project_id)
        return False

    async def add_task(self, project_id: str, spec: TaskSpec) -> ProjectTask:
        """Create a task and attach it to an existing project."""
        task = build_task(spec).model_copy(update={"created_at": utcnow()})
        await self._require_project(project_id)

        task_id = await self.create_task(task)
        created = task.model_copy(update={"id": task_id})

        if not await self.attach_task(project_id, task_id):
            print(f"[PROJECTS] ERROR: failed to attach task_id={task_id} to "
                  f"project_id={project_id}; task left orphaned")
            raise InternalError("Failed to add task to the project.")

        if IS_DEV:
            print(f"[PROJECTS] Added task_id={task_id} to project_id={project_id}")
        return created

    async def update_task(self, task_id: str, spec: TaskSpec) -> ProjectTask:
        """
        Field-wise update. Does not check which project (if any) references the task.

        A missing status keeps the stored one; only a supplied status is parsed and written.
        """
        task = build_task(spec)
        include = {"title", "description", "assigned_to", "due_date"}
        if spec.status is not None and spec.status.strip():
            include.add("status")
        fields = task.model_dump(by_alias=True, mode="json", include=include)
        if not await self.store.set_fields(TASKS, task_id, fields):
            raise NotFoundError(f"Task with ID {task_id} not found.")

        updated = await self.get_task(task_id)
        if updated is None:
            raise NotFoundError(f"Task with ID {task_id} not found.")
        return updated

    async def detach_and_delete_task(self, project_id: str, task_id: str) -> None:
        """
        Remove task_id from the project, then delete the Task record.

        The reference goes first: a failure between the two steps leaves an
        orphaned task, never a project pointing at a missing one.
        """
        project = await self._require_project(project_id)
        if task_id not in project.task_ids:
            raise TaskNotAttachedError("Task not found in the project.")

        if not await self.store.pull_from_array(PROJECTS, project_id, "taskIds", task_id):
            # Lost a race with a concurrent detach or delete
            await self._require_project(project_id)
            raise TaskNotAttachedError("Task not found in the project.")

        try:
            deleted = await self.store.delete(TASKS, task_id)
        except ProjectServiceError:
            print(f"[PROJECTS] ERROR: detached task_id={task_id} from project_id={project_id} "
                  f"but task delete failed; task left orphaned")
            raise

        if not deleted:
            print(f"[PROJECTS] WARNING: task_id={task_id} was referenced by project_id={project_id} "
                  f"but had no task record")
        elif IS_DEV:
            print(f"[PROJECTS] Deleted task_id={task_id} from project_id={project_id}")
