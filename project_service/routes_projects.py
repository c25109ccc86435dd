"""
project_service/routes_projects.py

Project and task endpoints.

Security guarantees:
- All endpoints require authentication (require_auth_context)
- The acting user id comes from the verified token ONLY
- Every mutation is access-checked by the orchestrator (owner or member)
- Listing all projects is not filtered by access (administrative listing)
- Core errors are rendered by the ProjectServiceError handler in main.py
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Response

try:
    from project_service.auth_context import AuthContext, require_auth_context
    from project_service.dependencies import get_orchestrator
    from project_service.orchestrator import MutationOrchestrator
    from project_service.schemas_projects import (
        CreateProjectRequest,
        ProjectResponse,
        ProjectStatusRequest,
        TaskRequest,
        TaskResponse,
        UpdateProjectRequest,
    )
except ModuleNotFoundError:
    from auth_context import AuthContext, require_auth_context
    from dependencies import get_orchestrator
    from orchestrator import MutationOrchestrator
    from schemas_projects import (
        CreateProjectRequest,
        ProjectResponse,
        ProjectStatusRequest,
        TaskRequest,
        TaskResponse,
        UpdateProjectRequest,
    )


router = APIRouter(
    prefix="/api/project",
    tags=["projects"],
)


@router.get("", response_model=List[ProjectResponse])
async def get_all_projects(
    owner: Optional[str] = Query(None, description="Only projects owned by this user"),
    ctx: AuthContext = Depends(require_auth_context),
    orchestrator: MutationOrchestrator = Depends(get_orchestrator),
) -> List[ProjectResponse]:
    projects = await orchestrator.list_projects(ctx.user_id, owner=owner)
    return [ProjectResponse.from_project(p) for p in projects]


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    request: CreateProjectRequest,
    ctx: AuthContext = Depends(require_auth_context),
    orchestrator: MutationOrchestrator = Depends(get_orchestrator),
) -> ProjectResponse:
    """
    Create a project together with its initial tasks.

    Tasks are created first, in request order; the project starts as NotStarted.

    Raises:
        HTTPException(400): A task status is not recognised
        HTTPException(403): Caller is neither the owner nor a listed member
    """
    task_specs = [t.to_spec() for t in (request.tasks or [])]
    project = await orchestrator.create_project(ctx.user_id, request.to_spec(), task_specs)
    return ProjectResponse.from_project(project)


@router.get("/{id}", response_model=ProjectResponse)
async def get_project_by_id(
    id: str = Path(..., min_length=24, max_length=24, description="Project id"),
    ctx: AuthContext = Depends(require_auth_context),
    orchestrator: MutationOrchestrator = Depends(get_orchestrator),
) -> ProjectResponse:
    project = await orchestrator.get_project(ctx.user_id, id)
    return ProjectResponse.from_project(project)


@router.put("/{id}", response_model=ProjectResponse)
async def update_project(
    request: UpdateProjectRequest,
    id: str = Path(..., min_length=24, max_length=24, description="Project id"),
    ctx: AuthContext = Depends(require_auth_context),
    orchestrator: MutationOrchestrator = Depends(get_orchestrator),
) -> ProjectResponse:
    """Overwrite name, description, dates, members and owner. Tasks and status are not touched."""
    project = await orchestrator.update_project(ctx.user_id, id, request.to_spec())
    return ProjectResponse.from_project(project)


@router.put("/{id}/status", response_model=ProjectResponse)
async def set_project_status(
    request: ProjectStatusRequest,
    id: str = Path(..., min_length=24, max_length=24, description="Project id"),
    ctx: AuthContext = Depends(require_auth_context),
    orchestrator: MutationOrchestrator = Depends(get_orchestrator),
) -> ProjectResponse:
    project = await orchestrator.set_project_status(ctx.user_id, id, request.status)
    return ProjectResponse.from_project(project)


@router.delete("/{id}", status_code=204)
async def delete_project_by_id(
    id: str = Path(..., min_length=24, max_length=24, description="Project id"),
    ctx: AuthContext = Depends(require_auth_context),
    orchestrator: MutationOrchestrator = Depends(get_orchestrator),
) -> Response:
    """Delete the project record. Its tasks are not deleted."""
    await orchestrator.remove_project(ctx.user_id, id)
    return Response(status_code=204)


@router.post("/{id}/members", status_code=204)
async def add_member(
    id: str = Path(..., min_length=24, max_length=24, description="Project id"),
    user_id: str = Query(..., alias="userId", min_length=1),
    ctx: AuthContext = Depends(require_auth_context),
    orchestrator: MutationOrchestrator = Depends(get_orchestrator),
) -> Response:
    await orchestrator.add_member(ctx.user_id, id, user_id)
    return Response(status_code=204)


@router.delete("/{id}/members", status_code=204)
async def remove_member(
    id: str = Path(..., min_length=24, max_length=24, description="Project id"),
    user_id: str = Query(..., alias="userId", min_length=1),
    ctx: AuthContext = Depends(require_auth_context),
    orchestrator: MutationOrchestrator = Depends(get_orchestrator),
) -> Response:
    await orchestrator.remove_member(ctx.user_id, id, user_id)
    return Response(status_code=204)


@router.post("/{id}/tasks", response_model=TaskResponse, status_code=201)
async def add_task(
    request: TaskRequest,
    id: str = Path(..., min_length=24, max_length=24, description="Project id"),
    ctx: AuthContext = Depends(require_auth_context),
    orchestrator: MutationOrchestrator = Depends(get_orchestrator),
) -> TaskResponse:
    task = await orchestrator.add_task(ctx.user_id, id, request.to_spec())
    return TaskResponse.from_task(task)


@router.get("/{id}/tasks/{task_id}", response_model=TaskResponse)
async def get_task(
    id: str = Path(..., min_length=24, max_length=24, description="Project id"),
    task_id: str = Path(..., min_length=24, max_length=24, description="Task id"),
    ctx: AuthContext = Depends(require_auth_context),
    orchestrator: MutationOrchestrator = Depends(get_orchestrator),
) -> TaskResponse:
    task = await orchestrator.get_task(ctx.user_id, id, task_id)
    return TaskResponse.from_task(task)


@router.put("/{id}/tasks/{task_id}", status_code=204)
async def update_task(
    request: TaskRequest,
    id: str = Path(..., min_length=24, max_length=24, description="Project id"),
    task_id: str = Path(..., min_length=24, max_length=24, description="Task id"),
    ctx: AuthContext = Depends(require_auth_context),
    orchestrator: MutationOrchestrator = Depends(get_orchestrator),
) -> Response:
    await orchestrator.update_task(ctx.user_id, id, task_id, request.to_spec())
    return Response(status_code=204)


@router.delete("/{id}/tasks/{task_id}", status_code=204)
async def remove_task(
    id: str = Path(..., min_length=24, max_length=24, description="Project id"),
    task_id: str = Path(..., min_length=24, max_length=24, description="Task id"),
    ctx: AuthContext = Depends(require_auth_context),
    orchestrator: MutationOrchestrator = Depends(get_orchestrator),
) -> Response:
    """Detach the task from the project, then delete it."""
    await orchestrator.remove_task(ctx.user_id, id, task_id)
    return Response(status_code=204)
