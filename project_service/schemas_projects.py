"""
project_service/schemas_projects.py

Pydantic schemas for the /api/project HTTP surface.
JSON field names are camelCase to match existing clients; Python attributes are snake_case.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

try:
    from project_service.models import Project, ProjectSpec, ProjectTask, TaskSpec, check_date_range
except ModuleNotFoundError:
    from models import Project, ProjectSpec, ProjectTask, TaskSpec, check_date_range


_CAMEL = ConfigDict(populate_by_name=True)


# ========================================================================
# REQUEST SCHEMAS
# ========================================================================

class TaskRequest(BaseModel):
    """Request schema for creating or updating a task.

    status is kept as a raw string; an unknown value is reported as
    InvalidStatus (400) by the core rather than as a 422 here.
    """
    model_config = _CAMEL

    title: str = Field(..., min_length=1, max_length=200, description="Task title (required)")
    description: Optional[str] = Field(None, description="Task description")
    assigned_to: str = Field(..., min_length=1, alias="assignedTo", description="Assignee user id")
    due_date: Optional[datetime] = Field(None, alias="dueDate", description="Optional due date")
    status: Optional[str] = Field(None, description="NotStarted, InProgress or Completed (default NotStarted)")

    def to_spec(self) -> TaskSpec:
        return TaskSpec(
            title=self.title,
            description=self.description,
            assigned_to=self.assigned_to,
            due_date=self.due_date,
            status=self.status,
        )


class ProjectFieldsRequest(BaseModel):
    """Fields shared by create and update."""
    model_config = _CAMEL

    name: str = Field(..., min_length=1, max_length=200, description="Project name (required)")
    description: Optional[str] = Field(None, description="Project description")
    start_date: datetime = Field(..., alias="startDate")
    end_date: Optional[datetime] = Field(None, alias="endDate")
    project_member_ids: List[str] = Field(default_factory=list, alias="projectMemberIds")
    project_owner: str = Field(..., min_length=1, alias="projectOwner")

    @field_validator("name", mode="before")
    @classmethod
    def trim_name(cls, v):
        """Trim whitespace from name."""
        if isinstance(v, str):
            return v.strip()
        return v

    @model_validator(mode="after")
    def validate_dates(self):
        check_date_range(self.start_date, self.end_date)
        return self

    def to_spec(self) -> ProjectSpec:
        return ProjectSpec(
            name=self.name,
            description=self.description,
            start_date=self.start_date,
            end_date=self.end_date,
            members=self.project_member_ids,
            owner=self.project_owner,
        )


class CreateProjectRequest(ProjectFieldsRequest):
    tasks: Optional[List[TaskRequest]] = Field(None, description="Tasks created with the project, in order")


class UpdateProjectRequest(ProjectFieldsRequest):
    pass


class ProjectStatusRequest(BaseModel):
    status: str = Field(..., description="NotStarted, Active, Completed, PendingReview or Archived")


# ========================================================================
# RESPONSE SCHEMAS
# ========================================================================

class ProjectResponse(BaseModel):
    model_config = _CAMEL

    id: str
    name: str
    description: Optional[str] = None
    start_date: datetime = Field(..., alias="startDate")
    end_date: Optional[datetime] = Field(None, alias="endDate")
    project_members: List[str] = Field(default_factory=list, alias="projectMembers")
    project_owner: str = Field(..., alias="projectOwner")
    task_ids: List[str] = Field(default_factory=list, alias="taskIds")
    status: str

    @classmethod
    def from_project(cls, project: Project) -> "ProjectResponse":
        return cls(
            id=project.id,
            name=project.name,
            description=project.description,
            start_date=project.start_date,
            end_date=project.end_date,
            project_members=project.members,
            project_owner=project.owner,
            task_ids=project.task_ids,
            status=project.status.value,
        )


class TaskResponse(BaseModel):
    model_config = _CAMEL

    id: str
    title: str
    description: Optional[str] = None
    assigned_to: str = Field(..., alias="assignedTo")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    due_date: Optional[datetime] = Field(None, alias="dueDate")
    status: str

    @classmethod
    def from_task(cls, task: ProjectTask) -> "TaskResponse":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            assigned_to=task.assigned_to,
            created_at=task.created_at,
            due_date=task.due_date,
            status=task.status.value,
        )
