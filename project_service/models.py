from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

try:
    from project_service.errors import InvalidStatusError
except ModuleNotFoundError:
    from errors import InvalidStatusError


# Enums
class ProjectStatus(str, Enum):
    NotStarted = "NotStarted"
    Active = "Active"
    Completed = "Completed"
    PendingReview = "PendingReview"
    Archived = "Archived"


class TaskStatus(str, Enum):
    NotStarted = "NotStarted"
    InProgress = "InProgress"
    Completed = "Completed"


def _parse_enum(enum_cls, value: Optional[str], default=None):
    """Case-insensitive name lookup. Raises InvalidStatusError when unparseable."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is not None:
            return default
        raise InvalidStatusError(f"Missing {enum_cls.__name__} value")
    if isinstance(value, enum_cls):
        return value
    wanted = str(value).strip().lower()
    for member in enum_cls:
        if member.value.lower() == wanted:
            return member
    raise InvalidStatusError(f"Invalid {enum_cls.__name__} value: {value!r}")


def parse_task_status(value: Optional[str]) -> TaskStatus:
    """A missing status means NotStarted; anything else must name a TaskStatus."""
    return _parse_enum(TaskStatus, value, default=TaskStatus.NotStarted)


def parse_project_status(value: Optional[str]) -> ProjectStatus:
    return _parse_enum(ProjectStatus, value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(dt: datetime) -> datetime:
    # Naive datetimes are treated as UTC so mixed inputs stay comparable
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def check_date_range(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start is not None and end is not None and _as_utc(end) < _as_utc(start):
        raise ValueError("endDate must not be earlier than startDate")


def dedupe(values: List[str]) -> List[str]:
    """Collapse duplicates, keeping first-seen order."""
    seen = set()
    out = []
    for v in values:
        if v not in seen:
            seen.add(v)
            out.append(v)
    return out


# Stored documents use camelCase field names; Python attributes are snake_case.
_DOC_CONFIG = ConfigDict(populate_by_name=True, use_enum_values=False)


class Project(BaseModel):
    model_config = _DOC_CONFIG

    id: Optional[str] = None
    name: str
    description: Optional[str] = None
    start_date: datetime = Field(alias="startDate")
    end_date: Optional[datetime] = Field(default=None, alias="endDate")
    members: List[str] = Field(default_factory=list)
    owner: str
    task_ids: List[str] = Field(default_factory=list, alias="taskIds")
    status: ProjectStatus = ProjectStatus.NotStarted

    @field_validator("members", "task_ids", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        # Older documents may carry null arrays
        return [] if v is None else v

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude={"id"})

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class ProjectTask(BaseModel):
    model_config = _DOC_CONFIG

    id: Optional[str] = None
    title: str
    description: Optional[str] = None
    assigned_to: str = Field(alias="assignedTo")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")
    status: TaskStatus = TaskStatus.NotStarted

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude={"id"})

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class ProjectSpec(BaseModel):
    """Caller-supplied project fields (create and update)."""
    model_config = _DOC_CONFIG

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    start_date: datetime = Field(alias="startDate")
    end_date: Optional[datetime] = Field(default=None, alias="endDate")
    members: List[str] = Field(default_factory=list)
    owner: str = Field(..., min_length=1)

    @field_validator("name", mode="before")
    @classmethod
    def trim_name(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @model_validator(mode="after")
    def validate_dates(self):
        check_date_range(self.start_date, self.end_date)
        return self


class TaskSpec(BaseModel):
    """Caller-supplied task fields. status stays a raw string until the manager parses it."""
    model_config = _DOC_CONFIG

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    assigned_to: str = Field(..., min_length=1, alias="assignedTo")
    due_date: Optional[datetime] = Field(default=None, alias="dueDate")
    status: Optional[str] = None
