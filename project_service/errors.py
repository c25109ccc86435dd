"""
project_service/errors.py

Typed error kinds raised by the project/task core.

The core never returns HTTP responses. It raises one of these and the
transport layer (main.py) renders it using status_code.
"""

from __future__ import annotations


class ProjectServiceError(Exception):
    """Base class for every error the core reports to its caller."""
    kind = "InternalError"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class NotFoundError(ProjectServiceError):
    """Referenced Project or Task does not exist."""
    kind = "NotFound"
    status_code = 404


class ForbiddenError(ProjectServiceError):
    """Caller is neither owner nor member of the project."""
    kind = "Forbidden"
    status_code = 403


class UnauthorizedError(ProjectServiceError):
    """No caller identity was supplied."""
    kind = "Unauthorized"
    status_code = 401


class InvalidStatusError(ProjectServiceError):
    kind = "InvalidStatus"
    status_code = 400


class NotAMemberError(ProjectServiceError):
    kind = "NotAMember"
    status_code = 409


class TaskNotAttachedError(ProjectServiceError):
    kind = "TaskNotAttached"
    status_code = 409


class InternalError(ProjectServiceError):
    kind = "InternalError"
    status_code = 500


class StoreError(InternalError):
    """Document store driver failure."""
    pass


class OperationTimeout(ProjectServiceError):
    """A store or channel call exceeded its deadline."""
    kind = "Timeout"
    status_code = 504
