"""
project_service/dependencies.py

Reusable FastAPI dependencies.

Services are built once in main.create_app() and kept on app.state, so a
route asks for them through these functions instead of importing globals.
"""

from __future__ import annotations

from fastapi import Request

try:
    from project_service.orchestrator import MutationOrchestrator
except ModuleNotFoundError:
    from orchestrator import MutationOrchestrator


def get_orchestrator(request: Request) -> MutationOrchestrator:
    """
    FastAPI dependency returning the app's MutationOrchestrator.

    Usage in routes:
        @router.get("/{id}")
        async def get_project(id: str, orchestrator: MutationOrchestrator = Depends(get_orchestrator)):
            ...
    """
    return request.app.state.orchestrator
