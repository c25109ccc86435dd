# ---------------------------------------------------------
# project_service/main.py
# Project Management Service - projects, members and tasks
#
# Run: uvicorn project_service.main:app --reload (from repo root)
#
# - FastAPI + document store (SQLite dev / PostgreSQL prod)
# - /api/project             : list / create projects
# - /api/project/{id}        : get / update / delete a project
# - /api/project/{id}/status : set project status
# - /api/project/{id}/members: add / remove members
# - /api/project/{id}/tasks  : add / get / update / delete tasks
# - change events published to SQS after every committed mutation
# ---------------------------------------------------------

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

try:
    from project_service.access import AccessControl
    from project_service.config import CORS_ORIGINS, IS_PROD, STORE_TIMEOUT_SECONDS
    from project_service.consistency import ProjectTaskManager
    from project_service.db import DocumentStore
    from project_service.errors import ProjectServiceError
    from project_service.events import EventEmitter, MessageChannel, NullChannel, SqsChannel
    from project_service.orchestrator import MutationOrchestrator
    from project_service.parameter_store import resolve_secrets
    from project_service.routes_projects import router as projects_router
except ModuleNotFoundError:
    from access import AccessControl
    from config import CORS_ORIGINS, IS_PROD, STORE_TIMEOUT_SECONDS
    from consistency import ProjectTaskManager
    from db import DocumentStore
    from errors import ProjectServiceError
    from events import EventEmitter, MessageChannel, NullChannel, SqsChannel
    from orchestrator import MutationOrchestrator
    from parameter_store import resolve_secrets
    from routes_projects import router as projects_router


def build_channel(queue_url: str) -> MessageChannel:
    if queue_url:
        return SqsChannel(queue_url)
    print("[EVENTS] SQS_QUEUE_URL not set; change events will be dropped")
    return NullChannel()


def create_app(
    store: Optional[DocumentStore] = None,
    channel: Optional[MessageChannel] = None,
    jwt_secret: Optional[str] = None,
) -> FastAPI:
    """
    Wire store -> access/manager -> emitter -> orchestrator and mount the routes.

    Anything not passed in is built from startup secrets (env, optionally SSM).
    """
    if store is None or channel is None or jwt_secret is None:
        secrets = resolve_secrets()
        if store is None:
            store = DocumentStore(database_url=secrets.database_url, timeout=STORE_TIMEOUT_SECONDS)
        if channel is None:
            channel = build_channel(secrets.sqs_queue_url)
        if jwt_secret is None:
            jwt_secret = secrets.jwt_secret

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.init_schema()
        yield
        store.close()

    app = FastAPI(title="Project Management Service", version="0.1", lifespan=lifespan)

    app.state.store = store
    app.state.jwt_secret = jwt_secret
    app.state.orchestrator = MutationOrchestrator(
        access=AccessControl(store),
        manager=ProjectTaskManager(store),
        emitter=EventEmitter(channel),
    )

    # CORS configuration from config module
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS if IS_PROD else ["*"],  # Restrict origins in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ProjectServiceError)
    async def handle_service_error(request: Request, exc: ProjectServiceError) -> JSONResponse:
        if exc.status_code >= 500:
            print(f"[PROJECTS] ERROR: {request.method} {request.url.path} -> {exc.kind}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "kind": exc.kind},
        )

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    app.include_router(projects_router)
    return app


app = create_app()
