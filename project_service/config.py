# project_service/config.py
# Environment-aware configuration for the project service

import os
from typing import Literal

# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.environ.get("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_STAGING = (ENV == "staging")
IS_PROD = (ENV == "prod")

# JWT verification (tokens are issued by the identity service, not here)
SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")
ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
JWT_ISSUER = os.environ.get("JWT_ISSUER", "").strip() or None
JWT_AUDIENCE = os.environ.get("JWT_AUDIENCE", "").strip() or None

# Database configuration
# DATABASE_URL takes precedence (managed Postgres)
# Falls back to SQLite for local development
DATABASE_URL = os.environ.get("DATABASE_URL", "").strip()
DATABASE_PATH = os.environ.get("DATABASE_PATH", "projects.db")

# Message channel (empty = events are dropped with a log line)
SQS_QUEUE_URL = os.environ.get("SQS_QUEUE_URL", "").strip()
AWS_REGION = os.environ.get("AWS_REGION", "").strip() or None

# Deadlines applied to every store and channel call
STORE_TIMEOUT_SECONDS = float(os.environ.get("STORE_TIMEOUT_SECONDS", "5"))
CHANNEL_TIMEOUT_SECONDS = float(os.environ.get("CHANNEL_TIMEOUT_SECONDS", "5"))

# SSM Parameter Store paths, consulted once at startup when set
SSM_JWT_SECRET_PATH = os.environ.get("SSM_JWT_SECRET_PATH", "").strip()
SSM_DATABASE_URL_PATH = os.environ.get("SSM_DATABASE_URL_PATH", "").strip()
SSM_SQS_QUEUE_URL_PATH = os.environ.get("SSM_SQS_QUEUE_URL_PATH", "").strip()

# CORS origins (expand for staging/prod)
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

extra_origins = os.environ.get("CORS_ORIGINS", "")
if extra_origins and (IS_STAGING or IS_PROD):
    CORS_ORIGINS.extend(o.strip() for o in extra_origins.split(",") if o.strip())

# Database type detection
IS_POSTGRES = DATABASE_URL.startswith(("postgres://", "postgresql://"))
IS_SQLITE = not IS_POSTGRES

print(f"[CONFIG] Environment: {ENV}")
print(f"[CONFIG] Database: {'PostgreSQL' if IS_POSTGRES else 'SQLite (local dev)'}")
print(f"[CONFIG] Event channel: {'SQS' if SQS_QUEUE_URL else 'disabled'}")
print(f"[CONFIG] Deadlines: store={STORE_TIMEOUT_SECONDS}s, channel={CHANNEL_TIMEOUT_SECONDS}s")
