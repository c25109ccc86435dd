"""
project_service/parameter_store.py

Startup-only secret resolution.

Values come from the environment (config.py). When an SSM parameter path is
configured for a value, the decrypted parameter replaces it. Nothing here is
consulted per request.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

try:
    from project_service import config
except ModuleNotFoundError:
    import config


@dataclass(frozen=True)
class Secrets:
    jwt_secret: str
    database_url: str
    sqs_queue_url: str


def get_parameter(client: Any, name: str) -> str:
    """Fetch one decrypted SSM parameter. Errors propagate: startup must fail loudly."""
    try:
        response = client.get_parameter(Name=name, WithDecryption=True)
    except (BotoCoreError, ClientError) as exc:
        print(f"[SSM] ERROR: could not read parameter {name}: {exc}")
        raise
    return response["Parameter"]["Value"]


def resolve_secrets(client: Optional[Any] = None) -> Secrets:
    """
    Build the startup Secrets from env values, overridden by SSM where a path is set.

    The SSM client is only created when at least one path is configured.
    """
    paths = {
        "jwt_secret": config.SSM_JWT_SECRET_PATH,
        "database_url": config.SSM_DATABASE_URL_PATH,
        "sqs_queue_url": config.SSM_SQS_QUEUE_URL_PATH,
    }
    values = {
        "jwt_secret": config.SECRET_KEY,
        "database_url": config.DATABASE_URL,
        "sqs_queue_url": config.SQS_QUEUE_URL,
    }

    if any(paths.values()):
        if client is None:
            client = boto3.client("ssm", region_name=config.AWS_REGION)
        for key, path in paths.items():
            if path:
                values[key] = get_parameter(client, path)
                print(f"[SSM] Loaded {key} from {path}")

    return Secrets(**values)
