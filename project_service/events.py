"""
project_service/events.py

Change notifications for downstream consumers.

Every committed mutation is announced as a JSON envelope
{"MessageType": <ChangeType>, "Payload": <value>} on a single SQS queue.
Delivery is at-least-once and unordered across message types, so consumers
must tolerate duplicates. The emitter never retries; callers decide what a
failed publish means (the orchestrator logs and drops it).
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Union

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

try:
    from project_service.config import AWS_REGION, CHANNEL_TIMEOUT_SECONDS, IS_DEV
    from project_service.errors import InternalError, OperationTimeout
except ModuleNotFoundError:
    from config import AWS_REGION, CHANNEL_TIMEOUT_SECONDS, IS_DEV
    from errors import InternalError, OperationTimeout


class ChangeType(str, Enum):
    """Message types published after a successful mutation."""
    PROJECT_CREATED = "ProjectCreated"
    PROJECT_UPDATED = "ProjectUpdated"
    PROJECT_DELETED = "ProjectDeleted"
    MEMBER_ADDED = "MemberAdded"
    MEMBER_REMOVED = "MemberRemoved"
    TASK_ADDED = "TaskAdded"
    TASK_UPDATED = "TaskUpdated"
    TASK_DELETED = "TaskDeleted"


@dataclass(frozen=True)
class MessageEnvelope:
    message_type: str
    payload: Any

    def to_json(self) -> str:
        return json.dumps({"MessageType": self.message_type, "Payload": self.payload}, default=str)

    @classmethod
    def from_json(cls, body: str) -> "MessageEnvelope":
        try:
            data = json.loads(body)
        except (TypeError, json.JSONDecodeError) as exc:
            raise ValueError("Failed to deserialize message envelope") from exc
        if not isinstance(data, dict) or not isinstance(data.get("MessageType"), str) or "Payload" not in data:
            raise ValueError("Failed to deserialize message envelope")
        return cls(message_type=data["MessageType"], payload=data["Payload"])


# ---------------------------------------------------------
# Channels
# ---------------------------------------------------------
class MessageChannel:
    """Destination for serialized envelopes. send() is blocking."""

    def send(self, body: str) -> None:
        raise NotImplementedError


class SqsChannel(MessageChannel):
    """Amazon SQS queue. The boto3 client is created on first send."""

    def __init__(self, queue_url: str, region_name: Optional[str] = AWS_REGION, client: Any = None) -> None:
        self.queue_url = queue_url
        self.region_name = region_name
        self._client = client

    def _get_client(self):
        if self._client is None:
            # One attempt only: a failed publish is reported, not retried
            self._client = boto3.client(
                "sqs",
                region_name=self.region_name,
                config=Config(retries={"max_attempts": 1, "mode": "standard"}),
            )
        return self._client

    def send(self, body: str) -> None:
        self._get_client().send_message(QueueUrl=self.queue_url, MessageBody=body)


class InMemoryChannel(MessageChannel):
    """Keeps sent bodies in a list. Used in dev and tests."""

    def __init__(self) -> None:
        self.messages: List[str] = []

    def send(self, body: str) -> None:
        self.messages.append(body)

    def envelopes(self) -> List[MessageEnvelope]:
        return [MessageEnvelope.from_json(m) for m in self.messages]


class NullChannel(MessageChannel):
    """No queue configured: drop the message after logging it."""

    def send(self, body: str) -> None:
        if IS_DEV:
            print(f"[EVENTS] No channel configured, dropping message: {body[:200]}")


# ---------------------------------------------------------
# Emitter
# ---------------------------------------------------------
class EventEmitter:
    def __init__(self, channel: MessageChannel, timeout: float = CHANNEL_TIMEOUT_SECONDS) -> None:
        self.channel = channel
        self.timeout = timeout

    async def publish(self, change_type: Union[ChangeType, str], payload: Any) -> None:
        """
        Serialize and hand one envelope to the channel.

        Raises:
            ValueError: change_type is not a ChangeType
            OperationTimeout: the channel did not accept the message in time
            InternalError: the channel rejected the message or failed to send it
        """
        message_type = ChangeType(change_type).value
        body = MessageEnvelope(message_type=message_type, payload=payload).to_json()

        try:
            await asyncio.wait_for(asyncio.to_thread(self.channel.send, body), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise OperationTimeout(f"Publishing {message_type} exceeded {self.timeout}s")
        except (BotoCoreError, ClientError) as exc:
            raise InternalError(f"Publishing {message_type} failed: {exc}") from exc
        except Exception as exc:
            # Any channel, not only SQS: connection and OS errors surface as InternalError
            raise InternalError(f"Publishing {message_type} failed: {exc!r}") from exc

        if IS_DEV:
            print(f"[EVENTS] Published {message_type}")
