"""
project_service/test_orchestrator.py

Mutation orchestration tests.

Tests:
1. Access is checked before any change; denied callers change nothing
2. Exactly one event follows each committed mutation
3. Manager failures publish nothing
4. Publish failures never change the returned result

Run:
    pytest project_service/test_orchestrator.py -v
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from project_service.access import AccessControl
from project_service.consistency import ProjectTaskManager
from project_service.db import DocumentStore, new_object_id
from project_service.errors import (
    ForbiddenError,
    InternalError,
    InvalidStatusError,
    NotAMemberError,
    NotFoundError,
    OperationTimeout,
    UnauthorizedError,
)
from project_service.events import EventEmitter, InMemoryChannel, MessageChannel, MessageEnvelope
from project_service.models import ProjectSpec, TaskSpec
from project_service.orchestrator import MutationOrchestrator


@pytest.fixture
def store(tmp_path):
    s = DocumentStore(database_url="", database_path=str(tmp_path / "orchestrator.db"))
    s.init_schema()
    yield s
    s.close()


@pytest.fixture
def channel():
    return InMemoryChannel()


@pytest.fixture
def orchestrator(store, channel):
    return MutationOrchestrator(
        access=AccessControl(store),
        manager=ProjectTaskManager(store),
        emitter=EventEmitter(channel),
    )


def run(coro):
    return asyncio.run(coro)


def launch_spec(**overrides) -> ProjectSpec:
    fields = {
        "name": "Launch",
        "start_date": datetime(2024, 3, 1, tzinfo=timezone.utc),
        "members": ["u1", "u2"],
        "owner": "u1",
    }
    fields.update(overrides)
    return ProjectSpec(**fields)


@pytest.fixture
def launch(orchestrator, channel):
    """A project owned by u1 with member u2 and one task; the creation event is cleared."""
    project = run(orchestrator.create_project(
        "u1", launch_spec(), [TaskSpec(title="Draft", assigned_to="u2", status="NotStarted")]
    ))
    channel.messages.clear()
    return project


# ---------------------------------------------------------
# Create
# ---------------------------------------------------------
def test_create_publishes_project_created_with_full_project(orchestrator, channel):
    project = run(orchestrator.create_project(
        "u1", launch_spec(), [TaskSpec(title="Draft", assigned_to="u2", status="NotStarted")]
    ))

    assert len(project.task_ids) == 1
    assert project.status.value == "NotStarted"
    assert channel.envelopes() == [MessageEnvelope("ProjectCreated", project.to_payload())]


def test_member_may_create_a_project_owned_by_someone_else(orchestrator):
    project = run(orchestrator.create_project("u2", launch_spec(), []))
    assert project.owner == "u1"


def test_creator_outside_the_project_is_forbidden(orchestrator, store, channel):
    with pytest.raises(ForbiddenError):
        run(orchestrator.create_project("u9", launch_spec(), []))

    assert run(orchestrator.list_projects("u1")) == []
    assert channel.messages == []


def test_create_with_invalid_task_status_publishes_nothing(orchestrator, channel):
    with pytest.raises(InvalidStatusError):
        run(orchestrator.create_project("u1", launch_spec(), [TaskSpec(title="x", assigned_to="u2", status="Blocked")]))
    assert channel.messages == []


# ---------------------------------------------------------
# Access
# ---------------------------------------------------------
def test_missing_user_is_unauthorized(orchestrator, launch, channel):
    with pytest.raises(UnauthorizedError):
        run(orchestrator.add_member(None, launch.id, "u3"))
    with pytest.raises(UnauthorizedError):
        run(orchestrator.list_projects(""))
    assert channel.messages == []


def test_stranger_cannot_mutate_and_nothing_changes(orchestrator, launch, channel):
    with pytest.raises(ForbiddenError):
        run(orchestrator.add_member("u9", launch.id, "u9"))
    with pytest.raises(ForbiddenError):
        run(orchestrator.remove_task("u9", launch.id, launch.task_ids[0]))

    assert run(orchestrator.get_project("u1", launch.id)) == launch
    assert channel.messages == []


def test_mutating_a_missing_project_is_forbidden(orchestrator, channel):
    with pytest.raises(ForbiddenError):
        run(orchestrator.update_project("u1", new_object_id(), launch_spec()))
    assert channel.messages == []


def test_get_project_reports_not_found_before_forbidden(orchestrator, launch):
    with pytest.raises(NotFoundError):
        run(orchestrator.get_project("u1", new_object_id()))
    with pytest.raises(ForbiddenError):
        run(orchestrator.get_project("u9", launch.id))


def test_listing_is_not_filtered_by_access(orchestrator, launch):
    projects = run(orchestrator.list_projects("u9"))
    assert [p.id for p in projects] == [launch.id]


# ---------------------------------------------------------
# Members
# ---------------------------------------------------------
def test_add_member_publishes_member_added(orchestrator, launch, channel):
    assert run(orchestrator.add_member("u1", launch.id, "u3")) is True

    assert run(orchestrator.get_project("u3", launch.id)).members == ["u1", "u2", "u3"]
    assert channel.envelopes() == [MessageEnvelope("MemberAdded", {"projectId": launch.id, "userId": "u3"})]


def test_adding_an_existing_member_publishes_nothing(orchestrator, launch, channel):
    assert run(orchestrator.add_member("u2", launch.id, "u2")) is False
    assert channel.messages == []


def test_remove_member_publishes_member_removed(orchestrator, launch, channel):
    run(orchestrator.remove_member("u1", launch.id, "u2"))

    assert channel.envelopes() == [MessageEnvelope("MemberRemoved", {"projectId": launch.id, "userId": "u2"})]
    with pytest.raises(ForbiddenError):
        run(orchestrator.get_project("u2", launch.id))


def test_remove_non_member_publishes_nothing(orchestrator, launch, channel):
    with pytest.raises(NotAMemberError):
        run(orchestrator.remove_member("u1", launch.id, "u7"))
    assert channel.messages == []


# ---------------------------------------------------------
# Projects
# ---------------------------------------------------------
def test_update_project_publishes_project_updated(orchestrator, launch, channel):
    updated = run(orchestrator.update_project("u2", launch.id, launch_spec(name="Relaunch")))

    assert updated.name == "Relaunch"
    assert updated.task_ids == launch.task_ids
    assert channel.envelopes() == [MessageEnvelope("ProjectUpdated", updated.to_payload())]


def test_set_project_status_publishes_project_updated(orchestrator, launch, channel):
    updated = run(orchestrator.set_project_status("u1", launch.id, "Active"))

    assert updated.status.value == "Active"
    assert channel.envelopes()[0].message_type == "ProjectUpdated"
    assert channel.envelopes()[0].payload["status"] == "Active"


def test_remove_project_publishes_project_deleted(orchestrator, launch, channel):
    run(orchestrator.remove_project("u1", launch.id))

    assert channel.envelopes() == [MessageEnvelope("ProjectDeleted", {"projectId": launch.id})]
    with pytest.raises(NotFoundError):
        run(orchestrator.get_project("u1", launch.id))


# ---------------------------------------------------------
# Tasks
# ---------------------------------------------------------
def test_add_task_publishes_task_added(orchestrator, launch, channel):
    task = run(orchestrator.add_task("u2", launch.id, TaskSpec(title="Docs", assigned_to="u2")))

    assert run(orchestrator.get_project("u1", launch.id)).task_ids == launch.task_ids + [task.id]
    assert channel.envelopes() == [
        MessageEnvelope("TaskAdded", {"projectId": launch.id, "task": task.to_payload()})
    ]


def test_get_task_requires_attachment(orchestrator, launch):
    other = run(orchestrator.create_project(
        "u9", launch_spec(owner="u9", members=[]), [TaskSpec(title="Elsewhere", assigned_to="u9")]
    ))

    assert run(orchestrator.get_task("u1", launch.id, launch.task_ids[0])).title == "Draft"
    with pytest.raises(NotFoundError):
        run(orchestrator.get_task("u1", launch.id, other.task_ids[0]))


def test_update_task_publishes_task_updated(orchestrator, launch, channel):
    task_id = launch.task_ids[0]
    task = run(orchestrator.update_task(
        "u1", launch.id, task_id, TaskSpec(title="Draft v2", assigned_to="u1", status="InProgress")
    ))

    assert task.id == task_id
    assert task.status.value == "InProgress"
    envelope = channel.envelopes()[0]
    assert envelope.message_type == "TaskUpdated"
    assert envelope.payload == {"projectId": launch.id, "task": task.to_payload()}


def test_update_task_of_another_project_is_not_found(orchestrator, launch, channel):
    other = run(orchestrator.create_project(
        "u9", launch_spec(owner="u9", members=[]), [TaskSpec(title="Private", assigned_to="u9")]
    ))
    channel.messages.clear()
    foreign_task = other.task_ids[0]

    with pytest.raises(NotFoundError):
        run(orchestrator.update_task("u1", launch.id, foreign_task, TaskSpec(title="Renamed", assigned_to="u1")))

    assert run(orchestrator.get_task("u9", other.id, foreign_task)).title == "Private"
    assert channel.messages == []


def test_remove_task_publishes_task_deleted(orchestrator, launch, channel):
    task_id = launch.task_ids[0]
    run(orchestrator.remove_task("u1", launch.id, task_id))

    assert run(orchestrator.get_project("u1", launch.id)).task_ids == []
    assert channel.envelopes() == [MessageEnvelope("TaskDeleted", {"projectId": launch.id, "taskId": task_id})]


def test_manager_failure_publishes_nothing(orchestrator, launch, channel):
    with patch.object(orchestrator.manager, "add_member", AsyncMock(side_effect=InternalError("store down"))):
        with pytest.raises(InternalError):
            run(orchestrator.add_member("u1", launch.id, "u3"))
    assert channel.messages == []


# ---------------------------------------------------------
# Publish failures
# ---------------------------------------------------------
@pytest.mark.parametrize("failure", [InternalError("queue rejected"), OperationTimeout("queue slow")])
def test_publish_failure_does_not_change_the_result(orchestrator, launch, failure):
    with patch.object(orchestrator.emitter, "publish", AsyncMock(side_effect=failure)) as publish:
        assert run(orchestrator.add_member("u1", launch.id, "u3")) is True

    publish.assert_awaited_once()
    assert "u3" in run(orchestrator.get_project("u1", launch.id)).members


class UnreachableChannel(MessageChannel):
    def send(self, body):
        raise ConnectionError("queue unreachable")


def test_broken_channel_does_not_fail_a_committed_create(store):
    orchestrator = MutationOrchestrator(
        access=AccessControl(store),
        manager=ProjectTaskManager(store),
        emitter=EventEmitter(UnreachableChannel()),
    )

    project = run(orchestrator.create_project("u1", launch_spec(), []))

    assert run(orchestrator.get_project("u1", project.id)).name == "Launch"


def test_unexpected_publish_error_is_swallowed(orchestrator, launch):
    with patch.object(orchestrator.emitter, "publish", AsyncMock(side_effect=RuntimeError("boom"))):
        run(orchestrator.remove_member("u1", launch.id, "u2"))

    assert run(orchestrator.get_project("u1", launch.id)).members == ["u1"]
