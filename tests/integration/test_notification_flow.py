"""End-to-end: API writes become in-app notifications through the event channel."""

from uuid import UUID, uuid4

import pytest
from sqlalchemy import func, select

from domain.entities.event import DomainEvent
from infrastructure.database.models import NotificationModel, OutboxEventModel

TOPIC = "domain-events"


@pytest.fixture
def u1() -> UUID:
    return uuid4()


@pytest.fixture
def u2() -> UUID:
    return uuid4()


@pytest.fixture
async def eng(api_client, dispatch_worker, event_channel, headers_for, u1, u2) -> dict:
    """ENG owned by U1, with U2 as a member; membership notifications settled."""
    response = await api_client.post(
        "/api/v1/projects", json={"name": "Engineering", "key": "ENG"}, headers=headers_for(u1)
    )
    project = response.json()["data"]
    await api_client.post(
        f"/api/v1/projects/{project['id']}/members",
        json={"user_id": str(u2), "role": "member"},
        headers=headers_for(u1),
    )
    await event_channel.join()
    return project


async def feed(api_client, headers: dict[str, str], kind: str | None = None) -> list[dict]:
    response = await api_client.get("/api/v1/notifications", headers=headers)
    assert response.status_code == 200
    return [n for n in response.json()["data"] if kind is None or n["kind"] == kind]


class TestNotificationFlow:
    @pytest.mark.asyncio
    async def test_member_added_reaches_member_and_owner(
        self, api_client, headers_for, eng, u1, u2
    ):
        for user in (u1, u2):
            [notification] = await feed(api_client, headers_for(user), "PROJECT_MEMBER_ADDED")
            assert notification["title"] == "Project membership: Engineering"
            assert notification["project_id"] == eng["id"]

    @pytest.mark.asyncio
    async def test_assignment_notifies_assignee_once(
        self, api_client, event_channel, session_factory, headers_for, eng, u1, u2
    ):
        response = await api_client.post(
            f"/api/v1/projects/{eng['id']}/tasks",
            json={"title": "Fix login redirect", "assignee_id": str(u2)},
            headers=headers_for(u1),
        )
        task = response.json()["data"]
        await event_channel.join()

        [assigned] = await feed(api_client, headers_for(u2), "TASK_ASSIGNED")
        assert assigned["title"] == "Task assigned: ENG-1"
        assert assigned["body"] == 'You have been assigned to task ENG-1 "Fix login redirect"'
        assert assigned["entity_id"] == task["id"]
        assert assigned["is_read"] is False
        # The creator assigned the task and is not told about it
        assert await feed(api_client, headers_for(u1), "TASK_ASSIGNED") == []

        # Redeliver the same event: the delivery id already exists
        async with session_factory() as session:
            row = (
                await session.execute(
                    select(OutboxEventModel).where(OutboxEventModel.kind == "TASK_CREATED")
                )
            ).scalar_one()
        assert row.published_at is not None
        event = DomainEvent(
            event_id=row.event_id,
            kind=row.kind,
            entity_type=row.entity_type,
            entity_id=row.entity_id,
            project_id=row.project_id,
            actor_id=row.actor_id,
            payload=row.payload,
            occurred_at=row.occurred_at,
        )
        await event_channel.publish(TOPIC, event)
        await event_channel.join()

        async with session_factory() as session:
            count = (
                await session.execute(
                    select(func.count(NotificationModel.id)).where(
                        NotificationModel.recipient_id == u2,
                        NotificationModel.kind == "TASK_ASSIGNED",
                    )
                )
            ).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_status_change_notifies_watchers(
        self, api_client, event_channel, headers_for, eng, u1, u2
    ):
        response = await api_client.post(
            f"/api/v1/projects/{eng['id']}/tasks",
            json={"title": "Ship it", "assignee_id": str(u2)},
            headers=headers_for(u1),
        )
        task = response.json()["data"]

        await api_client.patch(
            f"/api/v1/tasks/{task['id']}", json={"status": "IN_PROGRESS"}, headers=headers_for(u2)
        )
        await event_channel.join()

        [changed] = await feed(api_client, headers_for(u1), "TASK_STATUS_CHANGED")
        assert changed["body"] == 'Task ENG-1 "Ship it" moved from TODO to IN_PROGRESS'
        # The actor does not hear about their own change; a status-only update adds nothing
        assert await feed(api_client, headers_for(u2), "TASK_STATUS_CHANGED") == []
        assert await feed(api_client, headers_for(u1), "TASK_UPDATED") == []

    @pytest.mark.asyncio
    async def test_disabled_in_app_channel_suppresses_feed(
        self, api_client, event_channel, headers_for, eng, u1, u2
    ):
        await api_client.put(
            "/api/v1/notification-preferences",
            json={"overrides": {"TASK_COMMENTED": {"in_app": False}}},
            headers=headers_for(u1),
        )
        response = await api_client.post(
            f"/api/v1/projects/{eng['id']}/tasks",
            json={"title": "Discuss"},
            headers=headers_for(u1),
        )
        task = response.json()["data"]

        await api_client.post(
            f"/api/v1/tasks/{task['id']}/comments",
            json={"content": "Any news?"},
            headers=headers_for(u2),
        )
        await event_channel.join()

        assert await feed(api_client, headers_for(u1), "TASK_COMMENTED") == []

    @pytest.mark.asyncio
    async def test_removed_member_is_told(
        self, api_client, event_channel, headers_for, eng, u1, u2
    ):
        await api_client.delete(
            f"/api/v1/projects/{eng['id']}/members/{u2}", headers=headers_for(u1)
        )
        await event_channel.join()

        [removed] = await feed(api_client, headers_for(u2), "PROJECT_MEMBER_REMOVED")
        assert removed["title"] == "Removed from Engineering"
