"""Integration tests for the Tasks API."""

from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def member_id() -> UUID:
    return uuid4()


@pytest.fixture
def owner_headers(headers_for, owner_id) -> dict[str, str]:
    return headers_for(owner_id)


@pytest.fixture
async def project(api_client: AsyncClient, owner_headers, member_id) -> dict:
    """ENG project with one extra member."""
    response = await api_client.post(
        "/api/v1/projects", json={"name": "Engineering", "key": "ENG"}, headers=owner_headers
    )
    project = response.json()["data"]
    await api_client.post(
        f"/api/v1/projects/{project['id']}/members",
        json={"user_id": str(member_id), "role": "member"},
        headers=owner_headers,
    )
    return project


async def create_task(
    client: AsyncClient, headers: dict[str, str], project_id: str, **body
) -> dict:
    body.setdefault("title", "Fix login redirect")
    response = await client.post(
        f"/api/v1/projects/{project_id}/tasks", json=body, headers=headers
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestCreateTask:
    @pytest.mark.asyncio
    async def test_numbers_are_sequential(self, api_client, owner_headers, owner_id, project):
        first = await create_task(api_client, owner_headers, project["id"])
        second = await create_task(api_client, owner_headers, project["id"], title="Second")

        assert (first["number"], second["number"]) == (1, 2)
        assert first["status"] == "TODO"
        assert first["priority"] == "MEDIUM"
        assert first["reporter_id"] == str(owner_id)
        assert first["watchers"] == [str(owner_id)]
        assert first["version"] == 1

    @pytest.mark.asyncio
    async def test_assignee_watches(self, api_client, owner_headers, member_id, project):
        task = await create_task(
            api_client, owner_headers, project["id"], assignee_id=str(member_id)
        )

        assert task["assignee_id"] == str(member_id)
        assert str(member_id) in task["watchers"]

    @pytest.mark.asyncio
    async def test_assignee_must_be_member(self, api_client, owner_headers, project):
        outsider = uuid4()
        response = await api_client.post(
            f"/api/v1/projects/{project['id']}/tasks",
            json={"title": "Orphan", "assignee_id": str(outsider)},
            headers=owner_headers,
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"assignee_id": str(outsider)}

    @pytest.mark.asyncio
    async def test_viewer_cannot_create(self, api_client, owner_headers, headers_for, project):
        viewer = uuid4()
        await api_client.post(
            f"/api/v1/projects/{project['id']}/members",
            json={"user_id": str(viewer), "role": "viewer"},
            headers=owner_headers,
        )

        response = await api_client.post(
            f"/api/v1/projects/{project['id']}/tasks",
            json={"title": "Nope"},
            headers=headers_for(viewer),
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == "INSUFFICIENT_PERMISSIONS"

    @pytest.mark.asyncio
    async def test_blank_title_rejected(self, api_client, owner_headers, project):
        response = await api_client.post(
            f"/api/v1/projects/{project['id']}/tasks",
            json={"title": "   "},
            headers=owner_headers,
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"


class TestUpdateTask:
    @pytest.mark.asyncio
    async def test_etag_round_trip(self, api_client, owner_headers, project):
        task = await create_task(api_client, owner_headers, project["id"])

        read = await api_client.get(f"/api/v1/tasks/{task['id']}", headers=owner_headers)
        assert read.headers["etag"] == '"1"'

        response = await api_client.patch(
            f"/api/v1/tasks/{task['id']}",
            json={"status": "IN_PROGRESS", "priority": "HIGH"},
            headers={**owner_headers, "If-Match": read.headers["etag"]},
        )

        assert response.status_code == 200
        assert response.headers["etag"] == '"2"'
        data = response.json()["data"]
        assert data["status"] == "IN_PROGRESS"
        assert data["priority"] == "HIGH"

    @pytest.mark.asyncio
    async def test_stale_if_match(self, api_client, owner_headers, project):
        task = await create_task(api_client, owner_headers, project["id"])
        await api_client.patch(
            f"/api/v1/tasks/{task['id']}", json={"title": "Renamed"}, headers=owner_headers
        )

        response = await api_client.patch(
            f"/api/v1/tasks/{task['id']}",
            json={"title": "Lost update"},
            headers={**owner_headers, "If-Match": '"1"'},
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "CONFLICT"
        current = await api_client.get(f"/api/v1/tasks/{task['id']}", headers=owner_headers)
        assert current.json()["data"]["title"] == "Renamed"

    @pytest.mark.asyncio
    async def test_malformed_if_match(self, api_client, owner_headers, project):
        task = await create_task(api_client, owner_headers, project["id"])

        response = await api_client.patch(
            f"/api/v1/tasks/{task['id']}",
            json={"title": "x"},
            headers={**owner_headers, "If-Match": "abc"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_transition(self, api_client, owner_headers, project):
        task = await create_task(api_client, owner_headers, project["id"])

        response = await api_client.patch(
            f"/api/v1/tasks/{task['id']}", json={"status": "DONE"}, headers=owner_headers
        )

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "INVALID_TRANSITION"
        assert body["details"] == {"from": "TODO", "to": "DONE"}
        current = await api_client.get(f"/api/v1/tasks/{task['id']}", headers=owner_headers)
        assert current.json()["data"]["status"] == "TODO"
        assert current.json()["data"]["version"] == 1

    @pytest.mark.asyncio
    async def test_immutable_field_rejected(self, api_client, owner_headers, project):
        task = await create_task(api_client, owner_headers, project["id"])

        response = await api_client.patch(
            f"/api/v1/tasks/{task['id']}",
            json={"reporter_id": str(uuid4())},
            headers=owner_headers,
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"fields": ["reporter_id"]}

    @pytest.mark.asyncio
    async def test_assign(self, api_client, owner_headers, member_id, project):
        task = await create_task(api_client, owner_headers, project["id"])

        response = await api_client.post(
            f"/api/v1/tasks/{task['id']}/assign",
            json={"assignee_id": str(member_id)},
            headers=owner_headers,
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["assignee_id"] == str(member_id)
        assert str(member_id) in data["watchers"]


class TestCommentsAndDelete:
    @pytest.mark.asyncio
    async def test_comment_thread(
        self, api_client, owner_headers, headers_for, member_id, project
    ):
        task = await create_task(api_client, owner_headers, project["id"])

        created = await api_client.post(
            f"/api/v1/tasks/{task['id']}/comments",
            json={"content": "Looking into it"},
            headers=headers_for(member_id),
        )
        listed = await api_client.get(
            f"/api/v1/tasks/{task['id']}/comments", headers=owner_headers
        )

        assert created.status_code == 201
        assert created.json()["data"]["author_id"] == str(member_id)
        assert [c["content"] for c in listed.json()["data"]] == ["Looking into it"]

    @pytest.mark.asyncio
    async def test_deleted_task_disappears(self, api_client, owner_headers, project):
        task = await create_task(api_client, owner_headers, project["id"])
        await create_task(api_client, owner_headers, project["id"], title="Survivor")

        deleted = await api_client.delete(f"/api/v1/tasks/{task['id']}", headers=owner_headers)
        read = await api_client.get(f"/api/v1/tasks/{task['id']}", headers=owner_headers)
        live = await api_client.get(
            f"/api/v1/projects/{project['id']}/tasks", headers=owner_headers
        )
        everything = await api_client.get(
            f"/api/v1/projects/{project['id']}/tasks",
            params={"include_deleted": "true"},
            headers=owner_headers,
        )

        assert deleted.status_code == 204
        assert read.status_code == 404
        assert read.json()["error_code"] == "TASK_NOT_FOUND"
        assert [t["title"] for t in live.json()["data"]] == ["Survivor"]
        assert everything.json()["meta"]["total"] == 2

    @pytest.mark.asyncio
    async def test_outsider_cannot_read(self, api_client, owner_headers, headers_for, project):
        task = await create_task(api_client, owner_headers, project["id"])

        response = await api_client.get(
            f"/api/v1/tasks/{task['id']}", headers=headers_for(uuid4())
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == "NOT_A_MEMBER"
