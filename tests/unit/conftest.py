"""Shared fixtures for unit tests."""

from typing import Any
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

from domain.entities.project import Project, ProjectMember, ProjectRole


class FakeUnitOfWork:
    """Fake Unit of Work with a mock for every repository."""

    def __init__(self) -> None:
        self.tasks = AsyncMock()
        self.comments = AsyncMock()
        self.projects = AsyncMock()
        self.notifications = AsyncMock()
        self.deliveries = AsyncMock()
        self.outbox = AsyncMock()
        self.committed = False
        self.rolled_back = False
        self.entered = 0

    async def commit(self) -> None:
        self.committed = True

    async def rollback(self) -> None:
        self.rolled_back = True

    async def __aenter__(self) -> "FakeUnitOfWork":
        self.entered += 1
        return self

    async def __aexit__(self, *args: Any) -> None:
        pass


class RecordingPublisher:
    """Stands in for EventPublisher; keeps what was staged and flushed."""

    def __init__(self) -> None:
        self.staged: list[Any] = []
        self.flushed: list[Any] = []

    async def stage(self, uow: Any, events: list[Any]) -> None:
        self.staged.extend(events)

    async def flush(self, events: list[Any]) -> None:
        self.flushed.extend(events)

    @property
    def kinds(self) -> list[str]:
        return [str(e.kind) for e in self.flushed]


@pytest.fixture
def uow() -> FakeUnitOfWork:
    """Create a fresh FakeUnitOfWork."""
    return FakeUnitOfWork()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def member_id() -> UUID:
    return uuid4()


@pytest.fixture
def viewer_id() -> UUID:
    return uuid4()


@pytest.fixture
def outsider_id() -> UUID:
    """A user who belongs to no project."""
    return uuid4()


@pytest.fixture
def project(owner_id: UUID, member_id: UUID, viewer_id: UUID) -> Project:
    """Project ENG with an owner, a member and a viewer."""
    return Project(
        name="Engineering",
        key="ENG",
        owner_id=owner_id,
        members=[
            ProjectMember(user_id=owner_id, role=ProjectRole.OWNER),
            ProjectMember(user_id=member_id, role=ProjectRole.MEMBER),
            ProjectMember(user_id=viewer_id, role=ProjectRole.VIEWER),
        ],
    )
