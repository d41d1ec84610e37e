"""Task domain entities and the status state machine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4

from core.clock import utcnow
from core.exceptions import InvalidTransitionError


class TaskStatus(StrEnum):
    """Task status state machine."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    DONE = "DONE"


class TaskPriority(StrEnum):
    """Task priority."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


# DONE has no edge back to TODO: a reopen always passes through IN_PROGRESS
VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.TODO: {TaskStatus.IN_PROGRESS},
    TaskStatus.IN_PROGRESS: {TaskStatus.IN_REVIEW, TaskStatus.TODO},
    TaskStatus.IN_REVIEW: {TaskStatus.IN_PROGRESS, TaskStatus.DONE},
    TaskStatus.DONE: {TaskStatus.IN_PROGRESS},
}


def can_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """Check whether ``from_status -> to_status`` is an edge of the state machine."""
    return to_status in VALID_TRANSITIONS.get(from_status, set())


@dataclass
class Task:
    """Domain entity for a Task."""

    project_id: UUID
    reporter_id: UUID
    title: str
    id: UUID = field(default_factory=uuid4)
    number: int = 0
    description: str | None = None
    assignee_id: UUID | None = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    estimated_hours: float | None = None
    labels: set[str] = field(default_factory=set)
    parent_id: UUID | None = None
    attachments: set[str] = field(default_factory=set)
    watchers: set[UUID] = field(default_factory=set)
    version: int = 1
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    deleted_at: datetime | None = None

    def __post_init__(self) -> None:
        """Reporter always watches; updated_at never precedes created_at."""
        self.watchers.add(self.reporter_id)
        if self.updated_at < self.created_at:
            self.updated_at = self.created_at

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def transition_to(self, new_status: TaskStatus) -> None:
        """Move along a state machine edge. State is untouched on rejection."""
        if not can_transition(self.status, new_status):
            raise InvalidTransitionError(self.status.value, new_status.value)
        self.status = new_status
        self.touch()

    def assign(self, assignee_id: UUID) -> None:
        self.assignee_id = assignee_id
        self.watchers.add(assignee_id)
        self.touch()

    def soft_delete(self) -> None:
        self.deleted_at = utcnow()
        self.touch()

    def touch(self) -> None:
        self.updated_at = utcnow()

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe view of the task, used as the event payload."""
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "number": self.number,
            "title": self.title,
            "description": self.description,
            "assignee_id": str(self.assignee_id) if self.assignee_id else None,
            "reporter_id": str(self.reporter_id),
            "status": self.status.value,
            "priority": self.priority.value,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "estimated_hours": self.estimated_hours,
            "labels": sorted(self.labels),
            "parent_id": str(self.parent_id) if self.parent_id else None,
            "attachments": sorted(self.attachments),
            "watchers": sorted(str(w) for w in self.watchers),
            "version": self.version,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class Comment:
    """A comment on a task."""

    task_id: UUID
    author_id: UUID
    content: str
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)
