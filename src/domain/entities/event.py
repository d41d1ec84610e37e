"""Domain event record published for asynchronous consumers."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4

from core.clock import utcnow


class EventKind(StrEnum):
    """Kinds of domain events emitted by the task and project services."""

    # Task events
    TASK_CREATED = "TASK_CREATED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_STATUS_CHANGED = "TASK_STATUS_CHANGED"
    TASK_COMMENTED = "TASK_COMMENTED"
    TASK_DELETED = "TASK_DELETED"

    # Project events
    PROJECT_CREATED = "PROJECT_CREATED"
    PROJECT_MEMBER_ADDED = "PROJECT_MEMBER_ADDED"
    PROJECT_MEMBER_REMOVED = "PROJECT_MEMBER_REMOVED"
    PROJECT_OWNERSHIP_TRANSFERRED = "PROJECT_OWNERSHIP_TRANSFERRED"


@dataclass(frozen=True)
class DomainEvent:
    """Immutable record of a state change.

    ``kind`` is kept as a plain string so events produced by newer services
    still deserialize here; consumers decide what to do with kinds they do
    not recognise. ``event_id`` is the downstream deduplication key and
    ``entity_id`` the partition key.
    """

    kind: str
    entity_type: str
    entity_id: UUID
    actor_id: UUID
    project_id: UUID | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def partition_key(self) -> str:
        return str(self.entity_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": str(self.event_id),
            "kind": self.kind,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id),
            "project_id": str(self.project_id) if self.project_id else None,
            "actor_id": str(self.actor_id),
            "occurred_at": self.occurred_at.isoformat(),
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DomainEvent":
        project_id = data.get("project_id")
        return cls(
            event_id=UUID(data["event_id"]),
            kind=data["kind"],
            entity_type=data["entity_type"],
            entity_id=UUID(data["entity_id"]),
            project_id=UUID(project_id) if project_id else None,
            actor_id=UUID(data["actor_id"]),
            occurred_at=datetime.fromisoformat(data["occurred_at"]),
            payload=dict(data.get("payload") or {}),
        )
