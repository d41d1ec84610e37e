"""Notification domain entities, channel names and message templates."""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4

from core.clock import utcnow


class NotificationKind(StrEnum):
    """Kinds of notifications a user can receive (and override per channel)."""

    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_STATUS_CHANGED = "TASK_STATUS_CHANGED"
    TASK_COMMENTED = "TASK_COMMENTED"
    TASK_DELETED = "TASK_DELETED"
    PROJECT_MEMBER_ADDED = "PROJECT_MEMBER_ADDED"
    PROJECT_MEMBER_REMOVED = "PROJECT_MEMBER_REMOVED"
    PROJECT_OWNERSHIP_TRANSFERRED = "PROJECT_OWNERSHIP_TRANSFERRED"


class Channel(StrEnum):
    """Delivery channels."""

    EMAIL = "email"
    PUSH = "push"
    IN_APP = "in_app"


class DeliveryStatus(StrEnum):
    DELIVERED = "delivered"
    FAILED = "failed"


class DeliveryOutcome(StrEnum):
    """Result of a successful deliver() call."""

    DELIVERED = "delivered"
    DUPLICATE = "duplicate"


# Format: (title, body); fields come from NotificationContent.context
TEMPLATES: dict[NotificationKind, tuple[str, str]] = {
    NotificationKind.TASK_ASSIGNED: (
        "Task assigned: {task_ref}",
        'You have been assigned to task {task_ref} "{title}"',
    ),
    NotificationKind.TASK_UPDATED: (
        "Task updated: {task_ref}",
        'Task {task_ref} "{title}" was updated ({changed_fields})',
    ),
    NotificationKind.TASK_STATUS_CHANGED: (
        "Status changed: {task_ref}",
        'Task {task_ref} "{title}" moved from {old_status} to {new_status}',
    ),
    NotificationKind.TASK_COMMENTED: (
        "New comment on {task_ref}",
        'New comment on task {task_ref} "{title}": {excerpt}',
    ),
    NotificationKind.TASK_DELETED: (
        "Task deleted: {task_ref}",
        'Task {task_ref} "{title}" was deleted',
    ),
    NotificationKind.PROJECT_MEMBER_ADDED: (
        "Project membership: {project_name}",
        'A member joined project "{project_name}" as {role}',
    ),
    NotificationKind.PROJECT_MEMBER_REMOVED: (
        "Removed from {project_name}",
        'You were removed from project "{project_name}"',
    ),
    NotificationKind.PROJECT_OWNERSHIP_TRANSFERRED: (
        "You now own {project_name}",
        'Ownership of project "{project_name}" was transferred to you',
    ),
}


class _Blank(dict[str, Any]):
    def __missing__(self, key: str) -> str:
        return ""


def make_delivery_id(event_id: UUID, recipient_id: UUID, channel: Channel | str) -> str:
    """Deterministic id for one (event, recipient, channel) delivery."""
    raw = f"{event_id}:{recipient_id}:{Channel(channel).value}"
    return hashlib.sha256(raw.encode()).hexdigest()


@dataclass(frozen=True)
class NotificationContent:
    """What a delivery channel sends: rendered text plus entity references."""

    kind: NotificationKind
    title: str
    body: str
    entity_type: str
    entity_id: UUID
    event_id: UUID
    project_id: UUID | None = None

    @classmethod
    def render(
        cls,
        kind: NotificationKind,
        context: dict[str, Any],
        entity_type: str,
        entity_id: UUID,
        event_id: UUID,
        project_id: UUID | None = None,
    ) -> "NotificationContent":
        title_template, body_template = TEMPLATES[kind]
        values = _Blank(context)
        return cls(
            kind=kind,
            title=title_template.format_map(values),
            body=body_template.format_map(values),
            entity_type=entity_type,
            entity_id=entity_id,
            event_id=event_id,
            project_id=project_id,
        )


@dataclass
class Notification:
    """In-app notification row, owned by its recipient."""

    recipient_id: UUID
    kind: str
    title: str
    body: str
    entity_type: str
    entity_id: UUID
    event_id: UUID
    delivery_id: str
    id: UUID = field(default_factory=uuid4)
    project_id: UUID | None = None
    is_read: bool = False
    read_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    expires_at: datetime | None = None


@dataclass
class NotificationPreference:
    """A user's per-channel switches with optional per-kind overrides.

    ``overrides`` maps a notification kind to ``{channel: enabled}``; a
    channel missing from an override inherits the global switch.
    """

    user_id: UUID
    email_enabled: bool = True
    push_enabled: bool = True
    in_app_enabled: bool = True
    overrides: dict[str, dict[str, bool]] = field(default_factory=dict)
    updated_at: datetime = field(default_factory=utcnow)

    def is_enabled(self, channel: Channel) -> bool:
        return {
            Channel.EMAIL: self.email_enabled,
            Channel.PUSH: self.push_enabled,
            Channel.IN_APP: self.in_app_enabled,
        }[channel]

    def enabled_channels(self, kind: str) -> set[Channel]:
        """Effective channels: global switch AND per-kind override."""
        override = self.overrides.get(kind, {})
        return {
            channel
            for channel in Channel
            if self.is_enabled(channel) and override.get(channel.value, True)
        }


@dataclass
class DeliveryRecord:
    """Ledger entry for an external (email/push) delivery attempt."""

    delivery_id: str
    event_id: UUID
    recipient_id: UUID
    channel: str
    status: DeliveryStatus
    attempts: int = 0
    last_error: str | None = None
    updated_at: datetime = field(default_factory=utcnow)
