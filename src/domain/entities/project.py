"""Project domain entities."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum, StrEnum
from typing import Any
from uuid import UUID, uuid4

from core.clock import utcnow
from core.exceptions import (
    AlreadyAMemberError,
    InvalidRoleError,
    LastOwnerError,
    MemberNotFoundError,
    ValidationError,
)

PROJECT_KEY_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]{0,9}$")


class ProjectRole(IntEnum):
    """Project role hierarchy. Higher value = more permissions.

    Use >= comparison for permission checks:
        member.role >= ProjectRole.ADMIN  # True if Admin or Owner
    """

    VIEWER = 10
    MEMBER = 20
    ADMIN = 30
    OWNER = 40


def has_permission(user_role: ProjectRole, required_role: ProjectRole) -> bool:
    """Check if a user role meets the required permission level."""
    return user_role >= required_role


class ProjectStatus(StrEnum):
    """Lifecycle status of a project."""

    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"
    COMPLETED = "COMPLETED"


def normalize_project_key(key: str) -> str:
    """Upper-case and validate a project key (e.g. ``eng`` -> ``ENG``)."""
    normalized = (key or "").strip().upper()
    if not normalized:
        raise ValidationError("Project key must not be empty", details={"field": "key"})
    if not PROJECT_KEY_PATTERN.match(normalized):
        raise ValidationError(
            "Project key must start with a letter and contain at most 10 letters, "
            "digits or underscores",
            details={"field": "key", "value": key},
        )
    return normalized


@dataclass
class ProjectSettings:
    """Per-project settings. ``task_prefix`` mirrors the key unless overridden."""

    task_prefix: str
    is_private: bool = True
    allow_external_sharing: bool = False
    default_assignee_id: UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_prefix": self.task_prefix,
            "is_private": self.is_private,
            "allow_external_sharing": self.allow_external_sharing,
            "default_assignee_id": (
                str(self.default_assignee_id) if self.default_assignee_id else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], key: str) -> "ProjectSettings":
        default_assignee = data.get("default_assignee_id")
        return cls(
            task_prefix=data.get("task_prefix") or key,
            is_private=bool(data.get("is_private", True)),
            allow_external_sharing=bool(data.get("allow_external_sharing", False)),
            default_assignee_id=UUID(str(default_assignee)) if default_assignee else None,
        )


@dataclass
class ProjectMember:
    """Domain entity for a project membership."""

    user_id: UUID
    role: ProjectRole = ProjectRole.MEMBER
    joined_at: datetime = field(default_factory=utcnow)
    invited_by: UUID | None = None


@dataclass
class Project:
    """Project aggregate: the project row plus its membership set.

    Membership changes go through the methods below so the single-owner rule
    holds on every in-memory state that can be persisted.
    """

    name: str
    key: str
    owner_id: UUID
    id: UUID = field(default_factory=uuid4)
    description: str | None = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    members: list[ProjectMember] = field(default_factory=list)
    settings: ProjectSettings | None = None
    version: int = 1
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if self.settings is None:
            self.settings = ProjectSettings(task_prefix=self.key)
        if self.updated_at < self.created_at:
            self.updated_at = self.created_at

    @property
    def is_active(self) -> bool:
        return self.status == ProjectStatus.ACTIVE

    def get_member(self, user_id: UUID) -> ProjectMember | None:
        """Return the membership for ``user_id``, if any."""
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def role_of(self, user_id: UUID) -> ProjectRole | None:
        member = self.get_member(user_id)
        return member.role if member else None

    def owners(self) -> list[ProjectMember]:
        return [m for m in self.members if m.role == ProjectRole.OWNER]

    def add_member(
        self, user_id: UUID, role: ProjectRole, invited_by: UUID | None = None
    ) -> ProjectMember:
        """Add a non-owner member. Ownership only moves via transfer_ownership."""
        if role == ProjectRole.OWNER:
            raise InvalidRoleError(
                role.name, "Owner role cannot be granted directly; use ownership transfer"
            )
        if self.get_member(user_id):
            raise AlreadyAMemberError(str(user_id))

        member = ProjectMember(user_id=user_id, role=role, invited_by=invited_by)
        self.members.append(member)
        self.touch()
        return member

    def remove_member(self, user_id: UUID) -> ProjectMember:
        member = self.get_member(user_id)
        if not member:
            raise MemberNotFoundError(str(user_id))
        if member.role == ProjectRole.OWNER:
            raise LastOwnerError()

        self.members.remove(member)
        if self.settings and self.settings.default_assignee_id == user_id:
            self.settings.default_assignee_id = None
        self.touch()
        return member

    def transfer_ownership(self, new_owner_id: UUID) -> None:
        """Demote the current owner to Admin and promote ``new_owner_id``."""
        target = self.get_member(new_owner_id)
        if not target:
            raise MemberNotFoundError(str(new_owner_id))

        current = self.get_member(self.owner_id)
        if current:
            current.role = ProjectRole.ADMIN
        target.role = ProjectRole.OWNER
        self.owner_id = new_owner_id
        self.touch()

    def touch(self) -> None:
        self.updated_at = utcnow()
