"""Pydantic schemas for Notification API."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from domain.entities.notification import NotificationPreference


class NotificationResponse(BaseModel):
    """Single in-app notification."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kind: str
    title: str
    body: str
    entity_type: str
    entity_id: UUID
    project_id: UUID | None = None
    event_id: UUID
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    """Paginated notification feed response."""

    data: list[NotificationResponse]
    meta: dict[str, Any] = Field(default_factory=dict)


class UnreadCountResponse(BaseModel):
    """Unread notification count response."""

    count: int


class MarkAllReadResponse(BaseModel):
    """Response for mark-all-read operation."""

    count: int


class PreferenceUpdate(BaseModel):
    """Partial preference update.

    ``overrides`` maps a notification kind to ``{channel: enabled}``; an
    empty object for a kind clears its overrides.
    """

    email_enabled: bool | None = None
    push_enabled: bool | None = None
    in_app_enabled: bool | None = None
    overrides: dict[str, dict[str, bool]] | None = None


class PreferenceResponse(BaseModel):
    """A user's effective notification preferences."""

    email_enabled: bool
    push_enabled: bool
    in_app_enabled: bool
    overrides: dict[str, dict[str, bool]]
    updated_at: datetime

    @classmethod
    def from_entity(cls, pref: NotificationPreference) -> "PreferenceResponse":
        return cls(
            email_enabled=pref.email_enabled,
            push_enabled=pref.push_enabled,
            in_app_enabled=pref.in_app_enabled,
            overrides=pref.overrides,
            updated_at=pref.updated_at,
        )


class PreferenceDetailResponse(BaseModel):
    """Schema for the preference response envelope."""

    data: PreferenceResponse
