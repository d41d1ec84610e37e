"""Pydantic schemas for Task API."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from api.v1.schemas.common import to_naive_utc
from domain.entities.task import Task, TaskPriority


class TaskCreate(BaseModel):
    """Schema for creating a task."""

    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=10000)
    assignee_id: UUID | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    estimated_hours: float | None = Field(None, ge=0)
    labels: list[str] = Field(default_factory=list)
    parent_id: UUID | None = None
    attachments: list[str] = Field(default_factory=list)
    watchers: list[UUID] = Field(default_factory=list)

    @field_validator("due_date")
    @classmethod
    def naive_due_date(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value)


class TaskUpdate(BaseModel):
    """Partial update. Only fields present in the request body are applied.

    Unknown or read-only fields are passed through so the service can reject
    them with a precise error.
    """

    model_config = ConfigDict(extra="allow")

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=10000)
    assignee_id: UUID | None = None
    status: str | None = None
    priority: str | None = None
    due_date: datetime | None = None
    estimated_hours: float | None = None
    labels: list[str] | None = None
    parent_id: UUID | None = None
    attachments: list[str] | None = None
    watchers: list[UUID] | None = None

    @field_validator("due_date")
    @classmethod
    def naive_due_date(cls, value: datetime | None) -> datetime | None:
        return to_naive_utc(value)

    def to_patch(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class TaskAssign(BaseModel):
    """Schema for assigning a task."""

    assignee_id: UUID


class CommentCreate(BaseModel):
    """Schema for adding a comment."""

    content: str = Field(..., min_length=1, max_length=10000)


class TaskResponse(BaseModel):
    """Schema for Task response."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "123e4567-e89b-12d3-a456-426614174000",
                "project_id": "456e4567-e89b-12d3-a456-426614174000",
                "number": 42,
                "title": "Fix login redirect",
                "status": "IN_PROGRESS",
                "priority": "HIGH",
                "version": 3,
            }
        },
    )

    id: UUID
    project_id: UUID
    number: int
    title: str
    description: str | None
    status: str
    priority: str
    assignee_id: UUID | None
    reporter_id: UUID
    due_date: datetime | None
    estimated_hours: float | None
    labels: list[str]
    parent_id: UUID | None
    attachments: list[str]
    watchers: list[UUID]
    version: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, task: Task) -> "TaskResponse":
        return cls(
            id=task.id,
            project_id=task.project_id,
            number=task.number,
            title=task.title,
            description=task.description,
            status=task.status.value,
            priority=task.priority.value,
            assignee_id=task.assignee_id,
            reporter_id=task.reporter_id,
            due_date=task.due_date,
            estimated_hours=task.estimated_hours,
            labels=sorted(task.labels),
            parent_id=task.parent_id,
            attachments=sorted(task.attachments),
            watchers=sorted(task.watchers, key=str),
            version=task.version,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )


class CommentResponse(BaseModel):
    """Schema for Comment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    task_id: UUID
    author_id: UUID
    content: str
    created_at: datetime


class TaskListResponse(BaseModel):
    """Schema for list of tasks response."""

    data: list[TaskResponse]
    meta: dict[str, Any] = Field(default_factory=dict)


class TaskDetailResponse(BaseModel):
    """Schema for single task response."""

    data: TaskResponse


class CommentListResponse(BaseModel):
    """Schema for list of comments response."""

    data: list[CommentResponse]
    meta: dict[str, Any] = Field(default_factory=dict)


class CommentDetailResponse(BaseModel):
    """Schema for single comment response."""

    data: CommentResponse
