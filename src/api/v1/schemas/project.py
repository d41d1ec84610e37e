"""Pydantic schemas for Project API."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from domain.entities.project import Project, ProjectMember


class ProjectSettingsIn(BaseModel):
    """Settings accepted on project creation."""

    task_prefix: str | None = Field(None, max_length=10)
    is_private: bool = True
    allow_external_sharing: bool = False
    default_assignee_id: UUID | None = None


class ProjectCreate(BaseModel):
    """Schema for creating a project."""

    name: str = Field(..., min_length=1, max_length=255)
    key: str = Field(..., min_length=1, max_length=10, examples=["ENG"])
    description: str | None = Field(None, max_length=2000)
    settings: ProjectSettingsIn | None = None


class MemberAdd(BaseModel):
    """Schema for adding a member to a project."""

    user_id: UUID
    role: str = Field("member", description="viewer, member or admin")


class OwnershipTransfer(BaseModel):
    """Schema for handing a project to another member."""

    new_owner_id: UUID


class MemberResponse(BaseModel):
    """A project membership."""

    user_id: UUID
    role: str
    joined_at: datetime
    invited_by: UUID | None = None

    @classmethod
    def from_entity(cls, member: ProjectMember) -> "MemberResponse":
        return cls(
            user_id=member.user_id,
            role=member.role.name.lower(),
            joined_at=member.joined_at,
            invited_by=member.invited_by,
        )


class ProjectResponse(BaseModel):
    """Schema for Project response."""

    id: UUID
    name: str
    key: str
    description: str | None
    status: str
    owner_id: UUID
    settings: dict[str, Any]
    member_count: int
    version: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, project: Project) -> "ProjectResponse":
        return cls(
            id=project.id,
            name=project.name,
            key=project.key,
            description=project.description,
            status=project.status.value,
            owner_id=project.owner_id,
            settings=project.settings.to_dict() if project.settings else {},
            member_count=len(project.members),
            version=project.version,
            created_at=project.created_at,
            updated_at=project.updated_at,
        )


class ProjectListResponse(BaseModel):
    """Schema for list of projects response."""

    data: list[ProjectResponse]
    meta: dict[str, Any] = Field(default_factory=dict)


class ProjectDetailResponse(BaseModel):
    """Schema for single project response."""

    data: ProjectResponse


class MemberListResponse(BaseModel):
    """Schema for list of members response."""

    data: list[MemberResponse]
    meta: dict[str, Any] = Field(default_factory=dict)


class MemberDetailResponse(BaseModel):
    """Schema for single member response."""

    data: MemberResponse
