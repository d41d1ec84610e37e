"""Project API routes."""

from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status

from api.dependencies.auth import CurrentUser
from api.v1.dependencies import get_project_service
from api.v1.schemas.project import (
    MemberAdd,
    MemberDetailResponse,
    MemberListResponse,
    MemberResponse,
    OwnershipTransfer,
    ProjectCreate,
    ProjectDetailResponse,
    ProjectListResponse,
    ProjectResponse,
)
from core.rate_limit import READ_LIMIT, WRITE_LIMIT, limiter
from domain.services.project_service import ProjectService

router = APIRouter(prefix="/projects", tags=["projects"])


@router.post(
    "",
    response_model=ProjectDetailResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a project",
    responses={
        201: {"description": "Project created; the caller is its owner"},
        400: {"description": "Invalid key or settings"},
        409: {"description": "Project key already taken"},
    },
)
@limiter.limit(WRITE_LIMIT)  # type: ignore[untyped-decorator]
async def create_project(
    request: Request,
    body: ProjectCreate,
    user: CurrentUser,
    service: ProjectService = Depends(get_project_service),
) -> ProjectDetailResponse:
    """Create a project. The key is upper-cased and must be globally unique."""
    project = await service.create_project(
        actor_id=user.id,
        name=body.name,
        key=body.key,
        description=body.description,
        settings=body.settings.model_dump(exclude_none=True) if body.settings else None,
    )
    return ProjectDetailResponse(data=ProjectResponse.from_entity(project))


@router.get("", response_model=ProjectListResponse, summary="List my projects")
@limiter.limit(READ_LIMIT)  # type: ignore[untyped-decorator]
async def list_projects(
    request: Request,
    user: CurrentUser,
    service: ProjectService = Depends(get_project_service),
) -> ProjectListResponse:
    """List the projects the caller is a member of."""
    projects = await service.list_for_user(user.id)
    return ProjectListResponse(
        data=[ProjectResponse.from_entity(p) for p in projects],
        meta={"total": len(projects)},
    )


@router.get(
    "/{project_id}",
    response_model=ProjectDetailResponse,
    summary="Get a project",
    responses={403: {"description": "Not a member"}, 404: {"description": "Not found"}},
)
@limiter.limit(READ_LIMIT)  # type: ignore[untyped-decorator]
async def get_project(
    request: Request,
    project_id: UUID,
    user: CurrentUser,
    service: ProjectService = Depends(get_project_service),
) -> ProjectDetailResponse:
    project = await service.get_project(project_id, user.id)
    return ProjectDetailResponse(data=ProjectResponse.from_entity(project))


@router.get("/{project_id}/members", response_model=MemberListResponse, summary="List members")
@limiter.limit(READ_LIMIT)  # type: ignore[untyped-decorator]
async def list_members(
    request: Request,
    project_id: UUID,
    user: CurrentUser,
    service: ProjectService = Depends(get_project_service),
) -> MemberListResponse:
    """Members ordered by role (owner first), then by join time."""
    members = await service.list_members(project_id, user.id)
    return MemberListResponse(
        data=[MemberResponse.from_entity(m) for m in members],
        meta={"total": len(members)},
    )


@router.post(
    "/{project_id}/members",
    response_model=MemberDetailResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a member",
    responses={
        400: {"description": "Invalid role"},
        403: {"description": "Admin role required"},
        409: {"description": "Already a member"},
    },
)
@limiter.limit(WRITE_LIMIT)  # type: ignore[untyped-decorator]
async def add_member(
    request: Request,
    project_id: UUID,
    body: MemberAdd,
    user: CurrentUser,
    service: ProjectService = Depends(get_project_service),
) -> MemberDetailResponse:
    """Add a user as viewer, member or admin. Ownership is only transferred."""
    member = await service.add_member(project_id, body.user_id, body.role, actor_id=user.id)
    return MemberDetailResponse(data=MemberResponse.from_entity(member))


@router.delete(
    "/{project_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a member",
    responses={
        403: {"description": "Insufficient role, or the target is the owner"},
        404: {"description": "Not a member"},
    },
)
@limiter.limit(WRITE_LIMIT)  # type: ignore[untyped-decorator]
async def remove_member(
    request: Request,
    project_id: UUID,
    user_id: UUID,
    user: CurrentUser,
    service: ProjectService = Depends(get_project_service),
) -> Response:
    """Remove a member, or leave the project when ``user_id`` is the caller."""
    await service.remove_member(project_id, user_id, actor_id=user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{project_id}/transfer-ownership",
    response_model=ProjectDetailResponse,
    summary="Transfer ownership",
    responses={403: {"description": "Only the owner may transfer"}},
)
@limiter.limit(WRITE_LIMIT)  # type: ignore[untyped-decorator]
async def transfer_ownership(
    request: Request,
    project_id: UUID,
    body: OwnershipTransfer,
    user: CurrentUser,
    service: ProjectService = Depends(get_project_service),
) -> ProjectDetailResponse:
    """Make another member the owner; the previous owner becomes admin."""
    project = await service.transfer_ownership(project_id, body.new_owner_id, actor_id=user.id)
    return ProjectDetailResponse(data=ProjectResponse.from_entity(project))
