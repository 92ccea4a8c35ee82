"""Project API routes."""

import uuid

from fastapi import APIRouter, Depends

from buildtrack.api.responses import respond, success
from buildtrack.core.auth import require_project_auth, require_user
from buildtrack.db.base import get_session_factory
from buildtrack.domain.roles import Principal, permissions_for
from buildtrack.schemas.milestones import ProjectEligibilityItem
from buildtrack.schemas.projects import (
    AssignRoleRequest,
    CreateProjectRequest,
    MemberResponse,
    ProjectDetailResponse,
    ProjectListItem,
    ProjectResponse,
    ProjectRoleResponse,
    UserResponse,
)
from buildtrack.services.payment_eligibility import PaymentEligibilityEngine
from buildtrack.services.project_service import ProjectService

router = APIRouter()


@router.get("")
async def list_projects(user_id: uuid.UUID = Depends(require_user)):
    """Projects the caller holds a role in, newest first."""
    service = ProjectService(get_session_factory())
    projects = await service.list_for_user(user_id)
    return success(
        [
            ProjectListItem(**ProjectResponse.model_validate(project).model_dump(), role=role)
            for project, role in projects
        ]
    )


@router.post("", status_code=201)
async def create_project(request: CreateProjectRequest, user_id: uuid.UUID = Depends(require_user)):
    """Create a project; the caller becomes its OWNER."""
    service = ProjectService(get_session_factory())
    result = await service.create_project(request.name, user_id, request.description, request.is_example)
    return respond(result, ProjectResponse.model_validate, status_code=201)


@router.get("/{project_id}")
async def get_project(project_id: uuid.UUID, principal: Principal = Depends(require_project_auth)):
    service = ProjectService(get_session_factory())
    project = await service.get_project(project_id)
    members = await service.list_members(project_id)
    detail = ProjectDetailResponse(
        **ProjectResponse.model_validate(project).model_dump(),
        role=principal.role,
        permissions=permissions_for(principal.role),
        members=[MemberResponse(user=UserResponse.model_validate(u), role=role) for u, role in members],
    )
    return success(detail)


@router.post("/{project_id}/roles")
async def assign_role(
    project_id: uuid.UUID,
    request: AssignRoleRequest,
    principal: Principal = Depends(require_project_auth),
):
    """Grant or change a member's role. Owner only."""
    service = ProjectService(get_session_factory())
    result = await service.assign_role(project_id, request.user_id, request.role, principal)
    return respond(result, ProjectRoleResponse.model_validate)


@router.get("/{project_id}/payment-eligibility")
async def list_payment_eligibility(project_id: uuid.UUID, principal: Principal = Depends(require_project_auth)):
    """Payment verdict of every milestone in the project."""
    async with get_session_factory()() as session:
        verdicts = await PaymentEligibilityEngine(session).list_for_project(project_id)
    return success([ProjectEligibilityItem.model_validate(v) for v in verdicts])
