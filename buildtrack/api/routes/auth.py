"""Session API routes: registration and the current session."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy import select

from buildtrack.api.responses import failure, respond, success
from buildtrack.core.auth import create_access_token, require_user
from buildtrack.db.base import get_session_factory
from buildtrack.db.models.project import Project, ProjectRole
from buildtrack.db.models.user import User
from buildtrack.domain.results import CoreError, ErrorKind
from buildtrack.schemas.projects import ProjectRoleSummary, RegisterRequest, SessionResponse, UserResponse
from buildtrack.services.project_service import ProjectService

router = APIRouter()


@router.post("/register", status_code=201)
async def register(request: RegisterRequest):
    """Create a user and issue a session token for it."""
    service = ProjectService(get_session_factory())
    result = await service.create_user(request.name, request.email)
    return respond(
        result,
        lambda user: SessionResponse(
            user=UserResponse.model_validate(user),
            access_token=create_access_token(user.id),
        ),
        status_code=201,
    )


@router.get("/session")
async def get_session(user_id: uuid.UUID = Depends(require_user)):
    """Current user and the projects they hold a role in."""
    async with get_session_factory()() as session:
        user = await session.get(User, user_id)
        if user is None:
            return failure(CoreError(ErrorKind.UNAUTHORIZED, "User no longer exists"))
        result = await session.execute(
            select(ProjectRole.role, Project.id, Project.name)
            .join(Project, Project.id == ProjectRole.project_id)
            .where(ProjectRole.user_id == user_id)
            .order_by(Project.name)
        )
        roles = [
            ProjectRoleSummary(project_id=project_id, project_name=name, role=role)
            for role, project_id, name in result.all()
        ]
    return success({"user": UserResponse.model_validate(user), "project_roles": roles})
