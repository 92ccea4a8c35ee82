"""Project, user and role Pydantic schemas for API requests and responses."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from buildtrack.domain.roles import Role


class RegisterRequest(BaseModel):
    name: str
    email: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str


class SessionResponse(BaseModel):
    user: UserResponse
    access_token: str | None = None
    token_type: str = "bearer"


class ProjectRoleSummary(BaseModel):
    project_id: uuid.UUID
    project_name: str
    role: Role


class CreateProjectRequest(BaseModel):
    name: str
    description: str | None = None
    is_example: bool = False


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None = None
    status: str
    is_example: bool
    created_at: datetime


class MemberResponse(BaseModel):
    user: UserResponse
    role: Role


class ProjectDetailResponse(ProjectResponse):
    role: Role
    permissions: dict[str, bool]
    members: list[MemberResponse] = []


class AssignRoleRequest(BaseModel):
    user_id: uuid.UUID
    role: Role


class ProjectRoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    user_id: uuid.UUID
    role: Role


class ProjectListItem(ProjectResponse):
    role: Role
