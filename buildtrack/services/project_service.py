"""ProjectService: users, projects and project role assignment."""

import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from buildtrack.db.base import commit_result
from buildtrack.db.models.project import Project, ProjectRole
from buildtrack.db.models.user import User
from buildtrack.domain.audit import AuditAction, AuditLogEntry
from buildtrack.domain.results import ErrorKind, Result
from buildtrack.domain.roles import ROLE_MANAGERS, Principal, Role, check_role
from buildtrack.services.audit_recorder import AuditRecorder

logger = structlog.get_logger(__name__)


class ProjectService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_user(self, name: str, email: str) -> Result[User]:
        if not name or not name.strip() or not email or "@" not in email:
            return Result.fail(ErrorKind.INVALID_INPUT, "A name and a valid email are required")

        email = email.strip().lower()
        async with self.session_factory() as session:
            existing = await session.scalar(select(User.id).where(User.email == email))
            if existing is not None:
                return Result.fail(ErrorKind.CONFLICT, "A user with this email already exists", email=email)

            user = User(name=name.strip(), email=email)
            session.add(user)
            await session.commit()
            logger.info("user_created", user_id=str(user.id))
            return Result.ok(user)

    async def create_project(
        self,
        name: str,
        owner_id: uuid.UUID,
        description: str | None = None,
        is_example: bool = False,
    ) -> Result[Project]:
        """Create a project and make its creator the OWNER."""
        if not name or not name.strip():
            return Result.fail(ErrorKind.INVALID_INPUT, "Project name is required")

        async with self.session_factory() as session:
            owner = await session.get(User, owner_id)
            if owner is None:
                return Result.fail(ErrorKind.NOT_FOUND, "User not found", user_id=str(owner_id))

            project = Project(name=name.strip(), description=description, is_example=is_example)
            session.add(project)
            await session.flush()
            session.add(ProjectRole(project_id=project.id, user_id=owner_id, role=Role.OWNER))

            await AuditRecorder(session).record(
                AuditLogEntry(
                    project_id=project.id,
                    actor_id=owner_id,
                    role=Role.OWNER,
                    action_type=AuditAction.PROJECT_CREATE,
                    entity_type="Project",
                    entity_id=project.id,
                    after={"name": project.name, "status": project.status, "is_example": project.is_example},
                )
            )
            logger.info("project_created", project_id=str(project.id), owner_id=str(owner_id))
            return await commit_result(session, Result.ok(project))

    async def assign_role(
        self, project_id: uuid.UUID, user_id: uuid.UUID, role: Role, principal: Principal
    ) -> Result[ProjectRole]:
        """Grant or change a user's role in the project. Owner only."""
        error = check_role(principal, ROLE_MANAGERS)
        if error is not None:
            return Result.from_error(error)

        async with self.session_factory() as session:
            if await session.get(Project, project_id) is None:
                return Result.fail(ErrorKind.NOT_FOUND, "Project not found", project_id=str(project_id))
            if await session.get(User, user_id) is None:
                return Result.fail(ErrorKind.NOT_FOUND, "User not found", user_id=str(user_id))

            assignment = await session.scalar(
                select(ProjectRole).where(ProjectRole.project_id == project_id, ProjectRole.user_id == user_id)
            )
            before = None
            if assignment is None:
                assignment = ProjectRole(project_id=project_id, user_id=user_id, role=role)
                session.add(assignment)
            else:
                before = {"role": assignment.role}
                assignment.role = role
            await session.flush()

            await AuditRecorder(session).record(
                AuditLogEntry(
                    project_id=project_id,
                    actor_id=principal.user_id,
                    role=principal.role,
                    action_type=AuditAction.ROLE_ASSIGN,
                    entity_type="ProjectRole",
                    entity_id=assignment.id,
                    before=before,
                    after={"user_id": str(user_id), "role": str(role)},
                )
            )
            logger.info("role_assigned", project_id=str(project_id), user_id=str(user_id), role=str(role))
            return await commit_result(session, Result.ok(assignment))

    async def get_role(self, project_id: uuid.UUID, user_id: uuid.UUID) -> Role | None:
        async with self.session_factory() as session:
            role = await session.scalar(
                select(ProjectRole.role).where(ProjectRole.project_id == project_id, ProjectRole.user_id == user_id)
            )
            return Role(role) if role is not None else None

    async def get_project(self, project_id: uuid.UUID) -> Project | None:
        async with self.session_factory() as session:
            return await session.get(Project, project_id)

    async def list_members(self, project_id: uuid.UUID) -> list[tuple[User, str]]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(User, ProjectRole.role)
                .join(ProjectRole, ProjectRole.user_id == User.id)
                .where(ProjectRole.project_id == project_id)
                .order_by(User.name)
            )
            return [(user, role) for user, role in result.all()]

    async def list_for_user(self, user_id: uuid.UUID) -> list[tuple[Project, str]]:
        """Projects the user holds a role in, with that role."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Project, ProjectRole.role)
                .join(ProjectRole, ProjectRole.project_id == Project.id)
                .where(ProjectRole.user_id == user_id)
                .order_by(Project.created_at.desc())
            )
            return [(project, role) for project, role in result.all()]
