"""Shared test fixtures for all test groups.

Each test gets a fresh database. TEST_DATABASE_URL points the suite at
PostgreSQL; without it a temporary SQLite file is used through aiosqlite.
"""

import os
import uuid
from dataclasses import dataclass

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from buildtrack.db.base import Base
from buildtrack.domain.boq import BOQItemInput
from buildtrack.domain.evidence import EvidenceFileInput
from buildtrack.domain.milestones import MilestoneState
from buildtrack.domain.roles import Principal, Role
from buildtrack.services.audit_recorder import AuditLogFilters, AuditRecorder
from buildtrack.services.boq_service import BOQService
from buildtrack.services.evidence_service import EvidenceService
from buildtrack.services.milestone_service import MilestoneService
from buildtrack.services.milestone_state_machine import MilestoneStateMachine
from buildtrack.services.project_service import ProjectService

_TEST_DB_URL = os.getenv("TEST_DATABASE_URL")


@pytest.fixture
async def engine(tmp_path) -> AsyncEngine:
    """Create a test engine with all tables and point the global session factory at it.

    Route handlers use get_session_factory(); in-process AsyncClient tests
    share this event loop, so they see the same engine.
    """
    import buildtrack.db.base as db_mod

    url = _TEST_DB_URL or f"sqlite+aiosqlite:///{tmp_path / 'buildtrack.db'}"
    engine = create_async_engine(url, echo=False)

    # Import all models so metadata is populated
    import buildtrack.db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    db_mod._engine = engine
    db_mod._session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    db_mod._engine = None
    db_mod._session_factory = None
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def project_service(session_factory):
    return ProjectService(session_factory)


@pytest.fixture
def boq_service(session_factory):
    return BOQService(session_factory)


@pytest.fixture
def milestone_service(session_factory):
    return MilestoneService(session_factory)


@pytest.fixture
def state_machine(session_factory):
    return MilestoneStateMachine(session_factory)


@pytest.fixture
def evidence_service(session_factory):
    return EvidenceService(session_factory)


# ============================================================================
# A project with one member per role
# ============================================================================


@dataclass
class ProjectWorld:
    project_id: uuid.UUID
    owner: Principal
    pmc: Principal
    vendor: Principal
    viewer: Principal


@pytest.fixture
async def world(project_service) -> ProjectWorld:
    users = {}
    for role in Role:
        result = await project_service.create_user(f"{role.value.title()} User", f"{role.value.lower()}@example.com")
        assert result.success
        users[role] = result.data

    created = await project_service.create_project("Warehouse Retrofit", users[Role.OWNER].id, "Phase 1")
    assert created.success
    project_id = created.data.id

    owner = Principal(user_id=users[Role.OWNER].id, role=Role.OWNER, project_id=project_id)
    for role in (Role.PMC, Role.VENDOR, Role.VIEWER):
        assigned = await project_service.assign_role(project_id, users[role].id, role, owner)
        assert assigned.success

    return ProjectWorld(
        project_id=project_id,
        owner=owner,
        pmc=Principal(user_id=users[Role.PMC].id, role=Role.PMC, project_id=project_id),
        vendor=Principal(user_id=users[Role.VENDOR].id, role=Role.VENDOR, project_id=project_id),
        viewer=Principal(user_id=users[Role.VIEWER].id, role=Role.VIEWER, project_id=project_id),
    )


@pytest.fixture
async def draft_boq(world, boq_service):
    """A DRAFT BOQ with two items."""
    created = await boq_service.create(world.project_id, world.pmc)
    assert created.success
    boq = created.data
    for item in (
        BOQItemInput("Excavation", "m3", 120.0, 450.0),
        BOQItemInput("Structural steel", "t", 8.0, 92000.0),
    ):
        added = await boq_service.add_item(boq.id, item, world.pmc)
        assert added.success
    return boq


@pytest.fixture
async def approved_boq(world, boq_service, draft_boq):
    """The draft BOQ, approved by the owner."""
    approved = await boq_service.approve(draft_boq.id, world.owner)
    assert approved.success
    return approved.data


@pytest.fixture
def evidence_file():
    return EvidenceFileInput(file_name="site-photo.jpg", mime_type="image/jpeg", data=b"\xff\xd8\xff\xe0jpeg-bytes")


@pytest.fixture
def make_milestone(world, milestone_service):
    async def _make(title="Foundation pour", value=50000.0, boq_id=None, is_extra=False):
        result = await milestone_service.create(
            world.project_id, world.owner, title=title, value=value, boq_id=boq_id, is_extra=is_extra
        )
        assert result.success, result.error
        return result.data

    return _make


@pytest.fixture
def drive_to(world, state_machine, evidence_service, evidence_file):
    """Walk a milestone forward to a target state, submitting evidence on the way."""
    path = [MilestoneState.IN_PROGRESS, MilestoneState.SUBMITTED, MilestoneState.VERIFIED, MilestoneState.CLOSED]

    async def _drive(milestone_id, target):
        outcome = None
        for state in path:
            if state == MilestoneState.SUBMITTED:
                submitted = await evidence_service.submit(milestone_id, world.vendor, 100.0, [evidence_file])
                assert submitted.success, submitted.error
            actor = world.vendor if state in (MilestoneState.IN_PROGRESS, MilestoneState.SUBMITTED) else world.pmc
            result = await state_machine.transition(milestone_id, state, actor)
            assert result.success, result.error
            outcome = result.data
            if state == target:
                break
        return outcome

    return _drive


@pytest.fixture
def audit_entries(session_factory, world):
    """Read audit entries for the world project in a fresh session."""

    async def _entries(**filters):
        async with session_factory() as session:
            logs, _ = await AuditRecorder(session).query(world.project_id, AuditLogFilters(**filters))
            return logs

    return _entries
