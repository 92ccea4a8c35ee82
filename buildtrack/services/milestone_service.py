"""MilestoneService: milestone creation and BOQ item links.

State changes never go through here; see MilestoneStateMachine.
"""

import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from buildtrack.db.base import commit_result
from buildtrack.db.models.boq import BOQ, BOQItem
from buildtrack.db.models.milestone import Milestone, MilestoneBOQLink
from buildtrack.domain.audit import AuditAction, AuditLogEntry
from buildtrack.domain.milestones import INITIAL_STATE
from buildtrack.domain.results import ErrorKind, Result
from buildtrack.domain.roles import MILESTONE_EDITORS, Principal, check_role
from buildtrack.services.audit_recorder import AuditRecorder

logger = structlog.get_logger(__name__)


def milestone_snapshot(milestone: Milestone) -> dict:
    return {
        "title": milestone.title,
        "state": milestone.state,
        "value": milestone.value,
        "is_extra": milestone.is_extra,
        "boq_id": str(milestone.boq_id) if milestone.boq_id else None,
    }


class MilestoneService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(
        self,
        project_id: uuid.UUID,
        principal: Principal,
        title: str,
        value: float,
        boq_id: uuid.UUID | None = None,
        is_extra: bool = False,
        description: str | None = None,
    ) -> Result[Milestone]:
        """Create a milestone in DRAFT.

        Args:
            project_id: Owning project
            principal: Acting OWNER or PMC
            title: Non-empty title
            value: Payable amount, zero or more
            boq_id: BOQ the milestone pays against; must belong to the project
            is_extra: True for work outside the approved BOQ
            description: Optional free text
        """
        error = check_role(principal, MILESTONE_EDITORS)
        if error is not None:
            return Result.from_error(error)
        if not title or not title.strip():
            return Result.fail(ErrorKind.INVALID_INPUT, "Milestone title is required")
        if value is None or value < 0:
            return Result.fail(ErrorKind.INVALID_INPUT, "Milestone value cannot be negative", value=value)

        async with self.session_factory() as session:
            if boq_id is not None:
                boq = await session.get(BOQ, boq_id)
                if boq is None or boq.project_id != project_id:
                    return Result.fail(ErrorKind.NOT_FOUND, "BOQ not found", boq_id=str(boq_id))

            milestone = Milestone(
                project_id=project_id,
                boq_id=boq_id,
                title=title.strip(),
                description=description,
                value=value,
                state=str(INITIAL_STATE),
                version=1,
                is_extra=is_extra,
            )
            session.add(milestone)
            await session.flush()

            await AuditRecorder(session).record(
                AuditLogEntry(
                    project_id=project_id,
                    actor_id=principal.user_id,
                    role=principal.role,
                    action_type=AuditAction.MILESTONE_CREATE,
                    entity_type="Milestone",
                    entity_id=milestone.id,
                    after=milestone_snapshot(milestone),
                )
            )
            logger.info("milestone_created", milestone_id=str(milestone.id), is_extra=is_extra)
            return await commit_result(session, Result.ok(milestone))

    async def link_boq_item(
        self,
        milestone_id: uuid.UUID,
        item_id: uuid.UUID,
        planned_qty: float,
        principal: Principal,
    ) -> Result[MilestoneBOQLink]:
        """Link a BOQ item (by its stable item id) to the milestone."""
        error = check_role(principal, MILESTONE_EDITORS)
        if error is not None:
            return Result.from_error(error)
        if planned_qty is None or planned_qty <= 0:
            return Result.fail(ErrorKind.INVALID_INPUT, "Planned quantity must be positive", planned_qty=planned_qty)

        async with self.session_factory() as session:
            milestone = await self._load(session, milestone_id, principal)
            if milestone is None:
                return Result.fail(ErrorKind.NOT_FOUND, "Milestone not found", milestone_id=str(milestone_id))

            # The item must exist in the current revision of a BOQ of this project
            stmt = (
                select(BOQItem.id)
                .join(BOQ, BOQ.id == BOQItem.boq_id)
                .where(
                    BOQItem.item_id == item_id,
                    BOQItem.revision_number == BOQ.revision_number,
                    BOQ.project_id == milestone.project_id,
                )
            )
            if milestone.boq_id is not None:
                stmt = stmt.where(BOQ.id == milestone.boq_id)
            if await session.scalar(stmt.limit(1)) is None:
                return Result.fail(ErrorKind.NOT_FOUND, "BOQ item not found", item_id=str(item_id))

            existing = await session.scalar(
                select(MilestoneBOQLink.id).where(
                    MilestoneBOQLink.milestone_id == milestone.id, MilestoneBOQLink.boq_item_id == item_id
                )
            )
            if existing is not None:
                return Result.fail(ErrorKind.CONFLICT, "BOQ item is already linked to this milestone", item_id=str(item_id))

            link = MilestoneBOQLink(milestone_id=milestone.id, boq_item_id=item_id, planned_qty=planned_qty)
            session.add(link)
            await session.flush()

            await AuditRecorder(session).record(
                AuditLogEntry(
                    project_id=milestone.project_id,
                    actor_id=principal.user_id,
                    role=principal.role,
                    action_type=AuditAction.MILESTONE_BOQ_LINK,
                    entity_type="Milestone",
                    entity_id=milestone.id,
                    after={"boq_item_id": str(item_id), "planned_qty": planned_qty},
                )
            )
            return await commit_result(session, Result.ok(link))

    async def _load(self, session: AsyncSession, milestone_id: uuid.UUID, principal: Principal | None) -> Milestone | None:
        milestone = await session.get(Milestone, milestone_id)
        if milestone is None:
            return None
        if principal is not None and principal.project_id is not None and milestone.project_id != principal.project_id:
            return None
        return milestone

    async def get(self, milestone_id: uuid.UUID, principal: Principal | None = None) -> Result[Milestone]:
        async with self.session_factory() as session:
            milestone = await self._load(session, milestone_id, principal)
            if milestone is None:
                return Result.fail(ErrorKind.NOT_FOUND, "Milestone not found", milestone_id=str(milestone_id))
            return Result.ok(milestone)

    async def list_links(self, milestone_id: uuid.UUID) -> list[MilestoneBOQLink]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(MilestoneBOQLink)
                .where(MilestoneBOQLink.milestone_id == milestone_id)
                .order_by(MilestoneBOQLink.created_at)
            )
            return list(result.scalars().all())

    async def list_for_project(self, project_id: uuid.UUID) -> list[Milestone]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Milestone).where(Milestone.project_id == project_id).order_by(Milestone.created_at)
            )
            return list(result.scalars().all())
