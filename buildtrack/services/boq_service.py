"""BOQService: bill of quantities lifecycle and revision engine.

Every public method runs as one unit of work: the mutation, its revision
record and its audit entry commit together or not at all.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from buildtrack.db.base import commit_result
from buildtrack.db.models.boq import BOQ, BOQItem, BOQRevision
from buildtrack.db.models.evidence import Evidence
from buildtrack.db.models.milestone import Milestone, MilestoneBOQLink
from buildtrack.domain.audit import AuditAction, AuditLogEntry
from buildtrack.domain.boq import (
    BOQChanges,
    BOQItemInput,
    BOQItemUpdate,
    BOQStatus,
    ItemSnapshot,
    plan_revision,
    summarize_revision,
    validate_item_input,
    validate_item_update,
    validate_revision,
)
from buildtrack.domain.milestones import PROGRESS_STATES
from buildtrack.domain.results import ErrorKind, Result
from buildtrack.domain.roles import BOQ_APPROVERS, BOQ_EDITORS, Principal, check_role
from buildtrack.services.audit_recorder import AuditRecorder
from buildtrack.services.payment_eligibility import PaymentEligibilityEngine

logger = structlog.get_logger(__name__)


@dataclass
class BOQDetail:
    """A BOQ with the items of one revision and its full revision history."""

    boq: BOQ
    revision_number: int
    items: list[BOQItem] = field(default_factory=list)
    revisions: list[BOQRevision] = field(default_factory=list)

    @property
    def total_value(self) -> float:
        return sum(i.planned_value for i in self.items)


def _snapshot(item: BOQItem) -> ItemSnapshot:
    return ItemSnapshot(
        item_id=item.item_id,
        description=item.description,
        unit=item.unit,
        planned_qty=item.planned_qty,
        rate=item.rate,
    )


class BOQService:
    """Service layer for BOQ creation, draft editing, approval and revisions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    async def _load_boq(self, session: AsyncSession, boq_id: uuid.UUID, principal: Principal | None) -> BOQ | None:
        boq = await session.get(BOQ, boq_id)
        if boq is None:
            return None
        if principal is not None and principal.project_id is not None and boq.project_id != principal.project_id:
            return None
        return boq

    async def _load_items(self, session: AsyncSession, boq_id: uuid.UUID, revision_number: int) -> list[BOQItem]:
        result = await session.execute(
            select(BOQItem)
            .where(BOQItem.boq_id == boq_id, BOQItem.revision_number == revision_number)
            .order_by(BOQItem.position, BOQItem.created_at)
        )
        return list(result.scalars().all())

    async def _items_with_history(self, session: AsyncSession, item_ids: list[uuid.UUID]) -> set[uuid.UUID]:
        """Items linked to a milestone that has evidence or has reached SUBMITTED or later."""
        if not item_ids:
            return set()
        has_evidence = select(Evidence.id).where(Evidence.milestone_id == Milestone.id).exists()
        result = await session.execute(
            select(MilestoneBOQLink.boq_item_id)
            .join(Milestone, Milestone.id == MilestoneBOQLink.milestone_id)
            .where(
                MilestoneBOQLink.boq_item_id.in_(item_ids),
                or_(Milestone.state.in_([str(s) for s in PROGRESS_STATES]), has_evidence),
            )
        )
        return set(result.scalars().all())

    def _boq_state(self, boq: BOQ) -> dict:
        return {"status": boq.status, "revision_number": boq.revision_number}

    # ------------------------------------------------------------------
    # Create and draft editing
    # ------------------------------------------------------------------

    async def create(self, project_id: uuid.UUID, principal: Principal) -> Result[BOQ]:
        """Create a DRAFT BOQ at revision 1. Only one draft per project at a time."""
        error = check_role(principal, BOQ_EDITORS)
        if error is not None:
            return Result.from_error(error)

        async with self.session_factory() as session:
            existing = await session.scalar(
                select(BOQ.id).where(BOQ.project_id == project_id, BOQ.status == BOQStatus.DRAFT).limit(1)
            )
            if existing is not None:
                return Result.fail(ErrorKind.CONFLICT, "A draft BOQ already exists for this project", boq_id=str(existing))

            boq = BOQ(project_id=project_id, status=BOQStatus.DRAFT, revision_number=1)
            session.add(boq)
            await session.flush()
            session.add(
                BOQRevision(
                    boq_id=boq.id,
                    revision_number=1,
                    summary=summarize_revision(1, []),
                    created_by_id=principal.user_id,
                )
            )
            await AuditRecorder(session).record(
                AuditLogEntry(
                    project_id=project_id,
                    actor_id=principal.user_id,
                    role=principal.role,
                    action_type=AuditAction.BOQ_CREATE,
                    entity_type="BOQ",
                    entity_id=boq.id,
                    after=self._boq_state(boq),
                )
            )
            logger.info("boq_created", boq_id=str(boq.id), project_id=str(project_id))
            return await commit_result(session, Result.ok(boq))

    async def _load_draft(self, session: AsyncSession, boq_id: uuid.UUID, principal: Principal) -> Result[BOQ]:
        error = check_role(principal, BOQ_EDITORS)
        if error is not None:
            return Result.from_error(error)
        boq = await self._load_boq(session, boq_id, principal)
        if boq is None:
            return Result.fail(ErrorKind.NOT_FOUND, "BOQ not found", boq_id=str(boq_id))
        if boq.status != BOQStatus.DRAFT:
            return Result.fail(
                ErrorKind.PRECONDITION_FAILED,
                "Approved BOQ cannot be edited in place; use a revision",
                boq_id=str(boq_id),
            )
        return Result.ok(boq)

    async def add_item(self, boq_id: uuid.UUID, item: BOQItemInput, principal: Principal) -> Result[BOQItem]:
        async with self.session_factory() as session:
            loaded = await self._load_draft(session, boq_id, principal)
            if not loaded.success:
                return loaded
            boq = loaded.data
            error = validate_item_input(item)
            if error is not None:
                return Result.from_error(error)

            position = await session.scalar(
                select(func.count())
                .select_from(BOQItem)
                .where(BOQItem.boq_id == boq.id, BOQItem.revision_number == boq.revision_number)
            )
            row = BOQItem(
                boq_id=boq.id,
                revision_number=boq.revision_number,
                item_id=uuid.uuid4(),
                position=position or 0,
                description=item.description.strip(),
                unit=item.unit.strip(),
                planned_qty=item.planned_qty,
                rate=item.rate,
                planned_value=item.planned_qty * item.rate,
            )
            session.add(row)
            await session.flush()
            await AuditRecorder(session).record(
                AuditLogEntry(
                    project_id=boq.project_id,
                    actor_id=principal.user_id,
                    role=principal.role,
                    action_type=AuditAction.BOQ_ITEM_ADD,
                    entity_type="BOQItem",
                    entity_id=row.item_id,
                    after=_snapshot(row).to_dict(),
                )
            )
            return await commit_result(session, Result.ok(row))

    async def _load_draft_item(
        self, session: AsyncSession, boq: BOQ, item_id: uuid.UUID
    ) -> BOQItem | None:
        return await session.scalar(
            select(BOQItem).where(
                BOQItem.boq_id == boq.id,
                BOQItem.revision_number == boq.revision_number,
                BOQItem.item_id == item_id,
            )
        )

    async def update_item(self, boq_id: uuid.UUID, change: BOQItemUpdate, principal: Principal) -> Result[BOQItem]:
        async with self.session_factory() as session:
            loaded = await self._load_draft(session, boq_id, principal)
            if not loaded.success:
                return loaded
            boq = loaded.data
            error = validate_item_update(change)
            if error is not None:
                return Result.from_error(error)

            row = await self._load_draft_item(session, boq, change.item_id)
            if row is None:
                return Result.fail(ErrorKind.NOT_FOUND, "BOQ item not found", item_id=str(change.item_id))

            before = _snapshot(row).to_dict()
            if change.description is not None:
                row.description = change.description.strip()
            if change.unit is not None:
                row.unit = change.unit.strip()
            if change.planned_qty is not None:
                row.planned_qty = change.planned_qty
            if change.rate is not None:
                row.rate = change.rate
            row.planned_value = row.planned_qty * row.rate
            await session.flush()

            await AuditRecorder(session).record(
                AuditLogEntry(
                    project_id=boq.project_id,
                    actor_id=principal.user_id,
                    role=principal.role,
                    action_type=AuditAction.BOQ_ITEM_UPDATE,
                    entity_type="BOQItem",
                    entity_id=row.item_id,
                    before=before,
                    after=_snapshot(row).to_dict(),
                )
            )
            return await commit_result(session, Result.ok(row))

    async def remove_item(self, boq_id: uuid.UUID, item_id: uuid.UUID, principal: Principal) -> Result[None]:
        async with self.session_factory() as session:
            loaded = await self._load_draft(session, boq_id, principal)
            if not loaded.success:
                return loaded
            boq = loaded.data

            row = await self._load_draft_item(session, boq, item_id)
            if row is None:
                return Result.fail(ErrorKind.NOT_FOUND, "BOQ item not found", item_id=str(item_id))
            if await self._items_with_history(session, [item_id]):
                return Result.fail(
                    ErrorKind.CONFLICT,
                    "Cannot remove an item with recorded progress or payment history",
                    item_id=str(item_id),
                )

            before = _snapshot(row).to_dict()
            # Links without progress go with the draft item
            await session.execute(delete(MilestoneBOQLink).where(MilestoneBOQLink.boq_item_id == item_id))
            await session.delete(row)
            await session.flush()
            await AuditRecorder(session).record(
                AuditLogEntry(
                    project_id=boq.project_id,
                    actor_id=principal.user_id,
                    role=principal.role,
                    action_type=AuditAction.BOQ_ITEM_REMOVE,
                    entity_type="BOQItem",
                    entity_id=item_id,
                    before=before,
                )
            )
            return await commit_result(session, Result.ok())

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    async def approve(self, boq_id: uuid.UUID, principal: Principal) -> Result[BOQ]:
        """Approve a DRAFT BOQ. Owner only; a second approval fails with CONFLICT."""
        error = check_role(principal, BOQ_APPROVERS)
        if error is not None:
            return Result.from_error(error)

        async with self.session_factory() as session:
            boq = await self._load_boq(session, boq_id, principal)
            if boq is None:
                return Result.fail(ErrorKind.NOT_FOUND, "BOQ not found", boq_id=str(boq_id))
            if boq.status == BOQStatus.APPROVED:
                return Result.fail(ErrorKind.CONFLICT, "BOQ is already approved", boq_id=str(boq_id))

            items = await self._load_items(session, boq.id, boq.revision_number)
            if not items:
                return Result.fail(ErrorKind.PRECONDITION_FAILED, "Cannot approve an empty BOQ", boq_id=str(boq_id))

            before = self._boq_state(boq)
            now = datetime.now(UTC)
            result = await session.execute(
                update(BOQ)
                .where(BOQ.id == boq.id, BOQ.status == BOQStatus.DRAFT)
                .values(status=BOQStatus.APPROVED, approved_at=now, approved_by_id=principal.user_id, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return await commit_result(
                    session, Result.fail(ErrorKind.CONFLICT, "BOQ was approved concurrently", boq_id=str(boq_id))
                )
            await session.refresh(boq)

            await AuditRecorder(session).record(
                AuditLogEntry(
                    project_id=boq.project_id,
                    actor_id=principal.user_id,
                    role=principal.role,
                    action_type=AuditAction.BOQ_APPROVE,
                    entity_type="BOQ",
                    entity_id=boq.id,
                    before=before,
                    after=self._boq_state(boq),
                )
            )
            refreshed = await PaymentEligibilityEngine(session).recalculate_for_boq(boq, principal)
            logger.info(
                "boq_approved",
                boq_id=str(boq.id),
                revision_number=boq.revision_number,
                verdicts_refreshed=len(refreshed),
            )
            return await commit_result(session, Result.ok(boq))

    # ------------------------------------------------------------------
    # Revisions
    # ------------------------------------------------------------------

    async def revise(
        self,
        boq_id: uuid.UUID,
        reason: str | None,
        changes: BOQChanges,
        principal: Principal,
    ) -> Result[dict]:
        """Materialize revision N+1 of an approved BOQ.

        Items of revision N are copied forward unless removed, updates are
        applied to the copies and added items get fresh identities. The
        revision number advances with a compare-and-swap on N, so two
        revisions from the same base cannot both succeed.

        Returns:
            Result with {"revision_number": N+1} on success
        """
        error = check_role(principal, BOQ_EDITORS)
        if error is not None:
            return Result.from_error(error)

        async with self.session_factory() as session:
            boq = await self._load_boq(session, boq_id, principal)
            if boq is None:
                return Result.fail(ErrorKind.NOT_FOUND, "BOQ not found", boq_id=str(boq_id))
            if boq.status != BOQStatus.APPROVED:
                return Result.fail(
                    ErrorKind.PRECONDITION_FAILED,
                    "Only approved BOQs are revised; edit the draft directly",
                    boq_id=str(boq_id),
                )

            base_revision = boq.revision_number
            current = [_snapshot(i) for i in await self._load_items(session, boq.id, base_revision)]
            locked = await self._items_with_history(session, list(changes.remove_item_ids))
            error = validate_revision(reason, changes, current, locked)
            if error is not None:
                return Result.from_error(error)

            next_revision = base_revision + 1
            result = await session.execute(
                update(BOQ)
                .where(BOQ.id == boq.id, BOQ.revision_number == base_revision)
                .values(revision_number=next_revision, updated_at=datetime.now(UTC))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                logger.warning("boq_revision_conflict", boq_id=str(boq.id), base_revision=base_revision)
                return await commit_result(
                    session,
                    Result.fail(
                        ErrorKind.CONFLICT,
                        "BOQ was revised concurrently; refetch and retry",
                        boq_id=str(boq_id),
                        base_revision=base_revision,
                    ),
                )

            planned = plan_revision(current, changes)
            for position, item in enumerate(planned):
                session.add(
                    BOQItem(
                        boq_id=boq.id,
                        revision_number=next_revision,
                        item_id=item.item_id,
                        position=position,
                        description=item.description,
                        unit=item.unit,
                        planned_qty=item.planned_qty,
                        rate=item.rate,
                        planned_value=item.planned_value,
                    )
                )

            before = summarize_revision(base_revision, current)
            after = summarize_revision(next_revision, planned)
            session.add(
                BOQRevision(
                    boq_id=boq.id,
                    revision_number=next_revision,
                    reason=reason.strip(),
                    summary={**after, "changes": changes.to_dict()},
                    created_by_id=principal.user_id,
                )
            )
            await session.flush()

            await AuditRecorder(session).record(
                AuditLogEntry(
                    project_id=boq.project_id,
                    actor_id=principal.user_id,
                    role=principal.role,
                    action_type=AuditAction.BOQ_REVISE,
                    entity_type="BOQ",
                    entity_id=boq.id,
                    before=before,
                    after=after,
                    reason=reason.strip(),
                )
            )
            logger.info(
                "boq_revised",
                boq_id=str(boq.id),
                revision_number=next_revision,
                added=len(changes.add_items),
                updated=len(changes.update_items),
                removed=len(changes.remove_item_ids),
            )
            return await commit_result(session, Result.ok({"revision_number": next_revision}))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_with_items(
        self,
        boq_id: uuid.UUID,
        revision_number: int | None = None,
        principal: Principal | None = None,
    ) -> Result[BOQDetail]:
        """Load a BOQ with the items of one revision (default: current)."""
        async with self.session_factory() as session:
            boq = await self._load_boq(session, boq_id, principal)
            if boq is None:
                return Result.fail(ErrorKind.NOT_FOUND, "BOQ not found", boq_id=str(boq_id))

            revision = revision_number if revision_number is not None else boq.revision_number
            if revision < 1 or revision > boq.revision_number:
                return Result.fail(ErrorKind.NOT_FOUND, "BOQ revision not found", revision_number=revision)

            items = await self._load_items(session, boq.id, revision)
            result = await session.execute(
                select(BOQRevision).where(BOQRevision.boq_id == boq.id).order_by(BOQRevision.revision_number)
            )
            return Result.ok(
                BOQDetail(boq=boq, revision_number=revision, items=items, revisions=list(result.scalars().all()))
            )

    async def get_approved_for_project(self, project_id: uuid.UUID) -> BOQ | None:
        async with self.session_factory() as session:
            return await session.scalar(
                select(BOQ)
                .where(BOQ.project_id == project_id, BOQ.status == BOQStatus.APPROVED)
                .order_by(BOQ.created_at.desc())
                .limit(1)
            )
