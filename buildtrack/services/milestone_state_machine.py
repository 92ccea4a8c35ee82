"""MilestoneStateMachine: validated lifecycle transitions with coupled eligibility.

A successful transition writes, in one transaction: the new state and version
(compare-and-swap on the version that was read), a history row, an audit
entry and the recalculated payment eligibility verdict. Any failure leaves
all of them unwritten.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from buildtrack.db.base import commit_result
from buildtrack.db.models.evidence import Evidence
from buildtrack.db.models.milestone import Milestone, MilestoneStateTransition
from buildtrack.domain.audit import AuditAction, AuditLogEntry
from buildtrack.domain.eligibility import EligibilityVerdict, can_close
from buildtrack.domain.evidence import EvidenceStatus
from buildtrack.domain.milestones import (
    MilestoneState,
    allowed_roles,
    can_perform_transition,
    is_rejection,
    is_valid_transition,
    valid_next_states,
)
from buildtrack.domain.results import ErrorKind, Result
from buildtrack.domain.roles import EXTRA_APPROVERS, Principal, check_role
from buildtrack.services.audit_recorder import AuditRecorder
from buildtrack.services.payment_eligibility import PaymentEligibilityEngine

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TransitionOutcome:
    id: uuid.UUID
    state: str
    previous_state: str
    version: int
    eligibility: EligibilityVerdict

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "state": self.state,
            "previous_state": self.previous_state,
            "version": self.version,
            "eligibility": self.eligibility.to_dict(),
        }


@dataclass(frozen=True)
class ExtraApprovalOutcome:
    id: uuid.UUID
    extra_approved_at: datetime
    extra_approved_by_id: uuid.UUID
    eligibility: EligibilityVerdict


@dataclass(frozen=True)
class Readiness:
    """Advisory answer to "can this milestone move on yet?"."""

    ready: bool
    reason: str | None = None


class MilestoneStateMachine:
    """Enforces the milestone lifecycle graph and its per-edge guards."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _load_milestone(
        self, session: AsyncSession, milestone_id: uuid.UUID, principal: Principal | None = None
    ) -> Milestone | None:
        milestone = await session.get(Milestone, milestone_id)
        if milestone is None:
            return None
        if principal is not None and principal.project_id is not None and milestone.project_id != principal.project_id:
            return None
        return milestone

    async def _count_evidence(self, session: AsyncSession, milestone_id: uuid.UUID, status: str | None = None) -> int:
        stmt = select(func.count()).select_from(Evidence).where(Evidence.milestone_id == milestone_id)
        if status is None:
            stmt = stmt.where(Evidence.status != EvidenceStatus.REJECTED)
        else:
            stmt = stmt.where(Evidence.status == status)
        return await session.scalar(stmt) or 0

    async def transition(
        self,
        milestone_id: uuid.UUID,
        to_state: str,
        principal: Principal,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> Result[TransitionOutcome]:
        """Move a milestone along one edge of the lifecycle graph.

        Checks, first failure wins:
            - milestone exists -> NOT_FOUND
            - expected_version, when given, matches -> CONFLICT
            - edge is in the graph -> INVALID_TRANSITION
            - principal's role may take the edge -> FORBIDDEN
            - rejection (SUBMITTED -> IN_PROGRESS) carries a reason -> INVALID_INPUT
            - SUBMITTED needs at least one non-rejected evidence record -> PRECONDITION_FAILED
            - CLOSED needs an eligible verdict, or an approved BOQ with no
              outstanding extra approval -> PRECONDITION_FAILED
        """
        async with self.session_factory() as session:
            result = await self._transition(session, milestone_id, to_state, principal, reason, expected_version)
            return await commit_result(session, result)

    async def _transition(
        self,
        session: AsyncSession,
        milestone_id: uuid.UUID,
        to_state: str,
        principal: Principal,
        reason: str | None,
        expected_version: int | None,
    ) -> Result[TransitionOutcome]:
        milestone = await self._load_milestone(session, milestone_id, principal)
        if milestone is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Milestone not found", milestone_id=str(milestone_id))

        seen_version = milestone.version
        if expected_version is not None and expected_version != seen_version:
            return Result.fail(
                ErrorKind.CONFLICT,
                "Milestone has changed since it was read; refetch and retry",
                expected_version=expected_version,
                current_version=seen_version,
            )

        from_state = milestone.state
        if not is_valid_transition(from_state, to_state):
            next_states = valid_next_states(from_state)
            return Result.fail(
                ErrorKind.INVALID_TRANSITION,
                f"Invalid transition: {from_state} -> {to_state}. "
                f"Valid next states: {', '.join(next_states) or 'none'}",
                from_state=from_state,
                to_state=to_state,
            )
        to_state = MilestoneState(to_state)

        if not can_perform_transition(from_state, to_state, principal.role):
            return Result.fail(
                ErrorKind.FORBIDDEN,
                f"Role {principal.role} cannot perform transition: {from_state} -> {to_state}",
                role=str(principal.role),
                required=sorted(str(r) for r in allowed_roles(from_state, to_state)),
            )

        rejection = is_rejection(from_state, to_state)
        if rejection and not (reason and reason.strip()):
            return Result.fail(ErrorKind.INVALID_INPUT, "Rejection requires a reason")

        if to_state == MilestoneState.SUBMITTED:
            if await self._count_evidence(session, milestone.id) == 0:
                return Result.fail(ErrorKind.PRECONDITION_FAILED, "Cannot submit milestone without evidence")

        engine = PaymentEligibilityEngine(session)
        if to_state == MilestoneState.CLOSED:
            inputs = await engine.gather_inputs(milestone)
            if not can_close(inputs):
                return Result.fail(
                    ErrorKind.PRECONDITION_FAILED,
                    "Milestone cannot be closed until payment is eligible",
                    inputs=inputs.to_dict(),
                )

        now = datetime.now(UTC)
        values = {"state": str(to_state), "version": seen_version + 1, "updated_at": now}
        if to_state == MilestoneState.IN_PROGRESS and from_state == MilestoneState.DRAFT:
            values["actual_start"] = now
        if to_state == MilestoneState.SUBMITTED:
            values["actual_submission"] = now
        if to_state == MilestoneState.VERIFIED:
            values["actual_verification"] = now

        cas = await session.execute(
            update(Milestone)
            .where(Milestone.id == milestone.id, Milestone.version == seen_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if cas.rowcount == 0:
            logger.warning(
                "milestone_transition_conflict",
                milestone_id=str(milestone.id),
                seen_version=seen_version,
                to_state=str(to_state),
            )
            return Result.fail(
                ErrorKind.CONFLICT,
                "Milestone was modified concurrently; refetch and retry",
                milestone_id=str(milestone.id),
                seen_version=seen_version,
            )
        await session.refresh(milestone)

        clean_reason = reason.strip() if reason and reason.strip() else None
        session.add(
            MilestoneStateTransition(
                milestone_id=milestone.id,
                from_state=from_state,
                to_state=str(to_state),
                actor_id=principal.user_id,
                role=str(principal.role),
                reason=clean_reason,
            )
        )
        await AuditRecorder(session).record(
            AuditLogEntry(
                project_id=milestone.project_id,
                actor_id=principal.user_id,
                role=principal.role,
                action_type=AuditAction.MILESTONE_STATE_TRANSITION,
                entity_type="Milestone",
                entity_id=milestone.id,
                before={"state": from_state, "version": seen_version},
                after={"state": milestone.state, "version": milestone.version},
                reason=clean_reason,
            )
        )

        recalculated = await engine.recalculate(milestone.id, principal)
        if not recalculated.success:
            return Result.from_error(recalculated.error)

        logger.info(
            "milestone_transitioned",
            milestone_id=str(milestone.id),
            from_state=from_state,
            to_state=milestone.state,
            version=milestone.version,
            rejection=rejection,
            eligible=recalculated.data.eligible,
        )
        return Result.ok(
            TransitionOutcome(
                id=milestone.id,
                state=milestone.state,
                previous_state=from_state,
                version=milestone.version,
                eligibility=recalculated.data,
            )
        )

    async def approve_extra(self, milestone_id: uuid.UUID, principal: Principal) -> Result[ExtraApprovalOutcome]:
        """Approve an extra milestone. Owner only, single-fire.

        A second approval fails with CONFLICT and leaves extra_approved_at as it was.
        """
        error = check_role(principal, EXTRA_APPROVERS)
        if error is not None:
            return Result.from_error(error)

        async with self.session_factory() as session:
            result = await self._approve_extra(session, milestone_id, principal)
            return await commit_result(session, result)

    async def _approve_extra(
        self, session: AsyncSession, milestone_id: uuid.UUID, principal: Principal
    ) -> Result[ExtraApprovalOutcome]:
        milestone = await self._load_milestone(session, milestone_id, principal)
        if milestone is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Milestone not found", milestone_id=str(milestone_id))
        if not milestone.is_extra:
            return Result.fail(
                ErrorKind.PRECONDITION_FAILED, "Only extra milestones need approval", milestone_id=str(milestone_id)
            )
        if milestone.extra_approved_at is not None:
            return Result.fail(ErrorKind.CONFLICT, "Extra milestone is already approved", milestone_id=str(milestone_id))

        now = datetime.now(UTC)
        cas = await session.execute(
            update(Milestone)
            .where(Milestone.id == milestone.id, Milestone.extra_approved_at.is_(None))
            .values(
                extra_approved_at=now,
                extra_approved_by_id=principal.user_id,
                version=Milestone.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if cas.rowcount == 0:
            return Result.fail(ErrorKind.CONFLICT, "Extra milestone is already approved", milestone_id=str(milestone_id))
        await session.refresh(milestone)

        await AuditRecorder(session).record(
            AuditLogEntry(
                project_id=milestone.project_id,
                actor_id=principal.user_id,
                role=principal.role,
                action_type=AuditAction.MILESTONE_EXTRA_APPROVE,
                entity_type="Milestone",
                entity_id=milestone.id,
                before={"extra_approved_at": None},
                after={
                    "extra_approved_at": milestone.extra_approved_at.isoformat(),
                    "extra_approved_by_id": str(principal.user_id),
                },
            )
        )

        recalculated = await PaymentEligibilityEngine(session).recalculate(milestone.id, principal)
        if not recalculated.success:
            return Result.from_error(recalculated.error)

        logger.info("extra_milestone_approved", milestone_id=str(milestone.id), eligible=recalculated.data.eligible)
        return Result.ok(
            ExtraApprovalOutcome(
                id=milestone.id,
                extra_approved_at=milestone.extra_approved_at,
                extra_approved_by_id=principal.user_id,
                eligibility=recalculated.data,
            )
        )

    async def get_transition_history(self, milestone_id: uuid.UUID) -> list[MilestoneStateTransition]:
        """Transition history, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(MilestoneStateTransition)
                .where(MilestoneStateTransition.milestone_id == milestone_id)
                .order_by(MilestoneStateTransition.created_at.asc())
            )
            return list(result.scalars().all())

    async def can_submit(self, milestone_id: uuid.UUID) -> Readiness:
        async with self.session_factory() as session:
            milestone = await self._load_milestone(session, milestone_id)
            if milestone is None:
                return Readiness(False, "Milestone not found")
            if milestone.state != MilestoneState.IN_PROGRESS:
                return Readiness(False, f"Milestone is in {milestone.state} state, not IN_PROGRESS")
            if await self._count_evidence(session, milestone.id) == 0:
                return Readiness(False, "Evidence is mandatory for submission")
            return Readiness(True)

    async def can_verify(self, milestone_id: uuid.UUID) -> Readiness:
        async with self.session_factory() as session:
            milestone = await self._load_milestone(session, milestone_id)
            if milestone is None:
                return Readiness(False, "Milestone not found")
            if milestone.state != MilestoneState.SUBMITTED:
                return Readiness(False, f"Milestone is in {milestone.state} state, not SUBMITTED")
            if await self._count_evidence(session, milestone.id, status=EvidenceStatus.APPROVED) == 0:
                return Readiness(False, "No approved evidence found")
            return Readiness(True)
