"""PaymentEligibilityEngine: derives and persists a milestone's payment verdict.

Runs inside the caller's session so the verdict commits or rolls back with
the mutation that triggered it. Never changes milestone state.
"""

import uuid
from datetime import UTC, datetime

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from buildtrack.db.models.boq import BOQ
from buildtrack.db.models.milestone import Milestone
from buildtrack.db.models.payment_eligibility import PaymentEligibility
from buildtrack.domain.audit import AuditAction, AuditLogEntry
from buildtrack.domain.boq import BOQStatus
from buildtrack.domain.eligibility import EligibilityInputs, EligibilityVerdict, evaluate_eligibility
from buildtrack.domain.results import ErrorKind, Result
from buildtrack.domain.roles import Principal
from buildtrack.services.audit_recorder import AuditRecorder

logger = structlog.get_logger(__name__)


class PaymentEligibilityEngine:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _boq_approved(self, milestone: Milestone) -> bool:
        """Whether the BOQ the milestone pays against is approved.

        A milestone without an explicit BOQ pays against the project's approved BOQ, if any.
        """
        if milestone.boq_id is not None:
            status = await self.session.scalar(select(BOQ.status).where(BOQ.id == milestone.boq_id))
            return status == BOQStatus.APPROVED
        approved = await self.session.scalar(
            select(BOQ.id).where(BOQ.project_id == milestone.project_id, BOQ.status == BOQStatus.APPROVED).limit(1)
        )
        return approved is not None

    async def gather_inputs(self, milestone: Milestone) -> EligibilityInputs:
        return EligibilityInputs(
            milestone_state=milestone.state,
            boq_approved=await self._boq_approved(milestone),
            is_extra=bool(milestone.is_extra),
            extra_approved=milestone.extra_approved_at is not None,
            value=float(milestone.value or 0.0),
        )

    async def recalculate(self, milestone_id: uuid.UUID, principal: Principal) -> Result[EligibilityVerdict]:
        """Recompute the verdict from current state and upsert it.

        An ELIGIBILITY_RECALCULATED audit entry is written only when the
        verdict differs from the persisted one. Recomputing with unchanged
        inputs leaves the verdict untouched apart from last_calculated_at.
        """
        milestone = await self.session.get(Milestone, milestone_id)
        if milestone is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Milestone not found", milestone_id=str(milestone_id))

        inputs = await self.gather_inputs(milestone)
        verdict = evaluate_eligibility(inputs)

        row = await self.session.scalar(
            select(PaymentEligibility).where(PaymentEligibility.milestone_id == milestone_id)
        )
        previous = None
        if row is None:
            row = PaymentEligibility(milestone_id=milestone_id)
            self.session.add(row)
        else:
            previous = EligibilityVerdict(row.eligible, row.reason, row.eligible_amount)

        row.eligible = verdict.eligible
        row.reason = verdict.reason
        row.eligible_amount = verdict.eligible_amount
        row.inputs = inputs.to_dict()
        row.last_calculated_at = datetime.now(UTC)
        await self.session.flush()

        if previous != verdict:
            await AuditRecorder(self.session).record(
                AuditLogEntry(
                    project_id=milestone.project_id,
                    actor_id=principal.user_id,
                    role=principal.role,
                    action_type=AuditAction.ELIGIBILITY_RECALCULATED,
                    entity_type="PaymentEligibility",
                    entity_id=row.id,
                    before=previous.to_dict() if previous else None,
                    after=verdict.to_dict(),
                    reason=verdict.reason,
                )
            )
            logger.info(
                "eligibility_changed",
                milestone_id=str(milestone_id),
                eligible=verdict.eligible,
                reason=verdict.reason,
            )

        return Result.ok(verdict)

    async def recalculate_for_boq(self, boq: BOQ, principal: Principal) -> list[EligibilityVerdict]:
        """Refresh the persisted verdicts of milestones that pay against this BOQ.

        Called when the BOQ's approval changes. Milestones without a persisted
        verdict are evaluated on read and are skipped here.
        """
        result = await self.session.execute(
            select(Milestone.id)
            .join(PaymentEligibility, PaymentEligibility.milestone_id == Milestone.id)
            .where(
                Milestone.project_id == boq.project_id,
                or_(Milestone.boq_id == boq.id, Milestone.boq_id.is_(None)),
            )
            .order_by(Milestone.created_at)
        )
        verdicts = []
        for milestone_id in result.scalars().all():
            recalculated = await self.recalculate(milestone_id, principal)
            verdicts.append(recalculated.data)
        return verdicts

    async def _verdict_payload(self, milestone: Milestone, row: PaymentEligibility | None) -> dict:
        if row is None:
            inputs = await self.gather_inputs(milestone)
            verdict = evaluate_eligibility(inputs)
            return {
                "milestone_id": str(milestone.id),
                **verdict.to_dict(),
                "inputs": inputs.to_dict(),
                "last_calculated_at": None,
            }
        return {
            "milestone_id": str(milestone.id),
            "eligible": row.eligible,
            "reason": row.reason,
            "eligible_amount": row.eligible_amount,
            "inputs": row.inputs,
            "last_calculated_at": row.last_calculated_at.isoformat(),
        }

    async def get_verdict(self, milestone_id: uuid.UUID) -> Result[dict]:
        """Read the persisted verdict.

        Milestones never recalculated yet report a verdict evaluated on read
        with last_calculated_at set to None; nothing is written.
        """
        milestone = await self.session.get(Milestone, milestone_id)
        if milestone is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Milestone not found", milestone_id=str(milestone_id))

        row = await self.session.scalar(
            select(PaymentEligibility).where(PaymentEligibility.milestone_id == milestone_id)
        )
        return Result.ok(await self._verdict_payload(milestone, row))

    async def list_for_project(self, project_id: uuid.UUID) -> list[dict]:
        """Verdicts of every milestone in the project, oldest milestone first."""
        result = await self.session.execute(
            select(Milestone, PaymentEligibility)
            .outerjoin(PaymentEligibility, PaymentEligibility.milestone_id == Milestone.id)
            .where(Milestone.project_id == project_id)
            .order_by(Milestone.created_at)
        )
        verdicts = []
        for milestone, row in result.all():
            payload = await self._verdict_payload(milestone, row)
            verdicts.append({**payload, "title": milestone.title, "state": milestone.state})
        return verdicts
