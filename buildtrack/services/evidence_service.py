"""EvidenceService: vendor evidence submission and owner/PMC review.

Evidence is frozen on submission. Reviews only move SUBMITTED evidence to
APPROVED or REJECTED and trigger a payment eligibility recalculation in the
same transaction.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from buildtrack.core.config import get_settings
from buildtrack.core.exceptions import ForbiddenError
from buildtrack.db.base import commit_result
from buildtrack.db.models.evidence import Evidence, EvidenceFile
from buildtrack.db.models.milestone import Milestone
from buildtrack.domain.audit import AuditAction, AuditLogEntry
from buildtrack.domain.evidence import EvidenceFileInput, EvidenceStatus, ReviewAction, validate_submission
from buildtrack.domain.milestones import MilestoneState
from buildtrack.domain.results import ErrorKind, Result
from buildtrack.domain.roles import (
    EVIDENCE_REVIEWERS,
    EVIDENCE_SUBMITTERS,
    Principal,
    check_role,
    validate_not_self_approval,
)
from buildtrack.services.audit_recorder import AuditRecorder
from buildtrack.services.payment_eligibility import PaymentEligibilityEngine

logger = structlog.get_logger(__name__)


@dataclass
class EvidenceRecord:
    evidence: Evidence
    files: list[EvidenceFile] = field(default_factory=list)


class EvidenceService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def submit(
        self,
        milestone_id: uuid.UUID,
        principal: Principal,
        qty_or_percent: float,
        files: list[EvidenceFileInput],
        remarks: str | None = None,
    ) -> Result[EvidenceRecord]:
        """Submit evidence for an IN_PROGRESS milestone. Vendor only."""
        error = check_role(principal, EVIDENCE_SUBMITTERS)
        if error is not None:
            return Result.from_error(error)

        async with self.session_factory() as session:
            milestone = await session.get(Milestone, milestone_id)
            if milestone is None or (principal.project_id and milestone.project_id != principal.project_id):
                return Result.fail(ErrorKind.NOT_FOUND, "Milestone not found", milestone_id=str(milestone_id))
            if milestone.state != MilestoneState.IN_PROGRESS:
                return Result.fail(
                    ErrorKind.PRECONDITION_FAILED,
                    f"Cannot submit evidence for milestone in {milestone.state} state",
                    state=milestone.state,
                )

            error = validate_submission(qty_or_percent, files, get_settings().max_file_size_mb)
            if error is not None:
                return Result.from_error(error)

            evidence = Evidence(
                milestone_id=milestone.id,
                submitted_by_id=principal.user_id,
                qty_or_percent=qty_or_percent,
                remarks=remarks,
                frozen=True,
                status=EvidenceStatus.SUBMITTED,
            )
            session.add(evidence)
            await session.flush()

            stored = []
            for f in files:
                file_id = uuid.uuid4()
                row = EvidenceFile(
                    id=file_id,
                    evidence_id=evidence.id,
                    file_name=f.file_name,
                    mime_type=f.mime_type or "application/octet-stream",
                    size=f.size,
                    storage_key=f"evidence/{evidence.id}/{file_id}",
                    data=f.data,
                )
                session.add(row)
                stored.append(row)
            await session.flush()

            await AuditRecorder(session).record(
                AuditLogEntry(
                    project_id=milestone.project_id,
                    actor_id=principal.user_id,
                    role=principal.role,
                    action_type=AuditAction.EVIDENCE_SUBMIT,
                    entity_type="Evidence",
                    entity_id=evidence.id,
                    after={
                        "milestone_id": str(milestone.id),
                        "qty_or_percent": qty_or_percent,
                        "file_count": len(stored),
                        "remarks": remarks,
                    },
                )
            )
            logger.info("evidence_submitted", evidence_id=str(evidence.id), milestone_id=str(milestone.id))
            return await commit_result(session, Result.ok(EvidenceRecord(evidence, stored)))

    async def review(
        self,
        evidence_id: uuid.UUID,
        principal: Principal,
        action: str,
        note: str | None = None,
    ) -> Result[Evidence]:
        """Approve or reject SUBMITTED evidence. Owner or PMC, never the submitter."""
        error = check_role(principal, EVIDENCE_REVIEWERS)
        if error is not None:
            return Result.from_error(error)
        if action not in (ReviewAction.APPROVE, ReviewAction.REJECT):
            return Result.fail(ErrorKind.INVALID_INPUT, "Review action must be APPROVE or REJECT", action=action)

        async with self.session_factory() as session:
            result = await self._review(session, evidence_id, principal, ReviewAction(action), note)
            return await commit_result(session, result)

    async def _review(
        self,
        session: AsyncSession,
        evidence_id: uuid.UUID,
        principal: Principal,
        action: ReviewAction,
        note: str | None,
    ) -> Result[Evidence]:
        row = await session.execute(
            select(Evidence, Milestone).join(Milestone, Milestone.id == Evidence.milestone_id).where(Evidence.id == evidence_id)
        )
        found = row.first()
        if found is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Evidence not found", evidence_id=str(evidence_id))
        evidence, milestone = found
        if principal.project_id and milestone.project_id != principal.project_id:
            return Result.fail(ErrorKind.NOT_FOUND, "Evidence not found", evidence_id=str(evidence_id))

        try:
            validate_not_self_approval(principal.user_id, evidence.submitted_by_id)
        except ForbiddenError as exc:
            return Result.from_error(exc.to_error())

        if evidence.status != EvidenceStatus.SUBMITTED:
            return Result.fail(ErrorKind.CONFLICT, f"Evidence is already {evidence.status}", status=evidence.status)
        if action == ReviewAction.REJECT and not (note and note.strip()):
            return Result.fail(ErrorKind.INVALID_INPUT, "Rejection requires a reason")

        new_status = EvidenceStatus.APPROVED if action == ReviewAction.APPROVE else EvidenceStatus.REJECTED
        now = datetime.now(UTC)
        cas = await session.execute(
            update(Evidence)
            .where(Evidence.id == evidence.id, Evidence.status == EvidenceStatus.SUBMITTED)
            .values(status=new_status, reviewed_at=now, reviewed_by_id=principal.user_id, review_note=note)
            .execution_options(synchronize_session=False)
        )
        if cas.rowcount == 0:
            return Result.fail(ErrorKind.CONFLICT, "Evidence was reviewed concurrently", evidence_id=str(evidence_id))
        await session.refresh(evidence)

        await AuditRecorder(session).record(
            AuditLogEntry(
                project_id=milestone.project_id,
                actor_id=principal.user_id,
                role=principal.role,
                action_type=AuditAction.EVIDENCE_APPROVE if action == ReviewAction.APPROVE else AuditAction.EVIDENCE_REJECT,
                entity_type="Evidence",
                entity_id=evidence.id,
                before={"status": EvidenceStatus.SUBMITTED.value},
                after={"status": evidence.status},
                reason=note,
            )
        )

        recalculated = await PaymentEligibilityEngine(session).recalculate(milestone.id, principal)
        if not recalculated.success:
            return Result.from_error(recalculated.error)

        logger.info("evidence_reviewed", evidence_id=str(evidence.id), status=evidence.status)
        return Result.ok(evidence)

    async def list_for_milestone(self, milestone_id: uuid.UUID) -> list[EvidenceRecord]:
        """All evidence for a milestone, newest first, with file metadata."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Evidence).where(Evidence.milestone_id == milestone_id).order_by(Evidence.submitted_at.desc())
            )
            evidence = list(result.scalars().all())
            if not evidence:
                return []

            files = await session.execute(
                select(EvidenceFile)
                .where(EvidenceFile.evidence_id.in_([e.id for e in evidence]))
                .order_by(EvidenceFile.created_at)
            )
            by_evidence: dict[uuid.UUID, list[EvidenceFile]] = {}
            for f in files.scalars().all():
                by_evidence.setdefault(f.evidence_id, []).append(f)
            return [EvidenceRecord(e, by_evidence.get(e.id, [])) for e in evidence]

    async def get_file(self, file_id: uuid.UUID, project_id: uuid.UUID | None = None) -> EvidenceFile | None:
        """Load a stored file, optionally only if it belongs to the given project."""
        async with self.session_factory() as session:
            stmt = select(EvidenceFile).where(EvidenceFile.id == file_id)
            if project_id is not None:
                stmt = (
                    stmt.join(Evidence, Evidence.id == EvidenceFile.evidence_id)
                    .join(Milestone, Milestone.id == Evidence.milestone_id)
                    .where(Milestone.project_id == project_id)
                )
            return await session.scalar(stmt)
