"""Evidence API routes."""

import uuid

from fastapi import APIRouter, Depends, Response

from buildtrack.api.responses import failure, respond, success
from buildtrack.core.auth import require_project_auth
from buildtrack.db.base import get_session_factory
from buildtrack.domain.results import CoreError, ErrorKind
from buildtrack.domain.roles import Principal
from buildtrack.schemas.evidence import (
    EvidenceDetailResponse,
    EvidenceFileResponse,
    EvidenceResponse,
    ReviewEvidenceRequest,
    SubmitEvidenceRequest,
)
from buildtrack.services.evidence_service import EvidenceRecord, EvidenceService
from buildtrack.services.milestone_service import MilestoneService

router = APIRouter()


def _record(record: EvidenceRecord) -> EvidenceDetailResponse:
    return EvidenceDetailResponse(
        **EvidenceResponse.model_validate(record.evidence).model_dump(),
        files=[EvidenceFileResponse.model_validate(f) for f in record.files],
    )


@router.post("/milestones/{milestone_id}/evidence", status_code=201)
async def submit_evidence(
    project_id: uuid.UUID,
    milestone_id: uuid.UUID,
    request: SubmitEvidenceRequest,
    principal: Principal = Depends(require_project_auth),
):
    """Submit evidence for an in-progress milestone. Vendor only."""
    service = EvidenceService(get_session_factory())
    result = await service.submit(
        milestone_id,
        principal,
        request.qty_or_percent,
        [f.to_domain() for f in request.files],
        remarks=request.remarks,
    )
    return respond(result, _record, status_code=201)


@router.get("/milestones/{milestone_id}/evidence")
async def list_evidence(
    project_id: uuid.UUID,
    milestone_id: uuid.UUID,
    principal: Principal = Depends(require_project_auth),
):
    found = await MilestoneService(get_session_factory()).get(milestone_id, principal)
    if not found.success:
        return respond(found)
    records = await EvidenceService(get_session_factory()).list_for_milestone(milestone_id)
    return success([_record(r) for r in records])


@router.post("/evidence/{evidence_id}/review")
async def review_evidence(
    project_id: uuid.UUID,
    evidence_id: uuid.UUID,
    request: ReviewEvidenceRequest,
    principal: Principal = Depends(require_project_auth),
):
    """Approve or reject submitted evidence. Owner or PMC, not the submitter."""
    service = EvidenceService(get_session_factory())
    result = await service.review(evidence_id, principal, request.action.upper(), request.note)
    return respond(result, EvidenceResponse.model_validate)


@router.get("/evidence/files/{file_id}")
async def download_file(
    project_id: uuid.UUID,
    file_id: uuid.UUID,
    principal: Principal = Depends(require_project_auth),
):
    stored = await EvidenceService(get_session_factory()).get_file(file_id, project_id)
    if stored is None:
        return failure(CoreError(ErrorKind.NOT_FOUND, "File not found", {"file_id": str(file_id)}))
    return Response(
        content=stored.data,
        media_type=stored.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{stored.file_name}"'},
    )
