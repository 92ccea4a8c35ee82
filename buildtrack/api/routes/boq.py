"""BOQ API routes."""

import uuid

from fastapi import APIRouter, Depends, Query

from buildtrack.api.responses import respond, success
from buildtrack.core.auth import require_project_auth
from buildtrack.db.base import get_session_factory
from buildtrack.domain.roles import Principal
from buildtrack.schemas.boq import (
    BOQDetailResponse,
    BOQItemCreate,
    BOQItemPatch,
    BOQItemResponse,
    BOQResponse,
    BOQRevisionResponse,
    ReviseRequest,
    ReviseResponse,
)
from buildtrack.services.boq_service import BOQDetail, BOQService

router = APIRouter()


def _detail(detail: BOQDetail) -> BOQDetailResponse:
    return BOQDetailResponse(
        boq=BOQResponse.model_validate(detail.boq),
        revision_number=detail.revision_number,
        items=[BOQItemResponse.model_validate(i) for i in detail.items],
        revisions=[BOQRevisionResponse.model_validate(r) for r in detail.revisions],
        total_value=detail.total_value,
    )


@router.post("", status_code=201)
async def create_boq(project_id: uuid.UUID, principal: Principal = Depends(require_project_auth)):
    service = BOQService(get_session_factory())
    result = await service.create(project_id, principal)
    return respond(result, BOQResponse.model_validate, status_code=201)


@router.get("")
async def get_approved_boq(project_id: uuid.UUID, principal: Principal = Depends(require_project_auth)):
    """The project's approved BOQ, or null when none is approved yet."""
    boq = await BOQService(get_session_factory()).get_approved_for_project(project_id)
    return success(BOQResponse.model_validate(boq) if boq is not None else None)


@router.get("/{boq_id}")
async def get_boq(
    project_id: uuid.UUID,
    boq_id: uuid.UUID,
    revision: int | None = Query(default=None, ge=1),
    principal: Principal = Depends(require_project_auth),
):
    """BOQ with the items of the requested revision (default: current) and its revision history."""
    service = BOQService(get_session_factory())
    result = await service.get_with_items(boq_id, revision, principal)
    return respond(result, _detail)


@router.post("/{boq_id}/items", status_code=201)
async def add_item(
    project_id: uuid.UUID,
    boq_id: uuid.UUID,
    request: BOQItemCreate,
    principal: Principal = Depends(require_project_auth),
):
    service = BOQService(get_session_factory())
    result = await service.add_item(boq_id, request.to_domain(), principal)
    return respond(result, BOQItemResponse.model_validate, status_code=201)


@router.patch("/{boq_id}/items")
async def update_item(
    project_id: uuid.UUID,
    boq_id: uuid.UUID,
    request: BOQItemPatch,
    principal: Principal = Depends(require_project_auth),
):
    service = BOQService(get_session_factory())
    result = await service.update_item(boq_id, request.to_domain(), principal)
    return respond(result, BOQItemResponse.model_validate)


@router.delete("/{boq_id}/items/{item_id}")
async def remove_item(
    project_id: uuid.UUID,
    boq_id: uuid.UUID,
    item_id: uuid.UUID,
    principal: Principal = Depends(require_project_auth),
):
    service = BOQService(get_session_factory())
    result = await service.remove_item(boq_id, item_id, principal)
    return respond(result, lambda _: {"item_id": item_id})


@router.post("/{boq_id}/revise")
async def revise_boq(
    project_id: uuid.UUID,
    boq_id: uuid.UUID,
    request: ReviseRequest,
    principal: Principal = Depends(require_project_auth),
):
    """Create the next revision of an approved BOQ."""
    service = BOQService(get_session_factory())
    result = await service.revise(boq_id, request.reason, request.changes.to_domain(), principal)
    return respond(result, lambda data: ReviseResponse(**data))


@router.post("/{boq_id}/approve")
async def approve_boq(project_id: uuid.UUID, boq_id: uuid.UUID, principal: Principal = Depends(require_project_auth)):
    """Approve a draft BOQ. Owner only."""
    service = BOQService(get_session_factory())
    result = await service.approve(boq_id, principal)
    return respond(result, BOQResponse.model_validate)
