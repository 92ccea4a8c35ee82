"""Milestone API routes: creation, lifecycle transitions and payment eligibility."""

import uuid

from fastapi import APIRouter, Depends

from buildtrack.api.responses import respond, success
from buildtrack.core.auth import require_project_auth
from buildtrack.db.base import get_session_factory
from buildtrack.domain.milestones import valid_next_states_for_role
from buildtrack.domain.roles import Principal
from buildtrack.schemas.milestones import (
    BOQLinkResponse,
    CreateMilestoneRequest,
    ExtraApprovalResponse,
    LinkBOQItemRequest,
    MilestoneDetailResponse,
    MilestoneResponse,
    PaymentEligibilityResponse,
    TransitionHistoryItem,
    TransitionRequest,
    TransitionResponse,
)
from buildtrack.services.milestone_service import MilestoneService
from buildtrack.services.milestone_state_machine import MilestoneStateMachine
from buildtrack.services.payment_eligibility import PaymentEligibilityEngine

router = APIRouter()


@router.post("", status_code=201)
async def create_milestone(
    project_id: uuid.UUID,
    request: CreateMilestoneRequest,
    principal: Principal = Depends(require_project_auth),
):
    service = MilestoneService(get_session_factory())
    result = await service.create(
        project_id,
        principal,
        title=request.title,
        value=request.value,
        boq_id=request.boq_id,
        is_extra=request.is_extra,
        description=request.description,
    )
    return respond(result, MilestoneResponse.model_validate, status_code=201)


@router.get("")
async def list_milestones(project_id: uuid.UUID, principal: Principal = Depends(require_project_auth)):
    milestones = await MilestoneService(get_session_factory()).list_for_project(project_id)
    return success([MilestoneResponse.model_validate(m) for m in milestones])


@router.get("/{milestone_id}")
async def get_milestone(
    project_id: uuid.UUID,
    milestone_id: uuid.UUID,
    principal: Principal = Depends(require_project_auth),
):
    """Milestone with its BOQ links and the next states the caller may move it to."""
    service = MilestoneService(get_session_factory())
    result = await service.get(milestone_id, principal)
    if not result.success:
        return respond(result)
    milestone = result.data
    links = await service.list_links(milestone_id)
    detail = MilestoneDetailResponse(
        **MilestoneResponse.model_validate(milestone).model_dump(),
        links=[BOQLinkResponse.model_validate(link) for link in links],
        valid_next_states=[str(s) for s in valid_next_states_for_role(milestone.state, principal.role)],
    )
    return success(detail)


@router.post("/{milestone_id}/boq-links", status_code=201)
async def link_boq_item(
    project_id: uuid.UUID,
    milestone_id: uuid.UUID,
    request: LinkBOQItemRequest,
    principal: Principal = Depends(require_project_auth),
):
    service = MilestoneService(get_session_factory())
    result = await service.link_boq_item(milestone_id, request.item_id, request.planned_qty, principal)
    return respond(result, BOQLinkResponse.model_validate, status_code=201)


@router.post("/{milestone_id}/transition")
async def transition_milestone(
    project_id: uuid.UUID,
    milestone_id: uuid.UUID,
    request: TransitionRequest,
    principal: Principal = Depends(require_project_auth),
):
    """Move the milestone along one lifecycle edge; returns the fresh eligibility verdict."""
    machine = MilestoneStateMachine(get_session_factory())
    result = await machine.transition(
        milestone_id,
        request.to_state,
        principal,
        reason=request.reason,
        expected_version=request.expected_version,
    )
    return respond(result, TransitionResponse.model_validate)


@router.post("/{milestone_id}/approve-extra")
async def approve_extra(
    project_id: uuid.UUID,
    milestone_id: uuid.UUID,
    principal: Principal = Depends(require_project_auth),
):
    """Approve extra work. Owner only; a repeat approval is rejected with 409."""
    machine = MilestoneStateMachine(get_session_factory())
    result = await machine.approve_extra(milestone_id, principal)
    return respond(result, ExtraApprovalResponse.model_validate)


@router.get("/{milestone_id}/transitions")
async def get_transitions(
    project_id: uuid.UUID,
    milestone_id: uuid.UUID,
    principal: Principal = Depends(require_project_auth),
):
    found = await MilestoneService(get_session_factory()).get(milestone_id, principal)
    if not found.success:
        return respond(found)
    history = await MilestoneStateMachine(get_session_factory()).get_transition_history(milestone_id)
    return success([TransitionHistoryItem.model_validate(t) for t in history])


@router.get("/{milestone_id}/payment-eligibility")
async def get_payment_eligibility(
    project_id: uuid.UUID,
    milestone_id: uuid.UUID,
    principal: Principal = Depends(require_project_auth),
):
    found = await MilestoneService(get_session_factory()).get(milestone_id, principal)
    if not found.success:
        return respond(found)
    async with get_session_factory()() as session:
        result = await PaymentEligibilityEngine(session).get_verdict(milestone_id)
    return respond(result, PaymentEligibilityResponse.model_validate)
