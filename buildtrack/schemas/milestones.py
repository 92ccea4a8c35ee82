"""Milestone Pydantic schemas for API requests and responses."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class CreateMilestoneRequest(BaseModel):
    title: str
    value: float = 0.0
    boq_id: uuid.UUID | None = None
    is_extra: bool = False
    description: str | None = None


class LinkBOQItemRequest(BaseModel):
    item_id: uuid.UUID
    planned_qty: float


class BOQLinkResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    boq_item_id: uuid.UUID
    planned_qty: float


class TransitionRequest(BaseModel):
    to_state: str
    reason: str | None = None
    expected_version: int | None = None


class MilestoneResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    boq_id: uuid.UUID | None = None
    title: str
    description: str | None = None
    value: float
    state: str
    version: int
    is_extra: bool
    extra_approved_at: datetime | None = None
    extra_approved_by_id: uuid.UUID | None = None
    actual_start: datetime | None = None
    actual_submission: datetime | None = None
    actual_verification: datetime | None = None
    created_at: datetime


class MilestoneDetailResponse(MilestoneResponse):
    links: list[BOQLinkResponse] = []
    valid_next_states: list[str] = []


class EligibilityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    eligible: bool
    reason: str
    eligible_amount: float


class TransitionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    state: str
    previous_state: str
    version: int
    eligibility: EligibilityResponse


class ExtraApprovalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    extra_approved_at: datetime
    extra_approved_by_id: uuid.UUID
    eligibility: EligibilityResponse


class TransitionHistoryItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    from_state: str
    to_state: str
    actor_id: uuid.UUID
    role: str
    reason: str | None = None
    created_at: datetime


class PaymentEligibilityResponse(EligibilityResponse):
    milestone_id: uuid.UUID
    inputs: dict[str, Any]
    last_calculated_at: datetime | None = None


class ProjectEligibilityItem(PaymentEligibilityResponse):
    title: str
    state: str
