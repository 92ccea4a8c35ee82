"""BOQ Pydantic schemas for API requests and responses.

Request models only check shape; business validation (positive quantities,
non-empty reason) happens in the domain so errors keep their ordering.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from buildtrack.domain.boq import BOQChanges, BOQItemInput, BOQItemUpdate


class BOQItemCreate(BaseModel):
    description: str
    unit: str
    planned_qty: float
    rate: float

    def to_domain(self) -> BOQItemInput:
        return BOQItemInput(
            description=self.description,
            unit=self.unit,
            planned_qty=self.planned_qty,
            rate=self.rate,
        )


class BOQItemPatch(BaseModel):
    item_id: uuid.UUID
    description: str | None = None
    unit: str | None = None
    planned_qty: float | None = None
    rate: float | None = None

    def to_domain(self) -> BOQItemUpdate:
        return BOQItemUpdate(
            item_id=self.item_id,
            description=self.description,
            unit=self.unit,
            planned_qty=self.planned_qty,
            rate=self.rate,
        )


class RevisionChanges(BaseModel):
    add_items: list[BOQItemCreate] = []
    update_items: list[BOQItemPatch] = []
    remove_item_ids: list[uuid.UUID] = []

    def to_domain(self) -> BOQChanges:
        return BOQChanges(
            add_items=[i.to_domain() for i in self.add_items],
            update_items=[u.to_domain() for u in self.update_items],
            remove_item_ids=list(self.remove_item_ids),
        )


class ReviseRequest(BaseModel):
    reason: str | None = None
    changes: RevisionChanges = Field(default_factory=RevisionChanges)


class ReviseResponse(BaseModel):
    revision_number: int


class BOQItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    item_id: uuid.UUID
    revision_number: int
    description: str
    unit: str
    planned_qty: float
    rate: float
    planned_value: float


class BOQRevisionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    revision_number: int
    reason: str | None = None
    created_by_id: uuid.UUID
    created_at: datetime
    summary: dict[str, Any] = {}


class BOQResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    status: str
    revision_number: int
    approved_at: datetime | None = None
    approved_by_id: uuid.UUID | None = None
    created_at: datetime


class BOQDetailResponse(BaseModel):
    boq: BOQResponse
    revision_number: int
    items: list[BOQItemResponse]
    revisions: list[BOQRevisionResponse]
    total_value: float
