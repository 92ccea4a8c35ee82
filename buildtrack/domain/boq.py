"""Bill of Quantities revision planning.

Pure domain functions: validation of a change set against the current
revision and copy-forward materialization of the next revision.
No DB access; the service layer persists what these functions produce.
"""

import uuid
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, field, replace
from enum import StrEnum

from buildtrack.domain.results import CoreError, ErrorKind


class BOQStatus(StrEnum):
    """BOQ approval state. Approved BOQs change only through revisions."""

    DRAFT = "DRAFT"
    APPROVED = "APPROVED"


@dataclass(frozen=True)
class BOQItemInput:
    """A new line item."""

    description: str
    unit: str
    planned_qty: float
    rate: float


@dataclass(frozen=True)
class BOQItemUpdate:
    """Field-level update of an existing item; None fields are left unchanged."""

    item_id: uuid.UUID
    description: str | None = None
    unit: str | None = None
    planned_qty: float | None = None
    rate: float | None = None


@dataclass(frozen=True)
class BOQChanges:
    add_items: list[BOQItemInput] = field(default_factory=list)
    update_items: list[BOQItemUpdate] = field(default_factory=list)
    remove_item_ids: list[uuid.UUID] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "added": [asdict(i) for i in self.add_items],
            "updated": [{**asdict(u), "item_id": str(u.item_id)} for u in self.update_items],
            "removed": [str(i) for i in self.remove_item_ids],
        }


@dataclass(frozen=True)
class ItemSnapshot:
    """One item as it exists in a given revision."""

    item_id: uuid.UUID
    description: str
    unit: str
    planned_qty: float
    rate: float

    @property
    def planned_value(self) -> float:
        return self.planned_qty * self.rate

    def to_dict(self) -> dict:
        return {
            "item_id": str(self.item_id),
            "description": self.description,
            "unit": self.unit,
            "planned_qty": self.planned_qty,
            "rate": self.rate,
            "planned_value": self.planned_value,
        }


def summarize_revision(revision_number: int, items: Iterable[ItemSnapshot]) -> dict:
    """JSON-safe summary of a revision, stored on the revision row and in audit entries."""
    items = list(items)
    return {
        "revision_number": revision_number,
        "item_count": len(items),
        "total_value": sum(i.planned_value for i in items),
        "items": [i.to_dict() for i in items],
    }


def validate_item_input(item: BOQItemInput) -> CoreError | None:
    if not item.description or not item.description.strip():
        return CoreError(ErrorKind.INVALID_INPUT, "Item description is required")
    if not item.unit or not item.unit.strip():
        return CoreError(ErrorKind.INVALID_INPUT, "Item unit is required")
    if item.planned_qty is None or item.planned_qty <= 0:
        return CoreError(ErrorKind.INVALID_INPUT, "Planned quantity must be positive", {"planned_qty": item.planned_qty})
    if item.rate is None or item.rate <= 0:
        return CoreError(ErrorKind.INVALID_INPUT, "Rate must be positive", {"rate": item.rate})
    return None


def validate_item_update(update: BOQItemUpdate) -> CoreError | None:
    if update.description is not None and not update.description.strip():
        return CoreError(ErrorKind.INVALID_INPUT, "Item description cannot be blank")
    if update.unit is not None and not update.unit.strip():
        return CoreError(ErrorKind.INVALID_INPUT, "Item unit cannot be blank")
    if update.planned_qty is not None and update.planned_qty <= 0:
        return CoreError(ErrorKind.INVALID_INPUT, "Planned quantity must be positive", {"planned_qty": update.planned_qty})
    if update.rate is not None and update.rate <= 0:
        return CoreError(ErrorKind.INVALID_INPUT, "Rate must be positive", {"rate": update.rate})
    return None


def validate_revision(
    reason: str | None,
    changes: BOQChanges,
    current_items: Iterable[ItemSnapshot],
    items_with_history: Iterable[uuid.UUID],
) -> CoreError | None:
    """Validate a revision request in a fixed order.

    Rules (first failure wins):
        1. reason must be non-empty -> INVALID_INPUT
        2. added items need positive quantity and rate; updates must stay positive -> INVALID_INPUT
        3. updated and removed ids must exist in the current revision -> NOT_FOUND
        4. removed items must have no recorded progress or payment history -> CONFLICT
    """
    if not reason or not reason.strip():
        return CoreError(ErrorKind.INVALID_INPUT, "Revision reason is required")

    for item in changes.add_items:
        error = validate_item_input(item)
        if error is not None:
            return error
    for update in changes.update_items:
        error = validate_item_update(update)
        if error is not None:
            return error

    current_ids = {i.item_id for i in current_items}
    for update in changes.update_items:
        if update.item_id not in current_ids:
            return CoreError(ErrorKind.NOT_FOUND, "BOQ item not found in current revision", {"item_id": str(update.item_id)})
    for item_id in changes.remove_item_ids:
        if item_id not in current_ids:
            return CoreError(ErrorKind.NOT_FOUND, "BOQ item not found in current revision", {"item_id": str(item_id)})

    locked = set(items_with_history)
    for item_id in changes.remove_item_ids:
        if item_id in locked:
            return CoreError(
                ErrorKind.CONFLICT,
                "Cannot remove an item with recorded progress or payment history",
                {"item_id": str(item_id)},
            )

    return None


def plan_revision(
    current_items: Iterable[ItemSnapshot],
    changes: BOQChanges,
    new_id: Callable[[], uuid.UUID] = uuid.uuid4,
) -> list[ItemSnapshot]:
    """Materialize the next revision's item set.

    Copies forward every current item not being removed, applies field-level
    updates in place of the copied values, then appends added items under
    fresh identities. The input items are never modified.
    """
    removed = set(changes.remove_item_ids)
    updates = {u.item_id: u for u in changes.update_items}

    next_items: list[ItemSnapshot] = []
    for item in current_items:
        if item.item_id in removed:
            continue
        update = updates.get(item.item_id)
        if update is not None:
            item = replace(
                item,
                description=update.description.strip() if update.description is not None else item.description,
                unit=update.unit.strip() if update.unit is not None else item.unit,
                planned_qty=update.planned_qty if update.planned_qty is not None else item.planned_qty,
                rate=update.rate if update.rate is not None else item.rate,
            )
        next_items.append(item)

    for added in changes.add_items:
        next_items.append(
            ItemSnapshot(
                item_id=new_id(),
                description=added.description.strip(),
                unit=added.unit.strip(),
                planned_qty=added.planned_qty,
                rate=added.rate,
            )
        )

    return next_items
