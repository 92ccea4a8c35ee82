"""Audit trail vocabulary and CSV rendering.

Pure functions only; the AuditRecorder service owns persistence.
"""

import csv
import io
import json
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any


class AuditAction(StrEnum):
    """Action types recorded in the audit trail."""

    PROJECT_CREATE = "PROJECT_CREATE"
    ROLE_ASSIGN = "ROLE_ASSIGN"

    BOQ_CREATE = "BOQ_CREATE"
    BOQ_APPROVE = "BOQ_APPROVE"
    BOQ_REVISE = "BOQ_REVISE"
    BOQ_ITEM_ADD = "BOQ_ITEM_ADD"
    BOQ_ITEM_UPDATE = "BOQ_ITEM_UPDATE"
    BOQ_ITEM_REMOVE = "BOQ_ITEM_REMOVE"

    MILESTONE_CREATE = "MILESTONE_CREATE"
    MILESTONE_BOQ_LINK = "MILESTONE_BOQ_LINK"
    MILESTONE_STATE_TRANSITION = "MILESTONE_STATE_TRANSITION"
    MILESTONE_EXTRA_APPROVE = "MILESTONE_EXTRA_APPROVE"

    EVIDENCE_SUBMIT = "EVIDENCE_SUBMIT"
    EVIDENCE_APPROVE = "EVIDENCE_APPROVE"
    EVIDENCE_REJECT = "EVIDENCE_REJECT"

    ELIGIBILITY_RECALCULATED = "ELIGIBILITY_RECALCULATED"


@dataclass(frozen=True)
class AuditLogEntry:
    """An immutable before/after change record."""

    project_id: uuid.UUID
    actor_id: uuid.UUID
    role: str
    action_type: str
    entity_type: str
    entity_id: uuid.UUID
    before: Any = None
    after: Any = None
    reason: str | None = None


CSV_COLUMNS = [
    "Timestamp",
    "Actor Name",
    "Actor Email",
    "Role",
    "Action Type",
    "Entity Type",
    "Entity ID",
    "Before",
    "After",
    "Reason",
]


@dataclass(frozen=True)
class AuditCsvRow:
    created_at: datetime
    actor_name: str | None
    actor_email: str | None
    role: str
    action_type: str
    entity_type: str
    entity_id: str
    before: Any
    after: Any
    reason: str | None


def to_json_safe(value: Any) -> Any:
    """Round-trip through JSON so snapshots store only JSON types (UUIDs, datetimes become strings)."""
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


def _json_cell(value: Any) -> str:
    if value is None:
        return ""
    return json.dumps(value, sort_keys=True, default=str)


def render_audit_csv(rows: list[AuditCsvRow]) -> str:
    """Render audit rows as CSV with a fixed column order.

    Every cell is quoted; embedded quotes are doubled and commas and newlines
    are preserved inside the quoted cell.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for row in rows:
        writer.writerow([
            row.created_at.isoformat(),
            row.actor_name or "",
            row.actor_email or "",
            row.role,
            row.action_type,
            row.entity_type,
            row.entity_id,
            _json_cell(row.before),
            _json_cell(row.after),
            row.reason or "",
        ])
    return buffer.getvalue()
