"""Audit log Pydantic schemas."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    actor_id: uuid.UUID
    role: str
    action_type: str
    entity_type: str
    entity_id: uuid.UUID
    before_json: Any = None
    after_json: Any = None
    reason: str | None = None
    created_at: datetime


class AuditLogPage(BaseModel):
    logs: list[AuditLogResponse]
    total: int
    limit: int
    offset: int
