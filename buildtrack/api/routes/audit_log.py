"""Audit log API routes: filtered, paginated reads and CSV export."""

import uuid
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Query, Response

from buildtrack.api.responses import success
from buildtrack.core.auth import require_project_auth
from buildtrack.core.config import get_settings
from buildtrack.db.base import get_session_factory
from buildtrack.domain.roles import AUDIT_EXPORTERS, Principal, require_role
from buildtrack.schemas.audit import AuditLogPage, AuditLogResponse
from buildtrack.services.audit_recorder import AuditLogFilters, AuditRecorder

router = APIRouter()


def get_audit_filters(
    entity_type: str | None = None,
    entity_id: uuid.UUID | None = None,
    actor_id: uuid.UUID | None = None,
    action_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int | None = Query(default=None, ge=0),
    offset: int = Query(default=0, ge=0),
) -> AuditLogFilters:
    """Query-string filters. Naive datetimes are taken as UTC."""

    def _utc(value: datetime | None) -> datetime | None:
        if value is None or value.tzinfo is not None:
            return value
        return value.replace(tzinfo=UTC)

    return AuditLogFilters(
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        action_type=action_type,
        start_date=_utc(start_date),
        end_date=_utc(end_date),
        limit=limit,
        offset=offset,
    )


@router.get("")
async def get_audit_log(
    project_id: uuid.UUID,
    filters: AuditLogFilters = Depends(get_audit_filters),
    principal: Principal = Depends(require_project_auth),
):
    async with get_session_factory()() as session:
        logs, total = await AuditRecorder(session).query(project_id, filters)

    settings = get_settings()
    limit = filters.limit if filters.limit is not None else settings.audit_log_default_limit
    page = AuditLogPage(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=total,
        limit=min(limit, settings.audit_log_max_limit),
        offset=filters.offset,
    )
    return success(page)


@router.get("/export")
async def export_audit_log(
    project_id: uuid.UUID,
    filters: AuditLogFilters = Depends(get_audit_filters),
    principal: Principal = Depends(require_project_auth),
):
    """CSV export of the filtered trail. Owner or PMC only."""
    require_role(principal, AUDIT_EXPORTERS)

    async with get_session_factory()() as session:
        csv_text = await AuditRecorder(session).export_csv(project_id, filters)

    filename = f"audit-log-{project_id}-{datetime.now(UTC).strftime('%Y%m%d')}.csv"
    return Response(
        content=csv_text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
