"""AuditRecorder: append-only audit trail writes, filtered reads and CSV export.

Writes join the caller's session. The entry is flushed immediately so a
rejected write raises inside the caller's transaction and the mutation it
describes rolls back with it.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from buildtrack.core.config import get_settings
from buildtrack.db.models.audit_log import AuditLog
from buildtrack.db.models.user import User
from buildtrack.domain.audit import AuditCsvRow, AuditLogEntry, render_audit_csv, to_json_safe

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuditLogFilters:
    """Filters for the audit read path. Date bounds are inclusive."""

    entity_type: str | None = None
    entity_id: uuid.UUID | None = None
    actor_id: uuid.UUID | None = None
    action_type: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    limit: int | None = None
    offset: int = 0


class AuditRecorder:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(self, entry: AuditLogEntry) -> AuditLog:
        """Append one entry to the trail within the current transaction."""
        log = AuditLog(
            project_id=entry.project_id,
            actor_id=entry.actor_id,
            role=str(entry.role),
            action_type=str(entry.action_type),
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            before_json=to_json_safe(entry.before),
            after_json=to_json_safe(entry.after),
            reason=entry.reason,
        )
        self.session.add(log)
        await self.session.flush()
        logger.debug(
            "audit_recorded",
            action_type=log.action_type,
            entity_type=log.entity_type,
            entity_id=str(log.entity_id),
        )
        return log

    def _filtered(self, stmt, project_id: uuid.UUID, filters: AuditLogFilters):
        stmt = stmt.where(AuditLog.project_id == project_id)
        if filters.entity_type:
            stmt = stmt.where(AuditLog.entity_type == filters.entity_type)
        if filters.entity_id:
            stmt = stmt.where(AuditLog.entity_id == filters.entity_id)
        if filters.actor_id:
            stmt = stmt.where(AuditLog.actor_id == filters.actor_id)
        if filters.action_type:
            stmt = stmt.where(AuditLog.action_type == filters.action_type)
        if filters.start_date:
            stmt = stmt.where(AuditLog.created_at >= filters.start_date)
        if filters.end_date:
            stmt = stmt.where(AuditLog.created_at <= filters.end_date)
        return stmt

    async def query(
        self, project_id: uuid.UUID, filters: AuditLogFilters | None = None
    ) -> tuple[list[AuditLog], int]:
        """Return one page of matching entries, newest first, and the total match count.

        The page size defaults to audit_log_default_limit and is capped at
        audit_log_max_limit.
        """
        filters = filters or AuditLogFilters()
        settings = get_settings()
        limit = filters.limit if filters.limit is not None else settings.audit_log_default_limit
        limit = max(0, min(limit, settings.audit_log_max_limit))
        offset = max(0, filters.offset)

        total = await self.session.scalar(
            self._filtered(select(func.count()).select_from(AuditLog), project_id, filters)
        )

        stmt = self._filtered(select(AuditLog), project_id, filters)
        stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).offset(offset)
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total or 0

    async def export_csv(self, project_id: uuid.UUID, filters: AuditLogFilters | None = None) -> str:
        """Serialize every matching entry as CSV, oldest first. Pagination is ignored."""
        filters = filters or AuditLogFilters()
        stmt = self._filtered(
            select(AuditLog, User.name, User.email).outerjoin(User, User.id == AuditLog.actor_id),
            project_id,
            filters,
        ).order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        result = await self.session.execute(stmt)

        rows = [
            AuditCsvRow(
                created_at=log.created_at,
                actor_name=name,
                actor_email=email,
                role=log.role,
                action_type=log.action_type,
                entity_type=log.entity_type,
                entity_id=str(log.entity_id),
                before=log.before_json,
                after=log.after_json,
                reason=log.reason,
            )
            for log, name, email in result.all()
        ]
        logger.info("audit_log_exported", project_id=str(project_id), rows=len(rows))
        return render_audit_csv(rows)
