"""Evidence and attached file models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, LargeBinary, String, Text, Uuid

from buildtrack.db.base import Base


class Evidence(Base):
    __tablename__ = "evidence"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    milestone_id = Column(Uuid, ForeignKey("milestones.id"), nullable=False, index=True)
    submitted_by_id = Column(Uuid, ForeignKey("users.id"), nullable=False)

    qty_or_percent = Column(Float, nullable=False)
    remarks = Column(Text, nullable=True)
    frozen = Column(Boolean, nullable=False, default=True)

    status = Column(String(20), nullable=False, default="SUBMITTED")  # SUBMITTED, APPROVED, REJECTED
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    review_note = Column(Text, nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class EvidenceFile(Base):
    __tablename__ = "evidence_files"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    evidence_id = Column(Uuid, ForeignKey("evidence.id"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=False)
    size = Column(Integer, nullable=False)
    storage_key = Column(String(512), nullable=False)
    data = Column(LargeBinary, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
