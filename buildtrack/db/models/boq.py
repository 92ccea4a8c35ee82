"""BOQ models: the bill of quantities, its revision records and revision-scoped items.

Items are stored once per revision. A revision's rows are written when the
revision is materialized and never modified once a newer revision exists.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid

from buildtrack.db.base import Base, JSONType


class BOQ(Base):
    __tablename__ = "boqs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="DRAFT")  # DRAFT, APPROVED
    revision_number = Column(Integer, nullable=False, default=1)

    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_by_id = Column(Uuid, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class BOQRevision(Base):
    __tablename__ = "boq_revisions"
    __table_args__ = (UniqueConstraint("boq_id", "revision_number", name="uq_boq_revisions_boq_revision"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    boq_id = Column(Uuid, ForeignKey("boqs.id"), nullable=False, index=True)
    revision_number = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)  # null for revision 1
    summary = Column(JSONType, nullable=False, default=dict)
    created_by_id = Column(Uuid, ForeignKey("users.id"), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class BOQItem(Base):
    __tablename__ = "boq_items"
    __table_args__ = (UniqueConstraint("boq_id", "revision_number", "item_id", name="uq_boq_items_revision_item"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    boq_id = Column(Uuid, ForeignKey("boqs.id"), nullable=False, index=True)
    revision_number = Column(Integer, nullable=False, index=True)
    item_id = Column(Uuid, nullable=False, index=True)  # stable across revisions
    position = Column(Integer, nullable=False, default=0)

    description = Column(Text, nullable=False)
    unit = Column(String(50), nullable=False)
    planned_qty = Column(Float, nullable=False)
    rate = Column(Float, nullable=False)
    planned_value = Column(Float, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
