"""Milestone, BOQ link and transition history models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid

from buildtrack.db.base import Base


class Milestone(Base):
    __tablename__ = "milestones"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False, index=True)
    boq_id = Column(Uuid, ForeignKey("boqs.id"), nullable=True, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    value = Column(Float, nullable=False, default=0.0)

    state = Column(String(20), nullable=False, default="DRAFT")
    version = Column(Integer, nullable=False, default=1)  # optimistic concurrency

    # Extra work outside the approved BOQ; approval is set at most once
    is_extra = Column(Boolean, nullable=False, default=False)
    extra_approved_at = Column(DateTime(timezone=True), nullable=True)
    extra_approved_by_id = Column(Uuid, ForeignKey("users.id"), nullable=True)

    actual_start = Column(DateTime(timezone=True), nullable=True)
    actual_submission = Column(DateTime(timezone=True), nullable=True)
    actual_verification = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class MilestoneBOQLink(Base):
    __tablename__ = "milestone_boq_links"
    __table_args__ = (UniqueConstraint("milestone_id", "boq_item_id", name="uq_milestone_boq_links_item"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    milestone_id = Column(Uuid, ForeignKey("milestones.id"), nullable=False, index=True)
    boq_item_id = Column(Uuid, nullable=False, index=True)  # BOQItem.item_id, not the row id
    planned_qty = Column(Float, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class MilestoneStateTransition(Base):
    """Immutable record of one milestone state change."""

    __tablename__ = "milestone_state_transitions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    milestone_id = Column(Uuid, ForeignKey("milestones.id"), nullable=False, index=True)
    from_state = Column(String(20), nullable=False)
    to_state = Column(String(20), nullable=False)
    actor_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    role = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
