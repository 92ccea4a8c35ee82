"""PaymentEligibility model: persisted verdict, one row per milestone.

Written only by PaymentEligibilityEngine.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, String, Uuid

from buildtrack.db.base import Base, JSONType


class PaymentEligibility(Base):
    __tablename__ = "payment_eligibility"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    milestone_id = Column(Uuid, ForeignKey("milestones.id"), nullable=False, unique=True, index=True)

    eligible = Column(Boolean, nullable=False, default=False)
    reason = Column(String(255), nullable=False)
    eligible_amount = Column(Float, nullable=False, default=0.0)
    inputs = Column(JSONType, nullable=False, default=dict)

    last_calculated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
