"""OverrideEvent model: human overrides of the gate recommendation."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from marketing_ops.db.base import Base, UUIDStr


class OverrideEvent(Base):
    __tablename__ = "override_events"

    id = Column(UUIDStr, primary_key=True, default=lambda: str(uuid.uuid4()))
    campaign_id = Column(UUIDStr, ForeignKey("campaigns.id"), nullable=False, index=True)

    original_recommendation = Column(String(20), nullable=False)
    actual_action = Column(String(20), nullable=False)
    reason = Column(Text, nullable=False)
    confidence_at_decision = Column(Integer, nullable=True)
    risk_score_at_decision = Column(Integer, nullable=False)

    # Filled when the campaign result is reconciled
    outcome = Column(String(20), nullable=True)  # success, partial, failure
    override_justified = Column(Boolean, nullable=True)
    evaluated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
