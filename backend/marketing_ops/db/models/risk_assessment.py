"""RiskAssessment model: snapshot of each launch-readiness scoring run."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from marketing_ops.db.base import Base, JSONType, UUIDStr


class RiskAssessment(Base):
    __tablename__ = "risk_assessments"

    id = Column(UUIDStr, primary_key=True, default=lambda: str(uuid.uuid4()))
    campaign_id = Column(UUIDStr, ForeignKey("campaigns.id"), nullable=False, index=True)

    overall_score = Column(Integer, nullable=False)
    risk_level = Column(String(20), nullable=False)  # low, medium, high, critical
    gate_recommendation = Column(String(20), nullable=False)  # proceed, adjust, pause
    factors = Column(JSONType, nullable=False, default=list)  # [{name, score, status, detail, weight}]
    mitigation_suggestions = Column(JSONType, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
