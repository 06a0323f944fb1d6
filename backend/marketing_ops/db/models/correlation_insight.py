"""CorrelationInsight model: explained links between execution events and metrics."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from marketing_ops.db.base import Base, JSONType, UUIDStr


class CorrelationInsight(Base):
    __tablename__ = "correlation_insights"

    id = Column(UUIDStr, primary_key=True, default=lambda: str(uuid.uuid4()))
    campaign_id = Column(UUIDStr, ForeignKey("campaigns.id"), nullable=False, index=True)

    event_type = Column(String(30), nullable=False)  # delay, early_completion, phase_change, task_completion
    event_description = Column(Text, nullable=False)
    event_date = Column(DateTime(timezone=True), nullable=False)
    phase_name = Column(String(255), nullable=True)
    task_name = Column(String(255), nullable=True)

    metric_changes = Column(JSONType, nullable=False, default=list)
    performance_impact = Column(String(20), nullable=False)  # positive, negative, neutral, unknown
    correlation_strength = Column(String(20), nullable=False)  # strong, moderate, weak, none
    ai_analysis = Column(Text, nullable=False)
    confidence = Column(Integer, nullable=False)
    actionable_insight = Column(Text, nullable=True)
    source = Column(String(20), nullable=False, default="ai")  # ai, fallback

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
