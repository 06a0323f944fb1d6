"""CampaignPhase model: ordered workflow stages with planned vs actual dates."""

import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text

from marketing_ops.db.base import Base, UUIDStr


class CampaignPhase(Base):
    __tablename__ = "campaign_phases"

    id = Column(UUIDStr, primary_key=True, default=lambda: str(uuid.uuid4()))
    campaign_id = Column(UUIDStr, ForeignKey("campaigns.id"), nullable=False, index=True)

    phase_number = Column(Integer, nullable=False)
    phase_name = Column(String(255), nullable=False)
    phase_type = Column(String(50), nullable=False, default="planning")  # planning, creative, launch, optimization, ...
    owner = Column(String(255), nullable=True)

    planned_start_date = Column(Date, nullable=True)
    planned_end_date = Column(Date, nullable=True)
    planned_duration_days = Column(Integer, nullable=False)

    status = Column(String(20), nullable=False, default="pending")  # pending, in_progress, completed, blocked
    actual_start_date = Column(DateTime(timezone=True), nullable=True)
    actual_end_date = Column(DateTime(timezone=True), nullable=True)
    actual_duration_days = Column(Integer, nullable=True)

    drift_days = Column(Integer, nullable=False, default=0)
    drift_type = Column(String(20), nullable=True)  # positive, negative, neutral
    drift_reason = Column(Text, nullable=True)
