"""DriftEvent model: drift recorded when a phase completes."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from marketing_ops.db.base import Base, UUIDStr


class DriftEvent(Base):
    __tablename__ = "drift_events"

    id = Column(UUIDStr, primary_key=True, default=lambda: str(uuid.uuid4()))
    campaign_id = Column(UUIDStr, ForeignKey("campaigns.id"), nullable=False, index=True)
    phase_id = Column(UUIDStr, ForeignKey("campaign_phases.id"), nullable=False)

    phase_name = Column(String(255), nullable=False)
    drift_type = Column(String(20), nullable=False)
    drift_days = Column(Integer, nullable=False)
    planned_duration = Column(Integer, nullable=False)
    actual_duration = Column(Integer, nullable=False)
    root_cause = Column(Text, nullable=True)
    attribution = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)
    # NO updated_at -- only completed-phase drift is persisted, projections are recomputed
