"""WorkItem model: tasks and deliverables on the execution board."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from marketing_ops.db.base import Base, JSONType, UUIDStr


class WorkItem(Base):
    __tablename__ = "work_items"

    id = Column(UUIDStr, primary_key=True, default=lambda: str(uuid.uuid4()))
    campaign_id = Column(UUIDStr, ForeignKey("campaigns.id"), nullable=False, index=True)
    phase_id = Column(UUIDStr, ForeignKey("campaign_phases.id"), nullable=True, index=True)  # null = backlog

    title = Column(String(255), nullable=False, default="")
    status = Column(String(20), nullable=False, default="planned")  # planned, in_progress, completed, blocked, cancelled

    # Time in current phase = time_in_phase_minutes (carried baseline) + (now - started_at)
    started_at = Column(DateTime(timezone=True), nullable=True)
    time_in_phase_minutes = Column(Integer, nullable=False, default=0)
    completed_phases = Column(JSONType, nullable=False, default=list)  # ordered phase ids

    delay_reason = Column(Text, nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    planned_timeline = Column(JSONType, nullable=True)  # {phase_id: {phase_name, phase_number, planned_minutes}}

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
