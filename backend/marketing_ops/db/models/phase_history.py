"""PhaseHistory model: append-only per-visit ledger of work items in phases."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from marketing_ops.db.base import Base, UUIDStr


class PhaseHistory(Base):
    __tablename__ = "work_item_phase_history"
    __table_args__ = (UniqueConstraint("work_item_id", "phase_id", "sequence", name="uq_phase_history_visit"),)

    id = Column(UUIDStr, primary_key=True, default=lambda: str(uuid.uuid4()))
    work_item_id = Column(UUIDStr, ForeignKey("work_items.id"), nullable=False, index=True)
    phase_id = Column(UUIDStr, ForeignKey("campaign_phases.id"), nullable=False, index=True)
    phase_name = Column(String(255), nullable=False)
    sequence = Column(Integer, nullable=False, default=1)

    entered_at = Column(DateTime(timezone=True), nullable=False)
    # Set exactly once when the visit closes; never updated afterwards
    exited_at = Column(DateTime(timezone=True), nullable=True)
    time_spent_minutes = Column(Integer, nullable=True)
    completion_timing = Column(String(20), nullable=True)  # early, on_time, late
