"""Campaign model: the unit every phase, work item and insight belongs to."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, Float, Integer, String, Text

from marketing_ops.db.base import Base, JSONType, UUIDStr


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(UUIDStr, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    campaign_type = Column(String(50), nullable=True)  # new_product_launch, seasonal_promo, lead_gen, ...

    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    total_budget = Column(Float, nullable=True)

    creative_strategy = Column(JSONType, nullable=True)  # format, theme, message, cta, testing_plan
    constraints = Column(JSONType, nullable=True)  # historical_ctr / historical_cpa / historical_roas
    team = Column(JSONType, nullable=False, default=list)  # [{"name": ..., "utilization": 0-100}]

    # Gate
    risk_score = Column(Integer, nullable=True)
    gate_decision = Column(String(20), nullable=True)  # proceed, adjust, pause
    gate_overridden = Column(Boolean, nullable=False, default=False)
    override_reason = Column(Text, nullable=True)

    # Execution rollup, refreshed on every phase completion
    operational_health = Column(Float, nullable=True)
    drift_count = Column(Integer, nullable=False, default=0)
    positive_drift_count = Column(Integer, nullable=False, default=0)
    negative_drift_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
