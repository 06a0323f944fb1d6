"""PerformanceReport model: weekly metrics imported from the reporting feed."""

import uuid

from sqlalchemy import Column, Date, Float, ForeignKey

from marketing_ops.db.base import Base, UUIDStr


class PerformanceReport(Base):
    __tablename__ = "performance_reports"

    id = Column(UUIDStr, primary_key=True, default=lambda: str(uuid.uuid4()))
    campaign_id = Column(UUIDStr, ForeignKey("campaigns.id"), nullable=False, index=True)

    week_starting = Column(Date, nullable=False, index=True)
    total_sales = Column(Float, nullable=False, default=0)
    total_revenue = Column(Float, nullable=False, default=0)
    total_engagement = Column(Float, nullable=False, default=0)
    facebook_views = Column(Float, nullable=False, default=0)
    instagram_views = Column(Float, nullable=False, default=0)
