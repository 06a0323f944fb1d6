"""Re-export all models so Base.metadata sees them."""

from marketing_ops.db.models.campaign import Campaign
from marketing_ops.db.models.correlation_insight import CorrelationInsight
from marketing_ops.db.models.drift_event import DriftEvent
from marketing_ops.db.models.override_event import OverrideEvent
from marketing_ops.db.models.performance_report import PerformanceReport
from marketing_ops.db.models.phase import CampaignPhase
from marketing_ops.db.models.phase_history import PhaseHistory
from marketing_ops.db.models.risk_assessment import RiskAssessment
from marketing_ops.db.models.work_item import WorkItem

__all__ = [
    "Campaign",
    "CampaignPhase",
    "CorrelationInsight",
    "DriftEvent",
    "OverrideEvent",
    "PerformanceReport",
    "PhaseHistory",
    "RiskAssessment",
    "WorkItem",
]
