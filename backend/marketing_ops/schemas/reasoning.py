"""Pydantic schemas for the external reasoning service contract.

Request: one execution event with its metric changes and recent trend.
Response: narrative explanation validated before it becomes an insight.
"""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field


class ReasoningEvent(BaseModel):
    type: str = Field(..., description="Event type (delay, early_completion, phase_change, task_completion)")
    date: datetime = Field(..., description="When the event happened")
    description: str = Field(..., description="Human-readable event description")
    phase_name: str | None = Field(None, description="Phase the event belongs to")
    task_name: str | None = Field(None, description="Work item title for task events")
    drift_days: int | None = Field(None, description="Signed drift in days (positive = late)")


class ReasoningMetricChange(BaseModel):
    metric: str = Field(..., description="Metric label (Total Sales, Revenue, ...)")
    change_pct: float = Field(..., description="Signed percent change across the bracketing reports")
    previous_value: float
    current_value: float


class TrendPoint(BaseModel):
    week_starting: date
    total_sales: float = 0
    total_revenue: float = 0
    total_engagement: float = 0
    total_views: float = 0


class ReasoningRequest(BaseModel):
    """Everything the reasoning service sees about one event."""

    campaign_name: str = Field(..., description="Campaign display name")
    event: ReasoningEvent
    metric_changes: list[ReasoningMetricChange] = Field(default_factory=list)
    trend: list[TrendPoint] = Field(default_factory=list, description="Most recent weekly reports, oldest first")


class ReasoningResponse(BaseModel):
    """Validated reasoning verdict.

    Any response that does not fit this shape is rejected and the event falls
    back to the deterministic explanation.
    """

    performance_impact: Literal["positive", "negative", "neutral", "unknown"]
    correlation_strength: Literal["strong", "moderate", "weak", "none"]
    ai_analysis: str = Field(..., min_length=1, description="Narrative explanation")
    confidence: int = Field(..., ge=0, le=100, description="Confidence 0-100")
    actionable_insight: str | None = Field(None, description="One concrete recommendation")
    reason_chain: str | None = Field(None, description="Short causal chain behind the verdict")
