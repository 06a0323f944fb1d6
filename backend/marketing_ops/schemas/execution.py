"""Pydantic schemas for execution-board snapshots.

The snapshot aggregates live phase, work item and drift state for one campaign
so the presentation layer never recomputes elapsed time or drift itself.
All list fields default to empty arrays (never null).
"""

from datetime import date, datetime

from pydantic import BaseModel, Field


class PhaseSnapshot(BaseModel):
    id: str = Field(..., description="Phase UUID")
    phase_number: int = Field(..., description="Order within the campaign")
    phase_name: str
    status: str = Field(..., description="pending, in_progress, completed, blocked")
    planned_duration_days: int
    planned_end_date: date | None = None
    actual_start_date: datetime | None = None
    actual_end_date: datetime | None = None
    drift_days: int = Field(0, description="Recorded drift for completed phases, projected drift while running")
    drift_type: str | None = Field(None, description="positive, negative, neutral")
    projected: bool = Field(False, description="True when drift is a live projection")


class WorkItemSnapshot(BaseModel):
    id: str = Field(..., description="Work item UUID")
    title: str
    phase_id: str | None = Field(None, description="Current phase (null = backlog)")
    status: str
    elapsed_minutes: int = Field(..., ge=0, description="Carried baseline + current session")
    elapsed_display: str = Field(..., description="Elapsed time rendered as '1h 5m'")
    delay_reason: str | None = None


class DriftEventSnapshot(BaseModel):
    phase_id: str
    phase_name: str
    drift_type: str
    drift_days: int
    planned_duration: int
    actual_duration: int
    status: str = Field(..., description="completed or in_progress")
    projected: bool
    root_cause: str | None = None
    created_at: datetime | None = None


class OperationalHealthSnapshot(BaseModel):
    score: float = Field(..., ge=0, le=100, description="Health 0-100 after drift penalty")
    progress_rate: float
    avg_drift: float
    drift_penalty: float
    completed_count: int
    in_progress_count: int
    total_phases: int


class PhaseFlowSnapshot(BaseModel):
    phase_id: str
    phase_name: str
    active_items: int
    completed_visits: int
    avg_minutes: float
    completed_last_24h: int
    is_bottleneck: bool
    bottleneck_reason: str | None = None


class TaskFlowSnapshot(BaseModel):
    score: int = Field(..., ge=0, le=100)
    status: str = Field(..., description="healthy, warning, critical")
    total_completed: int
    total_active: int
    avg_cycle_minutes: float
    throughput_per_day: int
    bottleneck_count: int
    recommendations: list[str] = Field(default_factory=list)


class ItemPhaseDriftSnapshot(BaseModel):
    phase_id: str
    phase_name: str
    planned_minutes: int
    actual_minutes: int
    drift_minutes: int
    drift_percentage: int
    status: str = Field(..., description="ahead, on_track, behind")


class ItemDriftSnapshot(BaseModel):
    work_item_id: str
    title: str
    total_planned_minutes: int
    total_actual_minutes: int
    total_drift_minutes: int
    total_drift_percentage: int
    overall_status: str = Field(..., description="ahead, on_track, behind")
    phase_drifts: list[ItemPhaseDriftSnapshot] = Field(default_factory=list)


class ExecutionSnapshot(BaseModel):
    """Full execution-board payload for one campaign at one instant."""

    campaign_id: str
    generated_at: datetime
    phases: list[PhaseSnapshot] = Field(default_factory=list)
    work_items: list[WorkItemSnapshot] = Field(default_factory=list)
    drift_events: list[DriftEventSnapshot] = Field(default_factory=list)
    operational_health: OperationalHealthSnapshot
    phase_flow: list[PhaseFlowSnapshot] = Field(default_factory=list)
    task_flow: TaskFlowSnapshot
    item_drifts: list[ItemDriftSnapshot] = Field(default_factory=list, description="Only items with a planned timeline")
