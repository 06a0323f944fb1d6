"""Schedule drift for completed and in-flight phases.

Pure domain functions. Completed-phase drift is written onto the phase by
complete_phase(); projected drift for in-progress phases is a derived view that
is recomputed from (phase, now) on every read and never written back.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from marketing_ops.core.exceptions import InvariantViolationError, PhaseNotStartedError
from marketing_ops.domain.ledger import PhaseHistoryEntry, session_minutes
from marketing_ops.domain.phases import (
    DriftType,
    Phase,
    PhaseStatus,
    WorkItem,
    as_utc,
    classify_drift,
    elapsed_days_ceil,
    utc_now,
)

# Drift penalty on operational health: 5 points per average drift day, capped at 30
DRIFT_PENALTY_PER_DAY = 5
DRIFT_PENALTY_CAP = 30

# Bottleneck heuristics for per-phase task flow
BOTTLENECK_WIP_LIMIT = 5
ITEM_DRIFT_BAND_PCT = 10


@dataclass
class DriftEvent:
    """Per-phase drift record. Only completed (non-projected) events are persisted."""

    phase_id: str
    phase_name: str
    drift_type: str
    drift_days: int
    planned_duration: int
    actual_duration: int
    status: str  # "completed" | "in_progress"
    projected: bool
    root_cause: str | None = None
    attribution: str | None = None
    created_at: datetime | None = None


@dataclass
class ProjectedDrift:
    phase_id: str
    elapsed_days: int
    projected_drift_days: int
    drift_type: DriftType


@dataclass
class OperationalHealth:
    score: float
    progress_rate: float
    avg_drift: float
    drift_penalty: float
    completed_count: int
    in_progress_count: int
    total_phases: int


def start_phase(phase: Phase, now: datetime | None = None) -> Phase:
    """Mark a phase in progress and stamp its actual start date (first start only)."""
    if now is None:
        now = utc_now()
    if phase.status == PhaseStatus.COMPLETED:
        raise InvariantViolationError(f"Phase '{phase.id}' is already completed")

    phase.status = PhaseStatus.IN_PROGRESS
    if phase.actual_start_date is None:
        phase.actual_start_date = now
    return phase


def complete_phase(phase: Phase, now: datetime | None = None) -> Phase:
    """Close a phase and record its drift.

    Pure function over the given phase object -- mutates only the phase.

    Raises:
        PhaseNotStartedError: actual_start_date was never set
        InvariantViolationError: the phase is already completed

    Rules:
        - actual_duration_days = ceil((now - actual_start_date) / 1 day)
        - drift_days = actual_duration_days - planned_duration_days
        - drift_type by the +/-1 day neutral band
    """
    if now is None:
        now = utc_now()
    if phase.status == PhaseStatus.COMPLETED:
        raise InvariantViolationError(f"Phase '{phase.id}' is already completed")
    if phase.actual_start_date is None:
        raise PhaseNotStartedError(phase.id)

    actual_days = elapsed_days_ceil(phase.actual_start_date, now)
    drift_days = actual_days - phase.planned_duration_days

    phase.actual_end_date = now
    phase.actual_duration_days = actual_days
    phase.drift_days = drift_days
    phase.drift_type = classify_drift(drift_days).value
    phase.status = PhaseStatus.COMPLETED
    return phase


def projected_drift(phase: Phase, now: datetime | None = None) -> ProjectedDrift | None:
    """Live drift estimate for an in-progress phase; None for any other phase.

    Never mutates the phase. Safe to call from any number of readers.
    """
    if now is None:
        now = utc_now()
    if phase.status != PhaseStatus.IN_PROGRESS or phase.actual_start_date is None:
        return None

    elapsed = elapsed_days_ceil(phase.actual_start_date, now)
    drift_days = elapsed - phase.planned_duration_days
    return ProjectedDrift(
        phase_id=phase.id,
        elapsed_days=elapsed,
        projected_drift_days=drift_days,
        drift_type=classify_drift(drift_days),
    )


def _delay_reasons(phase: Phase, work_items: list[WorkItem]) -> str | None:
    reasons: list[str] = []
    for item in work_items:
        in_phase = item.phase_id == phase.id or phase.id in (item.completed_phases or [])
        if in_phase and item.delay_reason and item.delay_reason not in reasons:
            reasons.append(item.delay_reason)
    return "; ".join(reasons) or None


def build_drift_event(
    phase: Phase,
    work_items: list[WorkItem],
    now: datetime | None = None,
    attribution: str | None = None,
) -> DriftEvent:
    """Aggregate a phase into a drift event.

    Completed phases yield a persisted-style event from the recorded drift.
    In-progress phases yield a projected event computed from `now`.
    The phase's own drift_reason wins; otherwise the delay reasons of the
    work items that sat in the phase are used as root cause.

    Raises:
        InvariantViolationError: the phase is neither completed nor running
    """
    if now is None:
        now = utc_now()

    root_cause = phase.drift_reason or _delay_reasons(phase, work_items)

    if phase.status == PhaseStatus.COMPLETED and phase.actual_duration_days is not None:
        return DriftEvent(
            phase_id=phase.id,
            phase_name=phase.phase_name,
            drift_type=phase.drift_type or classify_drift(phase.drift_days).value,
            drift_days=phase.drift_days,
            planned_duration=phase.planned_duration_days,
            actual_duration=phase.actual_duration_days,
            status="completed",
            projected=False,
            root_cause=root_cause,
            attribution=attribution,
            created_at=phase.actual_end_date or now,
        )

    projection = projected_drift(phase, now)
    if projection is None:
        raise InvariantViolationError(f"Phase '{phase.id}' has no drift: it is {phase.status}")

    return DriftEvent(
        phase_id=phase.id,
        phase_name=phase.phase_name,
        drift_type=projection.drift_type.value,
        drift_days=projection.projected_drift_days,
        planned_duration=phase.planned_duration_days,
        actual_duration=projection.elapsed_days,
        status="in_progress",
        projected=True,
        root_cause=root_cause,
        attribution=attribution,
        created_at=now,
    )


def build_projected_drift_events(
    phases: list[Phase],
    work_items: list[WorkItem],
    now: datetime | None = None,
) -> list[DriftEvent]:
    """Projected events for every running phase, ordered by phase_number."""
    if now is None:
        now = utc_now()
    running = [
        p for p in sorted(phases, key=lambda p: p.phase_number)
        if p.status == PhaseStatus.IN_PROGRESS and p.actual_start_date is not None
    ]
    return [build_drift_event(p, work_items, now) for p in running]


def compute_operational_health(phases: list[Phase], now: datetime | None = None) -> OperationalHealth:
    """Operational health heuristic (0-100) from phase progress and drift.

    Only in-progress phases that are already overdue add to the drift penalty;
    a phase that is merely running costs nothing. The penalty is capped.
    """
    if now is None:
        now = utc_now()

    total = len(phases)
    completed = [p for p in phases if p.status == PhaseStatus.COMPLETED]
    running = [p for p in phases if p.status == PhaseStatus.IN_PROGRESS]

    if total == 0:
        return OperationalHealth(0.0, 0.0, 0.0, 0.0, 0, 0, 0)

    progress_rate = (len(completed) + 0.5 * len(running)) / total * 100

    drift_sum = float(sum(abs(p.drift_days or 0) for p in completed))
    for phase in running:
        projection = projected_drift(phase, now)
        if projection is not None:
            drift_sum += max(0, projection.projected_drift_days)

    avg_drift = drift_sum / max(1, len(completed) + len(running))
    penalty = min(avg_drift * DRIFT_PENALTY_PER_DAY, DRIFT_PENALTY_CAP)

    return OperationalHealth(
        score=max(0.0, progress_rate - penalty),
        progress_rate=progress_rate,
        avg_drift=avg_drift,
        drift_penalty=penalty,
        completed_count=len(completed),
        in_progress_count=len(running),
        total_phases=total,
    )


# ---------------------------------------------------------------------------
# Task flow metrics (kanban board)
# ---------------------------------------------------------------------------


@dataclass
class PhaseFlowMetrics:
    phase_id: str
    phase_name: str
    planned_duration_days: int
    completed_visits: int
    active_items: int
    avg_minutes: float
    min_minutes: int
    max_minutes: int
    completed_last_24h: int
    is_bottleneck: bool
    bottleneck_reason: str | None = None


@dataclass
class TaskFlowHealth:
    score: int
    status: str  # healthy | warning | critical
    total_completed: int
    total_active: int
    avg_cycle_minutes: float
    throughput_per_day: int
    bottleneck_count: int
    recommendations: list[str] = field(default_factory=list)


def calculate_phase_flow_metrics(
    phase: Phase,
    closed_history: list[PhaseHistoryEntry],
    active_items: list[WorkItem],
    now: datetime | None = None,
) -> PhaseFlowMetrics:
    """Throughput and dwell-time statistics for one phase."""
    if now is None:
        now = utc_now()

    spent = [h.time_spent_minutes for h in closed_history if h.time_spent_minutes is not None]
    avg = sum(spent) / len(spent) if spent else 0.0

    day_ago = as_utc(now) - timedelta(days=1)
    recent = [h for h in closed_history if h.exited_at is not None and as_utc(h.exited_at) >= day_ago]

    reason = None
    if len(active_items) > BOTTLENECK_WIP_LIMIT:
        reason = f"High WIP: {len(active_items)} items"
    elif avg > phase.planned_duration_days * 24 * 60:
        reason = "Slow processing"

    return PhaseFlowMetrics(
        phase_id=phase.id,
        phase_name=phase.phase_name,
        planned_duration_days=phase.planned_duration_days,
        completed_visits=len(closed_history),
        active_items=len(active_items),
        avg_minutes=avg,
        min_minutes=min(spent) if spent else 0,
        max_minutes=max(spent) if spent else 0,
        completed_last_24h=len(recent),
        is_bottleneck=reason is not None,
        bottleneck_reason=reason,
    )


def calculate_task_flow_health(metrics: list[PhaseFlowMetrics], total_items: int) -> TaskFlowHealth:
    """Board-level health from per-phase flow metrics."""
    total_completed = sum(m.completed_visits for m in metrics)
    total_active = sum(m.active_items for m in metrics)
    bottlenecks = sum(1 for m in metrics if m.is_bottleneck)
    throughput = sum(m.completed_last_24h for m in metrics)

    averages = [m.avg_minutes for m in metrics if m.avg_minutes > 0]
    avg_cycle = sum(averages) / len(averages) if averages else 0.0

    overloaded = total_active > total_items * 0.5
    score = 100 - bottlenecks * 15
    if overloaded:
        score -= 20
    if throughput < 1:
        score -= 10
    score = max(0, min(100, score))

    if score >= 70:
        status = "healthy"
    elif score >= 40:
        status = "warning"
    else:
        status = "critical"

    recommendations = []
    if bottlenecks:
        recommendations.append(f"Address {bottlenecks} bottleneck phase(s)")
    if overloaded:
        recommendations.append("Reduce work in progress")

    return TaskFlowHealth(
        score=score,
        status=status,
        total_completed=total_completed,
        total_active=total_active,
        avg_cycle_minutes=avg_cycle,
        throughput_per_day=throughput,
        bottleneck_count=bottlenecks,
        recommendations=recommendations,
    )


# ---------------------------------------------------------------------------
# Per-item planned vs actual drift
# ---------------------------------------------------------------------------


@dataclass
class ItemPhaseDrift:
    phase_id: str
    phase_name: str
    phase_number: int
    planned_minutes: int
    actual_minutes: int
    drift_minutes: int
    drift_percentage: int
    status: str  # ahead | on_track | behind


@dataclass
class ItemDriftAnalysis:
    work_item_id: str
    title: str
    total_planned_minutes: int
    total_actual_minutes: int
    total_drift_minutes: int
    total_drift_percentage: int
    overall_status: str
    phase_drifts: list[ItemPhaseDrift]
    current_phase_id: str | None
    completed_phases_count: int
    total_phases_count: int


def _drift_band(drift_pct: int) -> str:
    if drift_pct < -ITEM_DRIFT_BAND_PCT:
        return "ahead"
    if drift_pct > ITEM_DRIFT_BAND_PCT:
        return "behind"
    return "on_track"


def _pct(drift: int, planned: int) -> int:
    return round(drift / planned * 100) if planned > 0 else 0


def calculate_item_drift(
    item: WorkItem,
    history: list[PhaseHistoryEntry],
    now: datetime | None = None,
) -> ItemDriftAnalysis | None:
    """Planned vs actual minutes per phase for one work item.

    Actual minutes are closed visits plus the running session when the item
    currently sits in the phase. Returns None without a planned timeline.
    """
    if not item.planned_timeline:
        return None
    if now is None:
        now = utc_now()

    own_history = [h for h in history if h.work_item_id == item.id]
    ordered = sorted(item.planned_timeline.items(), key=lambda kv: kv[1]["phase_number"])

    phase_drifts = []
    for phase_id, info in ordered:
        planned = int(info["planned_minutes"])
        actual = sum(h.time_spent_minutes or 0 for h in own_history if h.phase_id == phase_id and h.is_closed)
        if item.phase_id == phase_id:
            actual += session_minutes(item, now)

        drift = actual - planned
        pct = _pct(drift, planned)
        phase_drifts.append(
            ItemPhaseDrift(
                phase_id=phase_id,
                phase_name=info["phase_name"],
                phase_number=info["phase_number"],
                planned_minutes=planned,
                actual_minutes=actual,
                drift_minutes=drift,
                drift_percentage=pct,
                status=_drift_band(pct),
            )
        )

    total_planned = sum(d.planned_minutes for d in phase_drifts)
    total_actual = sum(d.actual_minutes for d in phase_drifts)
    total_drift = total_actual - total_planned
    total_pct = _pct(total_drift, total_planned)

    return ItemDriftAnalysis(
        work_item_id=item.id,
        title=item.title,
        total_planned_minutes=total_planned,
        total_actual_minutes=total_actual,
        total_drift_minutes=total_drift,
        total_drift_percentage=total_pct,
        overall_status=_drift_band(total_pct),
        phase_drifts=phase_drifts,
        current_phase_id=item.phase_id,
        completed_phases_count=len(item.completed_phases or []),
        total_phases_count=len(item.planned_timeline),
    )


def calculate_campaign_item_drifts(
    items: list[WorkItem],
    history: list[PhaseHistoryEntry],
    now: datetime | None = None,
) -> list[ItemDriftAnalysis]:
    analyses = (calculate_item_drift(item, history, now) for item in items)
    return [a for a in analyses if a is not None]


def format_minutes(minutes: int) -> str:
    """Render minutes as '1h 5m', '-45m', '2h'."""
    if minutes == 0:
        return "0m"
    sign = "-" if minutes < 0 else ""
    hours, mins = divmod(abs(minutes), 60)
    if hours == 0:
        return f"{sign}{mins}m"
    if mins == 0:
        return f"{sign}{hours}h"
    return f"{sign}{hours}h {mins}m"
