"""Execution event vs performance metric correlation rules.

Pure domain functions: building the event stream, bracketing events with
weekly performance reports, classifying correlation strength, and the
deterministic explanation used whenever the reasoning service cannot answer.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from enum import StrEnum

from marketing_ops.domain.drift import DriftEvent
from marketing_ops.domain.phases import Phase, PhaseStatus, WorkItem, as_utc

# A metric moving less than this (absolute percent) is noise
SIGNIFICANCE_FLOOR_PCT = 5.0

# (min |drift days|, min max |change %|) for strong / moderate; weak needs only the change
STRONG_DRIFT_DAYS, STRONG_CHANGE_PCT = 3, 20.0
MODERATE_DRIFT_DAYS, MODERATE_CHANGE_PCT = 2, 15.0
WEAK_CHANGE_PCT = 10.0

FALLBACK_CONFIDENCE = 40
TREND_WINDOW = 4


class EventType(StrEnum):
    DELAY = "delay"
    EARLY_COMPLETION = "early_completion"
    PHASE_CHANGE = "phase_change"
    TASK_COMPLETION = "task_completion"


class CorrelationStrength(StrEnum):
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"
    NONE = "none"


class PerformanceImpact(StrEnum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    UNKNOWN = "unknown"


STRENGTH_RANK: dict[str, int] = {
    CorrelationStrength.STRONG: 3,
    CorrelationStrength.MODERATE: 2,
    CorrelationStrength.WEAK: 1,
    CorrelationStrength.NONE: 0,
}


@dataclass
class PerformanceReport:
    """Weekly performance snapshot from the external metrics feed."""

    week_starting: date
    total_sales: float = 0
    total_revenue: float = 0
    total_engagement: float = 0
    facebook_views: float = 0
    instagram_views: float = 0

    @property
    def total_views(self) -> float:
        return (self.facebook_views or 0) + (self.instagram_views or 0)


@dataclass
class ExecutionEvent:
    type: EventType
    date: datetime
    description: str
    phase_name: str | None = None
    task_name: str | None = None
    drift_days: int | None = None


@dataclass
class MetricChange:
    metric: str
    change_pct: float
    previous_value: float
    current_value: float
    source: str = "weekly_report"


@dataclass
class Explanation:
    """Narrative verdict for one event, from the reasoning service or the fallback."""

    performance_impact: PerformanceImpact
    correlation_strength: CorrelationStrength
    ai_analysis: str
    confidence: int
    actionable_insight: str | None = None
    source: str = "ai"  # "ai" | "fallback"


@dataclass
class CorrelationInsight:
    id: str
    campaign_id: str
    event_type: EventType
    event_description: str
    event_date: datetime
    metric_changes: list[MetricChange]
    performance_impact: PerformanceImpact
    correlation_strength: CorrelationStrength
    ai_analysis: str
    confidence: int
    actionable_insight: str | None = None
    phase_name: str | None = None
    task_name: str | None = None
    source: str = "ai"
    created_at: datetime | None = None


@dataclass
class CorrelationSummary:
    total_events: int
    positive_impacts: int
    negative_impacts: int
    strong_correlations: int
    key_insight: str | None = None
    insight_sources: dict[str, int] = field(default_factory=dict)


def _week_start(report: PerformanceReport) -> datetime:
    return datetime.combine(report.week_starting, time.min, tzinfo=timezone.utc)


def extract_events(
    phases: list[Phase],
    work_items: list[WorkItem],
    drift_events: list[DriftEvent],
) -> list[ExecutionEvent]:
    """Build the execution event stream, oldest first.

    Sources:
        - drift events: delay (drift > 0) or early_completion (drift < 0)
        - completed phases with an end date: phase_change
        - completed work items: task_completion, or delay when finished after due_date
    """
    events: list[ExecutionEvent] = []

    for drift in drift_events:
        if drift.drift_days == 0 or drift.created_at is None:
            continue
        late = drift.drift_days > 0
        verb = "delayed by" if late else "completed early by"
        cause = drift.root_cause or ""
        events.append(
            ExecutionEvent(
                type=EventType.DELAY if late else EventType.EARLY_COMPLETION,
                date=as_utc(drift.created_at),
                description=f"{drift.phase_name}: {verb} {abs(drift.drift_days)} days. {cause}".strip(),
                phase_name=drift.phase_name,
                drift_days=drift.drift_days,
            )
        )

    for phase in phases:
        if phase.status == PhaseStatus.COMPLETED and phase.actual_end_date is not None:
            events.append(
                ExecutionEvent(
                    type=EventType.PHASE_CHANGE,
                    date=as_utc(phase.actual_end_date),
                    description=f'Phase "{phase.phase_name}" completed',
                    phase_name=phase.phase_name,
                )
            )

    for item in work_items:
        if item.completed_at is None:
            continue
        completed_at = as_utc(item.completed_at)
        late = item.due_date is not None and completed_at > as_utc(item.due_date)
        suffix = f": {item.delay_reason}" if item.delay_reason else ""
        events.append(
            ExecutionEvent(
                type=EventType.DELAY if late else EventType.TASK_COMPLETION,
                date=completed_at,
                description=f'Task "{item.title}" {"completed late" if late else "completed"}{suffix}',
                task_name=item.title,
            )
        )

    return sorted(events, key=lambda e: e.date)


def sort_reports(reports: list[PerformanceReport]) -> list[PerformanceReport]:
    return sorted(reports, key=lambda r: r.week_starting)


def bracket_reports(
    event_date: datetime,
    reports: list[PerformanceReport],
) -> tuple[PerformanceReport, PerformanceReport] | None:
    """Pick the (before, after) report pair around an event.

    `after` is the first report whose week starts at/after the event (the last
    report when the event is newer than all of them); `before` is the report
    preceding it. None with fewer than 2 reports or when `after` is the
    first-ever report.
    """
    if len(reports) < 2:
        return None

    ordered = sort_reports(reports)
    event_at = as_utc(event_date)

    after_idx = next((i for i, r in enumerate(ordered) if _week_start(r) >= event_at), len(ordered) - 1)
    if after_idx == 0:
        return None
    return ordered[after_idx - 1], ordered[after_idx]


_TRACKED_METRICS = (
    ("Total Sales", lambda r: r.total_sales),
    ("Total Engagement", lambda r: r.total_engagement),
    ("Total Views", lambda r: r.total_views),
    ("Revenue", lambda r: r.total_revenue),
)


def find_performance_changes(event_date: datetime, reports: list[PerformanceReport]) -> list[MetricChange]:
    """Significant metric moves across the report pair bracketing the event."""
    pair = bracket_reports(event_date, reports)
    if pair is None:
        return []
    before, after = pair

    changes = []
    for label, value_of in _TRACKED_METRICS:
        previous, current = value_of(before) or 0, value_of(after) or 0
        if previous <= 0 or current <= 0:
            continue
        change_pct = (current - previous) / previous * 100
        if abs(change_pct) >= SIGNIFICANCE_FLOOR_PCT:
            changes.append(MetricChange(label, change_pct, previous, current))
    return changes


def classify_correlation_strength(drift_days: int | None, changes: list[MetricChange]) -> CorrelationStrength:
    """Coarse strength of the link between an event and the metric moves.

    Rules:
        - |drift| >= 3 and max |change| >= 20 -> STRONG
        - |drift| >= 2 and max |change| >= 15 -> MODERATE
        - max |change| >= 10                  -> WEAK
        - otherwise (or no changes)           -> NONE
    """
    if not changes:
        return CorrelationStrength.NONE

    max_change = max(abs(c.change_pct) for c in changes)
    drift = abs(drift_days or 0)

    if drift >= STRONG_DRIFT_DAYS and max_change >= STRONG_CHANGE_PCT:
        return CorrelationStrength.STRONG
    if drift >= MODERATE_DRIFT_DAYS and max_change >= MODERATE_CHANGE_PCT:
        return CorrelationStrength.MODERATE
    if max_change >= WEAK_CHANGE_PCT:
        return CorrelationStrength.WEAK
    return CorrelationStrength.NONE


def should_surface(event: ExecutionEvent, strength: CorrelationStrength) -> bool:
    """Delay events are always surfaced; anything else needs a metric signal."""
    return event.type == EventType.DELAY or strength != CorrelationStrength.NONE


def impact_from_changes(changes: list[MetricChange]) -> PerformanceImpact:
    if any(c.change_pct < -SIGNIFICANCE_FLOOR_PCT for c in changes):
        return PerformanceImpact.NEGATIVE
    if any(c.change_pct > SIGNIFICANCE_FLOOR_PCT for c in changes):
        return PerformanceImpact.POSITIVE
    return PerformanceImpact.NEUTRAL


def describe_changes(changes: list[MetricChange]) -> str:
    if not changes:
        return "No significant performance changes detected around this event."
    parts = [
        f"{c.metric} {'increased' if c.change_pct > 0 else 'decreased'} {abs(c.change_pct):.1f}%"
        for c in changes
    ]
    return f"Performance changes detected: {', '.join(parts)}."


def fallback_explanation(event: ExecutionEvent, changes: list[MetricChange]) -> Explanation:
    """Deterministic stand-in for the reasoning service."""
    return Explanation(
        performance_impact=impact_from_changes(changes),
        correlation_strength=classify_correlation_strength(event.drift_days, changes),
        ai_analysis=f"{event.description.rstrip('.')}. {describe_changes(changes)}",
        confidence=FALLBACK_CONFIDENCE,
        actionable_insight=None,
        source="fallback",
    )


def trailing_trend(reports: list[PerformanceReport], window: int = TREND_WINDOW) -> list[PerformanceReport]:
    return sort_reports(reports)[-window:]


def sort_insights(insights: list[CorrelationInsight]) -> list[CorrelationInsight]:
    """Highest confidence first; ties broken by strength (strong > moderate > weak > none)."""
    return sorted(
        insights,
        key=lambda i: (-i.confidence, -STRENGTH_RANK[i.correlation_strength]),
    )


def summarize_correlations(insights: list[CorrelationInsight]) -> CorrelationSummary:
    """Campaign-level rollup; key insight is the highest-confidence strong insight."""
    strong = [i for i in insights if i.correlation_strength == CorrelationStrength.STRONG]
    key = max(strong, key=lambda i: i.confidence, default=None)

    sources: dict[str, int] = {}
    for insight in insights:
        sources[insight.source] = sources.get(insight.source, 0) + 1

    return CorrelationSummary(
        total_events=len(insights),
        positive_impacts=sum(1 for i in insights if i.performance_impact == PerformanceImpact.POSITIVE),
        negative_impacts=sum(1 for i in insights if i.performance_impact == PerformanceImpact.NEGATIVE),
        strong_correlations=len(strong),
        key_insight=key.ai_analysis if key is not None else None,
        insight_sources=sources,
    )
