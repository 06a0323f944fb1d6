"""Phase and work item types, status enums, and drift classification.

Pure domain logic with no external dependencies. The dataclasses here share
attribute names with the SQLAlchemy rows in marketing_ops.db.models, so every
domain function accepts either.
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import StrEnum

# Drift beyond +/- this many days leaves the neutral band
DRIFT_NEUTRAL_BAND_DAYS = 1

# 8-hour workdays when converting planned days to planned minutes
WORKDAY_MINUTES = 8 * 60


class WorkItemStatus(StrEnum):
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"


class PhaseStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class DriftType(StrEnum):
    """Positive drift = ahead of plan, negative drift = behind plan."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class CompletionTiming(StrEnum):
    EARLY = "early"
    ON_TIME = "on_time"
    LATE = "late"


@dataclass
class Phase:
    """Ordered workflow stage of a campaign."""

    id: str
    campaign_id: str
    phase_number: int
    phase_name: str
    planned_duration_days: int
    planned_end_date: date | None = None
    planned_start_date: date | None = None
    phase_type: str = "planning"
    status: str = PhaseStatus.PENDING
    actual_start_date: datetime | None = None
    actual_end_date: datetime | None = None
    actual_duration_days: int | None = None
    drift_days: int = 0
    drift_type: str | None = None
    drift_reason: str | None = None
    owner: str | None = None


@dataclass
class WorkItem:
    """A deliverable/task moving across phases on the execution board."""

    id: str
    campaign_id: str
    title: str = ""
    phase_id: str | None = None
    status: str = WorkItemStatus.PLANNED
    started_at: datetime | None = None
    time_in_phase_minutes: int = 0
    completed_phases: list[str] = field(default_factory=list)
    delay_reason: str | None = None
    due_date: datetime | None = None
    completed_at: datetime | None = None
    planned_timeline: dict[str, dict] | None = None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize a timestamp to aware UTC (naive values are treated as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return as_utc(value).date()
    return value


def elapsed_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two timestamps, floored, never negative."""
    seconds = (as_utc(end) - as_utc(start)).total_seconds()
    return max(0, math.floor(seconds / 60))


def elapsed_days_ceil(start: datetime, end: datetime) -> int:
    """Calendar-agnostic day count, rounded up (a started day counts)."""
    seconds = (as_utc(end) - as_utc(start)).total_seconds()
    return math.ceil(seconds / 86_400)


def classify_drift(drift_days: int) -> DriftType:
    """Map signed drift days to a drift type.

    Pure function -- no side effects.

    Rules:
        - drift_days > 1  -> NEGATIVE (behind plan)
        - drift_days < -1 -> POSITIVE (ahead of plan)
        - otherwise       -> NEUTRAL
    """
    if drift_days > DRIFT_NEUTRAL_BAND_DAYS:
        return DriftType.NEGATIVE
    if drift_days < -DRIFT_NEUTRAL_BAND_DAYS:
        return DriftType.POSITIVE
    return DriftType.NEUTRAL


def completion_timing(exited_at: datetime, planned_end_date: date | datetime | None) -> CompletionTiming | None:
    """Compare an exit timestamp to a planned end date at day granularity.

    Always compares against the static planned end date; upstream delays do
    not roll the deadline forward. Returns None when no planned end exists.
    """
    if planned_end_date is None:
        return None

    exit_day = to_date(exited_at)
    planned_day = to_date(planned_end_date)
    if exit_day < planned_day:
        return CompletionTiming.EARLY
    if exit_day == planned_day:
        return CompletionTiming.ON_TIME
    return CompletionTiming.LATE


def planned_minutes_for(phase: Phase) -> int:
    return phase.planned_duration_days * WORKDAY_MINUTES


def build_planned_timeline(phases: list[Phase]) -> dict[str, dict]:
    """Default per-item planned timeline: each phase's planned days as workday minutes."""
    return {
        phase.id: {
            "phase_name": phase.phase_name,
            "phase_number": phase.phase_number,
            "planned_minutes": planned_minutes_for(phase),
        }
        for phase in phases
    }


def is_last_phase(phase: Phase, phases: list[Phase]) -> bool:
    """True if phase has the highest phase_number among phases."""
    if not phases:
        return False
    return phase.phase_number == max(p.phase_number for p in phases)
