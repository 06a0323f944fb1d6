"""Phase time ledger: append-only entry/exit log for work items.

Tracks how long a work item dwells in each phase, including carry-over when an
item returns to a phase it already visited. No DB access, injectable `now`.

The log is keyed by (work_item_id, phase_id, sequence). An entry is opened when
an item enters a phase and closed exactly once when it leaves; closed entries
are never touched again, only folded over to compute carry-over.
"""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime

from marketing_ops.core.exceptions import CrossCampaignMoveError, InvariantViolationError
from marketing_ops.domain.phases import (
    Phase,
    WorkItem,
    WorkItemStatus,
    as_utc,
    completion_timing,
    elapsed_minutes,
    is_last_phase,
    utc_now,
)


@dataclass(frozen=True)
class PhaseHistoryEntry:
    """One visit of a work item to a phase."""

    id: str
    work_item_id: str
    phase_id: str
    phase_name: str
    sequence: int
    entered_at: datetime
    exited_at: datetime | None = None
    time_spent_minutes: int | None = None
    completion_timing: str | None = None

    @property
    def is_closed(self) -> bool:
        return self.exited_at is not None


@dataclass
class MoveResult:
    """Everything a single move changed, for the caller to persist in one write."""

    work_item_id: str
    from_phase_id: str | None
    to_phase_id: str | None
    moved: bool
    closed_entry: PhaseHistoryEntry | None = None
    opened_entry: PhaseHistoryEntry | None = None
    carry_over_minutes: int = 0
    restarted: bool = False


def session_minutes(item: WorkItem, now: datetime) -> int:
    """Minutes since the item's current started_at; 0 for legacy items without one."""
    if item.started_at is None:
        return 0
    return elapsed_minutes(item.started_at, now)


def live_elapsed_minutes(item: WorkItem, now: datetime | None = None) -> int:
    """Display value for time in the current phase: baseline + current session.

    Completed or cancelled items show their stored baseline only.
    """
    if now is None:
        now = utc_now()

    baseline = item.time_in_phase_minutes or 0
    if item.started_at is None:
        return baseline
    if item.status in (WorkItemStatus.COMPLETED, WorkItemStatus.CANCELLED):
        return baseline
    return baseline + session_minutes(item, now)


class PhaseTimeLedger:
    """Append-only phase history for the work items of one campaign.

    Public API:
        enter_phase(item, phase, now) -> PhaseHistoryEntry
        exit_phase(item, now, phase) -> PhaseHistoryEntry | None
        move_item(item, from_phase, to_phase, restart=...) -> MoveResult
        carry_over_minutes(work_item_id, phase_id) -> int
    """

    def __init__(self, entries: Iterable[PhaseHistoryEntry] = ()):
        self._entries: list[PhaseHistoryEntry] = list(entries)

    @property
    def entries(self) -> tuple[PhaseHistoryEntry, ...]:
        return tuple(self._entries)

    def entries_for(self, work_item_id: str) -> list[PhaseHistoryEntry]:
        return [e for e in self._entries if e.work_item_id == work_item_id]

    def open_entry(self, work_item_id: str) -> PhaseHistoryEntry | None:
        """Most recent open entry for the item, if any."""
        open_entries = [e for e in self.entries_for(work_item_id) if not e.is_closed]
        if not open_entries:
            return None
        return max(open_entries, key=lambda e: as_utc(e.entered_at))

    def closed_entries(self, work_item_id: str, phase_id: str) -> list[PhaseHistoryEntry]:
        return [
            e
            for e in self._entries
            if e.work_item_id == work_item_id and e.phase_id == phase_id and e.is_closed
        ]

    def carry_over_minutes(self, work_item_id: str, phase_id: str) -> int:
        """Sum of time spent across all closed visits of (item, phase)."""
        return sum(e.time_spent_minutes or 0 for e in self.closed_entries(work_item_id, phase_id))

    def _next_sequence(self, work_item_id: str, phase_id: str) -> int:
        visits = [e.sequence for e in self._entries if e.work_item_id == work_item_id and e.phase_id == phase_id]
        return max(visits, default=0) + 1

    def enter_phase(self, item: WorkItem, phase: Phase, now: datetime | None = None) -> PhaseHistoryEntry:
        """Open a new history entry for item in phase and restart its session clock."""
        if now is None:
            now = utc_now()

        entry = PhaseHistoryEntry(
            id=str(uuid.uuid4()),
            work_item_id=item.id,
            phase_id=phase.id,
            phase_name=phase.phase_name,
            sequence=self._next_sequence(item.id, phase.id),
            entered_at=now,
        )
        self._entries.append(entry)
        item.started_at = now
        return entry

    def exit_phase(
        self,
        item: WorkItem,
        now: datetime | None = None,
        phase: Phase | None = None,
    ) -> PhaseHistoryEntry | None:
        """Close the item's open entry with the current session's minutes only.

        The stored time_in_phase_minutes baseline is never added here; that
        would count carried-over minutes a second time.

        Legacy items that sit in a phase without an open entry get a closed
        entry synthesized from started_at (or now), so later carry-over still
        sees the visit. Returns None when there is nothing to close.
        """
        if now is None:
            now = utc_now()

        spent = session_minutes(item, now)
        timing = completion_timing(now, phase.planned_end_date) if phase is not None else None
        timing_value = timing.value if timing is not None else None

        current = self.open_entry(item.id)
        if current is None:
            if phase is None:
                return None
            closed = PhaseHistoryEntry(
                id=str(uuid.uuid4()),
                work_item_id=item.id,
                phase_id=phase.id,
                phase_name=phase.phase_name,
                sequence=self._next_sequence(item.id, phase.id),
                entered_at=item.started_at or now,
                exited_at=now,
                time_spent_minutes=spent,
                completion_timing=timing_value,
            )
            self._entries.append(closed)
            return closed

        closed = replace(current, exited_at=now, time_spent_minutes=spent, completion_timing=timing_value)
        self._entries[self._entries.index(current)] = closed
        return closed

    def move_item(
        self,
        item: WorkItem,
        from_phase: Phase | None,
        to_phase: Phase | None,
        *,
        restart: bool = False,
        phases: list[Phase] | None = None,
        delay_reason: str | None = None,
        now: datetime | None = None,
    ) -> MoveResult:
        """Move item between phases (or to/from backlog) as one logical step.

        Validation happens before any state changes, so a rejected move leaves
        both the item and the ledger untouched.

        Args:
            item: Work item being moved (mutated in place)
            from_phase: Phase the item currently sits in (None = backlog)
            to_phase: Destination phase (None = backlog)
            restart: Reset the time baseline to 0 instead of carrying over
            phases: All campaign phases, used to detect a move into the last phase
            delay_reason: Optional reason recorded on the item
            now: Current time (injectable for testing)

        Returns:
            MoveResult describing the closed and opened entries

        Raises:
            CrossCampaignMoveError: a phase belongs to a different campaign
            InvariantViolationError: from_phase is not where the item currently is
        """
        if now is None:
            now = utc_now()

        for phase in (from_phase, to_phase):
            if phase is not None and phase.campaign_id != item.campaign_id:
                raise CrossCampaignMoveError(item.id, phase.id)

        from_id = from_phase.id if from_phase is not None else None
        to_id = to_phase.id if to_phase is not None else None

        if from_id != item.phase_id:
            raise InvariantViolationError(
                f"Work item '{item.id}' is in phase '{item.phase_id}', not '{from_id}'"
            )

        if from_id == to_id:
            return MoveResult(work_item_id=item.id, from_phase_id=from_id, to_phase_id=to_id, moved=False)

        carry_over = 0
        if to_id is not None and not restart:
            carry_over = self.carry_over_minutes(item.id, to_id)

        closed = self.exit_phase(item, now, phase=from_phase) if from_phase is not None else None

        opened = None
        if to_phase is not None:
            opened = self.enter_phase(item, to_phase, now)
        else:
            item.started_at = now

        item.phase_id = to_id
        item.time_in_phase_minutes = carry_over

        completed = [p for p in (item.completed_phases or []) if p != to_id]
        if from_id is not None and from_id not in completed:
            completed.append(from_id)
        item.completed_phases = completed

        if to_phase is None:
            item.status = WorkItemStatus.PLANNED
        elif phases and is_last_phase(to_phase, phases):
            item.status = WorkItemStatus.COMPLETED
            item.completed_at = now
        else:
            item.status = WorkItemStatus.IN_PROGRESS

        if delay_reason:
            item.delay_reason = delay_reason

        return MoveResult(
            work_item_id=item.id,
            from_phase_id=from_id,
            to_phase_id=to_id,
            moved=True,
            closed_entry=closed,
            opened_entry=opened,
            carry_over_minutes=carry_over,
            restarted=restart,
        )
