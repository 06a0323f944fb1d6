"""Tests for the phase time ledger.

Tests enforce pure function behavior:
- Carry-over sums only closed visits of the same (item, phase)
- Closing a visit records the current session only (no double counting)
- Rejected moves leave the item and the ledger untouched
"""

from datetime import timedelta

import pytest

from marketing_ops.core.exceptions import CrossCampaignMoveError, InvariantViolationError
from marketing_ops.domain.ledger import PhaseTimeLedger, live_elapsed_minutes
from marketing_ops.domain.phases import CompletionTiming, Phase, WorkItem, WorkItemStatus, elapsed_minutes

pytestmark = pytest.mark.unit


def _minutes(n: int) -> timedelta:
    return timedelta(minutes=n)


def test_move_from_backlog_opens_first_visit(t0, campaign_phases, backlog_item):
    ledger = PhaseTimeLedger()
    planning = campaign_phases[0]

    result = ledger.move_item(backlog_item, None, planning, phases=campaign_phases, now=t0)

    assert result.moved is True
    assert result.closed_entry is None
    assert result.opened_entry.phase_id == "ph-1"
    assert result.opened_entry.sequence == 1
    assert backlog_item.phase_id == "ph-1"
    assert backlog_item.started_at == t0
    assert backlog_item.time_in_phase_minutes == 0
    assert backlog_item.status == WorkItemStatus.IN_PROGRESS


def test_carry_over_across_revisits(t0, campaign_phases, backlog_item):
    """A(30m) -> B(20m) -> A(25m) -> B: each return resumes the earlier total."""
    ledger = PhaseTimeLedger()
    a, b = campaign_phases[0], campaign_phases[1]

    ledger.move_item(backlog_item, None, a, phases=campaign_phases, now=t0)
    ledger.move_item(backlog_item, a, b, phases=campaign_phases, now=t0 + _minutes(30))
    assert backlog_item.time_in_phase_minutes == 0

    result = ledger.move_item(backlog_item, b, a, phases=campaign_phases, now=t0 + _minutes(50))
    assert result.carry_over_minutes == 30
    assert backlog_item.time_in_phase_minutes == 30
    assert live_elapsed_minutes(backlog_item, t0 + _minutes(60)) == 40

    result = ledger.move_item(backlog_item, a, b, phases=campaign_phases, now=t0 + _minutes(75))
    assert result.closed_entry.time_spent_minutes == 25
    assert result.carry_over_minutes == 20
    assert backlog_item.time_in_phase_minutes == 20

    assert ledger.carry_over_minutes("wi-1", "ph-1") == 55
    visits_to_a = [e for e in ledger.entries_for("wi-1") if e.phase_id == "ph-1"]
    assert [e.sequence for e in visits_to_a] == [1, 2]


def test_closed_visits_never_double_count(t0, campaign_phases, backlog_item):
    """Sum of closed visit minutes equals wall-clock time spent in the phase."""
    ledger = PhaseTimeLedger()
    a, b = campaign_phases[0], campaign_phases[1]

    ledger.move_item(backlog_item, None, a, now=t0)
    ledger.move_item(backlog_item, a, b, now=t0 + _minutes(100))
    ledger.move_item(backlog_item, b, a, now=t0 + _minutes(110))
    ledger.move_item(backlog_item, a, b, now=t0 + _minutes(170))
    ledger.move_item(backlog_item, b, a, now=t0 + _minutes(180))

    # 100 + 60 in A, never 100 + (100 + 60)
    assert ledger.carry_over_minutes("wi-1", "ph-1") == 160
    assert backlog_item.time_in_phase_minutes == 160


def test_restart_resets_baseline(t0, campaign_phases, backlog_item):
    ledger = PhaseTimeLedger()
    a, b = campaign_phases[0], campaign_phases[1]

    ledger.move_item(backlog_item, None, a, now=t0)
    ledger.move_item(backlog_item, a, b, now=t0 + _minutes(30))
    result = ledger.move_item(backlog_item, b, a, restart=True, now=t0 + _minutes(40))

    assert result.restarted is True
    assert result.carry_over_minutes == 0
    assert backlog_item.time_in_phase_minutes == 0
    # History is kept even on restart
    assert ledger.carry_over_minutes("wi-1", "ph-1") == 30


def test_same_phase_drop_is_noop(t0, campaign_phases, backlog_item):
    ledger = PhaseTimeLedger()
    a = campaign_phases[0]
    ledger.move_item(backlog_item, None, a, now=t0)
    entries_before = ledger.entries

    result = ledger.move_item(backlog_item, a, a, now=t0 + _minutes(5))

    assert result.moved is False
    assert ledger.entries == entries_before
    assert backlog_item.started_at == t0


def test_cross_campaign_move_rejected_without_side_effects(t0, campaign_phases, backlog_item):
    ledger = PhaseTimeLedger()
    a = campaign_phases[0]
    ledger.move_item(backlog_item, None, a, now=t0)
    foreign = Phase(id="ph-x", campaign_id="c-2", phase_number=1, phase_name="Other", planned_duration_days=2)

    with pytest.raises(CrossCampaignMoveError):
        ledger.move_item(backlog_item, a, foreign, now=t0 + _minutes(10))

    assert backlog_item.phase_id == "ph-1"
    assert ledger.open_entry("wi-1").phase_id == "ph-1"
    assert len(ledger.entries) == 1


def test_from_phase_must_match_current_phase(t0, campaign_phases, backlog_item):
    ledger = PhaseTimeLedger()
    a, b, c = campaign_phases[0], campaign_phases[1], campaign_phases[2]
    ledger.move_item(backlog_item, None, a, now=t0)

    with pytest.raises(InvariantViolationError):
        ledger.move_item(backlog_item, b, c, now=t0 + _minutes(10))


def test_move_into_last_phase_completes_item(t0, campaign_phases, backlog_item):
    ledger = PhaseTimeLedger()
    launch, review = campaign_phases[2], campaign_phases[3]
    backlog_item.phase_id = "ph-3"
    backlog_item.started_at = t0

    ledger.move_item(backlog_item, launch, review, phases=campaign_phases, now=t0 + _minutes(15))

    assert backlog_item.status == WorkItemStatus.COMPLETED
    assert backlog_item.completed_at == t0 + _minutes(15)
    assert backlog_item.completed_phases == ["ph-3"]


def test_move_back_to_backlog(t0, campaign_phases, backlog_item):
    ledger = PhaseTimeLedger()
    a = campaign_phases[0]
    ledger.move_item(backlog_item, None, a, now=t0)

    result = ledger.move_item(backlog_item, a, None, now=t0 + _minutes(45))

    assert result.closed_entry.time_spent_minutes == 45
    assert result.opened_entry is None
    assert backlog_item.phase_id is None
    assert backlog_item.status == WorkItemStatus.PLANNED
    assert backlog_item.time_in_phase_minutes == 0


def test_completed_phases_drops_revisited_phase(t0, campaign_phases, backlog_item):
    ledger = PhaseTimeLedger()
    a, b = campaign_phases[0], campaign_phases[1]

    ledger.move_item(backlog_item, None, a, now=t0)
    ledger.move_item(backlog_item, a, b, now=t0 + _minutes(1))
    assert backlog_item.completed_phases == ["ph-1"]

    ledger.move_item(backlog_item, b, a, now=t0 + _minutes(2))
    assert backlog_item.completed_phases == ["ph-2"]


def test_legacy_item_without_open_entry_gets_synthesized_visit(t0, campaign_phases):
    item = WorkItem(id="wi-legacy", campaign_id="c-1", phase_id="ph-1", started_at=t0, status="in_progress")
    ledger = PhaseTimeLedger()
    a, b = campaign_phases[0], campaign_phases[1]

    result = ledger.move_item(item, a, b, now=t0 + _minutes(90))

    assert result.closed_entry is not None
    assert result.closed_entry.entered_at == t0
    assert result.closed_entry.time_spent_minutes == 90
    assert ledger.carry_over_minutes("wi-legacy", "ph-1") == 90


def test_exit_records_completion_timing_against_planned_end(t0, campaign_phases, backlog_item):
    ledger = PhaseTimeLedger()
    a, b = campaign_phases[0], campaign_phases[1]
    ledger.move_item(backlog_item, None, a, now=t0)

    # Planning ends 2025-03-07; t0 is 2025-03-03
    early = ledger.move_item(backlog_item, a, b, now=t0 + _minutes(10))
    assert early.closed_entry.completion_timing == CompletionTiming.EARLY

    late = ledger.move_item(backlog_item, b, a, now=t0 + timedelta(days=9))
    assert late.closed_entry.completion_timing == CompletionTiming.LATE


def test_elapsed_minutes_floors_and_never_negative(t0):
    assert elapsed_minutes(t0, t0 + timedelta(seconds=119)) == 1
    assert elapsed_minutes(t0, t0 - timedelta(minutes=5)) == 0


def test_live_elapsed_is_baseline_only_when_completed(t0):
    item = WorkItem(
        id="wi-2",
        campaign_id="c-1",
        status=WorkItemStatus.COMPLETED,
        started_at=t0,
        time_in_phase_minutes=42,
    )
    assert live_elapsed_minutes(item, t0 + timedelta(hours=5)) == 42


def test_live_elapsed_legacy_item_without_started_at(t0):
    item = WorkItem(id="wi-3", campaign_id="c-1", phase_id="ph-1", status="in_progress", time_in_phase_minutes=7)
    assert live_elapsed_minutes(item, t0) == 7
