"""ExecutionService: phase time ledger and drift bookkeeping with persistence.

This is the integration point where the pure ledger/drift functions meet the
SQLAlchemy models. Every mutating method validates first, applies the domain
change to the loaded rows and commits once, so a move (close old entry, open
new entry, update the item) lands as a single write.
"""

from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketing_ops.core.exceptions import NotFoundError
from marketing_ops.db.models import Campaign, CampaignPhase, PhaseHistory, WorkItem
from marketing_ops.db.models import DriftEvent as DriftEventRow
from marketing_ops.domain.drift import (
    DriftEvent,
    build_drift_event,
    build_projected_drift_events,
    calculate_campaign_item_drifts,
    calculate_phase_flow_metrics,
    calculate_task_flow_health,
    complete_phase,
    compute_operational_health,
    format_minutes,
    projected_drift,
    start_phase,
)
from marketing_ops.domain.ledger import MoveResult, PhaseHistoryEntry, PhaseTimeLedger, live_elapsed_minutes
from marketing_ops.domain.phases import (
    DriftType,
    WorkItemStatus,
    build_planned_timeline,
    utc_now,
)
from marketing_ops.schemas.execution import (
    DriftEventSnapshot,
    ExecutionSnapshot,
    ItemDriftSnapshot,
    ItemPhaseDriftSnapshot,
    OperationalHealthSnapshot,
    PhaseFlowSnapshot,
    PhaseSnapshot,
    TaskFlowSnapshot,
    WorkItemSnapshot,
)

logger = structlog.get_logger(__name__)


def _to_entry(row: PhaseHistory) -> PhaseHistoryEntry:
    return PhaseHistoryEntry(
        id=row.id,
        work_item_id=row.work_item_id,
        phase_id=row.phase_id,
        phase_name=row.phase_name,
        sequence=row.sequence,
        entered_at=row.entered_at,
        exited_at=row.exited_at,
        time_spent_minutes=row.time_spent_minutes,
        completion_timing=row.completion_timing,
    )


def _to_history_row(entry: PhaseHistoryEntry) -> PhaseHistory:
    return PhaseHistory(
        id=entry.id,
        work_item_id=entry.work_item_id,
        phase_id=entry.phase_id,
        phase_name=entry.phase_name,
        sequence=entry.sequence,
        entered_at=entry.entered_at,
        exited_at=entry.exited_at,
        time_spent_minutes=entry.time_spent_minutes,
        completion_timing=entry.completion_timing,
    )


def _drift_snapshot(event: DriftEvent | DriftEventRow, projected: bool) -> DriftEventSnapshot:
    return DriftEventSnapshot(
        phase_id=event.phase_id,
        phase_name=event.phase_name,
        drift_type=event.drift_type,
        drift_days=event.drift_days,
        planned_duration=event.planned_duration,
        actual_duration=event.actual_duration,
        status="in_progress" if projected else "completed",
        projected=projected,
        root_cause=event.root_cause,
        created_at=event.created_at,
    )


class ExecutionService:
    """Service layer for the execution board.

    Public API:
        move_item(campaign_id, work_item_id, to_phase_id, ...) -> MoveResult
        start_phase(campaign_id, phase_id) -> CampaignPhase
        complete_phase(campaign_id, phase_id, ...) -> DriftEvent
        get_execution_snapshot(campaign_id) -> ExecutionSnapshot
    """

    def __init__(self, session: AsyncSession):
        """Initialize with dependency-injected session.

        Args:
            session: SQLAlchemy async session (not global state)
        """
        self.session = session

    async def move_item(
        self,
        campaign_id: str,
        work_item_id: str,
        to_phase_id: str | None,
        *,
        restart: bool = False,
        delay_reason: str | None = None,
        now: datetime | None = None,
    ) -> MoveResult:
        """Move a work item to another phase (or back to the backlog).

        Args:
            campaign_id: Campaign that owns the item
            work_item_id: Item being moved
            to_phase_id: Destination phase, None for backlog
            restart: Reset time-in-phase to 0 instead of carrying over prior visits
            delay_reason: Optional reason stored on the item
            now: Current time (injectable for testing)

        Returns:
            MoveResult from the ledger (moved=False for a same-phase drop)

        Raises:
            NotFoundError: item or destination phase does not exist
            CrossCampaignMoveError: destination phase belongs to another campaign
        """
        if now is None:
            now = utc_now()

        item = await self._get_item(campaign_id, work_item_id)
        phases = await self._phases(campaign_id)

        to_phase = None
        if to_phase_id is not None:
            to_phase = await self.session.get(CampaignPhase, to_phase_id)
            if to_phase is None:
                raise NotFoundError("Phase", to_phase_id)
        from_phase = await self.session.get(CampaignPhase, item.phase_id) if item.phase_id else None

        history_rows = await self._history_rows(work_item_id)
        ledger = PhaseTimeLedger(_to_entry(r) for r in history_rows)

        result = ledger.move_item(
            item,
            from_phase,
            to_phase,
            restart=restart,
            phases=phases,
            delay_reason=delay_reason,
            now=now,
        )
        if not result.moved:
            return result

        if item.planned_timeline is None and phases:
            item.planned_timeline = build_planned_timeline(phases)

        rows_by_id = {r.id: r for r in history_rows}
        closed = result.closed_entry
        if closed is not None:
            row = rows_by_id.get(closed.id)
            if row is None:
                self.session.add(_to_history_row(closed))
            else:
                row.exited_at = closed.exited_at
                row.time_spent_minutes = closed.time_spent_minutes
                row.completion_timing = closed.completion_timing
        if result.opened_entry is not None:
            self.session.add(_to_history_row(result.opened_entry))

        await self.session.commit()

        logger.info(
            "work_item_moved",
            campaign_id=campaign_id,
            work_item_id=work_item_id,
            from_phase_id=result.from_phase_id,
            to_phase_id=result.to_phase_id,
            carry_over_minutes=result.carry_over_minutes,
            restarted=result.restarted,
        )
        return result

    async def start_phase(self, campaign_id: str, phase_id: str, now: datetime | None = None) -> CampaignPhase:
        phase = await self._get_phase(campaign_id, phase_id)
        start_phase(phase, now)
        await self.session.commit()
        logger.info("phase_started", campaign_id=campaign_id, phase_id=phase_id)
        return phase

    async def complete_phase(
        self,
        campaign_id: str,
        phase_id: str,
        *,
        drift_reason: str | None = None,
        attribution: str | None = None,
        now: datetime | None = None,
    ) -> DriftEvent:
        """Complete a phase, persist its drift event and refresh the campaign rollup.

        Raises:
            NotFoundError: campaign or phase does not exist
            PhaseNotStartedError: the phase was never started
            InvariantViolationError: the phase is already completed
        """
        if now is None:
            now = utc_now()

        campaign = await self._get_campaign(campaign_id)
        phase = await self._get_phase(campaign_id, phase_id)

        complete_phase(phase, now)
        if drift_reason:
            phase.drift_reason = drift_reason

        items = await self._items(campaign_id)
        event = build_drift_event(phase, items, now, attribution=attribution)

        self.session.add(
            DriftEventRow(
                campaign_id=campaign_id,
                phase_id=event.phase_id,
                phase_name=event.phase_name,
                drift_type=event.drift_type,
                drift_days=event.drift_days,
                planned_duration=event.planned_duration,
                actual_duration=event.actual_duration,
                root_cause=event.root_cause,
                attribution=event.attribution,
                created_at=event.created_at,
            )
        )

        if event.drift_type != DriftType.NEUTRAL:
            campaign.drift_count = (campaign.drift_count or 0) + 1
        if event.drift_type == DriftType.POSITIVE:
            campaign.positive_drift_count = (campaign.positive_drift_count or 0) + 1
        elif event.drift_type == DriftType.NEGATIVE:
            campaign.negative_drift_count = (campaign.negative_drift_count or 0) + 1

        phases = await self._phases(campaign_id)
        campaign.operational_health = compute_operational_health(phases, now).score

        await self.session.commit()

        logger.info(
            "phase_completed",
            campaign_id=campaign_id,
            phase_id=phase_id,
            drift_days=event.drift_days,
            drift_type=event.drift_type,
        )
        return event

    async def get_execution_snapshot(self, campaign_id: str, now: datetime | None = None) -> ExecutionSnapshot:
        """Read-only view of the board with live elapsed time and projected drift."""
        if now is None:
            now = utc_now()

        await self._get_campaign(campaign_id)
        phases = await self._phases(campaign_id)
        items = await self._items(campaign_id)
        history = [_to_entry(r) for r in await self._campaign_history_rows(campaign_id)]

        phase_snapshots = []
        for phase in phases:
            projection = projected_drift(phase, now)
            phase_snapshots.append(
                PhaseSnapshot(
                    id=phase.id,
                    phase_number=phase.phase_number,
                    phase_name=phase.phase_name,
                    status=phase.status,
                    planned_duration_days=phase.planned_duration_days,
                    planned_end_date=phase.planned_end_date,
                    actual_start_date=phase.actual_start_date,
                    actual_end_date=phase.actual_end_date,
                    drift_days=projection.projected_drift_days if projection else (phase.drift_days or 0),
                    drift_type=projection.drift_type.value if projection else phase.drift_type,
                    projected=projection is not None,
                )
            )

        item_snapshots = []
        for item in items:
            elapsed = live_elapsed_minutes(item, now)
            item_snapshots.append(
                WorkItemSnapshot(
                    id=item.id,
                    title=item.title,
                    phase_id=item.phase_id,
                    status=item.status,
                    elapsed_minutes=elapsed,
                    elapsed_display=format_minutes(elapsed),
                    delay_reason=item.delay_reason,
                )
            )

        persisted = await self._drift_rows(campaign_id)
        drift_events = [_drift_snapshot(e, projected=False) for e in persisted]
        drift_events += [_drift_snapshot(e, projected=True) for e in build_projected_drift_events(phases, items, now)]

        health = compute_operational_health(phases, now)

        closed_statuses = (WorkItemStatus.COMPLETED, WorkItemStatus.CANCELLED)
        flow = [
            calculate_phase_flow_metrics(
                phase,
                [h for h in history if h.phase_id == phase.id and h.is_closed],
                [i for i in items if i.phase_id == phase.id and i.status not in closed_statuses],
                now,
            )
            for phase in phases
        ]
        task_flow = calculate_task_flow_health(flow, len(items))

        return ExecutionSnapshot(
            campaign_id=campaign_id,
            generated_at=now,
            phases=phase_snapshots,
            work_items=item_snapshots,
            drift_events=drift_events,
            operational_health=OperationalHealthSnapshot(**vars(health)),
            phase_flow=[
                PhaseFlowSnapshot(
                    phase_id=m.phase_id,
                    phase_name=m.phase_name,
                    active_items=m.active_items,
                    completed_visits=m.completed_visits,
                    avg_minutes=m.avg_minutes,
                    completed_last_24h=m.completed_last_24h,
                    is_bottleneck=m.is_bottleneck,
                    bottleneck_reason=m.bottleneck_reason,
                )
                for m in flow
            ],
            task_flow=TaskFlowSnapshot(**vars(task_flow)),
            item_drifts=[
                ItemDriftSnapshot(
                    work_item_id=a.work_item_id,
                    title=a.title,
                    total_planned_minutes=a.total_planned_minutes,
                    total_actual_minutes=a.total_actual_minutes,
                    total_drift_minutes=a.total_drift_minutes,
                    total_drift_percentage=a.total_drift_percentage,
                    overall_status=a.overall_status,
                    phase_drifts=[
                        ItemPhaseDriftSnapshot(
                            phase_id=d.phase_id,
                            phase_name=d.phase_name,
                            planned_minutes=d.planned_minutes,
                            actual_minutes=d.actual_minutes,
                            drift_minutes=d.drift_minutes,
                            drift_percentage=d.drift_percentage,
                            status=d.status,
                        )
                        for d in a.phase_drifts
                    ],
                )
                for a in calculate_campaign_item_drifts(items, history, now)
            ],
        )

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    async def _get_campaign(self, campaign_id: str) -> Campaign:
        campaign = await self.session.get(Campaign, campaign_id)
        if campaign is None:
            raise NotFoundError("Campaign", campaign_id)
        return campaign

    async def _get_phase(self, campaign_id: str, phase_id: str) -> CampaignPhase:
        phase = await self.session.get(CampaignPhase, phase_id)
        if phase is None or phase.campaign_id != campaign_id:
            raise NotFoundError("Phase", phase_id)
        return phase

    async def _get_item(self, campaign_id: str, work_item_id: str) -> WorkItem:
        item = await self.session.get(WorkItem, work_item_id)
        if item is None or item.campaign_id != campaign_id:
            raise NotFoundError("WorkItem", work_item_id)
        return item

    async def _phases(self, campaign_id: str) -> list[CampaignPhase]:
        result = await self.session.execute(
            select(CampaignPhase)
            .where(CampaignPhase.campaign_id == campaign_id)
            .order_by(CampaignPhase.phase_number)
        )
        return list(result.scalars().all())

    async def _items(self, campaign_id: str) -> list[WorkItem]:
        result = await self.session.execute(select(WorkItem).where(WorkItem.campaign_id == campaign_id))
        return list(result.scalars().all())

    async def _history_rows(self, work_item_id: str) -> list[PhaseHistory]:
        result = await self.session.execute(select(PhaseHistory).where(PhaseHistory.work_item_id == work_item_id))
        return list(result.scalars().all())

    async def _campaign_history_rows(self, campaign_id: str) -> list[PhaseHistory]:
        result = await self.session.execute(
            select(PhaseHistory)
            .join(WorkItem, PhaseHistory.work_item_id == WorkItem.id)
            .where(WorkItem.campaign_id == campaign_id)
        )
        return list(result.scalars().all())

    async def _drift_rows(self, campaign_id: str) -> list[DriftEventRow]:
        result = await self.session.execute(
            select(DriftEventRow)
            .where(DriftEventRow.campaign_id == campaign_id)
            .order_by(DriftEventRow.created_at)
        )
        return list(result.scalars().all())
