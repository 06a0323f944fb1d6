"""DriftMonitor: periodic projected-drift recompute for a running campaign.

Runs as an asyncio.Task next to whatever serves the execution board, not as a
separate process. Each tick loads the campaign's phases and work items through
an injected loader, rebuilds the projected drift events for in-progress phases
and hands them to a publish callback. Nothing is written back: projections are
a derived view.

Non-fatal on loader or publish failures: the monitor logs and keeps polling.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketing_ops.core.config import get_settings
from marketing_ops.db.models import CampaignPhase, WorkItem
from marketing_ops.domain.drift import DriftEvent, build_projected_drift_events
from marketing_ops.domain.phases import utc_now

logger = structlog.get_logger(__name__)

Loader = Callable[[str], Awaitable[tuple[list, list]]]
Publisher = Callable[[str, list[DriftEvent]], Awaitable[None]]


def make_db_loader(session_factory: async_sessionmaker[AsyncSession]) -> Loader:
    """Loader that reads phases and work items with a short-lived session per tick."""

    async def load(campaign_id: str) -> tuple[list, list]:
        async with session_factory() as session:
            phases = await session.execute(
                select(CampaignPhase)
                .where(CampaignPhase.campaign_id == campaign_id)
                .order_by(CampaignPhase.phase_number)
            )
            items = await session.execute(select(WorkItem).where(WorkItem.campaign_id == campaign_id))
            return list(phases.scalars().all()), list(items.scalars().all())

    return load


class DriftMonitor:
    """Recompute projected drift every poll interval until stopped.

    Usage:
        monitor = DriftMonitor(campaign_id, loader=make_db_loader(factory), publish=push)
        task = asyncio.create_task(monitor.run())
        ...
        monitor.stop()
        await task
    """

    def __init__(
        self,
        campaign_id: str,
        loader: Loader,
        publish: Publisher,
        poll_interval: float | None = None,
    ) -> None:
        self.campaign_id = campaign_id
        self.loader = loader
        self.publish = publish
        self.poll_interval = poll_interval if poll_interval is not None else get_settings().drift_poll_interval_seconds
        self.stop_event = asyncio.Event()
        self._log = logger.bind(campaign_id=campaign_id)

    async def tick(self, now: datetime | None = None) -> list[DriftEvent]:
        """One recompute: load, project, publish. Returns the published events."""
        if now is None:
            now = utc_now()
        phases, items = await self.loader(self.campaign_id)
        events = build_projected_drift_events(phases, items, now)
        await self.publish(self.campaign_id, events)
        return events

    async def run(self) -> None:
        """Tick immediately, then once per poll interval until stop() is called."""
        self._log.info("drift_monitor_started", poll_interval=self.poll_interval)

        while not self.stop_event.is_set():
            try:
                events = await self.tick()
                self._log.debug("drift_monitor_tick", projected_events=len(events))
            except Exception as exc:
                self._log.warning(
                    "drift_monitor_tick_failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.poll_interval)
            except TimeoutError:
                pass

        self._log.info("drift_monitor_stopped")

    def stop(self) -> None:
        self.stop_event.set()
