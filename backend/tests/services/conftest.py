"""Service-level fixtures: a seeded campaign in the in-memory database."""

from dataclasses import dataclass
from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from marketing_ops.db.models import Campaign, CampaignPhase, WorkItem


@dataclass
class SeededCampaign:
    campaign: Campaign
    phases: list[CampaignPhase]
    item: WorkItem


async def seed_campaign(session: AsyncSession, name: str = "Spring Launch", **campaign_fields) -> SeededCampaign:
    """Campaign with Planning(5d) / Creative(3d) / Launch(7d) and one backlog item."""
    campaign = Campaign(name=name, **campaign_fields)
    session.add(campaign)
    await session.flush()

    phases = [
        CampaignPhase(campaign_id=campaign.id, phase_number=1, phase_name="Planning", planned_duration_days=5,
                      planned_end_date=date(2025, 3, 7)),
        CampaignPhase(campaign_id=campaign.id, phase_number=2, phase_name="Creative", planned_duration_days=3,
                      planned_end_date=date(2025, 3, 10)),
        CampaignPhase(campaign_id=campaign.id, phase_number=3, phase_name="Launch", planned_duration_days=7,
                      planned_end_date=date(2025, 3, 17)),
    ]
    item = WorkItem(campaign_id=campaign.id, title="Hero banner")
    session.add_all([*phases, item])
    await session.commit()
    return SeededCampaign(campaign=campaign, phases=phases, item=item)


@pytest.fixture
def make_campaign(db_session: AsyncSession):
    """Factory for additional seeded campaigns in the same session."""

    async def _make(name: str = "Spring Launch", **campaign_fields) -> SeededCampaign:
        return await seed_campaign(db_session, name=name, **campaign_fields)

    return _make


@pytest.fixture
async def seeded(db_session: AsyncSession) -> SeededCampaign:
    return await seed_campaign(db_session)
