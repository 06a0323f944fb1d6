"""RiskService: launch-readiness scoring and gate overrides with persistence."""

from dataclasses import asdict
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketing_ops.core.exceptions import NotFoundError
from marketing_ops.db.models import Campaign, CampaignPhase
from marketing_ops.db.models import OverrideEvent as OverrideEventRow
from marketing_ops.db.models import RiskAssessment as RiskAssessmentRow
from marketing_ops.domain.overrides import evaluate_override_outcome, record_override
from marketing_ops.domain.risk import CampaignProfile, GateRecommendation, RiskAssessment, assess_risk

logger = structlog.get_logger(__name__)


def build_profile(campaign: Campaign, phases: list[CampaignPhase]) -> CampaignProfile:
    """Read the risk inputs off a campaign row; anything missing stays None/empty."""
    constraints = campaign.constraints or {}
    team = campaign.team or []
    return CampaignProfile(
        campaign_type=campaign.campaign_type,
        total_budget=campaign.total_budget,
        start_date=campaign.start_date,
        end_date=campaign.end_date,
        planned_phase_days=[p.planned_duration_days or 0 for p in phases],
        team_utilization=[float(m.get("utilization") or 0) for m in team if isinstance(m, dict)],
        historical_ctr=constraints.get("historical_ctr"),
        historical_cpa=constraints.get("historical_cpa"),
        historical_roas=constraints.get("historical_roas"),
        creative_strategy=campaign.creative_strategy,
    )


class RiskService:
    """Service layer for the launch gate.

    Public API:
        assess_campaign(campaign_id) -> RiskAssessment
        record_override(campaign_id, actual_action, reason, ...) -> OverrideEvent row
        reconcile_override(override_id, target_achievement) -> OverrideEvent row
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def assess_campaign(self, campaign_id: str) -> RiskAssessment:
        """Score the campaign, store the score and gate on it, and keep a snapshot row.

        A gate decision a human already overrode is left in place; only the
        score is refreshed.
        """
        campaign = await self._get_campaign(campaign_id)
        assessment = assess_risk(build_profile(campaign, await self._phases(campaign_id)))

        campaign.risk_score = assessment.overall_score
        if not campaign.gate_overridden:
            campaign.gate_decision = assessment.gate_recommendation.value

        self.session.add(
            RiskAssessmentRow(
                campaign_id=campaign_id,
                overall_score=assessment.overall_score,
                risk_level=assessment.risk_level.value,
                gate_recommendation=assessment.gate_recommendation.value,
                factors=[asdict(f) for f in assessment.factors],
                mitigation_suggestions=assessment.mitigation_suggestions,
            )
        )
        await self.session.commit()

        logger.info(
            "risk_assessed",
            campaign_id=campaign_id,
            overall_score=assessment.overall_score,
            risk_level=assessment.risk_level.value,
            gate_recommendation=assessment.gate_recommendation.value,
        )
        return assessment

    async def record_override(
        self,
        campaign_id: str,
        actual_action: GateRecommendation | str,
        reason: str,
        confidence: int | None = None,
        now: datetime | None = None,
    ) -> OverrideEventRow:
        """Record a human decision that departs from the gate recommendation.

        Raises:
            NotFoundError: campaign does not exist
            InvariantViolationError: action equals the recommendation or reason is empty
        """
        campaign = await self._get_campaign(campaign_id)
        assessment = assess_risk(build_profile(campaign, await self._phases(campaign_id)))

        event = record_override(
            campaign_id,
            assessment,
            GateRecommendation(actual_action),
            reason,
            confidence=confidence,
            now=now,
        )

        row = OverrideEventRow(
            campaign_id=campaign_id,
            original_recommendation=event.original_recommendation.value,
            actual_action=event.actual_action.value,
            reason=event.reason,
            confidence_at_decision=event.confidence_at_decision,
            risk_score_at_decision=event.risk_score_at_decision,
            created_at=event.created_at,
        )
        self.session.add(row)

        campaign.risk_score = assessment.overall_score
        campaign.gate_decision = event.actual_action.value
        campaign.gate_overridden = True
        campaign.override_reason = event.reason

        await self.session.commit()

        logger.info(
            "gate_overridden",
            campaign_id=campaign_id,
            original_recommendation=event.original_recommendation.value,
            actual_action=event.actual_action.value,
        )
        return row

    async def reconcile_override(
        self,
        override_id: str,
        target_achievement: float,
        now: datetime | None = None,
    ) -> OverrideEventRow:
        """Attach the observed outcome to an override and judge whether it was justified."""
        row = await self.session.get(OverrideEventRow, override_id)
        if row is None:
            raise NotFoundError("OverrideEvent", override_id)

        evaluate_override_outcome(row, target_achievement, now)
        await self.session.commit()

        logger.info(
            "override_reconciled",
            campaign_id=row.campaign_id,
            override_id=override_id,
            outcome=row.outcome,
            override_justified=row.override_justified,
        )
        return row

    async def _get_campaign(self, campaign_id: str) -> Campaign:
        campaign = await self.session.get(Campaign, campaign_id)
        if campaign is None:
            raise NotFoundError("Campaign", campaign_id)
        return campaign

    async def _phases(self, campaign_id: str) -> list[CampaignPhase]:
        result = await self.session.execute(
            select(CampaignPhase)
            .where(CampaignPhase.campaign_id == campaign_id)
            .order_by(CampaignPhase.phase_number)
        )
        return list(result.scalars().all())
