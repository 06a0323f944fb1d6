"""Correlation engine and its persistence service.

CorrelationEngine turns a campaign's execution history plus weekly performance
reports into ranked, explained insights. Each qualifying event is explained by
the reasoning service (the deterministic one when nothing live is configured);
any failure for a single event
(timeout, bad JSON, wrong shape, API error) degrades that event to the
deterministic fallback and never aborts the batch.
"""

import asyncio
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketing_ops.core.config import get_settings
from marketing_ops.core.exceptions import NotFoundError
from marketing_ops.core.logging import campaign_context
from marketing_ops.db.models import Campaign, CampaignPhase, WorkItem
from marketing_ops.db.models import CorrelationInsight as CorrelationInsightRow
from marketing_ops.db.models import DriftEvent as DriftEventRow
from marketing_ops.db.models import PerformanceReport as PerformanceReportRow
from marketing_ops.domain.correlation import (
    CorrelationInsight,
    CorrelationStrength,
    CorrelationSummary,
    ExecutionEvent,
    Explanation,
    MetricChange,
    PerformanceImpact,
    PerformanceReport,
    classify_correlation_strength,
    extract_events,
    fallback_explanation,
    find_performance_changes,
    should_surface,
    sort_insights,
    summarize_correlations,
    trailing_trend,
)
from marketing_ops.domain.phases import utc_now
from marketing_ops.schemas.reasoning import (
    ReasoningEvent,
    ReasoningMetricChange,
    ReasoningRequest,
    TrendPoint,
)
from marketing_ops.services.reasoning_service import DeterministicReasoningService, ReasoningService

logger = structlog.get_logger(__name__)


def build_reasoning_request(
    campaign_name: str,
    event: ExecutionEvent,
    changes: list[MetricChange],
    trend: list[PerformanceReport],
) -> ReasoningRequest:
    return ReasoningRequest(
        campaign_name=campaign_name,
        event=ReasoningEvent(
            type=event.type.value,
            date=event.date,
            description=event.description,
            phase_name=event.phase_name,
            task_name=event.task_name,
            drift_days=event.drift_days,
        ),
        metric_changes=[
            ReasoningMetricChange(
                metric=c.metric,
                change_pct=c.change_pct,
                previous_value=c.previous_value,
                current_value=c.current_value,
            )
            for c in changes
        ],
        trend=[
            TrendPoint(
                week_starting=r.week_starting,
                total_sales=r.total_sales or 0,
                total_revenue=r.total_revenue or 0,
                total_engagement=r.total_engagement or 0,
                total_views=r.total_views,
            )
            for r in trend
        ],
    )


class CorrelationEngine:
    """Explains execution events against performance metric moves.

    Public API:
        analyze_correlations(campaign_id, campaign_name, phases, work_items,
                             drift_events, reports) -> list[CorrelationInsight]
        explain_event(campaign_name, event, changes, trend) -> Explanation

    Never raises for a single event's reasoning failure.
    """

    def __init__(self, reasoning: ReasoningService | None = None, max_concurrency: int | None = None):
        self.reasoning = reasoning or DeterministicReasoningService()
        self.max_concurrency = max(1, max_concurrency or get_settings().correlation_max_concurrency)

    async def analyze_correlations(
        self,
        campaign_id: str,
        campaign_name: str,
        phases: list,
        work_items: list,
        drift_events: list,
        reports: list[PerformanceReport],
        now: datetime | None = None,
    ) -> list[CorrelationInsight]:
        """Build, explain and rank insights for one campaign.

        Returns an empty list when there are no performance reports at all.
        Insights are sorted by confidence desc, then strength.
        """
        if not reports:
            logger.info("correlation_skipped_no_reports", campaign_id=campaign_id)
            return []
        if now is None:
            now = utc_now()

        events = extract_events(phases, work_items, drift_events)
        trend = trailing_trend(reports)

        candidates: list[tuple[ExecutionEvent, list[MetricChange]]] = []
        for event in events:
            changes = find_performance_changes(event.date, reports)
            strength = classify_correlation_strength(event.drift_days, changes)
            if should_surface(event, strength):
                candidates.append((event, changes))

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _explain(event: ExecutionEvent, changes: list[MetricChange]) -> CorrelationInsight:
            async with semaphore:
                explanation = await self.explain_event(campaign_name, event, changes, trend)
            return CorrelationInsight(
                id=str(uuid.uuid4()),
                campaign_id=campaign_id,
                event_type=event.type,
                event_description=event.description,
                event_date=event.date,
                metric_changes=changes,
                performance_impact=explanation.performance_impact,
                correlation_strength=explanation.correlation_strength,
                ai_analysis=explanation.ai_analysis,
                confidence=explanation.confidence,
                actionable_insight=explanation.actionable_insight,
                phase_name=event.phase_name,
                task_name=event.task_name,
                source=explanation.source,
                created_at=now,
            )

        insights = await asyncio.gather(*(_explain(e, c) for e, c in candidates))

        logger.info(
            "correlation_analysis_completed",
            campaign_id=campaign_id,
            events=len(events),
            insights=len(insights),
            fallbacks=sum(1 for i in insights if i.source == "fallback"),
        )
        return sort_insights(list(insights))

    async def explain_event(
        self,
        campaign_name: str,
        event: ExecutionEvent,
        changes: list[MetricChange],
        trend: list[PerformanceReport],
    ) -> Explanation:
        """Reasoning-service explanation, or the deterministic fallback on any failure."""
        request = build_reasoning_request(campaign_name, event, changes, trend)
        try:
            response = await self.reasoning.explain(request)
            analysis = response.ai_analysis
            if response.reason_chain:
                analysis = f"**Why:** {response.reason_chain}\n\n{analysis}"
            return Explanation(
                performance_impact=PerformanceImpact(response.performance_impact),
                correlation_strength=CorrelationStrength(response.correlation_strength),
                ai_analysis=analysis,
                confidence=response.confidence,
                actionable_insight=response.actionable_insight,
                source="fallback" if isinstance(self.reasoning, DeterministicReasoningService) else "ai",
            )
        except Exception as exc:
            logger.warning(
                "correlation_reasoning_fallback",
                event_type=event.type.value,
                event_date=event.date.isoformat(),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return fallback_explanation(event, changes)


@dataclass
class CorrelationResult:
    insights: list[CorrelationInsight]
    summary: CorrelationSummary


def _to_report(row: PerformanceReportRow) -> PerformanceReport:
    return PerformanceReport(
        week_starting=row.week_starting,
        total_sales=row.total_sales or 0,
        total_revenue=row.total_revenue or 0,
        total_engagement=row.total_engagement or 0,
        facebook_views=row.facebook_views or 0,
        instagram_views=row.instagram_views or 0,
    )


def _to_row(insight: CorrelationInsight) -> CorrelationInsightRow:
    return CorrelationInsightRow(
        id=insight.id,
        campaign_id=insight.campaign_id,
        event_type=insight.event_type.value,
        event_description=insight.event_description,
        event_date=insight.event_date,
        phase_name=insight.phase_name,
        task_name=insight.task_name,
        metric_changes=[asdict(c) for c in insight.metric_changes],
        performance_impact=insight.performance_impact.value,
        correlation_strength=insight.correlation_strength.value,
        ai_analysis=insight.ai_analysis,
        confidence=insight.confidence,
        actionable_insight=insight.actionable_insight,
        source=insight.source,
        created_at=insight.created_at,
    )


class CorrelationService:
    """Loads campaign execution data, runs the engine and stores the insights.

    Each run replaces the campaign's previous insights.
    """

    def __init__(self, session: AsyncSession, engine: CorrelationEngine):
        self.session = session
        self.engine = engine

    async def analyze_campaign(self, campaign_id: str, now: datetime | None = None) -> CorrelationResult:
        campaign = await self.session.get(Campaign, campaign_id)
        if campaign is None:
            raise NotFoundError("Campaign", campaign_id)

        with campaign_context(campaign_id):
            phases = await self._all(select(CampaignPhase).where(CampaignPhase.campaign_id == campaign_id))
            items = await self._all(select(WorkItem).where(WorkItem.campaign_id == campaign_id))
            drift_rows = await self._all(select(DriftEventRow).where(DriftEventRow.campaign_id == campaign_id))
            report_rows = await self._all(
                select(PerformanceReportRow)
                .where(PerformanceReportRow.campaign_id == campaign_id)
                .order_by(PerformanceReportRow.week_starting)
            )

            insights = await self.engine.analyze_correlations(
                campaign_id=campaign_id,
                campaign_name=campaign.name,
                phases=phases,
                work_items=items,
                drift_events=drift_rows,
                reports=[_to_report(r) for r in report_rows],
                now=now,
            )

            await self.session.execute(
                delete(CorrelationInsightRow).where(CorrelationInsightRow.campaign_id == campaign_id)
            )
            self.session.add_all([_to_row(i) for i in insights])
            await self.session.commit()

        return CorrelationResult(insights=insights, summary=summarize_correlations(insights))

    async def list_insights(self, campaign_id: str) -> list[CorrelationInsightRow]:
        rows = await self._all(
            select(CorrelationInsightRow).where(CorrelationInsightRow.campaign_id == campaign_id)
        )
        return sorted(rows, key=lambda r: (-r.confidence, r.created_at))

    async def _all(self, stmt) -> list:
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
