"""Tests for CorrelationEngine and CorrelationService.

Coverage:
- Without a reasoning service every insight is the deterministic fallback
- Reasoning responses become 'ai' insights with the reason chain prefixed
- A failing reasoning call degrades only its own event
- A malformed reasoning result degrades only its own event
- Reasoning calls respect the concurrency bound
- The service persists insights and replaces them on re-run
"""

import asyncio
import uuid
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from marketing_ops.core.exceptions import NotFoundError, ReasoningServiceError
from marketing_ops.db.models import CorrelationInsight as CorrelationInsightRow
from marketing_ops.db.models import DriftEvent as DriftEventRow
from marketing_ops.db.models import PerformanceReport as PerformanceReportRow
from marketing_ops.domain.correlation import (
    CorrelationStrength,
    EventType,
    PerformanceImpact,
    PerformanceReport,
)
from marketing_ops.domain.drift import DriftEvent
from marketing_ops.domain.phases import Phase
from marketing_ops.schemas.reasoning import ReasoningResponse
from marketing_ops.services.correlation_service import CorrelationEngine, CorrelationService

pytestmark = pytest.mark.unit

_EVENT_AT = datetime(2025, 3, 8, 12, tzinfo=timezone.utc)

_AI_RESPONSE = ReasoningResponse(
    performance_impact="negative",
    correlation_strength="strong",
    ai_analysis="Creative shipped into a low-traffic week.",
    confidence=82,
    reason_chain="late planning -> late creative -> sales drop",
    actionable_insight="Add a buffer day before creative handoff.",
)


@pytest.fixture
def late_planning():
    phase = Phase(
        id="ph-1", campaign_id="c-1", phase_number=1, phase_name="Planning", planned_duration_days=5,
        status="completed", actual_end_date=_EVENT_AT, actual_duration_days=8, drift_days=3, drift_type="negative",
    )
    drift = DriftEvent(
        phase_id="ph-1", phase_name="Planning", drift_type="negative", drift_days=3, planned_duration=5,
        actual_duration=8, status="completed", projected=False, root_cause="Vendor late", created_at=_EVENT_AT,
    )
    return phase, drift


@pytest.fixture
def sales_drop() -> list[PerformanceReport]:
    return [
        PerformanceReport(date(2025, 3, 3), total_sales=500),
        PerformanceReport(date(2025, 3, 10), total_sales=210),
    ]


async def _analyze(engine: CorrelationEngine, late_planning, reports):
    phase, drift = late_planning
    return await engine.analyze_correlations(
        campaign_id="c-1",
        campaign_name="Spring Launch",
        phases=[phase],
        work_items=[],
        drift_events=[drift],
        reports=reports,
    )


@pytest.mark.asyncio
async def test_fallback_insights_without_reasoning(late_planning, sales_drop):
    insights = await _analyze(CorrelationEngine(None, max_concurrency=1), late_planning, sales_drop)

    assert [i.event_type for i in insights] == [EventType.DELAY, EventType.PHASE_CHANGE]
    delay = insights[0]
    assert delay.source == "fallback"
    assert delay.confidence == 40
    assert delay.correlation_strength == CorrelationStrength.STRONG
    assert delay.performance_impact == PerformanceImpact.NEGATIVE
    assert delay.metric_changes[0].change_pct == pytest.approx(-58.0)
    assert insights[1].correlation_strength == CorrelationStrength.WEAK


@pytest.mark.asyncio
async def test_ai_insights_use_reasoning_verdict(late_planning, sales_drop):
    reasoning = AsyncMock()
    reasoning.explain = AsyncMock(return_value=_AI_RESPONSE)

    insights = await _analyze(CorrelationEngine(reasoning, max_concurrency=1), late_planning, sales_drop)

    assert reasoning.explain.await_count == 2
    assert all(i.source == "ai" for i in insights)
    assert insights[0].confidence == 82
    assert insights[0].ai_analysis.startswith("**Why:** late planning -> late creative -> sales drop")
    assert insights[0].actionable_insight == "Add a buffer day before creative handoff."

    request = reasoning.explain.await_args_list[0].args[0]
    assert request.campaign_name == "Spring Launch"
    assert request.event.type == "delay"
    assert request.metric_changes[0].metric == "Total Sales"
    assert [t.week_starting for t in request.trend] == [date(2025, 3, 3), date(2025, 3, 10)]


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", [ReasoningServiceError("bad json"), RuntimeError("connection reset")])
async def test_single_failure_degrades_one_event(late_planning, sales_drop, failure):
    reasoning = AsyncMock()
    reasoning.explain = AsyncMock(side_effect=[failure, _AI_RESPONSE])

    insights = await _analyze(CorrelationEngine(reasoning, max_concurrency=1), late_planning, sales_drop)

    assert len(insights) == 2
    assert sorted(i.source for i in insights) == ["ai", "fallback"]
    fallback = next(i for i in insights if i.source == "fallback")
    assert fallback.confidence == 40


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "bad_response",
    [None, {"performance_impact": "negative"}, _AI_RESPONSE.model_copy(update={"correlation_strength": "huge"})],
)
async def test_malformed_response_degrades_one_event(late_planning, sales_drop, bad_response):
    reasoning = AsyncMock()
    reasoning.explain = AsyncMock(side_effect=[bad_response, _AI_RESPONSE])

    insights = await _analyze(CorrelationEngine(reasoning, max_concurrency=1), late_planning, sales_drop)

    assert len(insights) == 2
    assert sorted(i.source for i in insights) == ["ai", "fallback"]


@pytest.mark.asyncio
async def test_no_reports_means_no_insights(late_planning):
    reasoning = AsyncMock()
    reasoning.explain = AsyncMock(return_value=_AI_RESPONSE)

    assert await _analyze(CorrelationEngine(reasoning, max_concurrency=1), late_planning, []) == []
    reasoning.explain.assert_not_awaited()


@pytest.mark.asyncio
async def test_flat_metrics_keep_only_delay_events(late_planning):
    flat = [PerformanceReport(date(2025, 3, 3), total_sales=500), PerformanceReport(date(2025, 3, 10), total_sales=505)]

    insights = await _analyze(CorrelationEngine(None, max_concurrency=1), late_planning, flat)

    assert [i.event_type for i in insights] == [EventType.DELAY]
    assert insights[0].correlation_strength == CorrelationStrength.NONE
    assert insights[0].performance_impact == PerformanceImpact.NEUTRAL


@pytest.mark.asyncio
@pytest.mark.parametrize("max_concurrency,expected_peak", [(1, 1), (4, 2)])
async def test_reasoning_calls_are_bounded(late_planning, sales_drop, max_concurrency, expected_peak):
    active = 0
    peak = 0

    async def _explain(request):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return _AI_RESPONSE

    reasoning = AsyncMock()
    reasoning.explain = _explain

    await _analyze(CorrelationEngine(reasoning, max_concurrency=max_concurrency), late_planning, sales_drop)

    assert peak == expected_peak


@pytest.mark.asyncio
async def test_service_persists_and_replaces_insights(db_session, seeded):
    cid = seeded.campaign.id
    planning = seeded.phases[0]
    db_session.add_all(
        [
            DriftEventRow(
                campaign_id=cid, phase_id=planning.id, phase_name="Planning", drift_type="negative", drift_days=3,
                planned_duration=5, actual_duration=8, root_cause="Vendor late", created_at=_EVENT_AT,
            ),
            PerformanceReportRow(campaign_id=cid, week_starting=date(2025, 3, 3), total_sales=500, total_revenue=9_000),
            PerformanceReportRow(campaign_id=cid, week_starting=date(2025, 3, 10), total_sales=210, total_revenue=4_000),
        ]
    )
    await db_session.commit()
    service = CorrelationService(db_session, CorrelationEngine(None, max_concurrency=1))

    first = await service.analyze_campaign(cid)
    second = await service.analyze_campaign(cid)

    assert len(first.insights) == len(second.insights) == 1
    assert second.summary.strong_correlations == 1
    assert second.summary.key_insight == second.insights[0].ai_analysis
    assert "Vendor late" in second.insights[0].ai_analysis

    rows = (await db_session.execute(select(CorrelationInsightRow))).scalars().all()
    assert len(rows) == 1
    assert rows[0].source == "fallback"
    assert {c["metric"] for c in rows[0].metric_changes} == {"Total Sales", "Revenue"}

    listed = await service.list_insights(cid)
    assert [r.id for r in listed] == [second.insights[0].id]


@pytest.mark.asyncio
async def test_service_unknown_campaign(db_session):
    service = CorrelationService(db_session, CorrelationEngine(None, max_concurrency=1))
    with pytest.raises(NotFoundError):
        await service.analyze_campaign(str(uuid.uuid4()))
