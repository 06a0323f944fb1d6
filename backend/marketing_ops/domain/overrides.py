"""Gate override bookkeeping.

Pure domain functions for recording a human override of the gate
recommendation and reconciling it later against the observed outcome.
No DB access, fully deterministic.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from marketing_ops.core.exceptions import InvariantViolationError
from marketing_ops.domain.phases import utc_now
from marketing_ops.domain.risk import GateRecommendation, RiskAssessment

# Target achievement ratio (actual KPI / target KPI) bands
SUCCESS_ACHIEVEMENT = 1.0
PARTIAL_ACHIEVEMENT = 0.7


class OverrideOutcome(StrEnum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


_CAUTION: dict[str, int] = {
    GateRecommendation.PROCEED: 0,
    GateRecommendation.ADJUST: 1,
    GateRecommendation.PAUSE: 2,
}


@dataclass
class OverrideEvent:
    campaign_id: str
    original_recommendation: GateRecommendation
    actual_action: GateRecommendation
    reason: str
    confidence_at_decision: int | None
    risk_score_at_decision: int
    created_at: datetime
    outcome: OverrideOutcome | None = None
    override_justified: bool | None = None
    evaluated_at: datetime | None = None


def record_override(
    campaign_id: str,
    assessment: RiskAssessment,
    actual_action: GateRecommendation,
    reason: str,
    confidence: int | None = None,
    now: datetime | None = None,
) -> OverrideEvent:
    """Record that a human chose a different action than the gate recommended.

    Raises:
        InvariantViolationError: the action equals the recommendation, or no reason given
    """
    if now is None:
        now = utc_now()
    if actual_action == assessment.gate_recommendation:
        raise InvariantViolationError(
            f"'{actual_action}' matches the gate recommendation; nothing to override"
        )
    if not reason or not reason.strip():
        raise InvariantViolationError("An override requires a reason")

    return OverrideEvent(
        campaign_id=campaign_id,
        original_recommendation=assessment.gate_recommendation,
        actual_action=actual_action,
        reason=reason.strip(),
        confidence_at_decision=confidence,
        risk_score_at_decision=assessment.overall_score,
        created_at=now,
    )


def classify_outcome(target_achievement: float) -> OverrideOutcome:
    if target_achievement >= SUCCESS_ACHIEVEMENT:
        return OverrideOutcome.SUCCESS
    if target_achievement >= PARTIAL_ACHIEVEMENT:
        return OverrideOutcome.PARTIAL
    return OverrideOutcome.FAILURE


def evaluate_override_outcome(
    override: OverrideEvent,
    target_achievement: float,
    now: datetime | None = None,
) -> OverrideEvent:
    """Reconcile an override against how the campaign actually performed.

    Rules:
        - Overriding a cautious gate (adjust/pause) to proceed is justified
          only if the campaign succeeded
        - Overriding to a more cautious action is justified if the campaign
          did not fully succeed (the caution was warranted)
        - Relaxing pause to adjust is justified unless the campaign failed
    """
    if now is None:
        now = utc_now()

    outcome = classify_outcome(target_achievement)
    original = override.original_recommendation
    action = override.actual_action

    if action == GateRecommendation.PROCEED:
        justified = outcome == OverrideOutcome.SUCCESS
    elif _CAUTION[action] > _CAUTION[original]:
        justified = outcome != OverrideOutcome.SUCCESS
    else:
        justified = outcome != OverrideOutcome.FAILURE

    override.outcome = outcome
    override.override_justified = justified
    override.evaluated_at = now
    return override
