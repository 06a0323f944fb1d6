"""Launch-readiness risk assessment and gate recommendation.

Pure domain functions for scoring a campaign before launch.
No DB access, no external calls, fully deterministic.

The cut points below are empirically chosen and kept as named constants so
they can be tuned without touching the scoring structure.
"""

import math
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum


class FactorStatus(StrEnum):
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


class RiskLevel(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class GateRecommendation(StrEnum):
    """Gate decision derived from the overall score; a human may override it."""

    PROCEED = "proceed"
    ADJUST = "adjust"
    PAUSE = "pause"


BUDGET_ADEQUACY = "Budget Adequacy"
TIMELINE_FEASIBILITY = "Timeline Feasibility"
TEAM_CAPACITY = "Team Capacity"
HISTORICAL_PERFORMANCE = "Historical Performance"
CREATIVE_READINESS = "Creative Readiness"

FACTOR_WEIGHTS: dict[str, int] = {
    BUDGET_ADEQUACY: 25,
    TIMELINE_FEASIBILITY: 25,
    TEAM_CAPACITY: 20,
    HISTORICAL_PERFORMANCE: 15,
    CREATIVE_READINESS: 15,
}

# Benchmark budget per campaign type (USD)
CATEGORY_BUDGET_BENCHMARKS: dict[str, float] = {
    "new_product_launch": 10_000,
    "seasonal_promo": 5_000,
    "brand_awareness": 8_000,
    "lead_gen": 5_000,
    "retargeting": 3_000,
    "event_based": 5_000,
}
DEFAULT_BUDGET_BENCHMARK = 5_000

# (minimum ratio, score, status), checked top-down
BUDGET_RATIO_BANDS: list[tuple[float, int, FactorStatus]] = [
    (1.5, 90, FactorStatus.PASS),
    (0.8, 70, FactorStatus.PASS),
    (0.5, 50, FactorStatus.WARN),
]
BUDGET_FLOOR = (30, FactorStatus.FAIL)

TIMELINE_RATIO_BANDS: list[tuple[float, int, FactorStatus]] = [
    (1.2, 90, FactorStatus.PASS),
    (1.0, 70, FactorStatus.PASS),
    (0.8, 50, FactorStatus.WARN),
]
TIMELINE_FLOOR = (30, FactorStatus.FAIL)
TIMELINE_NO_PHASES = (60, FactorStatus.WARN)
TIMELINE_NO_DATES = (50, FactorStatus.WARN)

# Team member counts as overloaded at this utilization (percent)
OVERLOAD_UTILIZATION_PCT = 90

HISTORICAL_BENCHMARKS = ("ctr", "cpa", "roas")
CREATIVE_FIELDS = ("format", "theme", "message", "cta", "testing_plan")

PROCEED_THRESHOLD = 70
ADJUST_THRESHOLD = 50
HIGH_RISK_THRESHOLD = 30

MITIGATIONS: dict[str, str] = {
    BUDGET_ADEQUACY: "Increase the budget toward the category benchmark or narrow the channel mix to concentrate spend.",
    TIMELINE_FEASIBILITY: "Extend the campaign window or shorten planned phase durations so the plan fits with buffer.",
    TEAM_CAPACITY: "Rebalance assignments away from overloaded team members or add temporary capacity before launch.",
    HISTORICAL_PERFORMANCE: "Record CTR, CPA and ROAS benchmarks from similar past campaigns to ground targets.",
    CREATIVE_READINESS: "Complete the creative brief: format, theme, message, CTA and a testing plan.",
}


@dataclass
class CampaignProfile:
    """Inputs the risk engine reads from a campaign; every field may be missing."""

    campaign_type: str | None = None
    total_budget: float | None = None
    start_date: date | None = None
    end_date: date | None = None
    planned_phase_days: list[int] = field(default_factory=list)
    team_utilization: list[float] = field(default_factory=list)
    historical_ctr: float | None = None
    historical_cpa: float | None = None
    historical_roas: float | None = None
    creative_strategy: dict | None = None


@dataclass
class RiskFactorResult:
    name: str
    score: int
    status: FactorStatus
    detail: str
    weight: int


@dataclass
class RiskAssessment:
    factors: list[RiskFactorResult]
    overall_score: int
    risk_level: RiskLevel
    gate_recommendation: GateRecommendation
    mitigation_suggestions: list[str]


def _band(ratio: float, bands: list[tuple[float, int, FactorStatus]], floor: tuple[int, FactorStatus]) -> tuple[int, FactorStatus]:
    for minimum, score, status in bands:
        if ratio >= minimum:
            return score, status
    return floor


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def score_budget(profile: CampaignProfile) -> RiskFactorResult:
    benchmark = CATEGORY_BUDGET_BENCHMARKS.get(profile.campaign_type or "", DEFAULT_BUDGET_BENCHMARK)
    budget = profile.total_budget or 0
    ratio = budget / benchmark
    score, status = _band(ratio, BUDGET_RATIO_BANDS, BUDGET_FLOOR)
    return RiskFactorResult(
        name=BUDGET_ADEQUACY,
        score=score,
        status=status,
        detail=f"Budget ${budget:,.0f} is {ratio:.2f}x the ${benchmark:,.0f} benchmark",
        weight=FACTOR_WEIGHTS[BUDGET_ADEQUACY],
    )


def score_timeline(profile: CampaignProfile) -> RiskFactorResult:
    weight = FACTOR_WEIGHTS[TIMELINE_FEASIBILITY]
    planned_days = sum(profile.planned_phase_days)

    if not profile.planned_phase_days or planned_days <= 0:
        score, status = TIMELINE_NO_PHASES
        return RiskFactorResult(TIMELINE_FEASIBILITY, score, status, "No execution phases defined yet", weight)

    if profile.start_date is None or profile.end_date is None:
        score, status = TIMELINE_NO_DATES
        return RiskFactorResult(TIMELINE_FEASIBILITY, score, status, "Campaign start or end date missing", weight)

    campaign_days = (profile.end_date - profile.start_date).days
    ratio = campaign_days / planned_days
    score, status = _band(ratio, TIMELINE_RATIO_BANDS, TIMELINE_FLOOR)
    return RiskFactorResult(
        TIMELINE_FEASIBILITY,
        score,
        status,
        f"{campaign_days} campaign days for {planned_days} planned phase days ({ratio:.2f}x)",
        weight,
    )


def score_team_capacity(profile: CampaignProfile) -> RiskFactorResult:
    overloaded = sum(1 for u in profile.team_utilization if u >= OVERLOAD_UTILIZATION_PCT)
    if overloaded == 0:
        score, status = 90, FactorStatus.PASS
    elif overloaded == 1:
        score, status = 65, FactorStatus.WARN
    else:
        score, status = 40, FactorStatus.FAIL
    return RiskFactorResult(
        TEAM_CAPACITY,
        score,
        status,
        f"{overloaded} team member(s) at or above {OVERLOAD_UTILIZATION_PCT}% utilization",
        FACTOR_WEIGHTS[TEAM_CAPACITY],
    )


def score_historical(profile: CampaignProfile) -> RiskFactorResult:
    values = {
        "ctr": profile.historical_ctr,
        "cpa": profile.historical_cpa,
        "roas": profile.historical_roas,
    }
    present = [name for name in HISTORICAL_BENCHMARKS if values[name] is not None]
    if len(present) == 3:
        score, status = 85, FactorStatus.PASS
    elif present:
        score, status = 65, FactorStatus.WARN
    else:
        score, status = 45, FactorStatus.WARN

    detail = (
        f"Benchmarks available: {', '.join(p.upper() for p in present)}"
        if present
        else "No historical benchmarks recorded"
    )
    return RiskFactorResult(HISTORICAL_PERFORMANCE, score, status, detail, FACTOR_WEIGHTS[HISTORICAL_PERFORMANCE])


def score_creative(profile: CampaignProfile) -> RiskFactorResult:
    strategy = profile.creative_strategy or {}
    present = [f for f in CREATIVE_FIELDS if strategy.get(f)]
    if len(present) >= 4:
        score, status = 90, FactorStatus.PASS
    elif len(present) >= 2:
        score, status = 60, FactorStatus.WARN
    else:
        score, status = 35, FactorStatus.FAIL
    return RiskFactorResult(
        CREATIVE_READINESS,
        score,
        status,
        f"{len(present)} of {len(CREATIVE_FIELDS)} creative elements defined",
        FACTOR_WEIGHTS[CREATIVE_READINESS],
    )


def risk_level_for(score: int) -> RiskLevel:
    if score >= PROCEED_THRESHOLD:
        return RiskLevel.LOW
    if score >= ADJUST_THRESHOLD:
        return RiskLevel.MEDIUM
    if score >= HIGH_RISK_THRESHOLD:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


def gate_recommendation_for(score: int) -> GateRecommendation:
    if score >= PROCEED_THRESHOLD:
        return GateRecommendation.PROCEED
    if score >= ADJUST_THRESHOLD:
        return GateRecommendation.ADJUST
    return GateRecommendation.PAUSE


def assess_risk(profile: CampaignProfile) -> RiskAssessment:
    """Score launch readiness from five weighted factors.

    Pure function -- no side effects, no DB access. Identical input always
    yields identical output.

    Args:
        profile: Campaign inputs; missing fields degrade to conservative scores

    Returns:
        RiskAssessment with per-factor results, weighted overall score,
        risk level, gate recommendation and mitigation suggestions
    """
    factors = [
        score_budget(profile),
        score_timeline(profile),
        score_team_capacity(profile),
        score_historical(profile),
        score_creative(profile),
    ]

    total_weight = sum(f.weight for f in factors)
    overall = _round_half_up(sum(f.score * f.weight for f in factors) / total_weight)

    return RiskAssessment(
        factors=factors,
        overall_score=overall,
        risk_level=risk_level_for(overall),
        gate_recommendation=gate_recommendation_for(overall),
        mitigation_suggestions=[MITIGATIONS[f.name] for f in factors if f.status != FactorStatus.PASS],
    )
