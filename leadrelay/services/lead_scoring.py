"""Lead scoring for qualification forms.

Rules are applied in order and later rules override earlier ones:

1. disqualified segment -> score 0, stop
2. revenue "ate-10k" -> score 0, stop
3. + revenue tier points
4. + sales team tier points
5. reduced-score segment -> score forced to 1
6. premium segment -> score forced to 100

The overrides in steps 5 and 6 discard the tier points on purpose; that
behaviour is kept as-is pending product confirmation.
"""
from pydantic import BaseModel, Field

DISQUALIFIED_SEGMENTS = frozenset({"freelancer-marketing", "ecommerce", "infoproduto"})
REDUCED_SCORE_SEGMENTS = frozenset({"food-service", "varejo", "imobiliaria"})
PREMIUM_SEGMENTS = frozenset({"industria", "agro"})

MIN_REVENUE_TIER = "ate-10k"

REVENUE_POINTS = {
    "11k-50k": 5,
    "51k-100k": 30,
    "101k-400k": 40,
    "401k-1m": 80,
    "1m+": 100,
}

TEAM_SIZE_POINTS = {
    "somente-dono": 1,
    "1-3": 5,
    "4-10": 15,
    "11-20": 50,
    "20+": 100,
}

REDUCED_SCORE = 1
PREMIUM_SCORE = 100


class LeadScoreDetails(BaseModel):
    segment: str
    monthly_revenue: str
    sales_team_size: str
    base_score: int
    adjustments: list[str] = Field(default_factory=list)
    disqualification_reason: str | None = None


class LeadScoreResult(BaseModel):
    score: int
    is_qualified: bool
    reason: str
    log_details: LeadScoreDetails


def _disqualified(segment: str, monthly_revenue: str, sales_team_size: str,
                  reason: str, adjustment: str, detail: str) -> LeadScoreResult:
    return LeadScoreResult(
        score=0,
        is_qualified=False,
        reason=reason,
        log_details=LeadScoreDetails(
            segment=segment,
            monthly_revenue=monthly_revenue,
            sales_team_size=sales_team_size,
            base_score=0,
            adjustments=[adjustment],
            disqualification_reason=detail,
        ),
    )


def score_lead(segment: str, monthly_revenue: str, sales_team_size: str) -> LeadScoreResult:
    """
    Score a lead from its categorical form answers.

    Args:
        segment: Business segment slug, e.g. "industria"
        monthly_revenue: Revenue tier slug, e.g. "51k-100k"
        sales_team_size: Team size tier slug, e.g. "4-10"

    Returns:
        LeadScoreResult with the score, verdict and an audit trail
    """
    if segment in DISQUALIFIED_SEGMENTS:
        return _disqualified(
            segment, monthly_revenue, sales_team_size,
            reason="Lead disqualified by segment",
            adjustment="Lead disqualified by segment",
            detail="Segment not eligible for qualification",
        )

    if monthly_revenue == MIN_REVENUE_TIER:
        return _disqualified(
            segment, monthly_revenue, sales_team_size,
            reason="Lead disqualified by monthly revenue below 10k",
            adjustment="Lead disqualified by monthly revenue",
            detail="Monthly revenue below the required minimum",
        )

    score = 0
    adjustments: list[str] = []

    revenue_points = REVENUE_POINTS.get(monthly_revenue)
    if revenue_points is not None:
        score += revenue_points
        adjustments.append(f"Monthly revenue {monthly_revenue}: +{revenue_points} points")

    team_points = TEAM_SIZE_POINTS.get(sales_team_size)
    if team_points is not None:
        score += team_points
        adjustments.append(f"Sales team size {sales_team_size}: +{team_points} points")

    if segment in REDUCED_SCORE_SEGMENTS:
        score = REDUCED_SCORE
        adjustments.append(f"Segment {segment}: score reduced to {REDUCED_SCORE} point")

    if segment in PREMIUM_SEGMENTS:
        score = PREMIUM_SCORE
        adjustments.append(f"Segment {segment}: premium score ({PREMIUM_SCORE} points)")

    is_qualified = score > 0
    reason = (
        f"Lead qualified with score of {score} points"
        if is_qualified
        else "Lead did not reach the minimum qualification score"
    )

    return LeadScoreResult(
        score=score,
        is_qualified=is_qualified,
        reason=reason,
        log_details=LeadScoreDetails(
            segment=segment,
            monthly_revenue=monthly_revenue,
            sales_team_size=sales_team_size,
            base_score=score,
            adjustments=adjustments,
            disqualification_reason=None if is_qualified else "Insufficient score for qualification",
        ),
    )


def score_to_monetary_value(score: int) -> int:
    """Pixel conversion value for a lead score (one currency unit per point)."""
    return score
