"""
Analytics API Router

Dashboard analytics for coaching clients: progress, pillar trends, streaks,
journey stage and coaching insights.

Results are cached per user, range and record-set version (see
services.analytics_pipeline.get_user_analytics).
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.auth import get_current_user_id, require_user_access
from core.database import get_db
from schemas import AnalyticsSummaryResponse, InsightListResponse, JourneyResponse
from services.analytics_pipeline import DEFAULT_TIME_RANGE, TIME_RANGES, get_user_analytics
from services.insight_generator import InsightSeverity

router = APIRouter(prefix="/v1/analytics", tags=["analytics"])

RANGE_PATTERN = "^(" + "|".join(TIME_RANGES) + ")$"


def _range_query():
    return Query(DEFAULT_TIME_RANGE, alias="range", pattern=RANGE_PATTERN, description="week, month, quarter or year")


@router.get("/summary", response_model=AnalyticsSummaryResponse)
def get_my_summary(
    time_range: str = _range_query(),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Get the caller's full analytics aggregate.

    Returns:
    - Task completion rate, assessment progress and overall progress
    - Per-pillar latest score and trend
    - Login streak and consistency score
    - Journey stage with milestones
    - Coaching insights, most severe first
    """
    return get_user_analytics(db, user_id, time_range)


@router.get("/users/{user_id}/summary", response_model=AnalyticsSummaryResponse)
def get_user_summary(
    time_range: str = _range_query(),
    user_id: str = Depends(require_user_access),
    db: Session = Depends(get_db),
):
    """Coach / service view of one client's analytics."""
    return get_user_analytics(db, user_id, time_range)


@router.get("/journey", response_model=JourneyResponse)
def get_my_journey(
    time_range: str = _range_query(),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Journey stage only."""
    result = get_user_analytics(db, user_id, time_range)
    return {
        "user_id": result["user_id"],
        "generated_for": result["generated_for"],
        "overall_progress": result["overall_progress"],
        "journey_stage": result["journey_stage"],
    }


@router.get("/insights", response_model=InsightListResponse)
def get_my_insights(
    time_range: str = _range_query(),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Coaching insights in display order (critical first)."""
    result = get_user_analytics(db, user_id, time_range)
    insights = result["insights"]
    return {
        "user_id": result["user_id"],
        "generated_for": result["generated_for"],
        "insights": insights,
        "critical_count": sum(1 for i in insights if i["severity"] == InsightSeverity.CRITICAL.value),
    }
