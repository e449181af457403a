"""
Analytics Pipeline

Wires the analytics modules together:

    record store -> metric aggregator -> {trend calculator, streaks}
                 -> journey stage -> insight generator

`build_user_analytics` is the pure core: the same snapshot and the same
`now` always give an identical result. `get_user_analytics` is the
request-time entry point that adds the fetch, the Redis cache and the
critical-alert side effect around it.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from core.cache import analytics_cache_key, cache_key, get_cache, set_cache
from core.config import settings
from core.exceptions import ValidationError
from core.logging import log_fields
from services.analytics_records import Mood, RecordSnapshot, ensure_utc
from services.consistency_streaks import DEFAULT_WINDOW_DAYS, StreakInfo, calculate_streak
from services.insight_generator import (
    DEFAULT_RECENT_WINDOW_DAYS,
    DEFAULT_STALE_TASK_DAYS,
    Insight,
    build_insight_context,
    critical_insights,
    generate_insights,
    to_dict as insight_to_dict,
)
from services.journey_stage import JourneyStage, JourneyStageName, classify_stage
from services.metric_aggregator import MetricSummary, active_days, aggregate_metrics
from services.notifications import Notifier, SupabaseAlertNotifier, dispatch_critical_alerts
from services.pillar_catalog import format_pillar
from services.record_store import RecordStore
from services.trend_calculator import (
    DEFAULT_TREND_THRESHOLD,
    PillarProgress,
    TrendResult,
    average_mood,
    mood_trend,
    pillar_progress,
    round_trend,
    sentiment_trend,
)

logger = logging.getLogger(__name__)


TIME_RANGES = {
    "week": 7,
    "month": 30,
    "quarter": 90,
    "year": 365,
}
DEFAULT_TIME_RANGE = "month"


@dataclass
class UserAnalytics:
    """Everything the dashboard shows for one user and one range."""
    user_id: str
    time_range: str
    generated_for: date
    record_version: Optional[str]
    overall_progress: float
    task_completion_rate: float
    assessment_progress: float
    metrics: MetricSummary
    pillars_progress: List[PillarProgress]
    mood_trend: TrendResult
    sentiment_trend: TrendResult
    average_mood: Mood
    streak: StreakInfo
    journey_stage: JourneyStage
    insights: List[Insight] = field(default_factory=list)

    @property
    def login_streak(self) -> int:
        return self.streak.current_streak_days

    @property
    def consistency_score(self) -> int:
        return self.streak.consistency_score


def resolve_time_range(range_name: str, now: datetime) -> Tuple[datetime, datetime]:
    """Map a range name to a [start, end] window ending at `now`."""
    days = TIME_RANGES.get(range_name)
    if days is None:
        raise ValidationError(
            f"Unknown time range '{range_name}'. Use one of: {', '.join(TIME_RANGES)}",
            field="range",
        )
    end = ensure_utc(now)
    return end - timedelta(days=days), end


def build_user_analytics(
    snapshot: RecordSnapshot,
    now: datetime,
    time_range: str = DEFAULT_TIME_RANGE,
    trend_threshold: float = DEFAULT_TREND_THRESHOLD,
    window_days: int = DEFAULT_WINDOW_DAYS,
    recent_window_days: int = DEFAULT_RECENT_WINDOW_DAYS,
    stale_task_days: int = DEFAULT_STALE_TASK_DAYS,
    previous_stage: Optional[JourneyStageName] = None,
    hysteresis: float = 0.0,
) -> UserAnalytics:
    """
    Run the full pipeline over one snapshot.

    Pure: no I/O and no clock reads. `now` fixes "today" (UTC) for streaks,
    task ages and deadlines.
    """
    now = ensure_utc(now)
    today = now.date()

    metrics = aggregate_metrics(snapshot, now)
    pillars = pillar_progress(snapshot.assessments, trend_threshold)
    streak = calculate_streak(active_days(snapshot.events), today, window_days)

    active_pillar_count = sum(1 for a in snapshot.activations if a.is_active)
    stage = classify_stage(
        metrics.overall_progress,
        active_pillar_count,
        len(snapshot.path_entries),
        previous_stage=previous_stage,
        hysteresis=hysteresis,
    )

    context = build_insight_context(
        snapshot,
        metrics,
        pillars,
        streak.current_streak_days,
        now,
        recent_window_days=recent_window_days,
        stale_task_days=stale_task_days,
    )

    return UserAnalytics(
        user_id=snapshot.user_id,
        time_range=time_range,
        generated_for=today,
        record_version=snapshot.record_version,
        overall_progress=metrics.overall_progress,
        task_completion_rate=metrics.task_completion_rate,
        assessment_progress=metrics.assessment_progress,
        metrics=metrics,
        pillars_progress=pillars,
        mood_trend=round_trend(mood_trend(snapshot.journal_entries, trend_threshold)),
        sentiment_trend=round_trend(sentiment_trend(snapshot.journal_entries, trend_threshold)),
        average_mood=average_mood(snapshot.journal_entries),
        streak=streak,
        journey_stage=stage,
        insights=generate_insights(context),
    )


# =============================================================================
# SERIALIZATION
# =============================================================================

def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _trend_to_dict(result: TrendResult) -> Dict:
    return {
        "current": result.current,
        "previous": result.previous,
        "change": result.change,
        "trend": result.trend.value,
        "sample_size": result.sample_size,
    }


def _pillar_to_dict(progress: PillarProgress) -> Dict:
    return {
        "pillar_key": progress.pillar_key,
        "pillar_name": format_pillar(progress.pillar_key),
        "current_score": progress.current_score,
        "previous_score": progress.previous_score,
        "trend": progress.trend.value,
        "change": progress.change,
        "last_updated": _iso(progress.last_updated),
        "assessment_count": progress.assessment_count,
    }


def _streak_to_dict(streak: StreakInfo) -> Dict:
    return {
        "current_streak_days": streak.current_streak_days,
        "longest_streak_days": streak.longest_streak_days,
        "active_days_in_window": streak.active_days_in_window,
        "window_days": streak.window_days,
        "consistency_score": streak.consistency_score,
        "last_active_day": _iso(streak.last_active_day),
        "is_at_risk": streak.is_at_risk,
        "message": streak.message,
        "celebration": streak.celebration,
    }


def journey_to_dict(stage: JourneyStage) -> Dict:
    return {
        "stage": stage.stage.value,
        "progress": stage.progress,
        "description": stage.description,
        "completed_milestones": list(stage.completed_milestones),
        "next_milestones": list(stage.next_milestones),
        "estimated_time_to_next": stage.estimated_time_to_next,
    }


def analytics_to_dict(result: UserAnalytics) -> Dict:
    """Convert UserAnalytics to a JSON-serializable dictionary for the API and cache."""
    return {
        "user_id": result.user_id,
        "time_range": result.time_range,
        "generated_for": result.generated_for.isoformat(),
        "record_version": result.record_version,
        "overall_progress": result.overall_progress,
        "task_completion_rate": result.task_completion_rate,
        "assessment_progress": result.assessment_progress,
        "login_streak": result.login_streak,
        "consistency_score": result.consistency_score,
        "metrics": asdict(result.metrics),
        "pillars_progress": [_pillar_to_dict(p) for p in result.pillars_progress],
        "mood_trend": _trend_to_dict(result.mood_trend),
        "sentiment_trend": _trend_to_dict(result.sentiment_trend),
        "average_mood": result.average_mood.value,
        "streak": _streak_to_dict(result.streak),
        "journey_stage": journey_to_dict(result.journey_stage),
        "insights": [insight_to_dict(i) for i in result.insights],
    }


# =============================================================================
# REQUEST-TIME ENTRY POINT
# =============================================================================

def _stage_cache_key(user_id: str) -> str:
    return cache_key("analytics", user_id, "stage")


def _previous_stage(user_id: str) -> Optional[JourneyStageName]:
    cached = get_cache(_stage_cache_key(user_id))
    if not cached:
        return None
    try:
        return JourneyStageName(cached)
    except ValueError:
        logger.warning(f"Ignoring unknown cached journey stage {cached!r} for user {user_id}")
        return None


def get_user_analytics(
    db: Session,
    user_id: str,
    time_range: str = DEFAULT_TIME_RANGE,
    now: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
    use_cache: Optional[bool] = None,
) -> Dict:
    """
    Fetch, compute (or reuse) and return one user's analytics as a dict.

    The cache key includes the record-set version, so a hit is only possible
    when the underlying records are unchanged. Critical alerts are sent only
    when the result was freshly computed.

    Raises:
        ValidationError: unknown time range
        UpstreamFetchError: the record store could not be read
    """
    now = ensure_utc(now or datetime.now(timezone.utc))
    if use_cache is None:
        use_cache = settings.ANALYTICS_CACHE_ENABLED

    start, end = resolve_time_range(time_range, now)
    snapshot = RecordStore(db).fetch_snapshot(user_id, start, end)
    user_id = snapshot.user_id

    key = analytics_cache_key(user_id, time_range, now.date().isoformat(), snapshot.record_version)
    if use_cache:
        cached = get_cache(key)
        if cached is not None:
            logger.debug(f"Analytics cache hit for user {user_id} ({time_range})")
            return cached

    hysteresis = settings.STAGE_HYSTERESIS
    previous_stage = _previous_stage(user_id) if use_cache and hysteresis > 0 else None

    result = build_user_analytics(
        snapshot,
        now,
        time_range=time_range,
        trend_threshold=settings.TREND_THRESHOLD,
        window_days=settings.CONSISTENCY_WINDOW_DAYS,
        recent_window_days=settings.RECENT_TASK_WINDOW_DAYS,
        stale_task_days=settings.STALE_TASK_DAYS,
        previous_stage=previous_stage,
        hysteresis=hysteresis,
    )
    payload = analytics_to_dict(result)

    logger.info(
        f"Computed analytics for user {user_id} ({time_range})",
        extra=log_fields(
            user_id=user_id,
            time_range=time_range,
            record_version=snapshot.record_version,
            open_tasks=len(snapshot.current_open_tasks),
            journey_stage=result.journey_stage.stage.value,
            insight_count=len(result.insights),
        ),
    )

    critical = critical_insights(result.insights)
    if critical:
        dispatch_critical_alerts(user_id, critical, notifier or SupabaseAlertNotifier())

    if use_cache:
        set_cache(key, payload, ttl=settings.CACHE_TTL_ANALYTICS)
        if hysteresis > 0:
            set_cache(_stage_cache_key(user_id), result.journey_stage.stage.value, ttl=settings.CACHE_TTL_ANALYTICS * 12)

    return payload
