"""
Insight Generator

Rule-based synthesis of coaching insights from the aggregate snapshot.

Design Principles:
- Every rule is independent and yields zero or one insight; several can fire at once.
- Rules only read an InsightContext, never raw records or the clock.
- Display order is by severity (critical first); equal severities keep rule order.
- Insight ids are stable across runs so clients can de-duplicate.

Generating a critical insight is what triggers the user alert. That side
effect lives in services.notifications; this module stays pure.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence
import logging

from services.analytics_records import RecordSnapshot, ensure_utc
from services.metric_aggregator import MetricSummary, latest_assessment_at
from services.trend_calculator import PillarProgress, TrendDirection

logger = logging.getLogger(__name__)


# =============================================================================
# INSIGHT TYPES AND SEVERITIES
# =============================================================================

class InsightKind(str, Enum):
    PERFORMANCE = "performance"
    ENGAGEMENT = "engagement"
    GOAL_ALIGNMENT = "goal_alignment"
    BEHAVIOR_PATTERN = "behavior_pattern"


class InsightSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


SEVERITY_RANK = {
    InsightSeverity.CRITICAL: 4,
    InsightSeverity.HIGH: 3,
    InsightSeverity.MEDIUM: 2,
    InsightSeverity.LOW: 1,
}

DEFAULT_RECENT_WINDOW_DAYS = 7
DEFAULT_STALE_TASK_DAYS = 14

ENGAGEMENT_MIN_ACTIVE_TASKS = 3
STALE_TASK_LIMIT = 2
HIGH_COMPLETION_RATE = 80
LOW_COMPLETION_RATE = 40
STREAK_CHAMPION_DAYS = 7
LOW_WEEKLY_ENTRIES = 2
ASSESSMENT_DUE_DAYS = 7
PILLAR_IMBALANCE_SPREAD = 3.0  # score points on the 0-10 scale
BROAD_IMPROVEMENT_PILLARS = 2


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class Insight:
    """A generated insight ready for display"""
    id: str
    kind: InsightKind
    severity: InsightSeverity
    confidence: int  # 0-100
    title: str
    description: str
    recommendation: str
    data_points: List[str] = field(default_factory=list)
    actionable: bool = True
    timeframe: str = ""
    expected_outcome: str = ""


@dataclass
class InsightContext:
    """Aggregate figures the rules are evaluated against."""
    activated_pillars: int = 0
    completed_pillars: int = 0
    total_tasks: int = 0
    completed_tasks: int = 0
    active_tasks: int = 0
    recent_task_activity: int = 0
    stale_tasks: int = 0
    completion_rate: float = 0.0
    login_streak: int = 0
    total_entries: int = 0
    this_week_entries: int = 0
    assessment_count: int = 0
    days_since_last_assessment: Optional[int] = None
    assessed_pillar_scores: List[float] = field(default_factory=list)
    improving_pillars: int = 0
    recent_window_days: int = DEFAULT_RECENT_WINDOW_DAYS
    stale_task_days: int = DEFAULT_STALE_TASK_DAYS


def _age_days(stamp: datetime, now: datetime) -> int:
    """Whole days elapsed, floored."""
    return int((ensure_utc(now) - ensure_utc(stamp)).total_seconds() // 86400)


def build_insight_context(
    snapshot: RecordSnapshot,
    metrics: MetricSummary,
    pillars: Sequence[PillarProgress],
    login_streak: int,
    now: datetime,
    recent_window_days: int = DEFAULT_RECENT_WINDOW_DAYS,
    stale_task_days: int = DEFAULT_STALE_TASK_DAYS,
) -> InsightContext:
    """Derive the rule inputs from a snapshot and the already computed aggregates."""
    open_tasks = snapshot.current_open_tasks
    task_ages = [_age_days(t.created_at, now) for t in open_tasks]
    last_assessment = latest_assessment_at(snapshot.assessments)

    return InsightContext(
        activated_pillars=sum(1 for a in snapshot.activations if a.is_active),
        completed_pillars=sum(1 for a in snapshot.activations if a.completed_at is not None),
        total_tasks=metrics.total_tasks,
        completed_tasks=metrics.completed_tasks,
        active_tasks=len(open_tasks),
        recent_task_activity=sum(1 for age in task_ages if age <= recent_window_days),
        stale_tasks=sum(1 for age in task_ages if age > stale_task_days),
        completion_rate=metrics.task_completion_rate,
        login_streak=login_streak,
        total_entries=len(snapshot.path_entries),
        this_week_entries=sum(
            1 for p in snapshot.path_entries
            if 0 <= _age_days(p.timestamp, now) < DEFAULT_RECENT_WINDOW_DAYS
        ),
        assessment_count=len(snapshot.assessments),
        days_since_last_assessment=_age_days(last_assessment, now) if last_assessment else None,
        assessed_pillar_scores=[p.current_score for p in pillars if p.assessment_count > 0],
        improving_pillars=sum(1 for p in pillars if p.trend == TrendDirection.UP),
        recent_window_days=recent_window_days,
        stale_task_days=stale_task_days,
    )


# =============================================================================
# RULES
# =============================================================================

def _activation_gap(ctx: InsightContext) -> Optional[Insight]:
    if not (ctx.activated_pillars > 0 and ctx.completed_pillars == 0):
        return None
    return Insight(
        id="performance-activation-gap",
        kind=InsightKind.PERFORMANCE,
        severity=InsightSeverity.MEDIUM,
        confidence=85,
        title="Pillars activated but none completed",
        description=f"You have activated {ctx.activated_pillars} pillars but not completed any yet.",
        recommendation="Focus on finishing one pillar at a time to build momentum.",
        data_points=[f"{ctx.activated_pillars} activated pillars", "0 completed"],
        timeframe="2 weeks",
        expected_outcome="Higher completion rate and confidence",
    )


def _engagement_declining(ctx: InsightContext) -> Optional[Insight]:
    if not (ctx.recent_task_activity == 0 and ctx.active_tasks > ENGAGEMENT_MIN_ACTIVE_TASKS):
        return None
    return Insight(
        id="engagement-declining",
        kind=InsightKind.ENGAGEMENT,
        severity=InsightSeverity.HIGH,
        confidence=92,
        title="Declining activity detected",
        description=f"No new activity in {ctx.recent_window_days} days despite open tasks.",
        recommendation="Consider splitting large tasks into smaller, more manageable steps.",
        data_points=[
            f"0 new tasks in the last {ctx.recent_window_days} days",
            f"{ctx.active_tasks} open tasks",
        ],
        timeframe="3 days",
        expected_outcome="Resumed activity and less procrastination",
    )


def _pillar_imbalance(ctx: InsightContext) -> Optional[Insight]:
    scores = ctx.assessed_pillar_scores
    if len(scores) < 2:
        return None
    spread = max(scores) - min(scores)
    if spread <= PILLAR_IMBALANCE_SPREAD:
        return None
    return Insight(
        id="goal-alignment-imbalance",
        kind=InsightKind.GOAL_ALIGNMENT,
        severity=InsightSeverity.MEDIUM,
        confidence=78,
        title="Unbalanced development focus",
        description="Some pillars are developing much faster than others.",
        recommendation="Consider giving your lowest-scoring pillar more attention for holistic growth.",
        data_points=[f"Highest pillar score {max(scores):.1f}", f"Lowest pillar score {min(scores):.1f}"],
        timeframe="1 month",
        expected_outcome="More balanced personal development",
    )


def _high_performer(ctx: InsightContext) -> Optional[Insight]:
    if not ctx.completion_rate > HIGH_COMPLETION_RATE:
        return None
    return Insight(
        id="behavior-high-performer",
        kind=InsightKind.BEHAVIOR_PATTERN,
        severity=InsightSeverity.LOW,
        confidence=95,
        title="Strong follow-through identified",
        description=f"Impressive {round(ctx.completion_rate)}% completion rate on your tasks.",
        recommendation="Consider setting more challenging goals to keep growing.",
        data_points=[f"{ctx.completed_tasks}/{ctx.total_tasks} tasks completed"],
        timeframe="1 week",
        expected_outcome="Faster development through stretch goals",
    )


def _low_completion(ctx: InsightContext) -> Optional[Insight]:
    if not (ctx.total_tasks > 0 and ctx.completion_rate < LOW_COMPLETION_RATE):
        return None
    return Insight(
        id="behavior-low-completion",
        kind=InsightKind.BEHAVIOR_PATTERN,
        severity=InsightSeverity.MEDIUM,
        confidence=80,
        title="Focus on finishing",
        description=f"Only {round(ctx.completion_rate)}% of your tasks are completed.",
        recommendation="Set smaller, more achievable goals to build momentum.",
        data_points=[f"{ctx.completed_tasks}/{ctx.total_tasks} tasks completed"],
        timeframe="2 weeks",
        expected_outcome="Steadier completion rate",
    )


def _streak_champion(ctx: InsightContext) -> Optional[Insight]:
    if ctx.login_streak < STREAK_CHAMPION_DAYS:
        return None
    return Insight(
        id="engagement-streak-champion",
        kind=InsightKind.ENGAGEMENT,
        severity=InsightSeverity.LOW,
        confidence=90,
        title="Consistency champion",
        description=f"{ctx.login_streak} days in a row shows real commitment to your development.",
        recommendation="Keep the rhythm going; small daily steps compound.",
        data_points=[f"{ctx.login_streak}-day streak"],
        actionable=False,
        timeframe="Ongoing",
        expected_outcome="Lasting habits",
    )


def _low_weekly_activity(ctx: InsightContext) -> Optional[Insight]:
    if not (ctx.total_entries > 0 and ctx.this_week_entries < LOW_WEEKLY_ENTRIES):
        return None
    return Insight(
        id="engagement-low-weekly-activity",
        kind=InsightKind.ENGAGEMENT,
        severity=InsightSeverity.HIGH,
        confidence=75,
        title="Low activity this week",
        description="You have logged few activities this week.",
        recommendation="Set one small, achievable goal for today or reach out to your coach.",
        data_points=[f"{ctx.this_week_entries} entries this week", f"{ctx.total_entries} entries total"],
        timeframe="This week",
        expected_outcome="Re-established weekly rhythm",
    )


def _assessment_due(ctx: InsightContext) -> Optional[Insight]:
    if ctx.assessment_count == 0 or ctx.days_since_last_assessment is None:
        return None
    if ctx.days_since_last_assessment < ASSESSMENT_DUE_DAYS:
        return None
    return Insight(
        id="goal-alignment-assessment-due",
        kind=InsightKind.GOAL_ALIGNMENT,
        severity=InsightSeverity.MEDIUM,
        confidence=70,
        title="Time for a new assessment",
        description="It has been a while since your last assessment. A new one can surface valuable insights.",
        recommendation="Complete a self-assessment or ask your coach for a review.",
        data_points=[f"Last assessment {ctx.days_since_last_assessment} days ago"],
        timeframe="1 week",
        expected_outcome="Up-to-date picture of your progress",
    )


def _broad_improvement(ctx: InsightContext) -> Optional[Insight]:
    if ctx.improving_pillars <= BROAD_IMPROVEMENT_PILLARS:
        return None
    return Insight(
        id="performance-broad-improvement",
        kind=InsightKind.PERFORMANCE,
        severity=InsightSeverity.LOW,
        confidence=88,
        title="Broad development",
        description=f"You are improving in {ctx.improving_pillars} areas at the same time.",
        recommendation="Note what is working and keep the same approach.",
        data_points=[f"{ctx.improving_pillars} pillars trending up"],
        actionable=False,
        timeframe="1 month",
        expected_outcome="Sustained all-round growth",
    )


def _critical_stagnation(ctx: InsightContext) -> Optional[Insight]:
    if ctx.stale_tasks <= STALE_TASK_LIMIT:
        return None
    return Insight(
        id="critical-stagnation",
        kind=InsightKind.ENGAGEMENT,
        severity=InsightSeverity.CRITICAL,
        confidence=98,
        title="Critical stagnation detected",
        description=f"{ctx.stale_tasks} tasks have been inactive for over {ctx.stale_task_days} days.",
        recommendation="Immediate attention needed. Archive outdated tasks and set new, relevant goals.",
        data_points=[f"{ctx.stale_tasks} inactive tasks", f"{ctx.stale_task_days}+ days without activity"],
        timeframe="Immediately",
        expected_outcome="Renewed motivation and clear goals",
    )


RULES: List[Callable[[InsightContext], Optional[Insight]]] = [
    _activation_gap,
    _engagement_declining,
    _pillar_imbalance,
    _high_performer,
    _low_completion,
    _streak_champion,
    _low_weekly_activity,
    _assessment_due,
    _broad_improvement,
    _critical_stagnation,
]


def sort_insights(insights: Sequence[Insight]) -> List[Insight]:
    """Most severe first. sorted() is stable, so equal severities keep generation order."""
    return sorted(insights, key=lambda i: SEVERITY_RANK[i.severity], reverse=True)


def generate_insights(ctx: InsightContext) -> List[Insight]:
    """Evaluate every rule and return the fired insights in display order."""
    fired = []
    for rule in RULES:
        insight = rule(ctx)
        if insight is not None:
            fired.append(insight)
    logger.debug(f"Generated {len(fired)} insights: {[i.id for i in fired]}")
    return sort_insights(fired)


def critical_insights(insights: Sequence[Insight]) -> List[Insight]:
    return [i for i in insights if i.severity == InsightSeverity.CRITICAL]


def to_dict(insight: Insight) -> dict:
    """Convert Insight to dictionary for API response."""
    return {
        "id": insight.id,
        "kind": insight.kind.value,
        "severity": insight.severity.value,
        "confidence": insight.confidence,
        "title": insight.title,
        "description": insight.description,
        "recommendation": insight.recommendation,
        "data_points": list(insight.data_points),
        "actionable": insight.actionable,
        "timeframe": insight.timeframe,
        "expected_outcome": insight.expected_outcome,
    }
