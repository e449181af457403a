"""
Metric Aggregator

Reduces a user's raw task, assessment and activity records into counts,
rates and averages for the dashboard.

Design Principles:
- Pure: no I/O, no clock reads. "now" is always passed in.
- Absence of data is not an error: empty inputs give 0, never NaN or a raise.
- Rates are percentages on a 0-100 scale.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence
import logging

from services.analytics_records import (
    ActivityEvent,
    AssessmentRecord,
    EventKind,
    RecordSnapshot,
    TaskRecord,
    ensure_utc,
)
from services.pillar_catalog import is_score_value

logger = logging.getLogger(__name__)


SESSION_DURATION_PROPERTY = "session_duration"

# Weights for the velocity score (completed tasks, assessments, interactions)
VELOCITY_WEIGHTS = (0.5, 0.3, 0.2)


@dataclass
class ActivityPoint:
    """Event count for one calendar day."""
    date: str
    value: int
    kind: str


@dataclass
class TaskProgressPoint:
    """Task flow for one calendar day."""
    date: str
    created: int = 0
    completed: int = 0
    pending: int = 0


@dataclass
class MetricSummary:
    total_tasks: int
    completed_tasks: int
    pending_tasks: int
    overdue_tasks: int
    task_completion_rate: float
    assessment_count: int
    assessment_progress: float
    overall_progress: float
    total_sessions: int
    average_session_duration: float
    interaction_count: int
    velocity_score: int
    daily_activity: List[ActivityPoint] = field(default_factory=list)
    task_progress: List[TaskProgressPoint] = field(default_factory=list)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def task_completion_rate(tasks: Sequence[TaskRecord]) -> float:
    """Completed tasks as a percentage of all tasks. 0 when there are none."""
    total = len(tasks)
    if total == 0:
        return 0.0
    completed = sum(1 for t in tasks if t.is_completed)
    return round(completed * 100 / total, 1)


def assessment_progress(assessments: Iterable[AssessmentRecord]) -> float:
    """
    Binary gate: 100 if any assessment in the period has a calculated score.

    Mirrors the dashboard's current behavior rather than weighting by how
    many pillars were assessed.
    """
    for assessment in assessments:
        if assessment.calculated_score is not None:
            return 100.0
    return 0.0


def overall_progress(completion_rate: float, assessment_pct: float) -> float:
    """Unweighted mean of task completion rate and assessment progress."""
    return round((completion_rate + assessment_pct) / 2, 1)


def count_sessions(events: Iterable[ActivityEvent]) -> int:
    """Distinct non-empty session ids."""
    return len({e.session_id for e in events if e.session_id})


def average_session_duration(events: Iterable[ActivityEvent]) -> float:
    """
    Mean of the `session_duration` samples carried on events (minutes).

    Events without the property are ignored; non-numeric samples are
    skipped and logged.
    """
    samples: List[float] = []
    for event in events:
        if SESSION_DURATION_PROPERTY not in event.properties:
            continue
        value = event.properties[SESSION_DURATION_PROPERTY]
        if not is_score_value(value) or value < 0:
            logger.warning(f"Skipping malformed session_duration on event {event.id}: {value!r}")
            continue
        samples.append(float(value))
    return round(_mean(samples), 1)


def velocity_score(completed_tasks: int, assessments: int, interactions: int) -> int:
    """Weighted activity volume scaled to 0-100."""
    w_task, w_assessment, w_interaction = VELOCITY_WEIGHTS
    raw = completed_tasks * w_task + assessments * w_assessment + interactions * w_interaction
    return min(int(round(raw * 10)), 100)


def count_overdue(tasks: Iterable[TaskRecord], now: datetime) -> int:
    """Open tasks whose deadline has passed."""
    now = ensure_utc(now)
    return sum(
        1 for t in tasks
        if t.is_open and t.deadline is not None and ensure_utc(t.deadline) < now
    )


def _day(value: datetime) -> str:
    return ensure_utc(value).date().isoformat()


def daily_activity(events: Iterable[ActivityEvent]) -> List[ActivityPoint]:
    """
    Per-day event counts, oldest day first.

    Each day is tagged with the kind of its earliest event so the chart can
    color it; ties keep input order.
    """
    ordered = sorted(events, key=lambda e: ensure_utc(e.timestamp))
    points: "OrderedDict[str, ActivityPoint]" = OrderedDict()
    for event in ordered:
        day = _day(event.timestamp)
        point = points.get(day)
        if point is None:
            points[day] = ActivityPoint(date=day, value=1, kind=event.event_kind.value)
        else:
            point.value += 1
    return sorted(points.values(), key=lambda p: p.date)


def task_progress(tasks: Iterable[TaskRecord]) -> List[TaskProgressPoint]:
    """Created / completed / still-pending task counts per day."""
    days: Dict[str, TaskProgressPoint] = {}

    def _point(day: str) -> TaskProgressPoint:
        if day not in days:
            days[day] = TaskProgressPoint(date=day)
        return days[day]

    for task in tasks:
        created_day = _day(task.created_at)
        _point(created_day).created += 1
        if task.completed_at is not None:
            _point(_day(task.completed_at)).completed += 1
        elif task.is_open:
            _point(created_day).pending += 1

    return sorted(days.values(), key=lambda p: p.date)


def active_days(events: Iterable[ActivityEvent]) -> List[date]:
    """Distinct UTC calendar days with at least one event, newest first."""
    return sorted({ensure_utc(e.timestamp).date() for e in events}, reverse=True)


def aggregate_metrics(snapshot: RecordSnapshot, now: datetime) -> MetricSummary:
    """Compute every count, rate and average for one snapshot."""
    tasks = snapshot.tasks
    events = snapshot.events

    # Assessment history reaches back past the range for trends; progress only counts the period
    in_period = assessments_in_range(snapshot.assessments, snapshot.range_start, snapshot.range_end)

    completed = sum(1 for t in tasks if t.is_completed)
    completion = task_completion_rate(tasks)
    assessed = assessment_progress(in_period)
    interactions = sum(1 for e in events if e.event_kind == EventKind.INTERACTION)

    return MetricSummary(
        total_tasks=len(tasks),
        completed_tasks=completed,
        pending_tasks=sum(1 for t in tasks if t.is_open),
        overdue_tasks=count_overdue(snapshot.current_open_tasks, now),
        task_completion_rate=completion,
        assessment_count=len(in_period),
        assessment_progress=assessed,
        overall_progress=overall_progress(completion, assessed),
        total_sessions=count_sessions(events),
        average_session_duration=average_session_duration(events),
        interaction_count=interactions,
        velocity_score=velocity_score(completed, len(in_period), interactions),
        daily_activity=daily_activity(events),
        task_progress=task_progress(tasks),
    )


def assessments_in_range(
    assessments: Iterable[AssessmentRecord],
    start: Optional[datetime],
    end: Optional[datetime],
) -> List[AssessmentRecord]:
    """Assessments completed within [start, end]; open bounds are unbounded."""
    result = []
    for assessment in assessments:
        completed_at = ensure_utc(assessment.completed_at)
        if start is not None and completed_at < ensure_utc(start):
            continue
        if end is not None and completed_at > ensure_utc(end):
            continue
        result.append(assessment)
    return result


def latest_assessment_at(assessments: Iterable[AssessmentRecord]) -> Optional[datetime]:
    stamps = [ensure_utc(a.completed_at) for a in assessments]
    return max(stamps) if stamps else None
