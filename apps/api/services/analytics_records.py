"""
Analytics Records

Immutable, validated in-memory records the analytics pipeline consumes.
The record store builds a RecordSnapshot from database rows; tests build
one from literals. Every pipeline function is a pure function of a snapshot.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from services.pillar_catalog import pillar_score


class EventKind(str, Enum):
    LOGIN = "login"
    TASK = "task"
    ASSESSMENT = "assessment"
    INTERACTION = "interaction"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DEFERRED = "deferred"


TERMINAL_TASK_STATUSES = {TaskStatus.COMPLETED, TaskStatus.DEFERRED}


class Mood(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


MOOD_SCORES = {
    Mood.POSITIVE: 1.0,
    Mood.NEUTRAL: 0.0,
    Mood.NEGATIVE: -1.0,
}


def infer_event_kind(event_name: str) -> EventKind:
    """Classify a raw event name into one of the four activity kinds."""
    name = (event_name or "").lower()
    if "task" in name:
        return EventKind.TASK
    if "assessment" in name:
        return EventKind.ASSESSMENT
    if "stefan" in name or "chat" in name or "coach" in name:
        return EventKind.INTERACTION
    return EventKind.LOGIN


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class ActivityEvent:
    id: str
    user_id: str
    event_kind: EventKind
    timestamp: datetime
    event_name: str = ""
    session_id: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TaskRecord:
    id: str
    user_id: str
    status: TaskStatus
    created_at: datetime
    completed_at: Optional[datetime] = None
    priority: Optional[str] = None
    deadline: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def is_open(self) -> bool:
        return self.status not in TERMINAL_TASK_STATUSES


@dataclass(frozen=True)
class AssessmentRecord:
    id: str
    user_id: str
    pillar_key: str
    scores: Dict[str, float]
    completed_at: datetime

    @property
    def calculated_score(self) -> Optional[float]:
        return pillar_score(self.scores)


@dataclass(frozen=True)
class PillarActivation:
    user_id: str
    pillar_key: str
    is_active: bool
    activated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class PathEntry:
    id: str
    user_id: str
    entry_type: str
    timestamp: datetime


@dataclass(frozen=True)
class JournalEntry:
    id: str
    user_id: str
    created_at: datetime
    mood: Optional[Mood] = None
    sentiment_score: Optional[float] = None


@dataclass(frozen=True)
class RecordSnapshot:
    """
    One user's source records for one analysis run.

    Collections are tuples so a snapshot can be shared between calls
    without anyone mutating it.
    """
    user_id: str
    tasks: Tuple[TaskRecord, ...] = ()
    # Open tasks regardless of when they were created; the rules look past the range
    open_tasks: Tuple[TaskRecord, ...] = ()
    assessments: Tuple[AssessmentRecord, ...] = ()
    events: Tuple[ActivityEvent, ...] = ()
    activations: Tuple[PillarActivation, ...] = ()
    path_entries: Tuple[PathEntry, ...] = ()
    journal_entries: Tuple[JournalEntry, ...] = ()
    range_start: Optional[datetime] = None
    range_end: Optional[datetime] = None

    @property
    def current_open_tasks(self) -> Tuple[TaskRecord, ...]:
        """Open tasks from both collections, deduplicated by id, oldest first."""
        merged = {t.id: t for t in self.open_tasks if t.is_open}
        for task in self.tasks:
            if task.is_open:
                merged.setdefault(task.id, task)
        return tuple(sorted(merged.values(), key=lambda t: (ensure_utc(t.created_at), t.id)))

    @property
    def record_version(self) -> Optional[str]:
        """
        Latest change timestamp across all records, as ISO text.

        Used as the cache version: any inserted or updated row moves it.
        None for an empty snapshot.
        """
        stamps = []
        for task in self.tasks + self.open_tasks:
            stamps.append(task.updated_at or task.completed_at or task.created_at)
        stamps.extend(a.completed_at for a in self.assessments)
        stamps.extend(e.timestamp for e in self.events)
        for activation in self.activations:
            stamps.extend(s for s in (activation.activated_at, activation.completed_at) if s)
        stamps.extend(p.timestamp for p in self.path_entries)
        stamps.extend(j.created_at for j in self.journal_entries)
        if not stamps:
            return None
        count = (
            len(self.tasks) + len(self.open_tasks) + len(self.assessments) + len(self.events)
            + len(self.activations) + len(self.path_entries) + len(self.journal_entries)
        )
        # Row count guards against deletes, which do not move the max timestamp
        return f"{max(ensure_utc(s) for s in stamps).isoformat()}/{count}"
