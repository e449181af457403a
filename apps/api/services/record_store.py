"""
Record Store

The I/O boundary of the analytics pipeline. Reads one user's rows from the
Supabase Postgres tables and converts them into validated, immutable records.

- Malformed rows (unknown enum values, unknown pillar, missing timestamps)
  are dropped here and logged, so the pipeline only sees well-typed input.
- Assessment score bags are filtered against the pillar catalog.
- Any database error is raised as UpstreamFetchError. No partial snapshot
  is ever returned.
"""

from datetime import datetime
from typing import Callable, Iterable, List, Optional, TypeVar
from uuid import UUID
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import UpstreamFetchError
from models import (
    AnalyticsEvent,
    CoachingProgressEntry,
    PathEntry as PathEntryRow,
    PillarAssessment,
    Task,
    UserPillarActivation,
)
from services.analytics_records import (
    ActivityEvent,
    AssessmentRecord,
    EventKind,
    JournalEntry,
    Mood,
    PathEntry,
    PillarActivation,
    RecordSnapshot,
    TaskRecord,
    TERMINAL_TASK_STATUSES,
    TaskStatus,
    ensure_utc,
    infer_event_kind,
)
from services.pillar_catalog import is_known_pillar, is_score_value, validate_scores

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Trend history needs the latest assessments even if they predate the range
ASSESSMENT_HISTORY_LIMIT = 50
JOURNAL_HISTORY_LIMIT = 20
JOURNAL_ENTRY_TYPE = "reflection"


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


def _convert_all(rows: Iterable, convert: Callable[[object], Optional[T]], source: str) -> List[T]:
    records = []
    skipped = 0
    for row in rows:
        record = convert(row)
        if record is None:
            skipped += 1
            continue
        records.append(record)
    if skipped:
        logger.warning(f"Skipped {skipped} malformed {source} rows")
    return records


def task_from_row(row: Task) -> Optional[TaskRecord]:
    try:
        status = TaskStatus(row.status)
    except ValueError:
        logger.warning(f"Task {row.id} has unknown status {row.status!r}")
        return None
    if row.created_at is None:
        logger.warning(f"Task {row.id} has no created_at")
        return None
    return TaskRecord(
        id=str(row.id),
        user_id=str(row.user_id),
        status=status,
        created_at=ensure_utc(row.created_at),
        completed_at=_utc(row.completed_at),
        priority=row.priority,
        deadline=_utc(row.deadline),
        updated_at=_utc(row.updated_at),
    )


def assessment_from_row(row: PillarAssessment) -> Optional[AssessmentRecord]:
    if not is_known_pillar(row.pillar_type):
        logger.warning(f"Assessment {row.id} has unknown pillar {row.pillar_type!r}")
        return None
    if row.created_at is None:
        logger.warning(f"Assessment {row.id} has no created_at")
        return None
    return AssessmentRecord(
        id=str(row.id),
        user_id=str(row.user_id),
        pillar_key=row.pillar_type,
        scores=validate_scores(row.pillar_type, row.scores),
        completed_at=ensure_utc(row.created_at),
    )


def event_from_row(row: AnalyticsEvent) -> Optional[ActivityEvent]:
    if row.timestamp is None:
        logger.warning(f"Event {row.id} has no timestamp")
        return None
    properties = row.properties if isinstance(row.properties, dict) else {}
    kind = properties.get("event_kind")
    try:
        event_kind = EventKind(kind) if kind else infer_event_kind(row.event)
    except ValueError:
        event_kind = infer_event_kind(row.event)
    return ActivityEvent(
        id=str(row.id),
        user_id=str(row.user_id),
        event_kind=event_kind,
        timestamp=ensure_utc(row.timestamp),
        event_name=row.event or "",
        session_id=row.session_id or None,
        properties=dict(properties),
    )


def activation_from_row(row: UserPillarActivation) -> Optional[PillarActivation]:
    if not is_known_pillar(row.pillar_key):
        logger.warning(f"Pillar activation {row.id} has unknown pillar {row.pillar_key!r}")
        return None
    return PillarActivation(
        user_id=str(row.user_id),
        pillar_key=row.pillar_key,
        is_active=bool(row.is_active),
        activated_at=_utc(row.activated_at),
        completed_at=_utc(row.completed_at),
    )


def path_entry_from_row(row: PathEntryRow) -> Optional[PathEntry]:
    if row.timestamp is None:
        return None
    return PathEntry(
        id=str(row.id),
        user_id=str(row.user_id),
        entry_type=row.type,
        timestamp=ensure_utc(row.timestamp),
    )


def journal_entry_from_row(row: CoachingProgressEntry) -> Optional[JournalEntry]:
    if row.created_at is None:
        return None
    metadata = row.entry_metadata if isinstance(row.entry_metadata, dict) else {}
    mood = None
    raw_mood = metadata.get("mood")
    if raw_mood:
        try:
            mood = Mood(raw_mood)
        except ValueError:
            logger.warning(f"Journal entry {row.id} has unknown mood {raw_mood!r}")
    sentiment = row.sentiment_score if is_score_value(row.sentiment_score) else None
    return JournalEntry(
        id=str(row.id),
        user_id=str(row.user_id),
        created_at=ensure_utc(row.created_at),
        mood=mood,
        sentiment_score=sentiment,
    )


class RecordStore:
    """Loads RecordSnapshots from the database for one user at a time."""

    def __init__(self, db: Session):
        self.db = db

    def _in_range(self, query, column, start: Optional[datetime], end: Optional[datetime]):
        if start is not None:
            query = query.filter(column >= start)
        if end is not None:
            query = query.filter(column <= end)
        return query

    def fetch_tasks(self, user_id: UUID, start=None, end=None) -> List[TaskRecord]:
        query = self.db.query(Task).filter(Task.user_id == user_id)
        query = self._in_range(query, Task.created_at, start, end)
        return _convert_all(query.order_by(Task.created_at).all(), task_from_row, "task")

    def fetch_open_tasks(self, user_id: UUID, end=None) -> List[TaskRecord]:
        """Every non-terminal task, however old. Stale-task rules look past the range."""
        terminal = sorted(s.value for s in TERMINAL_TASK_STATUSES)
        query = self.db.query(Task).filter(Task.user_id == user_id, Task.status.notin_(terminal))
        if end is not None:
            query = query.filter(Task.created_at <= end)
        return _convert_all(query.order_by(Task.created_at).all(), task_from_row, "open task")

    def fetch_assessments(self, user_id: UUID, end=None) -> List[AssessmentRecord]:
        query = self.db.query(PillarAssessment).filter(PillarAssessment.user_id == user_id)
        if end is not None:
            query = query.filter(PillarAssessment.created_at <= end)
        rows = query.order_by(PillarAssessment.created_at.desc()).limit(ASSESSMENT_HISTORY_LIMIT).all()
        return _convert_all(rows, assessment_from_row, "assessment")

    def fetch_events(self, user_id: UUID, start=None, end=None) -> List[ActivityEvent]:
        query = self.db.query(AnalyticsEvent).filter(AnalyticsEvent.user_id == user_id)
        query = self._in_range(query, AnalyticsEvent.timestamp, start, end)
        return _convert_all(query.order_by(AnalyticsEvent.timestamp).all(), event_from_row, "event")

    def fetch_activations(self, user_id: UUID) -> List[PillarActivation]:
        rows = self.db.query(UserPillarActivation).filter(UserPillarActivation.user_id == user_id).all()
        return _convert_all(rows, activation_from_row, "pillar activation")

    def fetch_path_entries(self, user_id: UUID, end=None) -> List[PathEntry]:
        query = self.db.query(PathEntryRow).filter(PathEntryRow.user_id == user_id)
        if end is not None:
            query = query.filter(PathEntryRow.timestamp <= end)
        return _convert_all(query.order_by(PathEntryRow.timestamp).all(), path_entry_from_row, "path entry")

    def fetch_journal_entries(self, user_id: UUID, end=None) -> List[JournalEntry]:
        query = self.db.query(CoachingProgressEntry).filter(
            CoachingProgressEntry.user_id == user_id,
            CoachingProgressEntry.entry_type == JOURNAL_ENTRY_TYPE,
        )
        if end is not None:
            query = query.filter(CoachingProgressEntry.created_at <= end)
        rows = query.order_by(CoachingProgressEntry.created_at.desc()).limit(JOURNAL_HISTORY_LIMIT).all()
        return _convert_all(rows, journal_entry_from_row, "journal entry")

    def fetch_snapshot(
        self,
        user_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> RecordSnapshot:
        """
        Load everything the pipeline needs for one user.

        Tasks and events are limited to [start, end]. Open tasks, assessment,
        journal and path history only use `end`, since stale-task rules, trends
        and journey totals look further back than the display range.
        """
        uid = UUID(str(user_id))
        source = "task"
        try:
            tasks = self.fetch_tasks(uid, start, end)
            source = "open task"
            open_tasks = self.fetch_open_tasks(uid, end)
            source = "assessment"
            assessments = self.fetch_assessments(uid, end)
            source = "event"
            events = self.fetch_events(uid, start, end)
            source = "pillar activation"
            activations = self.fetch_activations(uid)
            source = "path entry"
            path_entries = self.fetch_path_entries(uid, end)
            source = "journal entry"
            journal_entries = self.fetch_journal_entries(uid, end)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load {source} records for user {user_id}: {e}")
            raise UpstreamFetchError(source) from e

        return RecordSnapshot(
            user_id=str(uid),
            tasks=tuple(tasks),
            open_tasks=tuple(open_tasks),
            assessments=tuple(assessments),
            events=tuple(events),
            activations=tuple(activations),
            path_entries=tuple(path_entries),
            journal_entries=tuple(journal_entries),
            range_start=start,
            range_end=end,
        )
