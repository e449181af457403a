"""
Tests for the record store (database -> analytics records).

Runs against in-memory SQLite. Checks range filtering, boundary validation
of malformed rows and error mapping.
"""
import sys
import uuid
from datetime import timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.exceptions import UpstreamFetchError
from models import (
    AnalyticsEvent,
    CoachingProgressEntry,
    PathEntry,
    PillarAssessment,
    Task,
    UserPillarActivation,
)
from services.analytics_records import EventKind, Mood, TaskStatus, infer_event_kind
from services.record_store import RecordStore
from tests.record_factories import NOW, USER_ID, days_ago

UID = uuid.UUID(USER_ID)
OTHER_UID = uuid.uuid4()


def _add(db, *rows):
    for row in rows:
        db.add(row)
    db.commit()


def _task(status="pending", created_at=None, user_id=UID, **kwargs):
    return Task(id=uuid.uuid4(), user_id=user_id, status=status, created_at=created_at or days_ago(1), **kwargs)


class TestTasks:

    def test_range_and_user_filter(self, db_session):
        _add(
            db_session,
            _task(created_at=days_ago(5)),
            _task(created_at=days_ago(40)),
            _task(created_at=days_ago(5), user_id=OTHER_UID),
        )
        snapshot = RecordStore(db_session).fetch_snapshot(USER_ID, days_ago(30), NOW)

        assert len(snapshot.tasks) == 1
        assert snapshot.tasks[0].user_id == USER_ID
        assert snapshot.tasks[0].status == TaskStatus.PENDING

    def test_timestamps_are_utc_aware(self, db_session):
        _add(db_session, _task("completed", created_at=days_ago(3), completed_at=days_ago(2)))
        task = RecordStore(db_session).fetch_snapshot(USER_ID, days_ago(30), NOW).tasks[0]

        assert task.created_at.tzinfo is not None
        assert task.created_at.utcoffset() == timezone.utc.utcoffset(None)
        assert task.created_at == days_ago(3)
        assert task.completed_at == days_ago(2)

    def test_unknown_status_is_dropped(self, db_session):
        _add(db_session, _task("pending"), _task("archived"))
        snapshot = RecordStore(db_session).fetch_snapshot(USER_ID, days_ago(30), NOW)

        assert [t.status for t in snapshot.tasks] == [TaskStatus.PENDING]

    def test_open_tasks_ignore_range_start(self, db_session):
        _add(
            db_session,
            _task("pending", created_at=days_ago(60)),
            _task("in_progress", created_at=days_ago(20)),
            _task("completed", created_at=days_ago(60), completed_at=days_ago(50)),
            _task("deferred", created_at=days_ago(60)),
            _task("pending", created_at=days_ago(60), user_id=OTHER_UID),
        )
        snapshot = RecordStore(db_session).fetch_snapshot(USER_ID, days_ago(7), NOW)

        assert snapshot.tasks == ()
        assert [t.status for t in snapshot.open_tasks] == [TaskStatus.PENDING, TaskStatus.IN_PROGRESS]
        assert snapshot.record_version is not None

    def test_open_tasks_stop_at_range_end(self, db_session):
        _add(db_session, _task("pending", created_at=days_ago(2)))
        snapshot = RecordStore(db_session).fetch_snapshot(USER_ID, days_ago(30), days_ago(5))
        assert snapshot.open_tasks == ()


class TestAssessments:

    def test_scores_validated_against_catalog(self, db_session):
        _add(db_session, PillarAssessment(
            id=uuid.uuid4(), user_id=UID, pillar_type="self_care",
            scores={"sleep_quality": 8, "stress_level": "high", "mood": 5, "exercise_frequency": 14},
            created_at=days_ago(2),
        ))
        assessment = RecordStore(db_session).fetch_snapshot(USER_ID, days_ago(30), NOW).assessments[0]

        assert assessment.scores == {"sleep_quality": 8.0}
        assert assessment.calculated_score == 8.0

    def test_unknown_pillar_dropped(self, db_session):
        _add(db_session, PillarAssessment(
            id=uuid.uuid4(), user_id=UID, pillar_type="astrology", scores={"x": 5}, created_at=days_ago(2),
        ))
        assert RecordStore(db_session).fetch_snapshot(USER_ID, days_ago(30), NOW).assessments == ()

    def test_history_reaches_before_range(self, db_session):
        _add(
            db_session,
            PillarAssessment(id=uuid.uuid4(), user_id=UID, pillar_type="skills",
                             scores={"feedback_quality": 6}, created_at=days_ago(60)),
            PillarAssessment(id=uuid.uuid4(), user_id=UID, pillar_type="skills",
                             scores={"feedback_quality": 7}, created_at=days_ago(2)),
        )
        snapshot = RecordStore(db_session).fetch_snapshot(USER_ID, days_ago(7), NOW)
        assert len(snapshot.assessments) == 2


class TestEvents:

    def test_event_kind_inferred_from_name(self, db_session):
        _add(
            db_session,
            AnalyticsEvent(id=uuid.uuid4(), user_id=UID, event="task_completed", timestamp=days_ago(1)),
            AnalyticsEvent(id=uuid.uuid4(), user_id=UID, event="stefan_chat", timestamp=days_ago(1),
                           session_id="s-1", properties={"session_duration": 12}),
            AnalyticsEvent(id=uuid.uuid4(), user_id=UID, event="page_view", timestamp=days_ago(1),
                           properties={"event_kind": "assessment"}),
        )
        events = RecordStore(db_session).fetch_snapshot(USER_ID, days_ago(30), NOW).events
        kinds = sorted(e.event_kind.value for e in events)

        assert kinds == ["assessment", "interaction", "task"]
        chat = next(e for e in events if e.event_name == "stefan_chat")
        assert chat.session_id == "s-1"
        assert chat.properties["session_duration"] == 12

    @pytest.mark.parametrize("name,expected", [
        ("login", EventKind.LOGIN),
        ("TASK_CREATED", EventKind.TASK),
        ("assessment_submitted", EventKind.ASSESSMENT),
        ("coach_message", EventKind.INTERACTION),
        ("", EventKind.LOGIN),
    ])
    def test_infer_event_kind(self, name, expected):
        assert infer_event_kind(name) == expected


class TestJourneyRecords:

    def test_activations_path_entries_and_journal(self, db_session):
        _add(
            db_session,
            UserPillarActivation(id=uuid.uuid4(), user_id=UID, pillar_key="self_care", is_active=True,
                                 activated_at=days_ago(10)),
            UserPillarActivation(id=uuid.uuid4(), user_id=UID, pillar_key="unknown", is_active=True,
                                 activated_at=days_ago(10)),
            PathEntry(id=uuid.uuid4(), user_id=UID, type="action", timestamp=days_ago(3)),
            CoachingProgressEntry(id=uuid.uuid4(), user_id=UID, entry_type="reflection",
                                  entry_metadata={"mood": "positive"}, sentiment_score=0.5,
                                  created_at=days_ago(2)),
            CoachingProgressEntry(id=uuid.uuid4(), user_id=UID, entry_type="reflection",
                                  entry_metadata={"mood": "ecstatic"}, created_at=days_ago(1)),
            CoachingProgressEntry(id=uuid.uuid4(), user_id=UID, entry_type="milestone",
                                  created_at=days_ago(1)),
        )
        snapshot = RecordStore(db_session).fetch_snapshot(USER_ID, days_ago(30), NOW)

        assert [a.pillar_key for a in snapshot.activations] == ["self_care"]
        assert len(snapshot.path_entries) == 1
        assert len(snapshot.journal_entries) == 2
        moods = {j.mood for j in snapshot.journal_entries}
        assert moods == {Mood.POSITIVE, None}


class TestFailures:

    def test_database_error_becomes_upstream_error(self):
        db = MagicMock()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("timeout"))

        with pytest.raises(UpstreamFetchError) as exc_info:
            RecordStore(db).fetch_snapshot(USER_ID, days_ago(30), NOW)

        assert exc_info.value.source == "task"

    def test_empty_user(self, db_session):
        snapshot = RecordStore(db_session).fetch_snapshot(USER_ID, days_ago(30), NOW)
        assert snapshot.user_id == USER_ID
        assert snapshot.tasks == ()
        assert snapshot.record_version is None
