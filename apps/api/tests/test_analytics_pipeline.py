"""
Tests for the analytics pipeline.

Covers:
- End-to-end scenario on literal records (the dashboard's reference example).
- Determinism: identical input gives an identical, JSON-serializable result.
- Time range resolution.
- get_user_analytics against SQLite: fetch, cache and the critical alert side effect.
"""
import json
import sys
import uuid
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.exceptions import UpstreamFetchError, ValidationError
from models import AnalyticsEvent, PillarAssessment, Task
from services.analytics_pipeline import (
    TIME_RANGES,
    analytics_to_dict,
    build_user_analytics,
    get_user_analytics,
    resolve_time_range,
)
from services.journey_stage import JourneyStageName
from tests.record_factories import (
    NOW,
    TODAY,
    USER_ID,
    days_ago,
    make_activation,
    make_assessment,
    make_event,
    make_journal_entry,
    make_path_entry,
    make_snapshot,
    make_task,
)


@pytest.fixture
def reference_snapshot():
    """10 tasks (7 done), one self_care assessment, activity on the last 3 days, 4 path entries."""
    return make_snapshot(
        tasks=[make_task("completed", created_at=days_ago(2)) for _ in range(7)]
        + [make_task("pending", created_at=days_ago(2)) for _ in range(3)],
        assessments=[make_assessment("self_care", scores={"sleep": 8, "stress": 6})],
        events=[make_event(timestamp=days_ago(d)) for d in (0, 1, 2)],
        activations=[make_activation("self_care")],
        path_entries=[make_path_entry(days_ago(d)) for d in (1, 2, 3, 4)],
    )


class TestEndToEnd:

    def test_reference_scenario(self, reference_snapshot):
        result = build_user_analytics(reference_snapshot, NOW)

        assert result.task_completion_rate == 70.0
        assert result.assessment_progress == 100.0
        assert result.overall_progress == 85.0
        assert result.journey_stage.stage == JourneyStageName.MASTERY
        assert result.login_streak == 3
        assert result.generated_for == TODAY
        assert result.record_version is not None

    def test_empty_snapshot_has_neutral_defaults(self):
        result = build_user_analytics(make_snapshot(), NOW)

        assert result.overall_progress == 0.0
        assert result.login_streak == 0
        assert result.consistency_score == 0
        assert result.journey_stage.stage == JourneyStageName.DISCOVERY
        assert result.insights == []
        assert result.record_version is None
        assert len(result.pillars_progress) == 5

    def test_mood_fields(self):
        snapshot = make_snapshot(journal_entries=[
            make_journal_entry(days_ago(2), mood="neutral", sentiment_score=0.1),
            make_journal_entry(days_ago(1), mood="positive", sentiment_score=0.7),
        ])
        result = build_user_analytics(snapshot, NOW)

        assert result.mood_trend.trend.value == "up"
        assert result.sentiment_trend.change == 0.6
        assert result.average_mood.value == "positive"


class TestDeterminism:

    def test_same_input_same_output(self, reference_snapshot):
        first = analytics_to_dict(build_user_analytics(reference_snapshot, NOW))
        second = analytics_to_dict(build_user_analytics(reference_snapshot, NOW))
        assert first == second

    def test_input_order_does_not_matter(self, reference_snapshot):
        shuffled = make_snapshot(
            tasks=reversed(reference_snapshot.tasks),
            assessments=reference_snapshot.assessments,
            events=reversed(reference_snapshot.events),
            activations=reference_snapshot.activations,
            path_entries=reversed(reference_snapshot.path_entries),
        )
        assert analytics_to_dict(build_user_analytics(shuffled, NOW)) == analytics_to_dict(
            build_user_analytics(reference_snapshot, NOW)
        )

    def test_result_is_json_serializable(self, reference_snapshot):
        data = analytics_to_dict(build_user_analytics(reference_snapshot, NOW))
        encoded = json.dumps(data)

        assert json.loads(encoded) == data
        assert data["journey_stage"]["stage"] == "mastery"
        assert data["login_streak"] == 3
        assert data["generated_for"] == TODAY.isoformat()

    def test_snapshot_is_not_mutated(self, reference_snapshot):
        before = reference_snapshot
        build_user_analytics(reference_snapshot, NOW)
        assert reference_snapshot == before
        assert isinstance(reference_snapshot.tasks, tuple)


class TestTimeRange:

    @pytest.mark.parametrize("name", sorted(TIME_RANGES))
    def test_known_ranges(self, name):
        start, end = resolve_time_range(name, NOW)
        assert end == NOW
        assert end - start == timedelta(days=TIME_RANGES[name])

    def test_unknown_range(self):
        with pytest.raises(ValidationError):
            resolve_time_range("decade", NOW)


# ---------------------------------------------------------------------------
# get_user_analytics (database + cache + side effect)
# ---------------------------------------------------------------------------

def _seed_stagnant_user(db_session):
    """Three open tasks untouched for 20 days: enough for a critical insight."""
    uid = uuid.UUID(USER_ID)
    for _ in range(3):
        db_session.add(Task(id=uuid.uuid4(), user_id=uid, status="pending", created_at=days_ago(20)))
    db_session.add(PillarAssessment(
        id=uuid.uuid4(), user_id=uid, pillar_type="self_care",
        scores={"sleep_quality": 7}, created_at=days_ago(3),
    ))
    db_session.add(AnalyticsEvent(id=uuid.uuid4(), user_id=uid, event="login", timestamp=days_ago(0)))
    db_session.commit()


def _seed_open_tasks(db_session, age_days, count=3):
    uid = uuid.UUID(USER_ID)
    tasks = [Task(id=uuid.uuid4(), user_id=uid, status="pending", created_at=days_ago(age_days)) for _ in range(count)]
    db_session.add_all(tasks)
    db_session.commit()
    return tasks


class TestGetUserAnalytics:

    def test_fresh_computation_alerts_once_then_hits_cache(self, db_session, fake_redis):
        _seed_stagnant_user(db_session)
        notifier = MagicMock()
        notifier.notify.return_value = True

        first = get_user_analytics(db_session, USER_ID, "month", now=NOW, notifier=notifier, use_cache=True)
        second = get_user_analytics(db_session, USER_ID, "month", now=NOW, notifier=notifier, use_cache=True)

        assert first == second
        assert first["insights"][0]["id"] == "critical-stagnation"
        assert notifier.notify.call_count == 1
        user_arg, insight_arg = notifier.notify.call_args[0]
        assert user_arg == USER_ID
        assert insight_arg.id == "critical-stagnation"

    def test_new_record_invalidates_cached_result(self, db_session, fake_redis):
        _seed_stagnant_user(db_session)
        notifier = MagicMock()

        first = get_user_analytics(db_session, USER_ID, "month", now=NOW, notifier=notifier, use_cache=True)
        db_session.add(Task(id=uuid.uuid4(), user_id=uuid.UUID(USER_ID), status="completed",
                            created_at=days_ago(1), completed_at=days_ago(1)))
        db_session.commit()
        second = get_user_analytics(db_session, USER_ID, "month", now=NOW, notifier=notifier, use_cache=True)

        assert first["metrics"]["total_tasks"] == 3
        assert second["metrics"]["total_tasks"] == 4
        assert first["record_version"] != second["record_version"]

    def test_without_cache_every_call_recomputes(self, db_session, no_redis):
        _seed_stagnant_user(db_session)
        notifier = MagicMock()

        get_user_analytics(db_session, USER_ID, "month", now=NOW, notifier=notifier, use_cache=False)
        get_user_analytics(db_session, USER_ID, "month", now=NOW, notifier=notifier, use_cache=False)

        assert notifier.notify.call_count == 2

    def test_no_alert_without_critical_insight(self, db_session, no_redis):
        notifier = MagicMock()
        result = get_user_analytics(db_session, USER_ID, "week", now=NOW, notifier=notifier, use_cache=False)

        assert result["overall_progress"] == 0.0
        notifier.notify.assert_not_called()

    def test_store_failure_is_upstream_error(self, no_redis):
        db = MagicMock()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))
        notifier = MagicMock()

        with pytest.raises(UpstreamFetchError) as exc_info:
            get_user_analytics(db, USER_ID, "month", now=NOW, notifier=notifier, use_cache=False)

        assert exc_info.value.status_code == 503
        assert exc_info.value.error_code == "UPSTREAM_FETCH_FAILED"
        notifier.notify.assert_not_called()

    def test_unknown_range_rejected_before_fetch(self):
        db = MagicMock()
        with pytest.raises(ValidationError):
            get_user_analytics(db, USER_ID, "forever", now=NOW, use_cache=False)
        db.query.assert_not_called()

    @pytest.mark.parametrize("time_range,age_days", [("week", 20), ("month", 45), ("quarter", 120)])
    def test_stale_tasks_older_than_range_still_alert(self, db_session, no_redis, time_range, age_days):
        _seed_open_tasks(db_session, age_days)
        notifier = MagicMock()

        result = get_user_analytics(db_session, USER_ID, time_range, now=NOW, notifier=notifier, use_cache=False)

        assert result["metrics"]["total_tasks"] == 0
        assert result["insights"][0]["id"] == "critical-stagnation"
        assert "engagement-declining" not in [i["id"] for i in result["insights"]]
        notifier.notify.assert_called_once()

    def test_engagement_declining_on_week_range(self, db_session, no_redis):
        _seed_open_tasks(db_session, 10, count=4)

        result = get_user_analytics(db_session, USER_ID, "week", now=NOW, notifier=MagicMock(), use_cache=False)
        ids = [i["id"] for i in result["insights"]]

        assert "engagement-declining" in ids
        assert "critical-stagnation" not in ids

    def test_closing_old_task_invalidates_cached_result(self, db_session, fake_redis):
        tasks = _seed_open_tasks(db_session, 20)
        notifier = MagicMock()

        first = get_user_analytics(db_session, USER_ID, "week", now=NOW, notifier=notifier, use_cache=True)
        tasks[0].status = "completed"
        tasks[0].completed_at = days_ago(0)
        db_session.commit()
        second = get_user_analytics(db_session, USER_ID, "week", now=NOW, notifier=notifier, use_cache=True)

        assert first["record_version"] != second["record_version"]
        assert first["metrics"]["total_tasks"] == second["metrics"]["total_tasks"] == 0
        assert notifier.notify.call_count == 1
