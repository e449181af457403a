"""
Trend Calculator

Compares the latest sample of a bounded numeric series with the one before
it and classifies the direction.

Used for pillar scores, journal mood and journal sentiment. Samples are
ordered by completion time, newest first; index 0 is compared with index 1.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Sequence
import logging

from services.analytics_records import (
    AssessmentRecord,
    JournalEntry,
    MOOD_SCORES,
    Mood,
    ensure_utc,
)
from services.pillar_catalog import PILLAR_KEYS, is_score_value

logger = logging.getLogger(__name__)


DEFAULT_TREND_THRESHOLD = 0.1

# Mean mood beyond +/- this is labelled positive / negative
MOOD_LABEL_THRESHOLD = 0.2


class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


@dataclass
class TrendResult:
    current: float
    previous: float
    change: float
    trend: TrendDirection
    sample_size: int = 0


@dataclass
class PillarProgress:
    pillar_key: str
    current_score: float
    previous_score: float
    trend: TrendDirection
    change: float
    last_updated: Optional[datetime]
    assessment_count: int = 0


def classify_change(change: float, threshold: float = DEFAULT_TREND_THRESHOLD) -> TrendDirection:
    """up if change > threshold, down if change < -threshold, otherwise stable."""
    if change > threshold:
        return TrendDirection.UP
    if change < -threshold:
        return TrendDirection.DOWN
    return TrendDirection.STABLE


def compare(current: float, previous: float, threshold: float = DEFAULT_TREND_THRESHOLD) -> TrendResult:
    """Two-point comparison. Values are returned unrounded."""
    change = current - previous
    return TrendResult(
        current=current,
        previous=previous,
        change=change,
        trend=classify_change(change, threshold),
        sample_size=2,
    )


def series_trend(values: Sequence[float], threshold: float = DEFAULT_TREND_THRESHOLD) -> TrendResult:
    """
    Trend of a newest-first series.

    With fewer than two samples there is nothing to compare: the trend is
    stable with zero change, and `previous` mirrors `current`.
    """
    if not values:
        return TrendResult(current=0.0, previous=0.0, change=0.0, trend=TrendDirection.STABLE)
    if len(values) < 2:
        return TrendResult(
            current=values[0], previous=values[0], change=0.0,
            trend=TrendDirection.STABLE, sample_size=1,
        )
    result = compare(values[0], values[1], threshold)
    result.sample_size = len(values)
    return result


def _newest_first(records, stamp):
    # id breaks timestamp ties so ordering never depends on input order
    return sorted(records, key=lambda r: (ensure_utc(stamp(r)), r.id), reverse=True)


def pillar_progress(
    assessments: Iterable[AssessmentRecord],
    threshold: float = DEFAULT_TREND_THRESHOLD,
    pillar_keys: Sequence[str] = PILLAR_KEYS,
) -> List[PillarProgress]:
    """
    Latest-vs-previous score for every pillar, in catalog order.

    Assessments without a calculated score are skipped. Pillars never
    assessed report zero scores, a stable trend and no last_updated.
    """
    scored = [a for a in assessments if a.calculated_score is not None]
    result: List[PillarProgress] = []

    for pillar_key in pillar_keys:
        history = _newest_first(
            [a for a in scored if a.pillar_key == pillar_key],
            lambda a: a.completed_at,
        )
        if not history:
            result.append(PillarProgress(
                pillar_key=pillar_key,
                current_score=0.0,
                previous_score=0.0,
                trend=TrendDirection.STABLE,
                change=0.0,
                last_updated=None,
            ))
            continue

        trend = series_trend([a.calculated_score for a in history], threshold)
        result.append(PillarProgress(
            pillar_key=pillar_key,
            current_score=round(trend.current, 1),
            previous_score=round(trend.previous, 1),
            trend=trend.trend,
            change=round(trend.change, 1),
            last_updated=ensure_utc(history[0].completed_at),
            assessment_count=len(history),
        ))

    return result


def mood_series(entries: Iterable[JournalEntry]) -> List[float]:
    """Journal moods mapped to +1 / 0 / -1, newest first. Entries without a mood are skipped."""
    with_mood = [e for e in entries if e.mood is not None]
    return [MOOD_SCORES[e.mood] for e in _newest_first(with_mood, lambda e: e.created_at)]


def mood_trend(entries: Iterable[JournalEntry], threshold: float = DEFAULT_TREND_THRESHOLD) -> TrendResult:
    return series_trend(mood_series(entries), threshold)


def average_mood(entries: Iterable[JournalEntry]) -> Mood:
    """Overall mood label from the mean mood score."""
    scores = mood_series(entries)
    if not scores:
        return Mood.NEUTRAL
    mean = sum(scores) / len(scores)
    if mean > MOOD_LABEL_THRESHOLD:
        return Mood.POSITIVE
    if mean < -MOOD_LABEL_THRESHOLD:
        return Mood.NEGATIVE
    return Mood.NEUTRAL


def sentiment_trend(entries: Iterable[JournalEntry], threshold: float = DEFAULT_TREND_THRESHOLD) -> TrendResult:
    """Trend of journal sentiment scores. Non-numeric scores are skipped and logged."""
    usable = []
    for entry in entries:
        if entry.sentiment_score is None:
            continue
        if not is_score_value(entry.sentiment_score):
            logger.warning(f"Skipping malformed sentiment score on journal entry {entry.id}")
            continue
        usable.append(entry)
    ordered = _newest_first(usable, lambda e: e.created_at)
    return series_trend([float(e.sentiment_score) for e in ordered], threshold)


def round_trend(result: TrendResult) -> TrendResult:
    """Copy with values rounded for display; the trend label is kept as classified."""
    return TrendResult(
        current=round(result.current, 2),
        previous=round(result.previous, 2),
        change=round(result.change, 2),
        trend=result.trend,
        sample_size=result.sample_size,
    )
