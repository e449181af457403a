"""
Consistency Streak Service

"Consistency is the leading indicator of success."

Tracks daily activity streaks and a rolling consistency percentage from the
set of days a user was active. Calendar days are UTC days.

Streak rule: the streak is anchored on the most recent active day, which
must be today or yesterday. Yesterday still counts because today is not
over yet; one fully missed day resets the streak to 0.
"""

from typing import Iterable, Optional, Set
from dataclasses import dataclass
from datetime import date, timedelta
import logging
import math

logger = logging.getLogger(__name__)


DEFAULT_WINDOW_DAYS = 30

# Streak milestones with celebrations
STREAK_MILESTONES = {
    7: "One full week in a row. A habit is forming.",
    14: "Two weeks straight! Momentum is on your side.",
    30: "A whole month of daily progress. Impressive consistency.",
    60: "Sixty days! This is part of who you are now.",
    100: "100-day streak. You've mastered consistency.",
}


@dataclass
class StreakInfo:
    """Current streak information"""
    current_streak_days: int
    longest_streak_days: int
    active_days_in_window: int
    window_days: int
    consistency_score: int  # 0-100
    last_active_day: Optional[date]
    is_at_risk: bool  # Streak alive but no activity yet today
    message: str
    celebration: Optional[str]  # Special message for milestones


def _past_days(days: Iterable[date], today: date) -> Set[date]:
    # Days after "today" (clock skew, bad rows) never count
    return {d for d in days if d <= today}


def login_streak(days: Iterable[date], today: date) -> int:
    """
    Consecutive active days ending at the most recent active day.

    0 when there is no activity, or when the most recent activity is more
    than one day before today.
    """
    active = _past_days(days, today)
    if not active:
        return 0

    latest = max(active)
    if (today - latest).days > 1:
        return 0

    streak = 1
    check_day = latest - timedelta(days=1)
    while check_day in active:
        streak += 1
        check_day -= timedelta(days=1)
    return streak


def longest_streak(days: Iterable[date]) -> int:
    """Longest run of consecutive days anywhere in the history."""
    active = sorted(set(days))
    if not active:
        return 0

    best = run = 1
    for previous, current in zip(active, active[1:]):
        if (current - previous).days == 1:
            run += 1
            best = max(best, run)
        else:
            run = 1
    return best


def active_days_in_window(days: Iterable[date], today: date, window_days: int = DEFAULT_WINDOW_DAYS) -> int:
    """Distinct active days in the `window_days` days ending today (inclusive)."""
    start = today - timedelta(days=window_days - 1)
    return sum(1 for d in _past_days(days, today) if d >= start)


def consistency_score(days: Iterable[date], today: date, window_days: int = DEFAULT_WINDOW_DAYS) -> int:
    """Share of days in the window with activity, as a whole percentage capped at 100."""
    if window_days <= 0:
        return 0
    pct = active_days_in_window(days, today, window_days) / window_days * 100
    # Round half up, matching the dashboard
    return min(100, int(math.floor(pct + 0.5)))


def calculate_streak(days: Iterable[date], today: date, window_days: int = DEFAULT_WINDOW_DAYS) -> StreakInfo:
    """
    Calculate current and longest streaks plus consistency for a set of active days.
    """
    active = _past_days(days, today)
    streak = login_streak(active, today)
    longest = longest_streak(active)
    in_window = active_days_in_window(active, today, window_days)
    last_active = max(active) if active else None

    is_at_risk = streak > 0 and last_active != today

    # Generate message
    if streak == 0:
        message = "Start a new streak! Every active day counts."
    elif is_at_risk:
        message = f"Your {streak}-day streak is at risk. Check in today to keep it going."
    else:
        message = f"{streak} days in a row. Keep building!"

    celebration = STREAK_MILESTONES.get(streak)

    return StreakInfo(
        current_streak_days=streak,
        longest_streak_days=longest,
        active_days_in_window=in_window,
        window_days=window_days,
        consistency_score=consistency_score(active, today, window_days),
        last_active_day=last_active,
        is_at_risk=is_at_risk,
        message=message,
        celebration=celebration,
    )
