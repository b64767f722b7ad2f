"""Streak math over local-day commit buckets."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
import logging
from typing import Optional

from dailycommit.crawlers.github.client import sanitize_log_extra
from dailycommit.models.streak_snapshot import WEEK_LENGTH, StreakSnapshot
from dailycommit.services.streaks.bucketizer import DayBuckets, day_key

logger = logging.getLogger(__name__)


class StreakStatus(str, Enum):
    """How a caller should present the current streak."""

    EMPTY = "empty"  # no commits ever observed
    ACTIVE = "active"  # committed today
    PENDING = "pending"  # streak alive, nothing yet today
    BROKEN = "broken"  # history exists but the streak is 0


@dataclass(slots=True)
class StreakStats:
    """Result of one streak calculation."""

    current_streak: int = 0
    longest_streak: int = 0
    last_commit_date: Optional[date] = None
    weekly_commits: list[int] = field(default_factory=lambda: [0] * WEEK_LENGTH)
    today_commits: int = 0
    window_commits: int = 0
    status: StreakStatus = StreakStatus.EMPTY

    @property
    def has_committed_today(self) -> bool:
        return self.today_commits > 0


def _has_commits(buckets: DayBuckets, day: date) -> bool:
    return buckets.get(day_key(day), 0) > 0


def _active_days(buckets: DayBuckets) -> list[date]:
    days: list[date] = []
    for key, count in buckets.items():
        if count <= 0:
            if count < 0:
                logger.warning("Ignoring negative day bucket", extra=sanitize_log_extra(day=key, count=count))
            continue
        try:
            days.append(date.fromisoformat(key))
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed day bucket key", extra=sanitize_log_extra(day=key))
    return days


def current_streak(buckets: DayBuckets, today: date) -> int:
    """Consecutive commit days counted backward from today.

    Today is exempt: with no commits yet it neither counts nor breaks the
    streak, and the walk continues from yesterday.
    """
    streak = 0
    if _has_commits(buckets, today):
        streak = 1

    day = today - timedelta(days=1)
    while _has_commits(buckets, day):
        streak += 1
        day -= timedelta(days=1)
    return streak


def streak_reaches(buckets: DayBuckets, today: date, boundary: date) -> bool:
    """True when the current streak runs unbroken back to ``boundary``."""
    streak = current_streak(buckets, today)
    if streak == 0:
        return False
    end = today if _has_commits(buckets, today) else today - timedelta(days=1)
    return end - timedelta(days=streak - 1) <= boundary


def carried_streak(previous: StreakSnapshot, day: date) -> Optional[int]:
    """Days of the stored streak falling on ``day`` or earlier.

    The stored streak covers the ``current_streak`` days ending at
    ``last_commit_date``. Returns None when that run does not include ``day``,
    since the snapshot then says nothing about it.
    """
    if previous.last_commit_date is None or previous.current_streak <= 0:
        return None
    last = previous.last_commit_date
    first = last - timedelta(days=previous.current_streak - 1)
    if not first <= day <= last:
        return None
    return (day - first).days + 1


def extend_streak(stats: StreakStats, carried: int) -> StreakStats:
    """Add days from before the scanned window to a streak that reaches it."""
    stats.current_streak += carried
    stats.longest_streak = max(stats.longest_streak, stats.current_streak)
    stats.status = classify(stats.current_streak, stats.last_commit_date, stats.today_commits)
    return stats


def longest_streak(buckets: DayBuckets, today: date, *, window_start: date | None = None) -> int:
    """Longest run of consecutive commit days in ``[window_start, today]``.

    Without ``window_start`` the scan starts at the earliest bucket.
    """
    days = [day for day in _active_days(buckets) if day <= today]
    if not days:
        return 0

    start = window_start or min(days)
    active = {day for day in days if day >= start}

    best = 0
    run = 0
    day = start
    while day <= today:
        if day in active:
            run += 1
            best = max(best, run)
        else:
            run = 0
        day += timedelta(days=1)
    return best


def weekly_histogram(buckets: DayBuckets, today: date) -> list[int]:
    """Counts for today and the 6 prior days, slotted Monday-first by weekday."""
    histogram = [0] * WEEK_LENGTH
    for offset in range(WEEK_LENGTH):
        day = today - timedelta(days=offset)
        histogram[day.weekday()] = max(buckets.get(day_key(day), 0), 0)
    return histogram


def last_commit_date(buckets: DayBuckets) -> Optional[date]:
    days = _active_days(buckets)
    return max(days) if days else None


def window_commit_count(buckets: DayBuckets, today: date, *, window_start: date | None = None) -> int:
    total = 0
    for day in _active_days(buckets):
        if day > today or (window_start is not None and day < window_start):
            continue
        total += buckets[day_key(day)]
    return total


def classify(current: int, last_commit: Optional[date], today_commits: int) -> StreakStatus:
    if last_commit is None:
        return StreakStatus.EMPTY
    if today_commits > 0:
        return StreakStatus.ACTIVE
    if current > 0:
        return StreakStatus.PENDING
    return StreakStatus.BROKEN


def calculate_streaks(buckets: DayBuckets, today: date, *, window_start: date | None = None) -> StreakStats:
    """Derive every streak statistic from a bucket map."""
    current = current_streak(buckets, today)
    last_commit = last_commit_date(buckets)
    today_commits = max(buckets.get(day_key(today), 0), 0)

    return StreakStats(
        current_streak=current,
        longest_streak=longest_streak(buckets, today, window_start=window_start),
        last_commit_date=last_commit,
        weekly_commits=weekly_histogram(buckets, today),
        today_commits=today_commits,
        window_commits=window_commit_count(buckets, today, window_start=window_start),
        status=classify(current, last_commit, today_commits),
    )


def merge_snapshot(
    stats: StreakStats,
    previous: StreakSnapshot,
    *,
    total_commits: int | None,
    yearly_commits: int | None,
    synced_at: datetime | None = None,
) -> StreakSnapshot:
    """Fold a fresh calculation into the stored snapshot.

    ``longest_streak`` never drops below the stored value, because each scan
    only sees the current lookback window. Counters left unset by a failed
    aggregate query fall back to the bucket sum or the stored value.
    """
    yearly = yearly_commits if yearly_commits is not None else stats.window_commits
    if total_commits is not None:
        total = total_commits
    else:
        total = max(previous.total_commits, yearly)

    # Lighter syncs scan a shorter window than the stored snapshot
    last_commit = stats.last_commit_date or previous.last_commit_date

    return StreakSnapshot(
        current_streak=stats.current_streak,
        longest_streak=max(previous.longest_streak, stats.longest_streak),
        last_commit_date=last_commit,
        weekly_commits=list(stats.weekly_commits),
        total_commits=total,
        yearly_commits=yearly,
        today_commits=stats.today_commits,
        synced_at=synced_at,
    )
