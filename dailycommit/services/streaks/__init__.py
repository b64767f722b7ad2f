"""Streak aggregation services."""

from dailycommit.services.streaks.bucketizer import DayBuckets, bucketize, resolve_timezone
from dailycommit.services.streaks.calculator import StreakStats, StreakStatus, calculate_streaks, merge_snapshot
from dailycommit.services.streaks.milestones import (
    BADGE_LADDER,
    Badge,
    LevelProgress,
    evaluate_milestones,
    level_for_commits,
)

__all__ = [
    "DayBuckets",
    "bucketize",
    "resolve_timezone",
    "StreakStats",
    "StreakStatus",
    "calculate_streaks",
    "merge_snapshot",
    "BADGE_LADDER",
    "Badge",
    "LevelProgress",
    "evaluate_milestones",
    "level_for_commits",
]
