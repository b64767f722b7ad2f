"""Badge ladder evaluation and commit levels."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence

from dailycommit.models.badge_ledger import BadgeLedger


class BadgeMetric(str, Enum):
    """Statistic a badge threshold is compared against."""

    STREAK = "streak"  # longest streak, never the current one
    COMMITS = "commits"  # all-time commit total, or the longest streak when higher


@dataclass(frozen=True, slots=True)
class Badge:
    id: str
    name: str
    threshold: int
    metric: BadgeMetric
    icon: str = "award"


BADGE_LADDER: tuple[Badge, ...] = (
    Badge(id="first-commit", name="First Steps", threshold=1, metric=BadgeMetric.COMMITS, icon="play"),
    Badge(id="week-streak", name="Week Warrior", threshold=7, metric=BadgeMetric.STREAK, icon="calendar"),
    Badge(id="two-weeks", name="Fortnight Force", threshold=14, metric=BadgeMetric.STREAK, icon="zap"),
    Badge(id="month-streak", name="Monthly Master", threshold=30, metric=BadgeMetric.STREAK, icon="award"),
    Badge(id="hundred-commits", name="Centurion", threshold=100, metric=BadgeMetric.COMMITS, icon="target"),
)

LEVELS_PER_TIER = 5
TIER_COST_STEP = 10


@dataclass(slots=True)
class MilestoneResult:
    """Outcome of one badge evaluation."""

    ledger: BadgeLedger
    newly_earned: list[Badge]

    @property
    def newly_earned_ids(self) -> list[str]:
        return [badge.id for badge in self.newly_earned]


@dataclass(frozen=True, slots=True)
class NextBadge:
    badge: Badge
    remaining: int


@dataclass(frozen=True, slots=True)
class LevelProgress:
    level: int
    progress: int  # commits earned inside the current level
    required: int  # commits the current level spans
    total_commits: int

    @property
    def fraction(self) -> float:
        return self.progress / self.required if self.required else 0.0


def _metric_value(badge: Badge, *, longest_streak: int, total_commits: int) -> int:
    if badge.metric == BadgeMetric.STREAK:
        return longest_streak
    # The search counter skips private repositories, so it can trail the buckets
    return max(longest_streak, total_commits)


def qualifying_badges(
    *,
    longest_streak: int,
    total_commits: int = 0,
    ladder: Sequence[Badge] = BADGE_LADDER,
) -> list[Badge]:
    """Every badge whose threshold is met, in ladder order."""
    return [
        badge
        for badge in ladder
        if _metric_value(badge, longest_streak=longest_streak, total_commits=total_commits) >= badge.threshold
    ]


def evaluate_milestones(
    ledger: BadgeLedger,
    *,
    longest_streak: int,
    total_commits: int = 0,
    ladder: Sequence[Badge] = BADGE_LADDER,
) -> MilestoneResult:
    """Append newly met badges to the ledger. Nothing is ever revoked."""
    newly_earned = [
        badge
        for badge in qualifying_badges(longest_streak=longest_streak, total_commits=total_commits, ladder=ladder)
        if badge.id not in ledger
    ]
    return MilestoneResult(
        ledger=ledger.with_badges(badge.id for badge in newly_earned),
        newly_earned=newly_earned,
    )


def next_badge(
    ledger: BadgeLedger,
    *,
    longest_streak: int,
    total_commits: int = 0,
    ladder: Sequence[Badge] = BADGE_LADDER,
) -> Optional[NextBadge]:
    """First unearned badge in ladder order and how far away it is."""
    for badge in ladder:
        if badge.id in ledger:
            continue
        value = _metric_value(badge, longest_streak=longest_streak, total_commits=total_commits)
        if value < badge.threshold:
            return NextBadge(badge=badge, remaining=badge.threshold - value)
    return None


def badge_notification(badges: Iterable[Badge]) -> Optional[tuple[str, str]]:
    """(title, body) announcing one batch of new badges, or None for an empty batch."""
    earned = list(badges)
    if not earned:
        return None
    if len(earned) == 1:
        return "Badge earned!", f"You unlocked {earned[0].name}."
    names = ", ".join(badge.name for badge in earned)
    return f"{len(earned)} badges earned!", f"You unlocked {names}."


def level_cost(level: int) -> int:
    """Commits needed to advance from ``level`` to ``level + 1``."""
    if level < 1:
        raise ValueError("level must be >= 1")
    tier = (level - 1) // LEVELS_PER_TIER + 1
    return tier * TIER_COST_STEP


def cumulative_commits(level: int) -> int:
    """Commits needed to reach ``level`` from zero (level 1 costs nothing)."""
    if level < 1:
        raise ValueError("level must be >= 1")
    return sum(level_cost(step) for step in range(1, level))


def level_for_commits(total_commits: int) -> LevelProgress:
    """Largest level whose cumulative requirement is within ``total_commits``."""
    total = max(int(total_commits), 0)
    level = 1
    reached = 0
    while reached + level_cost(level) <= total:
        reached += level_cost(level)
        level += 1

    return LevelProgress(
        level=level,
        progress=total - reached,
        required=level_cost(level),
        total_commits=total,
    )
