import pytest

from dailycommit.models.badge_ledger import BadgeLedger
from dailycommit.services.streaks.milestones import (
    BADGE_LADDER,
    badge_notification,
    cumulative_commits,
    evaluate_milestones,
    level_cost,
    level_for_commits,
    next_badge,
)

BADGES = {badge.id: badge for badge in BADGE_LADDER}


def test_level_for_25_commits_is_level_3_halfway() -> None:
    progress = level_for_commits(25)

    assert progress.level == 3
    assert progress.progress == 5
    assert progress.required == 10
    assert progress.fraction == pytest.approx(0.5)


@pytest.mark.parametrize(
    "total,level,progress,required",
    [
        (0, 1, 0, 10),
        (9, 1, 9, 10),
        (10, 2, 0, 10),
        (49, 5, 9, 10),
        (50, 6, 0, 20),
        (149, 10, 19, 20),
        (150, 11, 0, 30),
        (-4, 1, 0, 10),
    ],
)
def test_level_tiers_raise_cost_every_five_levels(total: int, level: int, progress: int, required: int) -> None:
    result = level_for_commits(total)

    assert (result.level, result.progress, result.required) == (level, progress, required)


def test_cumulative_requirements_match_tier_costs() -> None:
    assert [level_cost(level) for level in (1, 5, 6, 10, 11)] == [10, 10, 20, 20, 30]
    assert cumulative_commits(1) == 0
    assert cumulative_commits(6) == 50
    assert cumulative_commits(11) == 150


def test_level_cost_rejects_levels_below_one() -> None:
    with pytest.raises(ValueError):
        level_cost(0)


def test_streak_badges_use_longest_streak_and_commit_badges_use_total() -> None:
    result = evaluate_milestones(BadgeLedger(), longest_streak=8, total_commits=3)

    assert result.newly_earned_ids == ["first-commit", "week-streak"]
    assert result.ledger.to_list() == ["first-commit", "week-streak"]


def test_commit_badges_are_earned_through_streak_when_search_count_lags() -> None:
    result = evaluate_milestones(BadgeLedger(), longest_streak=3, total_commits=0)

    assert result.newly_earned_ids == ["first-commit"]


def test_next_badge_counts_streak_toward_commit_badges() -> None:
    fresh = next_badge(BadgeLedger(), longest_streak=2, total_commits=0)
    ledger = BadgeLedger(earned=frozenset({"first-commit", "week-streak", "two-weeks", "month-streak"}))
    upcoming = next_badge(ledger, longest_streak=40, total_commits=0)

    assert fresh is not None
    assert fresh.badge.id == "week-streak"
    assert upcoming is not None
    assert upcoming.badge.id == "hundred-commits"
    assert upcoming.remaining == 60


def test_already_earned_badges_are_not_reported_again() -> None:
    ledger = BadgeLedger(earned=frozenset({"first-commit", "week-streak"}))

    result = evaluate_milestones(ledger, longest_streak=15, total_commits=120)

    assert result.newly_earned_ids == ["two-weeks", "hundred-commits"]
    assert {"first-commit", "week-streak", "two-weeks", "hundred-commits"} <= result.ledger.earned


def test_badges_are_never_revoked_when_stats_drop() -> None:
    ledger = BadgeLedger(earned=frozenset({"month-streak", "hundred-commits"}))

    result = evaluate_milestones(ledger, longest_streak=0, total_commits=0)

    assert result.newly_earned == []
    assert "month-streak" in result.ledger
    assert "hundred-commits" in result.ledger


def test_no_badges_for_empty_history() -> None:
    result = evaluate_milestones(BadgeLedger(), longest_streak=0, total_commits=0)

    assert result.newly_earned == []
    assert len(result.ledger) == 0


def test_next_badge_reports_remaining_distance() -> None:
    ledger = BadgeLedger(earned=frozenset({"first-commit"}))

    upcoming = next_badge(ledger, longest_streak=4, total_commits=12)

    assert upcoming is not None
    assert upcoming.badge.id == "week-streak"
    assert upcoming.remaining == 3


def test_next_badge_is_none_when_ladder_complete() -> None:
    ledger = BadgeLedger(earned=frozenset(BADGES))

    assert next_badge(ledger, longest_streak=0, total_commits=0) is None


def test_notification_framing_singular_and_plural() -> None:
    single = badge_notification([BADGES["week-streak"]])
    batch = badge_notification([BADGES["two-weeks"], BADGES["hundred-commits"]])

    assert single == ("Badge earned!", "You unlocked Week Warrior.")
    assert batch == ("2 badges earned!", "You unlocked Fortnight Force, Centurion.")
    assert badge_notification([]) is None
