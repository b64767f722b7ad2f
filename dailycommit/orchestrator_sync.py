"""Per-user commit sync orchestration: collect, bucket, compute, award, persist."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo
import inspect
import logging
from typing import Any, Callable, Optional

from dailycommit.config.settings import settings
from dailycommit.crawlers.github.client import GitHubCommitClient, sanitize_for_log, sanitize_log_extra
from dailycommit.crawlers.github.commit_stage import CommitCollector, CommitTotals
from dailycommit.crawlers.github.contracts import CollectionResult, CoverageReport, RepositoryRef
from dailycommit.crawlers.github.identity import TrackedIdentity
from dailycommit.crawlers.github.repository_stage import RepositoryEnumerator
from dailycommit.errors import AuthenticationError, CollectionFailedError, StorageError, SyncInProgressError
from dailycommit.models.badge_ledger import BadgeLedger
from dailycommit.models.streak_snapshot import StreakSnapshot
from dailycommit.services.streaks.bucketizer import TimezoneLike, bucketize, local_day, resolve_timezone
from dailycommit.services.streaks.calculator import (
    StreakStats,
    StreakStatus,
    calculate_streaks,
    carried_streak,
    classify,
    extend_streak,
    merge_snapshot,
    streak_reaches,
)
from dailycommit.services.streaks.milestones import (
    LevelProgress,
    NextBadge,
    badge_notification,
    evaluate_milestones,
    level_for_commits,
    next_badge,
)
from dailycommit.stores import AggregateStore, CredentialStore, NotificationSink

logger = logging.getLogger(__name__)

SYNC_MODE_FULL = "full"  # year to date
SYNC_MODE_LIGHT = "light"  # rolling window of LIGHT_SYNC_DAYS
SYNC_MODES = (SYNC_MODE_FULL, SYNC_MODE_LIGHT)


@dataclass(slots=True)
class SyncResult:
    """Outcome of one sync, returned even when persistence failed."""

    user_id: str
    mode: str
    snapshot: StreakSnapshot
    newly_earned_badges: list[str]
    status: StreakStatus
    level: LevelProgress
    coverage: CoverageReport
    persisted: bool = True
    storage_error: Optional[str] = None

    @property
    def current_streak(self) -> int:
        return self.snapshot.current_streak

    @property
    def longest_streak(self) -> int:
        return self.snapshot.longest_streak

    @property
    def last_commit_date(self) -> Optional[date]:
        return self.snapshot.last_commit_date

    @property
    def weekly_commits(self) -> list[int]:
        return self.snapshot.weekly_commits

    @property
    def total_commits(self) -> int:
        return self.snapshot.total_commits

    @property
    def yearly_commits(self) -> int:
        return self.snapshot.yearly_commits

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentStreak": self.snapshot.current_streak,
            "longestStreak": self.snapshot.longest_streak,
            "lastCommitDate": self.snapshot.last_commit_date.isoformat() if self.snapshot.last_commit_date else None,
            "weeklyCommits": list(self.snapshot.weekly_commits),
            "totalCommits": self.snapshot.total_commits,
            "yearlyCommits": self.snapshot.yearly_commits,
            "todayCommits": self.snapshot.today_commits,
            "newlyEarnedBadges": list(self.newly_earned_badges),
            "status": self.status.value,
            "level": {
                "level": self.level.level,
                "progress": self.level.progress,
                "required": self.level.required,
            },
            "coverage": self.coverage.to_dict(),
            "persisted": self.persisted,
            "storageError": self.storage_error,
        }


@dataclass(slots=True)
class StatsSummary:
    """Stored aggregate as a UI collaborator reads it; never triggers a sync."""

    snapshot: StreakSnapshot
    earned_badges: list[str]
    status: StreakStatus
    level: LevelProgress
    next_badge: Optional[NextBadge] = None
    synced_today: bool = False


class SyncOrchestrator:
    """Runs at most one sync per user at a time over injected collaborators."""

    def __init__(
        self,
        *,
        credential_store: CredentialStore,
        aggregate_store: AggregateStore,
        notification_sink: NotificationSink | None = None,
        github_client_factory: Callable[[str], Any] = GitHubCommitClient,
        timezone: TimezoneLike = None,
        clock: Callable[[], datetime] | None = None,
        coalesce: bool | None = None,
        include_forks: bool | None = None,
        max_concurrency: int | None = None,
        max_pages: int | None = None,
        deadline_seconds: float | None = None,
    ) -> None:
        self._credentials = credential_store
        self._store = aggregate_store
        self._notifications = notification_sink
        self._github_client_factory = github_client_factory
        self._default_timezone = resolve_timezone(timezone if timezone is not None else settings.DEFAULT_TIMEZONE)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._coalesce = settings.SYNC_COALESCE if coalesce is None else coalesce
        self._include_forks = include_forks
        self._max_concurrency = max_concurrency
        self._max_pages = max_pages
        self._deadline_seconds = deadline_seconds
        self._in_flight: dict[str, asyncio.Task] = {}

    async def sync(
        self,
        user_id: str,
        *,
        mode: str = SYNC_MODE_FULL,
        timezone: TimezoneLike = None,
    ) -> SyncResult:
        """Recompute and persist a user's streak aggregate.

        A trigger for a user whose sync is still running joins that sync
        (or raises ``SyncInProgressError`` when coalescing is disabled).

        Raises:
            AuthenticationError: credential missing or rejected.
            CollectionFailedError: no repository could be fetched.
            SyncInProgressError: duplicate trigger with coalescing disabled.
            ValueError: unknown mode or timezone.
        """
        if mode not in SYNC_MODES:
            raise ValueError(f"Unknown sync mode: {mode}")
        zone = resolve_timezone(timezone) if timezone is not None else self._default_timezone

        running = self._in_flight.get(user_id)
        if running is not None and not running.done():
            if not self._coalesce:
                raise SyncInProgressError(user_id)
            logger.info("Coalescing duplicate sync trigger", extra=sanitize_log_extra(user_id=user_id))
            return await asyncio.shield(running)

        task = asyncio.create_task(self._run_sync(user_id, mode=mode, zone=zone))
        self._in_flight[user_id] = task

        def _release(finished: asyncio.Task) -> None:
            if self._in_flight.get(user_id) is finished:
                del self._in_flight[user_id]

        task.add_done_callback(_release)
        return await task

    def is_syncing(self, user_id: str) -> bool:
        running = self._in_flight.get(user_id)
        return running is not None and not running.done()

    async def _run_sync(self, user_id: str, *, mode: str, zone: tzinfo) -> SyncResult:
        token = self._credentials.get(user_id)
        if not token:
            raise AuthenticationError("No GitHub credential stored for user")

        now = self._clock()
        today = local_day(now, zone)
        window_start = self._window_start(today, mode)

        logger.info(
            "Commit sync started",
            extra=sanitize_log_extra(user_id=user_id, mode=mode, window_start=window_start.isoformat()),
        )

        async with self._github_client_factory(token) as client:
            enumerator = RepositoryEnumerator(client, include_forks=self._include_forks, max_pages=self._max_pages)
            identity = await enumerator.resolve_identity()
            repositories = await enumerator.list_repositories()

            collector = CommitCollector(
                client,
                max_concurrency=self._max_concurrency,
                max_pages=self._max_pages,
                deadline_seconds=self._deadline_seconds,
            )
            collection = await self._collect(
                collector, identity, repositories, user_id=user_id, window_start=window_start, zone=zone
            )
            previous, ledger, storage_error = self._read_aggregate(user_id)
            can_persist = storage_error is None

            buckets = bucketize(collection.events, zone)
            stats = calculate_streaks(buckets, today, window_start=window_start)
            if streak_reaches(buckets, today, window_start):
                carried = carried_streak(previous, window_start - timedelta(days=1))
                full_start = self._window_start(today, SYNC_MODE_FULL)
                if carried is None and mode == SYNC_MODE_LIGHT and full_start < window_start:
                    # The stored snapshot cannot continue the streak, rescan the year
                    window_start = full_start
                    logger.info(
                        "Light sync streak reaches window start, widening to full window",
                        extra=sanitize_log_extra(user_id=user_id, window_start=window_start.isoformat()),
                    )
                    collection = await self._collect(
                        collector, identity, repositories, user_id=user_id, window_start=window_start, zone=zone
                    )
                    buckets = bucketize(collection.events, zone)
                    stats = calculate_streaks(buckets, today, window_start=window_start)
                    if streak_reaches(buckets, today, window_start):
                        carried = carried_streak(previous, window_start - timedelta(days=1))
                if carried:
                    stats = extend_streak(stats, carried)

            totals = await collector.collect_totals(identity, today=today)

        snapshot = merge_snapshot(
            stats,
            previous,
            total_commits=totals.all_time,
            yearly_commits=self._yearly_commits(totals, stats, previous, mode=mode, today=today),
            synced_at=now,
        )
        milestones = evaluate_milestones(
            ledger,
            longest_streak=snapshot.longest_streak,
            total_commits=snapshot.total_commits,
        )

        persisted = False
        if can_persist:
            try:
                # Badges go last: an unwritten badge is re-awarded, and announced, next sync
                self._store.set_snapshot(user_id, snapshot)
                self._store.set_badges(user_id, milestones.ledger)
                persisted = True
            except StorageError as exc:
                storage_error = sanitize_for_log(str(exc), key="error")
                logger.warning(
                    "Aggregate write failed",
                    extra=sanitize_log_extra(user_id=user_id, error=storage_error),
                )

        newly_earned = milestones.newly_earned if persisted else []
        if newly_earned:
            await self._notify(user_id, badge_notification(newly_earned))

        result = SyncResult(
            user_id=user_id,
            mode=mode,
            snapshot=snapshot,
            newly_earned_badges=[badge.id for badge in newly_earned],
            status=classify(snapshot.current_streak, snapshot.last_commit_date, snapshot.today_commits),
            level=level_for_commits(snapshot.total_commits),
            coverage=collection.coverage,
            persisted=persisted,
            storage_error=storage_error,
        )
        logger.info(
            "Commit sync completed",
            extra=sanitize_log_extra(
                user_id=user_id,
                current_streak=snapshot.current_streak,
                longest_streak=snapshot.longest_streak,
                new_badges=result.newly_earned_badges,
                partial=collection.coverage.is_partial,
                persisted=persisted,
            ),
        )
        return result

    async def _collect(
        self,
        collector: CommitCollector,
        identity: TrackedIdentity,
        repositories: list[RepositoryRef],
        *,
        user_id: str,
        window_start: date,
        zone: tzinfo,
    ) -> CollectionResult:
        since = datetime.combine(window_start, time.min, tzinfo=zone).astimezone(UTC)
        collection = await collector.collect(identity, repositories, since=since)
        if collection.coverage.all_failed:
            failures = [str(item.get("reason")) for item in collection.coverage.failure_reasons]
            logger.warning(
                "Commit sync failed for every repository",
                extra=sanitize_log_extra(user_id=user_id, failures=failures),
            )
            raise CollectionFailedError("Failed to fetch commits from every repository", failures=failures)
        return collection

    def _read_aggregate(self, user_id: str) -> tuple[StreakSnapshot, BadgeLedger, Optional[str]]:
        """Stored snapshot and ledger, or empty ones plus the error when unreadable."""
        try:
            return self._store.get_snapshot(user_id), self._store.get_badges(user_id), None
        except StorageError as exc:
            # Writing over unread state could regress longest streak or badges
            storage_error = sanitize_for_log(str(exc), key="error")
            logger.warning(
                "Aggregate read failed, result will not be persisted",
                extra=sanitize_log_extra(user_id=user_id, error=storage_error),
            )
            return StreakSnapshot(), BadgeLedger(), storage_error

    def summarize(self, user_id: str, *, timezone: TimezoneLike = None) -> StatsSummary:
        """Read the stored aggregate without syncing.

        Raises:
            StorageError: if the store cannot be read.
        """
        zone = resolve_timezone(timezone) if timezone is not None else self._default_timezone
        snapshot = self._store.get_snapshot(user_id)
        ledger = self._store.get_badges(user_id)
        today = local_day(self._clock(), zone)

        # A snapshot from an earlier day says nothing about today's commits
        synced_today = snapshot.synced_at is not None and local_day(snapshot.synced_at, zone) == today
        today_commits = snapshot.today_commits if synced_today else 0

        return StatsSummary(
            snapshot=snapshot,
            earned_badges=ledger.to_list(),
            status=classify(snapshot.current_streak, snapshot.last_commit_date, today_commits),
            level=level_for_commits(snapshot.total_commits),
            next_badge=next_badge(ledger, longest_streak=snapshot.longest_streak, total_commits=snapshot.total_commits),
            synced_today=synced_today,
        )

    def delete_user(self, user_id: str) -> None:
        """Drop every stored aggregate for an account being deleted."""
        self._store.delete(user_id)
        logger.info("Deleted user aggregates", extra=sanitize_log_extra(user_id=user_id))

    @staticmethod
    def _window_start(today: date, mode: str) -> date:
        if mode == SYNC_MODE_LIGHT:
            return today - timedelta(days=max(settings.LIGHT_SYNC_DAYS, 1) - 1)
        return date(today.year, 1, 1)

    @staticmethod
    def _yearly_commits(
        totals: CommitTotals,
        stats: StreakStats,
        previous: StreakSnapshot,
        *,
        mode: str,
        today: date,
    ) -> int:
        if totals.year is not None:
            return totals.year
        if mode == SYNC_MODE_FULL:
            return stats.window_commits
        # Light window covers only part of the year
        same_year = previous.synced_at is not None and previous.synced_at.year == today.year
        carried = previous.yearly_commits if same_year else 0
        return max(carried, stats.window_commits)

    async def _notify(self, user_id: str, message: tuple[str, str] | None) -> None:
        if message is None or self._notifications is None:
            return
        title, body = message
        try:
            outcome = self._notifications.send(title, body)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            logger.warning(
                "Badge notification failed",
                extra=sanitize_log_extra(user_id=user_id, error=str(exc)),
            )
