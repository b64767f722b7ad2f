"""Commit collection stage with per-repository failure isolation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, datetime
import logging
import time
from typing import Any, Callable, Sequence

from dailycommit.config.settings import settings
from dailycommit.crawlers.github.client import sanitize_for_log, sanitize_log_extra
from dailycommit.crawlers.github.contracts import (
    CollectionResult,
    CoverageReport,
    RepositoryOutcome,
    RepositoryRef,
)
from dailycommit.crawlers.github.identity import TrackedIdentity, match_reason
from dailycommit.errors import AuthenticationError
from dailycommit.models.commit_event import CommitEvent

logger = logging.getLogger(__name__)

# Earliest date the search API can report commits for
GITHUB_EPOCH = date(2008, 1, 1)


@dataclass(slots=True)
class CommitTotals:
    """Display-only counters from the aggregate search query."""

    all_time: int | None = None
    year: int | None = None


class CommitCollector:
    """Fetch commits since a cutoff across repositories and keep the tracked identity's."""

    def __init__(
        self,
        client: Any,
        *,
        max_concurrency: int | None = None,
        max_pages: int | None = None,
        deadline_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._max_concurrency = max(max_concurrency or settings.MAX_CONCURRENT_REQUESTS, 1)
        self._max_pages = max_pages or settings.MAX_PAGES_PER_REPOSITORY
        self._deadline_seconds = deadline_seconds if deadline_seconds is not None else settings.SYNC_DEADLINE_SECONDS
        self._clock = clock

    async def collect(
        self,
        identity: TrackedIdentity,
        repositories: Sequence[RepositoryRef],
        *,
        since: datetime,
    ) -> CollectionResult:
        """Collect matching commits from every repository.

        Repositories are fetched concurrently; a failed repository is
        recorded in the coverage report and skipped. An authentication
        failure cancels the remaining fetches and is raised.
        """
        coverage = CoverageReport(repositories_total=len(repositories))
        if not repositories:
            return CollectionResult(events=[], coverage=coverage)

        semaphore = asyncio.Semaphore(self._max_concurrency)
        deadline = self._clock() + self._deadline_seconds

        async def _guarded(repository: RepositoryRef) -> RepositoryOutcome:
            async with semaphore:
                if self._clock() >= deadline:
                    return RepositoryOutcome(repository=repository.full_name, error="sync deadline exceeded")
                try:
                    return await self._collect_repository(repository, identity, since=since, deadline=deadline)
                except AuthenticationError:
                    raise
                except Exception as exc:
                    error = sanitize_for_log(str(exc), key="error")
                    logger.warning(
                        "Commit collection failed for repository",
                        extra=sanitize_log_extra(repository=repository.full_name, error=error),
                    )
                    return RepositoryOutcome(repository=repository.full_name, error=error or exc.__class__.__name__)

        tasks = [asyncio.create_task(_guarded(repository)) for repository in repositories]
        try:
            outcomes = await asyncio.gather(*tasks)
        except AuthenticationError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        seen_shas: set[str] = set()
        events: list[CommitEvent] = []
        for outcome in outcomes:
            coverage.record(outcome)
            for event in outcome.events:
                if event.sha is not None:
                    if event.sha in seen_shas:
                        continue
                    seen_shas.add(event.sha)
                events.append(event)

        logger.info(
            "Commit collection finished",
            extra=sanitize_log_extra(
                repositories=coverage.repositories_total,
                failed=coverage.repositories_failed,
                truncated=coverage.repositories_truncated,
                commits=len(events),
            ),
        )
        return CollectionResult(events=events, coverage=coverage)

    async def _collect_repository(
        self,
        repository: RepositoryRef,
        identity: TrackedIdentity,
        *,
        since: datetime,
        deadline: float,
    ) -> RepositoryOutcome:
        outcome = RepositoryOutcome(repository=repository.full_name)
        page: int | None = 1

        while page is not None:
            if outcome.pages >= self._max_pages or self._clock() >= deadline:
                outcome.truncated = True
                logger.warning(
                    "Commit pagination ceiling reached",
                    extra=sanitize_log_extra(repository=repository.full_name, pages=outcome.pages),
                )
                break

            response = await self._client.list_commits(repository.owner, repository.name, since=since, page=page)
            outcome.pages += 1

            if response.is_unauthorized:
                raise AuthenticationError(status_code=response.status_code)
            if response.is_failed:
                logger.warning(
                    "Commit page fetch failed",
                    extra=sanitize_log_extra(
                        repository=repository.full_name,
                        page=page,
                        status_code=response.status_code,
                        error=response.error,
                    ),
                )
                return RepositoryOutcome(
                    repository=repository.full_name,
                    pages=outcome.pages,
                    error=sanitize_for_log(response.error or "commit fetch failed", key="error"),
                    status_code=response.status_code,
                )
            if response.is_empty:
                break

            for payload in response.data or []:
                event = self._to_event(payload, identity, repository, since=since)
                if event is not None:
                    outcome.events.append(event)

            if not response.has_next_page:
                break
            page = response.next_page

        return outcome

    @staticmethod
    def _to_event(
        payload: Any,
        identity: TrackedIdentity,
        repository: RepositoryRef,
        *,
        since: datetime,
    ) -> CommitEvent | None:
        if not isinstance(payload, dict):
            return None
        if match_reason(payload, identity) is None:
            return None

        try:
            event = CommitEvent.from_commit_payload(payload, repository.full_name)
        except (TypeError, ValueError) as exc:
            logger.warning(
                "Skipping commit with malformed timestamp",
                extra=sanitize_log_extra(repository=repository.full_name, sha=payload.get("sha"), error=str(exc)),
            )
            return None

        # `since` filters on committer date; rebased commits can carry older author dates
        if event.timestamp < since:
            return None
        return event

    async def collect_totals(self, identity: TrackedIdentity, *, today: date) -> CommitTotals:
        """All-time and current-year counts from the search API.

        These may disagree with the per-day bucket sum; they are never used
        for streak math. A failed query leaves its counter unset.
        """
        totals = CommitTotals()
        year_start = date(today.year, 1, 1)

        for attr, start in (("all_time", GITHUB_EPOCH), ("year", year_start)):
            response = await self._client.count_commits(identity.login, start=start, end=today)
            if response.is_ok and isinstance(response.data, int):
                setattr(totals, attr, response.data)
                continue
            logger.info(
                "Aggregate commit count unavailable",
                extra=sanitize_log_extra(scope=attr, status_code=response.status_code, error=response.error),
            )

        return totals
