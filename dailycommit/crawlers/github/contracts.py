"""Typed contracts for GitHub commit client responses and collection coverage."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from dailycommit.models.commit_event import CommitEvent


T = TypeVar("T")


class FetchState(str, Enum):
    """Normalized response state for downstream collection stages."""

    OK = "ok"
    EMPTY = "empty"
    UNAUTHORIZED = "unauthorized"
    FAILED = "failed"


@dataclass(slots=True)
class FetchResult(Generic[T]):
    """Container that separates payload from fetch semantics."""

    state: FetchState
    data: Optional[T] = None
    next_page: Optional[int] = None
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_ok(self) -> bool:
        return self.state == FetchState.OK

    @property
    def is_empty(self) -> bool:
        return self.state == FetchState.EMPTY

    @property
    def is_unauthorized(self) -> bool:
        return self.state == FetchState.UNAUTHORIZED

    @property
    def is_failed(self) -> bool:
        return self.state == FetchState.FAILED

    @property
    def has_next_page(self) -> bool:
        return self.next_page is not None


IdentityPayload = dict[str, Any]
EmailPayload = list[dict[str, Any]]
RepoListPayload = list[dict[str, Any]]
CommitListPayload = list[dict[str, Any]]

IdentityContract = FetchResult[IdentityPayload]
EmailContract = FetchResult[EmailPayload]
RepoListContract = FetchResult[RepoListPayload]
CommitListContract = FetchResult[CommitListPayload]
CountContract = FetchResult[int]


@dataclass(frozen=True, slots=True)
class RepositoryRef:
    """Repository visible to the authenticated identity."""

    owner: str
    name: str
    is_fork: bool = False
    is_private: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(slots=True)
class RepositoryOutcome:
    """Per-repository collection result: success with events, or failure with a reason."""

    repository: str
    events: list[CommitEvent] = field(default_factory=list)
    pages: int = 0
    error: Optional[str] = None
    status_code: Optional[int] = None
    truncated: bool = False  # page or deadline ceiling hit; events hold the pages already fetched

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class CoverageReport:
    """Aggregated collection coverage for one sync."""

    repositories_total: int = 0
    repositories_succeeded: int = 0
    repositories_failed: int = 0
    repositories_truncated: int = 0
    pages_fetched: int = 0
    commits_matched: int = 0
    failure_reasons: list[dict[str, Any]] = field(default_factory=list)

    @property
    def all_failed(self) -> bool:
        return self.repositories_total > 0 and self.repositories_succeeded == 0

    @property
    def is_partial(self) -> bool:
        return self.repositories_failed > 0 or self.repositories_truncated > 0

    def record(self, outcome: RepositoryOutcome) -> None:
        self.pages_fetched += outcome.pages
        if outcome.succeeded:
            self.repositories_succeeded += 1
            self.commits_matched += len(outcome.events)
            if outcome.truncated:
                self.repositories_truncated += 1
            return
        self.repositories_failed += 1
        self.failure_reasons.append(
            {
                "repository": outcome.repository,
                "reason": outcome.error,
                "status_code": outcome.status_code,
            }
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "repositoriesTotal": self.repositories_total,
            "repositoriesSucceeded": self.repositories_succeeded,
            "repositoriesFailed": self.repositories_failed,
            "repositoriesTruncated": self.repositories_truncated,
            "pagesFetched": self.pages_fetched,
            "commitsMatched": self.commits_matched,
            "failureReasons": list(self.failure_reasons),
        }


@dataclass(slots=True)
class CollectionResult:
    """Merged events of a collection run plus its coverage report."""

    events: list[CommitEvent]
    coverage: CoverageReport
