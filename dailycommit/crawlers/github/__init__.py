"""GitHub commit crawler primitives."""

from dailycommit.crawlers.github.client import GitHubCommitClient
from dailycommit.crawlers.github.contracts import (
    CollectionResult,
    CoverageReport,
    FetchResult,
    FetchState,
    RepositoryOutcome,
    RepositoryRef,
)

__all__ = [
    "GitHubCommitClient",
    "FetchState",
    "FetchResult",
    "RepositoryRef",
    "RepositoryOutcome",
    "CoverageReport",
    "CollectionResult",
]
