"""Commit event observed for the tracked identity"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Optional


@dataclass(frozen=True, slots=True)
class CommitEvent:
    """
    One commit attributable to the tracked identity

    Produced per sync and never persisted; only its effect on the
    day buckets is retained.
    """

    timestamp: datetime  # UTC instant as reported by the host
    repository: str
    sha: Optional[str] = None

    @classmethod
    def from_commit_payload(cls, payload: dict[str, Any], repository: str) -> "CommitEvent":
        """Build from a ``/repos/{owner}/{repo}/commits`` item.

        Raises:
            ValueError: if the payload carries no parseable author date.
        """
        details = payload.get("commit") if isinstance(payload.get("commit"), dict) else {}
        author = details.get("author") if isinstance(details.get("author"), dict) else {}
        committer = details.get("committer") if isinstance(details.get("committer"), dict) else {}
        raw = author.get("date") or committer.get("date")
        return cls(
            timestamp=parse_instant(raw),
            repository=repository,
            sha=payload.get("sha") if isinstance(payload.get("sha"), str) else None,
        )


def parse_instant(raw: Any) -> datetime:
    """Parse an ISO 8601 instant; naive values are taken as UTC."""
    if isinstance(raw, datetime):
        value = raw
    elif isinstance(raw, str) and raw.strip():
        value = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"Invalid commit timestamp: {raw!r}")

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
