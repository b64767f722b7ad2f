"""Streak snapshot record and its database row"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import Column, Date, DateTime, Integer, JSON, String

from dailycommit.config.database import Base

WEEK_LENGTH = 7


def _empty_week() -> list[int]:
    return [0] * WEEK_LENGTH


@dataclass(slots=True)
class StreakSnapshot:
    """User-visible aggregate persisted per user"""

    current_streak: int = 0
    longest_streak: int = 0
    last_commit_date: Optional[date] = None
    weekly_commits: list[int] = field(default_factory=_empty_week)
    total_commits: int = 0
    yearly_commits: int = 0
    today_commits: int = 0
    synced_at: Optional[datetime] = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Marshal to the stored document shape."""
        return {
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "lastCommitDate": self.last_commit_date.isoformat() if self.last_commit_date else None,
            "weeklyCommits": list(self.weekly_commits),
            "totalCommits": self.total_commits,
            "yearlyCommits": self.yearly_commits,
            "todayCommits": self.today_commits,
            "syncedAt": self.synced_at.isoformat() if self.synced_at else None,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> "StreakSnapshot":
        """Unmarshal a stored document; missing fields take empty defaults."""
        if not payload:
            return cls()

        last_commit = payload.get("lastCommitDate")
        synced_at = payload.get("syncedAt")
        weekly = payload.get("weeklyCommits") or _empty_week()
        weekly = [max(int(count or 0), 0) for count in list(weekly)[:WEEK_LENGTH]]
        weekly += [0] * (WEEK_LENGTH - len(weekly))

        return cls(
            current_streak=max(int(payload.get("currentStreak") or 0), 0),
            longest_streak=max(int(payload.get("longestStreak") or 0), 0),
            last_commit_date=date.fromisoformat(last_commit) if last_commit else None,
            weekly_commits=weekly,
            total_commits=max(int(payload.get("totalCommits") or 0), 0),
            yearly_commits=max(int(payload.get("yearlyCommits") or 0), 0),
            today_commits=max(int(payload.get("todayCommits") or 0), 0),
            synced_at=datetime.fromisoformat(synced_at) if synced_at else None,
        )


class StreakSnapshotRecord(Base):
    """
    Persisted streak snapshot, one row per user

    Maps to streak_snapshots table
    """
    __tablename__ = "streak_snapshots"

    user_id = Column(String(128), primary_key=True)

    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_commit_date = Column(Date)
    weekly_commits = Column(JSON, nullable=False, default=_empty_week)
    total_commits = Column(Integer, nullable=False, default=0)
    yearly_commits = Column(Integer, nullable=False, default=0)
    today_commits = Column(Integer, nullable=False, default=0)

    synced_at = Column(DateTime(timezone=True))

    def to_snapshot(self) -> StreakSnapshot:
        return StreakSnapshot(
            current_streak=self.current_streak or 0,
            longest_streak=self.longest_streak or 0,
            last_commit_date=self.last_commit_date,
            weekly_commits=list(self.weekly_commits or _empty_week()),
            total_commits=self.total_commits or 0,
            yearly_commits=self.yearly_commits or 0,
            today_commits=self.today_commits or 0,
            synced_at=self.synced_at,
        )

    def apply(self, snapshot: StreakSnapshot) -> None:
        self.current_streak = snapshot.current_streak
        self.longest_streak = snapshot.longest_streak
        self.last_commit_date = snapshot.last_commit_date
        self.weekly_commits = list(snapshot.weekly_commits)
        self.total_commits = snapshot.total_commits
        self.yearly_commits = snapshot.yearly_commits
        self.today_commits = snapshot.today_commits
        self.synced_at = snapshot.synced_at

    def __repr__(self):
        return f"<StreakSnapshotRecord {self.user_id} ({self.current_streak} days)>"
