"""Badge ledger record and its database row"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Iterable

from sqlalchemy import Column, DateTime, String, UniqueConstraint

from dailycommit.config.database import Base


@dataclass(slots=True)
class BadgeLedger:
    """Append-only set of badge ids a user has earned"""

    earned: frozenset[str] = field(default_factory=frozenset)

    def __contains__(self, badge_id: str) -> bool:
        return badge_id in self.earned

    def __len__(self) -> int:
        return len(self.earned)

    def with_badges(self, badge_ids: Iterable[str]) -> "BadgeLedger":
        """Return a ledger holding every current badge plus ``badge_ids``."""
        return BadgeLedger(earned=self.earned | frozenset(badge_ids))

    def to_list(self) -> list[str]:
        return sorted(self.earned)


class EarnedBadge(Base):
    """
    One earned badge for one user

    Rows are inserted, never deleted, except on account deletion
    """
    __tablename__ = "earned_badges"
    __table_args__ = (UniqueConstraint("user_id", "badge_id", name="uq_earned_badges_user_badge"),)

    user_id = Column(String(128), primary_key=True)
    badge_id = Column(String(64), primary_key=True)
    earned_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    def __repr__(self):
        return f"<EarnedBadge {self.user_id}: {self.badge_id}>"
