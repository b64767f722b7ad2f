"""Domain records and database models"""

from dailycommit.models.badge_ledger import BadgeLedger, EarnedBadge
from dailycommit.models.commit_event import CommitEvent
from dailycommit.models.streak_snapshot import StreakSnapshot, StreakSnapshotRecord

__all__ = [
    "BadgeLedger",
    "EarnedBadge",
    "CommitEvent",
    "StreakSnapshot",
    "StreakSnapshotRecord",
]
