"""Collaborator interfaces for credentials, persisted aggregates, and notifications.

The engine only talks to these protocols; adapters marshal records to and
from their own storage representation.
"""

from __future__ import annotations

from datetime import UTC, datetime
import logging
from typing import Any, Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError

from dailycommit.errors import StorageError
from dailycommit.models.badge_ledger import BadgeLedger, EarnedBadge
from dailycommit.models.streak_snapshot import StreakSnapshot, StreakSnapshotRecord

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    """Access-token lookup by user id."""

    def get(self, user_id: str) -> str | None: ...


class AggregateStore(Protocol):
    """Key-value storage of per-user snapshots and badge ledgers."""

    def get_snapshot(self, user_id: str) -> StreakSnapshot: ...

    def set_snapshot(self, user_id: str, snapshot: StreakSnapshot) -> None: ...

    def get_badges(self, user_id: str) -> BadgeLedger: ...

    def set_badges(self, user_id: str, ledger: BadgeLedger) -> None: ...

    def delete(self, user_id: str) -> None: ...


class NotificationSink(Protocol):
    """Fire-and-forget delivery of (title, body) messages."""

    def send(self, title: str, body: str) -> Any: ...


class InMemoryCredentialStore:
    def __init__(self, tokens: dict[str, str] | None = None) -> None:
        self._tokens = dict(tokens or {})

    def get(self, user_id: str) -> str | None:
        return self._tokens.get(user_id)

    def set(self, user_id: str, token: str) -> None:
        self._tokens[user_id] = token

    def delete(self, user_id: str) -> None:
        self._tokens.pop(user_id, None)


class InMemoryAggregateStore:
    """Document-style store keeping the marshaled snapshot shape."""

    def __init__(self) -> None:
        self._snapshots: dict[str, dict[str, Any]] = {}
        self._badges: dict[str, set[str]] = {}

    def get_snapshot(self, user_id: str) -> StreakSnapshot:
        return StreakSnapshot.from_dict(self._snapshots.get(user_id))

    def set_snapshot(self, user_id: str, snapshot: StreakSnapshot) -> None:
        self._snapshots[user_id] = snapshot.to_dict()

    def get_badges(self, user_id: str) -> BadgeLedger:
        return BadgeLedger(earned=frozenset(self._badges.get(user_id, set())))

    def set_badges(self, user_id: str, ledger: BadgeLedger) -> None:
        self._badges.setdefault(user_id, set()).update(ledger.earned)

    def delete(self, user_id: str) -> None:
        self._snapshots.pop(user_id, None)
        self._badges.pop(user_id, None)


class SQLAlchemyAggregateStore:
    """SQLAlchemy-backed store for streak_snapshots and earned_badges."""

    def __init__(self, session_factory: Callable[[], Any]) -> None:
        self._session_factory = session_factory

    def get_snapshot(self, user_id: str) -> StreakSnapshot:
        db = self._session_factory()
        try:
            row = db.get(StreakSnapshotRecord, user_id)
            return row.to_snapshot() if row is not None else StreakSnapshot()
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read streak snapshot: {exc.__class__.__name__}") from exc
        finally:
            db.close()

    def set_snapshot(self, user_id: str, snapshot: StreakSnapshot) -> None:
        db = self._session_factory()
        try:
            row = db.get(StreakSnapshotRecord, user_id)
            if row is None:
                row = StreakSnapshotRecord(user_id=user_id)
                db.add(row)
            row.apply(snapshot)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StorageError(f"Failed to write streak snapshot: {exc.__class__.__name__}") from exc
        finally:
            db.close()

    def get_badges(self, user_id: str) -> BadgeLedger:
        db = self._session_factory()
        try:
            rows = db.query(EarnedBadge).filter(EarnedBadge.user_id == user_id).all()
            return BadgeLedger(earned=frozenset(row.badge_id for row in rows))
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read badge ledger: {exc.__class__.__name__}") from exc
        finally:
            db.close()

    def set_badges(self, user_id: str, ledger: BadgeLedger) -> None:
        """Insert badges not yet stored; existing rows are never removed."""
        db = self._session_factory()
        try:
            existing = {
                badge_id
                for (badge_id,) in db.query(EarnedBadge.badge_id).filter(EarnedBadge.user_id == user_id).all()
            }
            now = datetime.now(UTC)
            for badge_id in sorted(ledger.earned - existing):
                db.add(EarnedBadge(user_id=user_id, badge_id=badge_id, earned_at=now))
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StorageError(f"Failed to write badge ledger: {exc.__class__.__name__}") from exc
        finally:
            db.close()

    def delete(self, user_id: str) -> None:
        """Remove every aggregate of a user (account deletion)."""
        db = self._session_factory()
        try:
            db.query(EarnedBadge).filter(EarnedBadge.user_id == user_id).delete()
            db.query(StreakSnapshotRecord).filter(StreakSnapshotRecord.user_id == user_id).delete()
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StorageError(f"Failed to delete aggregates: {exc.__class__.__name__}") from exc
        finally:
            db.close()


class LoggingNotificationSink:
    """Sink that only logs; stands in where no push channel is configured."""

    def send(self, title: str, body: str) -> None:
        logger.info("Notification: %s - %s", title, body)
