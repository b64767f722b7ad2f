"""
Command line commit sync for a single user.

Collects the user's GitHub commits, recomputes streaks and badges, stores
the aggregate, and prints the sync result as JSON.

Usage:
    python -m dailycommit.jobs.streak_sync --user-id alice --timezone America/New_York
    python -m dailycommit.jobs.streak_sync --mode light --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Sequence

from dailycommit.config.database import build_engine, build_session_factory, init_db
from dailycommit.config.settings import settings
from dailycommit.errors import AuthenticationError, CollectionFailedError, DailyCommitError
from dailycommit.orchestrator_sync import SYNC_MODE_FULL, SYNC_MODES, SyncOrchestrator
from dailycommit.stores import (
    InMemoryAggregateStore,
    InMemoryCredentialStore,
    LoggingNotificationSink,
    SQLAlchemyAggregateStore,
)
from dailycommit.utils.logger import setup_logger

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_COLLECTION_FAILED = 1
EXIT_UNAUTHENTICATED = 2


def normalize_mode(value: str | None, *, default: str = SYNC_MODE_FULL) -> str:
    """Map a user-supplied mode to a known sync mode, falling back to ``default``."""
    candidate = (value or "").strip().lower()
    return candidate if candidate in SYNC_MODES else default


async def run_streak_sync(
    *,
    orchestrator: SyncOrchestrator,
    user_id: str,
    mode: str | None = None,
    timezone: str | None = None,
) -> dict[str, Any]:
    result = await orchestrator.sync(user_id, mode=normalize_mode(mode), timezone=timezone)
    return result.to_dict()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sync GitHub commits and recompute streak statistics.")
    parser.add_argument("--user-id", default="local", help="Key the aggregate is stored under.")
    parser.add_argument("--token", default=None, help="GitHub access token (defaults to GITHUB_TOKEN).")
    parser.add_argument("--mode", default=SYNC_MODE_FULL, help="'full' (year to date) or 'light' (rolling window).")
    parser.add_argument("--timezone", default=None, help="IANA name or UTC offset such as -05:00.")
    parser.add_argument("--database-url", default=None, help="Aggregate store database (defaults to DATABASE_URL).")
    parser.add_argument("--dry-run", action="store_true", help="Keep aggregates in memory only.")
    return parser


def build_orchestrator(args: argparse.Namespace) -> SyncOrchestrator:
    token = args.token or settings.GITHUB_TOKEN
    credentials = InMemoryCredentialStore({args.user_id: token} if token else {})

    if args.dry_run:
        store: Any = InMemoryAggregateStore()
    else:
        engine = build_engine(args.database_url)
        init_db(engine)
        store = SQLAlchemyAggregateStore(build_session_factory(engine))

    return SyncOrchestrator(
        credential_store=credentials,
        aggregate_store=store,
        notification_sink=LoggingNotificationSink(),
    )


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    setup_logger("dailycommit", level=settings.LOG_LEVEL, stream=sys.stderr)
    args = build_parser().parse_args(argv)

    orchestrator = build_orchestrator(args)
    try:
        payload = asyncio.run(
            run_streak_sync(
                orchestrator=orchestrator,
                user_id=args.user_id,
                mode=args.mode,
                timezone=args.timezone,
            )
        )
    except AuthenticationError as exc:
        print(json.dumps({"error": "unauthenticated", "message": str(exc)}))
        return EXIT_UNAUTHENTICATED
    except CollectionFailedError as exc:
        print(json.dumps({"error": "collection_failed", "message": str(exc), "failures": exc.failures}))
        return EXIT_COLLECTION_FAILED
    except DailyCommitError as exc:
        print(json.dumps({"error": "sync_failed", "message": str(exc)}))
        return EXIT_COLLECTION_FAILED

    print(json.dumps(payload, indent=2))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
