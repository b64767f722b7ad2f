from __future__ import annotations

import asyncio
import json
from typing import Any

from dailycommit.config.settings import settings
from dailycommit.jobs import streak_sync
from dailycommit.jobs.streak_sync import normalize_mode, run_streak_sync
from dailycommit.orchestrator_sync import SyncOrchestrator
from dailycommit.stores import InMemoryAggregateStore, InMemoryCredentialStore


class FakeOrchestrator(SyncOrchestrator):
    def __init__(self) -> None:
        super().__init__(credential_store=InMemoryCredentialStore(), aggregate_store=InMemoryAggregateStore())
        self.calls: list[dict[str, Any]] = []

    async def sync(self, user_id, *, mode="full", timezone=None):
        self.calls.append({"user_id": user_id, "mode": mode, "timezone": timezone})

        class _Result:
            def to_dict(self) -> dict[str, Any]:
                return {"currentStreak": 4, "newlyEarnedBadges": []}

        return _Result()


def test_normalize_mode_falls_back_to_full() -> None:
    assert normalize_mode("LIGHT") == "light"
    assert normalize_mode(" full ") == "full"
    assert normalize_mode("weekly") == "full"
    assert normalize_mode(None) == "full"


def test_run_streak_sync_forwards_options() -> None:
    orchestrator = FakeOrchestrator()

    payload = asyncio.run(
        run_streak_sync(orchestrator=orchestrator, user_id="alice", mode="light", timezone="Asia/Seoul")
    )

    assert payload == {"currentStreak": 4, "newlyEarnedBadges": []}
    assert orchestrator.calls == [{"user_id": "alice", "mode": "light", "timezone": "Asia/Seoul"}]


def test_main_prints_sync_result(monkeypatch, capsys) -> None:
    orchestrator = FakeOrchestrator()
    monkeypatch.setattr(streak_sync, "setup_logger", lambda *_, **__: None)
    monkeypatch.setattr(streak_sync, "build_orchestrator", lambda args: orchestrator)

    exit_code = streak_sync.main(["--user-id", "alice", "--dry-run", "--timezone=-05:00"])

    assert exit_code == streak_sync.EXIT_OK
    assert json.loads(capsys.readouterr().out) == {"currentStreak": 4, "newlyEarnedBadges": []}
    assert orchestrator.calls[0]["timezone"] == "-05:00"


def test_main_reports_missing_credential(monkeypatch, capsys) -> None:
    monkeypatch.setattr(streak_sync, "setup_logger", lambda *_, **__: None)
    monkeypatch.setattr(settings, "GITHUB_TOKEN", "")

    exit_code = streak_sync.main(["--user-id", "alice", "--dry-run"])

    assert exit_code == streak_sync.EXIT_UNAUTHENTICATED
    assert json.loads(capsys.readouterr().out)["error"] == "unauthenticated"
