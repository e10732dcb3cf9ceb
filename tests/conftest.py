"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from purgewatch.config import Settings
from purgewatch.health.checks import CloudFlareApiLimits
from purgewatch.health.store import HealthStore
from purgewatch.state import PurgeState


class FakeClock:
    """Settable clock for PurgeState day rollover tests."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def purge_state(tmp_path: Path, clock: FakeClock) -> PurgeState:
    state = PurgeState(db_path=tmp_path / "purge_state.db", clock=clock)
    yield state
    state.close()


@pytest.fixture
def store(tmp_path: Path) -> HealthStore:
    s = HealthStore(db_path=tmp_path / "health.db")
    yield s
    s.close()


@pytest.fixture
def limits() -> CloudFlareApiLimits:
    return CloudFlareApiLimits()


@pytest.fixture
def cfg(tmp_path: Path) -> Settings:
    """Settings pointing every file at tmp_path."""
    return Settings(
        state_db_path=str(tmp_path / "purge_state.db"),
        health_db_path=str(tmp_path / "health.db"),
        checks_file=str(tmp_path / "checks.yaml"),
        translations_file="",
    )
