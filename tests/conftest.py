"""
Pytest fixtures for MatchGuard tests: match factory, fixed clock,
in-memory and temporary SQLite commitment stores, FastAPI TestClient.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend_matchguard.commitment import (
    CommitmentStore,
    CommitmentStoreConfig,
    SimulatedChainSubmitter,
    SqlCommitmentRepository,
)
from backend_matchguard.config import Settings
from backend_matchguard.validation import MatchRecord, MatchValidator

FIXED_NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def build_match(match_id: str = "m-1", **overrides) -> MatchRecord:
    """Plausible 90-minute match played the day before FIXED_NOW."""
    fields = {
        "id": match_id,
        "home_team": "Lions",
        "away_team": "Tigers",
        "date": FIXED_NOW - timedelta(days=1),
        "duration_minutes": 90,
        "player_goals": 1,
        "player_assists": 0,
    }
    fields.update(overrides)
    return MatchRecord(**fields)


def build_history(goals: list[int], *, start: datetime | None = None, **overrides) -> list[MatchRecord]:
    """One match per day, oldest first, ending well before FIXED_NOW - 1 day."""
    start = start or FIXED_NOW - timedelta(days=len(goals) + 10)
    return [
        build_match(f"h-{i}", date=start + timedelta(days=i), player_goals=g, **overrides)
        for i, g in enumerate(goals)
    ]


@pytest.fixture
def match_factory():
    return build_match


@pytest.fixture
def history_factory():
    return build_history


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def validator(clock):
    """Validator with default policy and the fixed clock."""
    return MatchValidator(clock=clock)


@pytest.fixture
def submitter():
    return SimulatedChainSubmitter()


@pytest.fixture
def store_config():
    return CommitmentStoreConfig(pending_timeout_sec=300.0, chain_id=8453, contract_address="0xcontract")


@pytest.fixture
def store(submitter, store_config, clock):
    """Commitment store over the in-memory repository."""
    return CommitmentStore(submitter, config=store_config, clock=clock)


@pytest.fixture
def sql_repository(tmp_path):
    """SQLAlchemy repository on a temporary SQLite file."""
    repo = SqlCommitmentRepository(f"sqlite:///{tmp_path / 'commitments.db'}")
    yield repo
    repo.dispose()


@pytest.fixture
def sql_store(submitter, store_config, clock, sql_repository):
    return CommitmentStore(submitter, repository=sql_repository, config=store_config, clock=clock)


@pytest.fixture
def client(validator, store):
    """FastAPI TestClient over the fixture validator and in-memory store."""
    from fastapi.testclient import TestClient

    from backend_matchguard.api_server.server import create_app

    app = create_app(Settings(poll_interval_sec=0), validator=validator, store=store)
    return TestClient(app)
