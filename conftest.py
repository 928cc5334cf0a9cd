# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Shared fixtures. Settings are read from the environment at import time, so the
test database and retry spacing are set before anything imports the service.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RETRY_DELAY_SECONDS"] = "0"
os.environ["ERROR_RETRY_SECONDS"] = "0.05"

from datetime import datetime, timedelta, timezone

import pytest

from rotation_service.core.database import build_engine, init_schema
from rotation_service.repositories.history_repository import HistoryRepository
from rotation_service.repositories.rotation_repository import RotationRepository
from rotation_service.services.action_executor import MutationExecutor
from rotation_service.services.wake_bus import WakeBus

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FrozenClock(utc(2024, 1, 3, 12))


@pytest.fixture
def db_engine():
    engine = build_engine("sqlite://")
    init_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repo(db_engine, clock):
    return RotationRepository(db_engine, clock=clock)


@pytest.fixture
def history(clock):
    return HistoryRepository(clock=clock)


@pytest.fixture
def bus():
    return WakeBus()


@pytest.fixture
def executor(repo, bus, history, clock):
    return MutationExecutor(repo=repo, wake_bus=bus, history_repo=history, clock=clock)


@pytest.fixture
def abc_rotation(repo):
    """Members A, B, C; anchored 2024-01-01T00:00Z; one-day shifts."""
    return repo.create_rotation(
        workspace_id="default",
        name="Primary",
        anchor_at=T0,
        shift_length="1 day",
        members=["A", "B", "C"],
        notification_channel="#oncall",
    )
