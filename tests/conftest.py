"""
Shared pytest fixtures for the estimate tracker tests.

Every test gets its own data file under tmp_path and a deterministic clock,
so tests never share state.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from core.channels import LoggingEmailChannel, LoggingPushChannel
from core.data_store import DataStore
from pipeline.dispatcher import NotificationDispatcher
from pipeline.queries import QueryService
from pipeline.recorder import EventRecorder


class FakeClock:
    """Returns a strictly increasing time, one step per call."""

    def __init__(self, start: datetime = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc),
                 step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step
        self.calls: list[datetime] = []

    def __call__(self) -> datetime:
        self.current = self.current + self.step
        self.calls.append(self.current)
        return self.current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def data_file(tmp_path: Path) -> Path:
    """Path of the backing JSON document for this test."""
    return tmp_path / "tracking-data.json"


@pytest.fixture
def data_store(data_file: Path):
    """
    Fresh, started DataStore for each test.

    Closed after the test so the writer thread never outlives it.
    """
    store = DataStore(data_file)
    store.load()
    store.start()
    yield store
    store.close()


@pytest.fixture
def push_channel() -> LoggingPushChannel:
    """Fresh push channel for each test."""
    return LoggingPushChannel(fail_rate=0.0)


@pytest.fixture
def email_channel() -> LoggingEmailChannel:
    """Fresh email channel for each test."""
    return LoggingEmailChannel(fail_rate=0.0)


@pytest.fixture
def recorder(data_store: DataStore, clock: FakeClock) -> EventRecorder:
    return EventRecorder(data_store, clock=clock)


@pytest.fixture
def dispatcher(data_store, push_channel, email_channel, clock):
    dispatcher = NotificationDispatcher(
        data_store,
        push_channel=push_channel,
        email_channel=email_channel,
        clock=clock,
    )
    yield dispatcher
    dispatcher.close()


@pytest.fixture
def queries(data_store: DataStore) -> QueryService:
    return QueryService(data_store)


# =============================================================================
# Identifiers
# =============================================================================

@pytest.fixture
def tracking_id() -> str:
    """A tracking id used across scenarios."""
    return "ABC123"


@pytest.fixture
def contractor_email() -> str:
    return "a@b.com"
