"""Shared fixtures for Latch tests."""

from datetime import datetime, timedelta, timezone

import pytest

from latch.core.clock import ManualClock
from latch.session.renewal import RenewalPolicy
from latch.storage.memory_store import MemorySessionStore


@pytest.fixture
def clock():
    """A manual clock starting at a fixed instant."""
    return ManualClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock):
    """An in-memory store without renewal."""
    return MemorySessionStore(clock=clock)


@pytest.fixture
def renewing_store(clock):
    """An in-memory store renewing sessions in their last 2 minutes."""
    return MemorySessionStore(
        clock=clock,
        renewal=RenewalPolicy(window=timedelta(minutes=2)),
    )
