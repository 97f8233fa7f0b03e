"""Shared fixtures for projtrack tests."""

from datetime import date, datetime, timedelta

import pytest

from projtrack.manager import ProjectManager
from projtrack.storage import JsonStorage, MemoryStorage


class FakeClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start=datetime(2026, 3, 10, 9, 0, 0)):
        self.current = start

    def __call__(self):
        value = self.current
        self.current += timedelta(seconds=1)
        return value


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def temp_storage(tmp_path):
    """Create a temporary storage file path for testing."""
    return str(tmp_path / "projects.json")


@pytest.fixture
def manager(clock):
    """Create a ProjectManager over in-memory storage."""
    return ProjectManager(MemoryStorage(), clock=clock)


@pytest.fixture
def json_manager(temp_storage, clock):
    """Create a ProjectManager over a temporary JSON file."""
    return ProjectManager(JsonStorage(temp_storage), clock=clock)


@pytest.fixture
def project_data():
    return {
        "title": "Website roadmap",
        "description": "Plan the next website release",
        "start_date": date(2026, 3, 1),
        "due_date": date(2026, 6, 30),
        "priority": "high",
        "category": "engineering",
        "tags": ["web", "q2"],
        "team": ["dana", "lee"],
        "owner": "dana",
    }
