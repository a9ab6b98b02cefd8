"""Shared pytest fixtures."""
import time

import pytest


@pytest.fixture
def new_york_tz(monkeypatch):
    """Run the test with America/New_York as the process time zone."""
    monkeypatch.setenv('TZ', 'America/New_York')
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()
