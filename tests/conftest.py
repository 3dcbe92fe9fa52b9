import time

import pytest


@pytest.fixture
def new_york(monkeypatch):
    """Run the test with America/New_York as the local timezone."""
    if not hasattr(time, "tzset"):
        pytest.skip("cannot switch the local timezone on this platform")
    monkeypatch.setenv("TZ", "America/New_York")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()
