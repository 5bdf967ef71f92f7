import sys
from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from fakes import FakeBackend, FakeTime, ManualTimerFactory  # noqa: E402

# 2026-01-01T00:00:00Z
T0_MS = 1767225600000


@pytest.fixture()
def fake_time() -> FakeTime:
    return FakeTime(T0_MS)


@pytest.fixture()
def timers() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture()
def clock(fake_time, timers):
    from sla_tracker.clock import SharedClock

    return SharedClock(time_source=fake_time, timer_factory=timers)


@pytest.fixture()
def app_client(monkeypatch: pytest.MonkeyPatch, clock):
    monkeypatch.setenv("ENV", "testing")
    monkeypatch.setenv("BACKEND_BASE_URL", "http://backend.test")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.setenv("TIMEZONE_DISPLAY", "Asia/Kolkata")

    # Prevent accidental pollution from any existing env config.
    monkeypatch.delenv("LIVE_FETCH_MODE", raising=False)
    monkeypatch.delenv("CORS_ORIGINS", raising=False)
    monkeypatch.delenv("RATE_LIMIT_DEFAULT", raising=False)

    from sla_tracker import create_app
    from sla_tracker.clock import reset_shared_clock_for_tests

    # create_app() binds the process-wide clock; point it at the fake one.
    reset_shared_clock_for_tests(clock)
    app = create_app()
    app.testing = True
    app.extensions["sla_backend"] = FakeBackend()

    with app.test_client() as client:
        yield app, client

    reset_shared_clock_for_tests()
