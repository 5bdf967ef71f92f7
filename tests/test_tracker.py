from __future__ import annotations

import pytest

import sla_tracker.tracker as tracker_mod
from sla_tracker.tracker import CountdownTracker

T0_MS = 1767225600000
MIN = 60 * 1000


def test_explicit_now_never_subscribes(clock, timers):
    with CountdownTracker(clock=clock, step_key="PRECALL", step_start_at=T0_MS, planned_minutes=30, now_ms=T0_MS) as t:
        assert t.subscribed is False
        assert clock.subscriber_count == 0
        assert timers.created == []
        assert t.result.remainingMs == 30 * MIN


def test_disabled_tracker_never_subscribes(clock):
    t = CountdownTracker(clock=clock, step_key="PRECALL", step_start_at=T0_MS, planned_minutes=30, enabled=False)
    assert t.subscribed is False
    assert clock.subscriber_count == 0
    # Still derivable, just not ticking.
    assert t.result.hasSla is True


def test_subscribes_and_follows_clock(clock, timers, fake_time):
    changes = []
    t = CountdownTracker(
        clock=clock,
        interval_ms=500,
        on_change=changes.append,
        step_key="PRECALL",
        step_start_at=T0_MS,
        planned_minutes=30,
    )
    assert t.subscribed is True
    assert clock.active_interval_ms == 500
    assert t.result.remainingMs == 30 * MIN

    fake_time.advance(MIN)
    timers.fire()
    assert [c.remainingMs for c in changes] == [29 * MIN]
    assert t.result.remainingMs == 29 * MIN

    t.close()
    assert clock.subscriber_count == 0
    assert clock.is_running is False


def test_unchanged_tick_does_not_notify(clock, timers):
    changes = []
    t = CountdownTracker(clock=clock, on_change=changes.append, step_key="PRECALL", planned_minutes=30)
    t.result
    timers.fire()
    assert changes == []
    t.close()


def test_result_is_memoized(monkeypatch: pytest.MonkeyPatch, clock):
    calls = {"n": 0}
    real = tracker_mod.derive_countdown

    def counting(**kwargs):
        calls["n"] += 1
        return real(**kwargs)

    monkeypatch.setattr(tracker_mod, "derive_countdown", counting)

    t = CountdownTracker(
        clock=clock, sla={"stepName": "PRECALL", "plannedMinutes": 30}, step_start_at=T0_MS, now_ms=T0_MS
    )
    first = t.result
    assert t.result is first
    assert calls["n"] == 1

    t.update(now_ms=T0_MS + MIN)
    assert calls["n"] == 2
    assert t.result.remainingMs == 29 * MIN


def test_update_toggles_subscription(clock):
    t = CountdownTracker(clock=clock, step_key="PRECALL", planned_minutes=30, now_ms=T0_MS)
    assert t.subscribed is False

    t.update(now_ms=None)
    assert t.subscribed is True
    assert clock.subscriber_count == 1

    t.update(enabled=False)
    assert t.subscribed is False
    assert clock.subscriber_count == 0


def test_unknown_inputs_are_rejected(clock):
    with pytest.raises(TypeError):
        CountdownTracker(clock=clock, stepKey="PRECALL")
    t = CountdownTracker(clock=clock, now_ms=T0_MS)
    with pytest.raises(TypeError):
        t.update(bogus=1)


def test_first_subscriber_after_idle_sees_current_time(clock, fake_time):
    fake_time.advance(120 * MIN)

    t = CountdownTracker(clock=clock, step_start_at=T0_MS + 60 * MIN, planned_minutes=30)
    res = t.result
    assert t.subscribed is True
    assert res.isOverdue is True
    assert res.badgeVariant == "red"
    assert res.badgeText == "OVERDUE by 00:30:00"
    t.close()
