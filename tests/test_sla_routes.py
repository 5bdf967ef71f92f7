from __future__ import annotations

import json

from fakes import FakeBackend, ManualTimerFactory, backend_down
from sla_tracker.clock import SharedClock

T0_MS = 1767225600000
MIN = 60 * 1000

AUTH = {"Authorization": "Bearer tok"}


def _config():
    return [
        {"stepName": "PRECALL", "plannedMinutes": 30, "enabled": True},
        {"stepName": "PROBATION", "plannedMinutes": 600, "enabled": True},
    ]


def _lists():
    return {"PRECALL": [{"walkinAt": "2025-12-31T23:00:00Z"}, {"walkinAt": "2025-12-31T23:50:00Z"}]}


def test_countdown_overdue(app_client):
    _app, client = app_client
    res = client.post(
        "/api/v1/sla/countdown",
        json={
            "stepKey": "precall",
            "stepStartAt": "2026-01-01T00:00:00Z",
            "plannedMinutes": 30,
            "nowMs": T0_MS + 31 * MIN,
        },
    )
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["countdown"]["stepName"] == "PRECALL"
    assert data["countdown"]["badgeText"] == "OVERDUE by 00:01:00"
    assert data["countdown"]["status"] == "OVERDUE"
    assert data["view"]["badge"] == {"variant": "red", "text": "OVERDUE by 00:01:00"}
    assert data["view"]["detail"] == "Due at: 01-01-2026 06:00 | Planned: 30m"


def test_countdown_defaults_now_to_clock(app_client):
    _app, client = app_client
    res = client.post(
        "/api/v1/sla/countdown",
        json={"sla": {"stepName": "PRECALL", "plannedMinutes": 30, "startAt": "2026-01-01T00:00:00Z"}, "compact": True},
    )
    data = res.get_json()["data"]
    assert data["countdown"]["remainingMs"] == 30 * MIN
    assert data["view"]["align"] == "end"


def test_countdown_without_context_has_no_view(app_client):
    _app, client = app_client
    res = client.post("/api/v1/sla/countdown", json={"stepStartAt": "2026-01-01T00:00:00Z"})
    data = res.get_json()["data"]
    assert data["view"] is None
    assert data["countdown"]["reason"] == "NO_SLA_CONFIG"


def test_countdown_rejects_bad_input(app_client):
    _app, client = app_client
    res = client.post("/api/v1/sla/countdown", data="nope", content_type="text/plain")
    assert res.status_code == 400
    body = res.get_json()
    assert body["success"] is False
    assert body["error"]["code"] == "BAD_REQUEST"

    res = client.post("/api/v1/sla/countdown", json={"nowMs": "later"})
    assert res.status_code == 400
    assert "nowMs" in res.get_json()["error"]["message"]


def test_countdowns_share_one_now(app_client):
    _app, client = app_client
    res = client.post(
        "/api/v1/sla/countdowns",
        json={
            "items": [
                {"stepKey": "PRECALL", "stepStartAt": "2026-01-01T00:00:00Z", "plannedMinutes": 30},
                {"stepKey": "PRECALL", "plannedMinutes": 30},
                {},
            ]
        },
    )
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["nowMs"] == T0_MS
    first, pending, empty = data["items"]
    assert first["countdown"]["badgeText"] == "00:30:00 left"
    assert pending["view"]["badge"]["text"] == "SLA pending"
    assert empty["view"] is None


def test_countdowns_requires_list(app_client):
    _app, client = app_client
    res = client.post("/api/v1/sla/countdowns", json={"items": {}})
    assert res.status_code == 400


def test_live_requires_token(app_client):
    _app, client = app_client
    res = client.get("/api/v1/sla/live")
    assert res.status_code == 401
    assert res.get_json()["error"]["code"] == "AUTH_INVALID"


def test_live_rejects_unknown_mode(app_client):
    _app, client = app_client
    res = client.get("/api/v1/sla/live?mode=eventually", headers=AUTH)
    assert res.status_code == 400


def test_live_snapshot(app_client):
    app, client = app_client
    backend = FakeBackend(config=_config(), lists=_lists())
    app.extensions["sla_backend"] = backend

    res = client.get("/api/v1/sla/live", headers=AUTH)
    assert res.status_code == 200
    data = res.get_json()["data"]
    assert data["nowMs"] == T0_MS
    assert data["error"] == ""
    precall = {s["stepName"]: s for s in data["stages"]}["PRECALL"]
    assert precall["active"] == 2
    assert precall["overdue"] == 1
    assert precall["countdown"]["badgeText"] == "OVERDUE by 00:30:00"
    assert ("SLA_CONFIG_GET", "tok") in backend.calls


def test_live_partial_mode_reports_failed_sources(app_client):
    app, client = app_client
    app.extensions["sla_backend"] = FakeBackend(config=_config(), lists=_lists(), failures={"PROBATION": backend_down()})

    res = client.get("/api/v1/sla/live?mode=partial", headers=AUTH)
    data = res.get_json()["data"]
    assert data["failedSources"] == ["PROBATION"]
    probation = {s["stepName"]: s for s in data["stages"]}["PROBATION"]
    assert probation["live"] is False


def test_live_stream_emits_snapshots_per_tick(app_client, fake_time):
    app, client = app_client
    clock = SharedClock(time_source=fake_time, timer_factory=ManualTimerFactory(fire_on_start=1))
    app.extensions["sla_clock"] = clock
    app.extensions["sla_backend"] = FakeBackend(config=_config(), lists=_lists())

    res = client.get("/api/v1/sla/live/stream?ticks=2&intervalMs=500", headers=AUTH)
    assert res.status_code == 200
    assert res.mimetype == "text/event-stream"

    events = [
        json.loads(line[len("data: "):])
        for line in res.get_data(as_text=True).splitlines()
        if line.startswith("data: ")
    ]
    assert len(events) == 2
    assert all(e["stages"] for e in events)
    assert clock.subscriber_count == 0
    assert clock.is_running is False


def test_live_stream_requires_token(app_client):
    _app, client = app_client
    res = client.get("/api/v1/sla/live/stream")
    assert res.status_code == 401


def test_countdown_with_huge_planned_minutes_is_pending(app_client):
    _app, client = app_client
    res = client.post(
        "/api/v1/sla/countdown",
        json={"stepKey": "PRECALL", "stepStartAt": "2026-01-01T00:00:00Z", "plannedMinutes": 1e305},
    )
    assert res.status_code == 200
    assert res.get_json()["data"]["countdown"]["reason"] == "MISSING_START_TIME"


def test_countdown_rejects_now_beyond_float_range(app_client):
    _app, client = app_client
    res = client.post(
        "/api/v1/sla/countdown",
        data=json.dumps({"stepKey": "PRECALL"}).replace("}", ', "nowMs": 1' + "0" * 400 + "}"),
        content_type="application/json",
    )
    assert res.status_code == 400
    assert res.get_json()["error"]["code"] == "BAD_REQUEST"


def test_live_stream_is_not_buffered(app_client):
    app, client = app_client
    app.extensions["sla_clock"] = SharedClock(time_source=lambda: T0_MS, timer_factory=ManualTimerFactory(fire_on_start=1))
    app.extensions["sla_backend"] = FakeBackend(config=_config())

    res = client.get("/api/v1/sla/live/stream?ticks=1", headers=AUTH)
    res.get_data()
    assert res.headers["Cache-Control"] == "no-cache"
    assert res.headers["X-Accel-Buffering"] == "no"
