from __future__ import annotations

import json
import math
import queue
from typing import Any

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from sla_tracker.config import LIVE_FETCH_MODES
from sla_tracker.countdown import derive_countdown
from sla_tracker.live import LiveSlaView
from sla_tracker.utils.errors import ApiError
from sla_tracker.widget import is_configured, render_countdown_view

sla_bp = Blueprint("sla", __name__)

MAX_BATCH_ITEMS = 500


def _bearer_token() -> str:
    authz = str(request.headers.get("Authorization") or "").strip()
    if authz.lower().startswith("bearer "):
        return authz.split(" ", 1)[1].strip()
    return ""


def _require_token() -> str:
    token = _bearer_token()
    if not token:
        raise ApiError("AUTH_INVALID", "Missing bearer token", status=401)
    return token


def _require_json() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ApiError("BAD_REQUEST", "JSON body must be an object", status=400)
    return body


def _optional_number(body: dict[str, Any], key: str) -> float | None:
    value = body.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ApiError("BAD_REQUEST", f"{key} must be a number", status=400)
    try:
        finite = math.isfinite(value)
    except OverflowError:
        finite = False
    if not finite:
        raise ApiError("BAD_REQUEST", f"{key} must be a finite number", status=400)
    return value


def _countdown_inputs(body: dict[str, Any]) -> dict[str, Any]:
    cfg = current_app.config["CFG"]

    sla = body.get("sla")
    if sla is not None and not isinstance(sla, dict):
        raise ApiError("BAD_REQUEST", "sla must be an object", status=400)

    time_zone = body.get("timeZone") or cfg.TIMEZONE_DISPLAY
    if not isinstance(time_zone, str):
        raise ApiError("BAD_REQUEST", "timeZone must be a string", status=400)

    due_soon_ms = _optional_number(body, "dueSoonMs")
    if due_soon_ms is not None and due_soon_ms < 0:
        raise ApiError("BAD_REQUEST", "dueSoonMs must be >= 0", status=400)

    return {
        "sla": sla,
        "step_key": body.get("stepKey"),
        "step_start_at": body.get("stepStartAt"),
        "planned_minutes": body.get("plannedMinutes"),
        "deadline_at": body.get("deadlineAt"),
        "time_zone": time_zone,
        "due_soon_ms": cfg.DUE_SOON_MS if due_soon_ms is None else due_soon_ms,
    }


def _countdown_payload(inputs: dict[str, Any], now_ms: float, *, compact: bool) -> dict[str, Any]:
    result = derive_countdown(now_ms=now_ms, **inputs)
    configured = is_configured(
        sla=inputs["sla"],
        step_key=inputs["step_key"],
        planned_minutes=inputs["planned_minutes"],
        deadline_at=inputs["deadline_at"],
    )
    view = render_countdown_view(result, compact=compact) if configured else None
    return {"countdown": result.to_dict(), "view": view.to_dict() if view else None}


@sla_bp.post("/countdown")
def countdown():
    body = _require_json()
    inputs = _countdown_inputs(body)
    now_ms = _optional_number(body, "nowMs")
    if now_ms is None:
        now_ms = current_app.extensions["sla_clock"].get_server_snapshot()
    data = _countdown_payload(inputs, now_ms, compact=bool(body.get("compact")))
    return jsonify({"success": True, "data": data})


@sla_bp.post("/countdowns")
def countdowns():
    body = _require_json()
    items = body.get("items")
    if not isinstance(items, list):
        raise ApiError("BAD_REQUEST", "items must be a list", status=400)
    if len(items) > MAX_BATCH_ITEMS:
        raise ApiError("BAD_REQUEST", f"At most {MAX_BATCH_ITEMS} items per request", status=400)

    now_ms = _optional_number(body, "nowMs")
    if now_ms is None:
        # One capture for the whole batch so rows never disagree on "now".
        now_ms = current_app.extensions["sla_clock"].get_server_snapshot()

    out = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ApiError("BAD_REQUEST", f"items[{idx}] must be an object", status=400)
        out.append(_countdown_payload(_countdown_inputs(item), now_ms, compact=bool(item.get("compact"))))
    return jsonify({"success": True, "data": {"nowMs": int(now_ms), "items": out}})


def _live_mode() -> str:
    cfg = current_app.config["CFG"]
    mode = str(request.args.get("mode") or cfg.LIVE_FETCH_MODE).strip().lower()
    if mode not in LIVE_FETCH_MODES:
        raise ApiError("BAD_REQUEST", "mode must be batch|partial", status=400)
    return mode


def _live_view(token: str) -> LiveSlaView:
    cfg = current_app.config["CFG"]
    return LiveSlaView(
        current_app.extensions["sla_backend"],
        token,
        mode=_live_mode(),
        time_zone=cfg.TIMEZONE_DISPLAY,
        due_soon_ms=cfg.DUE_SOON_MS,
        max_workers=cfg.LIVE_FETCH_MAX_WORKERS,
        config_cache=current_app.extensions["sla_config_cache"],
    )


def _int_arg(name: str, default: int, *, lo: int, hi: int) -> int:
    raw = request.args.get(name)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = int(str(raw).strip())
    except ValueError as e:
        raise ApiError("BAD_REQUEST", f"{name} must be an integer", status=400) from e
    return max(lo, min(hi, value))


@sla_bp.get("/live")
def live():
    token = _require_token()
    view = _live_view(token)
    view.refresh()
    snap = view.snapshot(current_app.extensions["sla_clock"].get_server_snapshot())
    return jsonify({"success": True, "data": snap.to_dict()})


def _sse(data: dict[str, Any]) -> str:
    return f"data: {json.dumps(data, separators=(',', ':'))}\n\n"


@sla_bp.get("/live/stream")
def live_stream():
    cfg = current_app.config["CFG"]
    token = _require_token()
    interval_ms = _int_arg("intervalMs", cfg.SLA_TICK_INTERVAL_MS, lo=100, hi=60_000)
    max_ticks = _int_arg("ticks", cfg.STREAM_MAX_TICKS, lo=1, hi=cfg.STREAM_MAX_TICKS)

    view = _live_view(token)
    view.refresh()
    clock = current_app.extensions["sla_clock"]
    keepalive_s = max(5.0, interval_ms * 5 / 1000.0)

    def _generate():
        ticks: queue.Queue = queue.Queue(maxsize=1)

        def _on_tick() -> None:
            try:
                ticks.put_nowait(True)
            except queue.Full:
                pass

        unsubscribe = clock.subscribe(_on_tick, interval_ms=interval_ms)
        try:
            yield _sse(view.snapshot(clock.get_server_snapshot()).to_dict())
            sent = 1
            while sent < max_ticks:
                try:
                    ticks.get(timeout=keepalive_s)
                except queue.Empty:
                    yield ": keepalive\n\n"
                    continue
                yield _sse(view.snapshot(clock.get_snapshot()).to_dict())
                sent += 1
        finally:
            unsubscribe()

    return Response(stream_with_context(_generate()), mimetype="text/event-stream")
