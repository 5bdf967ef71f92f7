from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from sla_tracker.formatting import to_iso_utc

core_bp = Blueprint("core", __name__)


def _now_iso() -> str:
    return to_iso_utc(current_app.extensions["sla_clock"].get_server_snapshot())


@core_bp.get("/health")
def health():
    cfg = current_app.config["CFG"]
    clock = current_app.extensions["sla_clock"]
    backend = current_app.extensions["sla_backend"]
    ok = bool(getattr(backend, "base_url", ""))
    return (
        jsonify(
            {
                "status": "ok" if ok else "degraded",
                "time": _now_iso(),
                "version": cfg.APP_VERSION,
                "backend": "configured" if ok else "missing",
                "clock": {
                    "running": clock.is_running,
                    "subscribers": clock.subscriber_count,
                    "intervalMs": clock.active_interval_ms,
                },
            }
        ),
        200 if ok else 503,
    )


@core_bp.get("/version")
def version():
    cfg = current_app.config["CFG"]
    return jsonify({"version": cfg.APP_VERSION, "env": cfg.ENV, "time": _now_iso()})
