from __future__ import annotations

from flask import Flask, request

_BASE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}
_HSTS = "max-age=31536000; includeSubDomains"


def _behind_https() -> bool:
    return request.is_secure or str(request.headers.get("X-Forwarded-Proto") or "").lower() == "https"


def init_security_headers(app: Flask) -> None:
    cfg = app.config["CFG"]

    @app.after_request
    def _headers(resp):
        for name, value in _BASE_HEADERS.items():
            resp.headers.setdefault(name, value)

        if resp.mimetype == "text/event-stream":
            # Proxies must pass every tick through as soon as it is written.
            resp.headers.setdefault("Cache-Control", "no-cache")
            resp.headers.setdefault("X-Accel-Buffering", "no")
        else:
            # A countdown is only valid for the instant it was derived.
            resp.headers.setdefault("Cache-Control", "no-store")

        if cfg.IS_PRODUCTION and _behind_https():
            resp.headers.setdefault("Strict-Transport-Security", _HSTS)
        return resp
