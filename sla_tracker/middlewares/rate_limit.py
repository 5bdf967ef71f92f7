from __future__ import annotations

from flask import Flask, request

from sla_tracker.utils.rate_limiter import InMemoryRateLimiter


def client_ip(trust_proxy_headers: bool) -> str:
    ip = request.remote_addr or ""
    if trust_proxy_headers:
        ip = request.headers.get("X-Forwarded-For", ip) or ip
    if ip and "," in ip:
        ip = ip.split(",", 1)[0].strip()
    return ip


def init_rate_limiting(app: Flask) -> None:
    cfg = app.config["CFG"]
    limiter = InMemoryRateLimiter()
    app.extensions["rate_limiter"] = limiter

    @app.before_request
    def _rate_limit():
        path = request.path or ""
        if not path.startswith("/api/v1/"):
            return None

        ip = client_ip(cfg.TRUST_PROXY_HEADERS)
        limiter.check(f"{ip}:GLOBAL", cfg.RATE_LIMIT_GLOBAL)
        limiter.check(f"{ip}:PATH:{path}", cfg.RATE_LIMIT_DEFAULT)
        return None
