from __future__ import annotations

from dotenv import load_dotenv
from flask import Flask
from flask_cors import CORS

from sla_tracker.backend import BackendClient
from sla_tracker.cache import InMemoryTTLCache
from sla_tracker.clock import get_shared_clock
from sla_tracker.config import get_config
from sla_tracker.middlewares.error_handler import init_error_handlers
from sla_tracker.middlewares.logging import init_request_logging
from sla_tracker.middlewares.rate_limit import init_rate_limiting
from sla_tracker.middlewares.request_id import init_request_id
from sla_tracker.middlewares.security_headers import init_security_headers
from sla_tracker.routes.core import core_bp
from sla_tracker.routes.sla import sla_bp
from sla_tracker.utils.logging import setup_logging


def create_app() -> Flask:
    load_dotenv()

    cfg = get_config()
    setup_logging(cfg.LOG_LEVEL)

    app = Flask(__name__)
    app.config["CFG"] = cfg

    CORS(
        app,
        origins=cfg.CORS_ORIGINS,
        supports_credentials=cfg.CORS_ALLOW_CREDENTIALS,
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
        methods=["GET", "POST", "OPTIONS"],
        max_age=3600,
    )

    init_request_id(app)
    init_security_headers(app)
    init_rate_limiting(app)
    init_request_logging(app)
    init_error_handlers(app)

    app.extensions["sla_clock"] = get_shared_clock()
    app.extensions["sla_backend"] = BackendClient.from_config(cfg)
    app.extensions["sla_config_cache"] = InMemoryTTLCache(ttl_seconds=cfg.SLA_CONFIG_CACHE_TTL_SECONDS)

    app.register_blueprint(core_bp)
    app.register_blueprint(sla_bp, url_prefix="/api/v1/sla")

    return app
