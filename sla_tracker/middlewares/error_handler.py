from __future__ import annotations

import logging
from typing import Any

from flask import Flask, g, jsonify
from werkzeug.exceptions import HTTPException

from sla_tracker.backend import BackendError
from sla_tracker.utils.errors import ApiError, upstream_error


def _payload(code: str, message: str, details: Any = None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "success": False,
        "error": {"code": code, "message": message, "details": details},
    }
    if getattr(g, "request_id", None):
        payload["request_id"] = g.request_id
    return payload


def init_error_handlers(app: Flask) -> None:
    @app.errorhandler(ApiError)
    def _api_error(err: ApiError):
        return jsonify(_payload(err.code, err.message, err.details)), err.status

    @app.errorhandler(BackendError)
    def _backend_error(err: BackendError):
        logging.getLogger("sla_tracker").warning(
            "backend error request_id=%s code=%s status=%s", getattr(g, "request_id", ""), err.code, err.status
        )
        api_err = upstream_error(err)
        return jsonify(_payload(api_err.code, api_err.message, api_err.details)), api_err.status

    @app.errorhandler(HTTPException)
    def _http_error(err: HTTPException):
        code = f"HTTP_{int(err.code or 500)}"
        return jsonify(_payload(code, str(err.description or "HTTP error"))), int(err.code or 500)

    @app.errorhandler(Exception)
    def _unhandled(err: Exception):
        logging.getLogger("sla_tracker").exception(
            "Unhandled exception request_id=%s", getattr(g, "request_id", "")
        )
        return jsonify(_payload("INTERNAL", "Unexpected error")), 500
