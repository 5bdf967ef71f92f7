from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

import requests

log = logging.getLogger(__name__)


class BackendError(Exception):
    def __init__(self, code: str, message: str, status: int = 0, details: Any = None):
        super().__init__(message)
        self.code = str(code or "INTERNAL")
        self.message = str(message or "")
        self.status = int(status or 0)
        self.details = details


def normalize_base_url(raw: str) -> str:
    s = str(raw or "").strip()
    if not s:
        return ""
    s = s.split("#", 1)[0].split("?", 1)[0]
    # Legacy configs point at ".../api"; the client appends it itself.
    s = re.sub(r"/api/?$", "", s, flags=re.IGNORECASE)
    return s.rstrip("/")


def _parse_json_maybe(text: str) -> Any:
    s = str(text or "").strip()
    if not s:
        return None
    try:
        return json.loads(s)
    except Exception:
        return None


def _error_from_payload(payload: dict, status: int) -> BackendError:
    err_obj = payload.get("error") if isinstance(payload.get("error"), dict) else {}
    code = str((err_obj or {}).get("code") or "").strip() or (f"HTTP_{status}" if status else "BAD_RESPONSE")
    message = str((err_obj or {}).get("message") or "").strip() or "Request failed"
    return BackendError(code, message, status, (err_obj or {}).get("details"))


class BackendClient:
    """Calls the HRMS backend action API: POST <base>/api {action, token, data}."""

    def __init__(self, base_url: str, *, timeout_seconds: float = 15.0, session: Optional[requests.Session] = None):
        self.base_url = normalize_base_url(base_url)
        self.timeout_seconds = float(timeout_seconds)
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, cfg) -> "BackendClient":
        return cls(cfg.BACKEND_BASE_URL, timeout_seconds=cfg.BACKEND_TIMEOUT_SECONDS)

    def call(self, action: str, data: dict[str, Any] | None = None, *, token: str = "") -> Any:
        if not self.base_url:
            raise BackendError("CONFIG_MISSING", "BACKEND_BASE_URL is not configured")

        action_u = str(action or "").upper().strip()
        payload = {"action": action_u, "token": token or "", "data": data or {}}
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            resp = self._session.post(
                f"{self.base_url}/api", json=payload, headers=headers, timeout=self.timeout_seconds
            )
        except requests.RequestException as e:
            log.warning("backend action=%s transport error: %s", action_u, e)
            raise BackendError("NETWORK_ERROR", "Network error calling backend") from e

        status = int(resp.status_code or 0)
        try:
            parsed = resp.json()
        except Exception:
            parsed = _parse_json_maybe(resp.text)

        if not isinstance(parsed, dict):
            snippet = str(resp.text or "").strip()[:200]
            raise BackendError(f"HTTP_{status}", snippet or "Invalid response from backend", status)

        if "ok" in parsed:
            if parsed.get("ok") is True:
                return parsed.get("data")
            raise _error_from_payload(parsed, status)

        if isinstance(parsed.get("success"), bool):
            if parsed["success"]:
                return parsed.get("data")
            raise _error_from_payload(parsed, status)

        if status >= 400:
            raise BackendError(f"HTTP_{status}", "Request failed", status)
        return parsed

    def list_items(self, action: str, data: dict[str, Any] | None = None, *, token: str = "") -> list[dict]:
        out = self.call(action, data, token=token)
        items = out.get("items") if isinstance(out, dict) else None
        if not isinstance(items, list):
            return []
        return [x for x in items if isinstance(x, dict)]
