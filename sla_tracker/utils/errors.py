from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sla_tracker.backend import BackendError


@dataclass(frozen=True)
class ApiError(Exception):
    code: str
    message: str
    status: int = 400
    details: Any | None = None


def upstream_error(err: BackendError) -> ApiError:
    # Backend auth failures keep their status so the SPA can re-login.
    status = err.status if err.status in {401, 403} else 502
    return ApiError(
        "UPSTREAM_ERROR",
        err.message or "Backend request failed",
        status=status,
        details={"code": err.code, "status": err.status or None},
    )
