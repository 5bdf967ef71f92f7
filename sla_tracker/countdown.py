"""
SLA deadline derivation.

Turns an SLA descriptor (or discrete start / planned / deadline overrides) and
a "now" value into an immutable CountdownResult. Missing or malformed data is
never an error here: it resolves to an Absent variant with a reason code.
"""
from __future__ import annotations

import math
import time
from dataclasses import asdict, dataclass
from typing import Any, Mapping, Optional, Union

from sla_tracker.formatting import (
    DEFAULT_TIME_ZONE,
    format_due_at,
    format_duration_ms,
    format_planned,
    ms_in_range,
    normalize_step_key,
    to_iso_utc,
    to_ms,
)

DEFAULT_DUE_SOON_MS = 10 * 60 * 1000

STATUS_ON_TIME = "ON_TIME"
STATUS_DUE_SOON = "DUE_SOON"
STATUS_OVERDUE = "OVERDUE"

REASON_NO_SLA_CONFIG = "NO_SLA_CONFIG"
REASON_MISSING_START_TIME = "MISSING_START_TIME"

BADGE_VARIANTS = {
    STATUS_OVERDUE: "red",
    STATUS_DUE_SOON: "orange",
    STATUS_ON_TIME: "green",
}


@dataclass(frozen=True)
class SlaDescriptor:
    stepName: str = ""
    plannedMinutes: Any = None
    startAt: Any = None
    deadlineAt: Any = None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["SlaDescriptor"]:
        if isinstance(payload, SlaDescriptor):
            return payload
        if not isinstance(payload, Mapping) or not payload:
            return None
        return cls(
            stepName=str(payload.get("stepName") or ""),
            plannedMinutes=payload.get("plannedMinutes"),
            startAt=payload.get("startAt"),
            deadlineAt=payload.get("deadlineAt"),
        )


@dataclass(frozen=True)
class ResolvedDeadline:
    deadlineMs: int


@dataclass(frozen=True)
class Absent:
    reason: str


DeadlineResolution = Union[ResolvedDeadline, Absent]


@dataclass(frozen=True)
class CountdownResult:
    stepName: str
    plannedMinutes: Union[int, float]
    hasSla: bool
    reason: str
    deadlineAt: str
    remainingMs: Optional[int]
    isOverdue: bool
    status: Optional[str]
    badgeVariant: str
    badgeText: str
    deadlineText: str
    plannedText: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def coerce_planned_minutes(value: Any) -> Union[int, float]:
    if value is None or isinstance(value, bool):
        return 0
    try:
        n = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    if not math.isfinite(n):
        return 0
    return int(n) if n.is_integer() else n


def _first_ms(*values: Any, time_zone: str) -> Optional[int]:
    for v in values:
        ms = to_ms(v, app_timezone=time_zone)
        if ms is not None:
            return ms
    return None


def resolve_planned_minutes(sla: Optional[SlaDescriptor], planned_minutes: Any) -> Union[int, float]:
    if sla is not None and sla.plannedMinutes is not None:
        return coerce_planned_minutes(sla.plannedMinutes)
    return coerce_planned_minutes(planned_minutes)


def resolve_deadline(
    *,
    sla: Any = None,
    step_start_at: Any = None,
    planned_minutes: Any = None,
    deadline_at: Any = None,
    time_zone: str = DEFAULT_TIME_ZONE,
) -> DeadlineResolution:
    desc = SlaDescriptor.from_payload(sla)
    planned = resolve_planned_minutes(desc, planned_minutes)
    if planned <= 0:
        return Absent(REASON_NO_SLA_CONFIG)

    deadline_ms = _first_ms(desc.deadlineAt if desc else None, deadline_at, time_zone=time_zone)
    if deadline_ms is None:
        start_ms = _first_ms(desc.startAt if desc else None, step_start_at, time_zone=time_zone)
        window_ms = float(planned) * 60 * 1000
        if start_ms is not None and math.isfinite(window_ms):
            deadline_ms = start_ms + int(round(window_ms))

    if deadline_ms is None or not ms_in_range(deadline_ms):
        return Absent(REASON_MISSING_START_TIME)
    return ResolvedDeadline(deadline_ms)


def derive_countdown(
    *,
    sla: Any = None,
    step_key: Any = None,
    step_start_at: Any = None,
    planned_minutes: Any = None,
    deadline_at: Any = None,
    now_ms: Optional[float] = None,
    time_zone: str = DEFAULT_TIME_ZONE,
    due_soon_ms: float = DEFAULT_DUE_SOON_MS,
) -> CountdownResult:
    if not ms_in_range(now_ms):
        now_ms = time.time() * 1000
    now = int(now_ms)

    desc = SlaDescriptor.from_payload(sla)
    step_name = normalize_step_key((desc.stepName if desc else "") or step_key or "")
    planned = resolve_planned_minutes(desc, planned_minutes)

    resolution = resolve_deadline(
        sla=desc,
        step_start_at=step_start_at,
        planned_minutes=planned_minutes,
        deadline_at=deadline_at,
        time_zone=time_zone,
    )

    if isinstance(resolution, Absent):
        pending = resolution.reason == REASON_MISSING_START_TIME
        return CountdownResult(
            stepName=step_name,
            plannedMinutes=planned,
            hasSla=False,
            reason=resolution.reason,
            deadlineAt="",
            remainingMs=None,
            isOverdue=False,
            status=None,
            badgeVariant="gray",
            badgeText="SLA pending" if pending else "No SLA",
            deadlineText="",
            plannedText=format_planned(planned) if pending else "",
        )

    remaining_ms = resolution.deadlineMs - now
    is_overdue = remaining_ms <= 0
    if is_overdue:
        status = STATUS_OVERDUE
    elif remaining_ms <= due_soon_ms:
        status = STATUS_DUE_SOON
    else:
        status = STATUS_ON_TIME

    if is_overdue:
        badge_text = f"OVERDUE by {format_duration_ms(-remaining_ms)}"
    else:
        badge_text = f"{format_duration_ms(remaining_ms)} left"

    return CountdownResult(
        stepName=step_name,
        plannedMinutes=planned,
        hasSla=True,
        reason="",
        deadlineAt=to_iso_utc(resolution.deadlineMs),
        remainingMs=remaining_ms,
        isOverdue=is_overdue,
        status=status,
        badgeVariant=BADGE_VARIANTS[status],
        badgeText=badge_text,
        deadlineText=f"Due at: {format_due_at(resolution.deadlineMs, time_zone=time_zone) or '-'}",
        plannedText=format_planned(planned),
    )
