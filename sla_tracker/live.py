"""
Live SLA view: per-stage active/overdue counts and the oldest running timer.

Which backend list feeds which stage, which entities are actually waiting at
that stage, and which timestamp starts the stage clock are all declared in
STAGE_EXTRACTORS so each stage can be audited and tested on its own.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Union

from sla_tracker.backend import BackendClient, BackendError
from sla_tracker.cache import InMemoryTTLCache
from sla_tracker.clock import wall_clock_ms
from sla_tracker.countdown import DEFAULT_DUE_SOON_MS, CountdownResult, derive_countdown
from sla_tracker.formatting import DEFAULT_TIME_ZONE, format_due_at, to_iso_utc, to_ms
from sla_tracker.sla_config import SlaStepConfig, load_sla_config

log = logging.getLogger(__name__)

FETCH_BATCH = "batch"
FETCH_PARTIAL = "partial"

UNSUPPORTED_MARK = "—"


@dataclass(frozen=True)
class ListSource:
    action: str
    data: Mapping[str, Any] = field(default_factory=dict)


LIVE_SOURCES: dict[str, ListSource] = {
    "REQUIREMENTS_REVIEW": ListSource("HR_REQUIREMENTS_LIST", {"tab": "REVIEW"}),
    "REQUIREMENTS_APPROVED": ListSource("HR_REQUIREMENTS_LIST", {"tab": "APPROVED"}),
    "PRECALL": ListSource("PRECALL_LIST", {"date": "", "jobRole": ""}),
    "PRE_INTERVIEW": ListSource("PRECALL_LIST", {"date": "", "jobRole": "", "mode": "PREINTERVIEW"}),
    "INPERSON": ListSource("INPERSON_PIPELINE_LIST", {}),
    "TECH_PENDING": ListSource("TECH_PENDING_LIST", {}),
    "FINAL_INTERVIEW": ListSource("FINAL_INTERVIEW_LIST", {}),
    "PROBATION": ListSource("PROBATION_LIST", {}),
}


def _upper(item: Mapping[str, Any], key: str) -> str:
    return str(item.get(key) or "").strip().upper()


def _is_zero(value: Any) -> bool:
    try:
        return float(value or 0) == 0
    except (TypeError, ValueError):
        return False


def _always(_item: Mapping[str, Any]) -> bool:
    return True


def job_posting_incomplete(item: Mapping[str, Any]) -> bool:
    return _upper(item, "jobPostingStatus") != "COMPLETE"


def awaiting_candidates(item: Mapping[str, Any]) -> bool:
    return _upper(item, "jobPostingStatus") == "COMPLETE" and _is_zero(item.get("candidateCount"))


def awaiting_precall(item: Mapping[str, Any]) -> bool:
    return not item.get("preCallAt") and not item.get("onlineTestResult") and not item.get("onlineTestSubmittedAt")


def awaiting_pre_interview(item: Mapping[str, Any]) -> bool:
    return (
        bool(item.get("preCallAt"))
        and _upper(item, "preInterviewStatus") != "APPEARED"
        and not item.get("onlineTestResult")
        and not item.get("onlineTestSubmittedAt")
    )


def awaiting_inperson_marks(item: Mapping[str, Any]) -> bool:
    return not str(item.get("inPersonMarksAt") or "").strip()


def in_probation(item: Mapping[str, Any]) -> bool:
    return _upper(item, "status") == "PROBATION"


@dataclass(frozen=True)
class StageExtractor:
    stage: str
    source: str
    start_fields: tuple[str, ...]
    predicate: Callable[[Mapping[str, Any]], bool] = _always


STAGE_EXTRACTORS: tuple[StageExtractor, ...] = (
    StageExtractor("HR_REVIEW", "REQUIREMENTS_REVIEW", ("updatedAt", "createdAt")),
    StageExtractor("JOB_POSTING", "REQUIREMENTS_APPROVED", ("updatedAt", "createdAt"), job_posting_incomplete),
    StageExtractor(
        "ADD_CANDIDATE",
        "REQUIREMENTS_APPROVED",
        ("jobPostingState.completedAt", "updatedAt", "createdAt"),
        awaiting_candidates,
    ),
    StageExtractor("PRECALL", "PRECALL", ("walkinAt",), awaiting_precall),
    StageExtractor("PRE_INTERVIEW", "PRE_INTERVIEW", ("preCallAt",), awaiting_pre_interview),
    StageExtractor("IN_PERSON", "INPERSON", ("onlineTestSubmittedAt",), awaiting_inperson_marks),
    StageExtractor("TECHNICAL", "TECH_PENDING", ("techSelectedAt", "updatedAt")),
    StageExtractor("FINAL_INTERVIEW", "FINAL_INTERVIEW", ("techEvaluatedAt",)),
    StageExtractor("PROBATION", "PROBATION", ("probationStartAt",), in_probation),
)

LIVE_SUPPORTED_STEPS = frozenset(x.stage for x in STAGE_EXTRACTORS)


def _lookup(item: Mapping[str, Any], path: str) -> Any:
    cur: Any = item
    for part in path.split("."):
        if not isinstance(cur, Mapping):
            return None
        cur = cur.get(part)
    return cur


def extract_timer_start(
    item: Mapping[str, Any], fields: tuple[str, ...], *, app_timezone: str = DEFAULT_TIME_ZONE
) -> Optional[int]:
    for f in fields:
        ms = to_ms(_lookup(item, f), app_timezone=app_timezone)
        if ms is not None:
            return ms
    return None


def build_stage_timer_set(
    items_by_source: Mapping[str, list],
    *,
    extractors: tuple[StageExtractor, ...] = STAGE_EXTRACTORS,
    app_timezone: str = DEFAULT_TIME_ZONE,
) -> dict[str, list[int]]:
    starts: dict[str, list[int]] = {}
    for ex in extractors:
        items = items_by_source.get(ex.source)
        if items is None:
            continue
        bucket = starts.setdefault(ex.stage, [])
        for item in items:
            if not isinstance(item, Mapping) or not ex.predicate(item):
                continue
            ms = extract_timer_start(item, ex.start_fields, app_timezone=app_timezone)
            if ms is not None:
                bucket.append(ms)
    return starts


@dataclass
class LiveFetch:
    items: dict[str, list[dict]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)


def _error_message(e: Exception) -> str:
    if isinstance(e, BackendError):
        return e.message or e.code
    return str(e) or e.__class__.__name__


def fetch_live_sources(
    client: BackendClient,
    token: str,
    *,
    mode: str = FETCH_BATCH,
    sources: Mapping[str, ListSource] = LIVE_SOURCES,
    max_workers: int = 8,
) -> LiveFetch:
    """Fan out to every list source concurrently.

    ``batch`` is all-or-nothing: the first failing source aborts the cycle and
    its error propagates once the requests already in flight have returned
    (each is bounded by the client timeout). ``partial`` records the failure
    and keeps the rest.
    """
    out = LiveFetch()
    if not sources:
        return out

    workers = max(1, min(int(max_workers), len(sources)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sla-live") as pool:
        futures = {
            pool.submit(client.list_items, src.action, dict(src.data), token=token): key
            for key, src in sources.items()
        }
        for fut in as_completed(futures):
            key = futures[fut]
            try:
                out.items[key] = fut.result()
            except Exception as e:
                if mode != FETCH_PARTIAL:
                    # Drop queued sources; the pool joins the running ones on exit.
                    for pending in futures:
                        pending.cancel()
                    raise
                out.errors[key] = _error_message(e)
                log.warning("live source %s failed: %s", key, out.errors[key])
    return out


@dataclass(frozen=True)
class StageSummary:
    stepName: str
    plannedMinutes: Union[int, float]
    enabled: bool
    supported: bool
    live: bool
    active: Optional[int]
    overdue: int
    oldestStartAt: str
    oldestStartedText: str
    countdown: Optional[CountdownResult]
    note: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "stepName": self.stepName,
            "plannedMinutes": self.plannedMinutes,
            "enabled": self.enabled,
            "supported": self.supported,
            "live": self.live,
            "active": self.active,
            "overdue": self.overdue,
            "oldestStartAt": self.oldestStartAt,
            "oldestStartedText": self.oldestStartedText,
            "countdown": self.countdown.to_dict() if self.countdown else None,
            "note": self.note,
        }


def summarize_stage(
    cfg: SlaStepConfig,
    starts: Optional[list[int]],
    *,
    now_ms: int,
    supported: Optional[bool] = None,
    live: bool = True,
    time_zone: str = DEFAULT_TIME_ZONE,
    due_soon_ms: float = DEFAULT_DUE_SOON_MS,
) -> StageSummary:
    step = cfg.stepName
    planned = cfg.plannedMinutes or 0
    enabled = bool(cfg.enabled)
    if supported is None:
        supported = step in LIVE_SUPPORTED_STEPS

    base = {"stepName": step, "plannedMinutes": planned, "enabled": enabled, "supported": supported}

    if not supported:
        return StageSummary(
            **base, live=False, active=None, overdue=0, oldestStartAt="", oldestStartedText="",
            countdown=None, note=UNSUPPORTED_MARK,
        )
    if not live:
        return StageSummary(
            **base, live=False, active=None, overdue=0, oldestStartAt="", oldestStartedText="",
            countdown=None, note="No live data",
        )

    starts = list(starts or [])
    oldest = min(starts) if starts else None
    # Zero for disabled or unplanned steps; those are never overdue.
    window_ms = float(cfg.effective_planned_minutes) * 60 * 1000
    timed = window_ms > 0

    overdue = sum(1 for ms in starts if now_ms - ms > window_ms) if timed else 0

    countdown = None
    if timed and oldest is not None:
        countdown = derive_countdown(
            step_key=step,
            step_start_at=oldest,
            planned_minutes=planned,
            now_ms=now_ms,
            time_zone=time_zone,
            due_soon_ms=due_soon_ms,
        )

    if countdown is not None:
        note = ""
    elif not enabled:
        note = "Disabled"
    elif planned > 0:
        note = "No active"
    else:
        note = "Set planned minutes"

    return StageSummary(
        **base,
        live=True,
        active=len(starts),
        overdue=overdue,
        oldestStartAt=to_iso_utc(oldest) if oldest is not None else "",
        oldestStartedText=f"Oldest started: {format_due_at(oldest, time_zone=time_zone) or '-'}" if oldest is not None else "",
        countdown=countdown,
        note=note,
    )


@dataclass(frozen=True)
class LiveSnapshot:
    nowMs: int
    generatedAt: str
    error: str
    failedSources: tuple[str, ...]
    stages: tuple[StageSummary, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "nowMs": self.nowMs,
            "generatedAt": self.generatedAt,
            "error": self.error,
            "failedSources": list(self.failedSources),
            "stages": [s.to_dict() for s in self.stages],
        }


class LiveSlaView:
    def __init__(
        self,
        client: BackendClient,
        token: str,
        *,
        mode: str = FETCH_BATCH,
        time_zone: str = DEFAULT_TIME_ZONE,
        due_soon_ms: float = DEFAULT_DUE_SOON_MS,
        max_workers: int = 8,
        config_cache: Optional[InMemoryTTLCache] = None,
        sources: Mapping[str, ListSource] = LIVE_SOURCES,
        extractors: tuple[StageExtractor, ...] = STAGE_EXTRACTORS,
    ):
        self.client = client
        self.token = token
        self.mode = mode
        self.time_zone = time_zone
        self.due_soon_ms = due_soon_ms
        self.max_workers = max_workers
        self.config_cache = config_cache
        self.sources = sources
        self.extractors = extractors

        self._lock = threading.Lock()
        self.config: list[SlaStepConfig] = []
        self.timer_set: Optional[dict[str, list[int]]] = None
        self.live_stages: frozenset[str] = frozenset()
        self.error = ""
        self.failed_sources: tuple[str, ...] = ()

    def _load_config(self) -> tuple[list[SlaStepConfig], str]:
        try:
            return load_sla_config(self.client, self.token, cache=self.config_cache), ""
        except BackendError as e:
            log.warning("SLA config load failed: %s", e.message)
            return [], e.message or "Failed to load SLA config"

    def _load_live(self) -> tuple[Optional[dict[str, list[int]]], frozenset[str], str, tuple[str, ...]]:
        try:
            fetched = fetch_live_sources(
                self.client, self.token, mode=self.mode, sources=self.sources, max_workers=self.max_workers
            )
        except Exception as e:
            log.warning("live SLA fetch failed: %s", _error_message(e))
            return None, frozenset(), _error_message(e) or "Failed to load live SLA data", ()

        failed = tuple(sorted(fetched.errors))
        if self.sources and not fetched.items:
            return None, frozenset(), "Failed to load live SLA data", failed

        timer_set = build_stage_timer_set(fetched.items, extractors=self.extractors, app_timezone=self.time_zone)
        live = frozenset(ex.stage for ex in self.extractors if ex.source in fetched.items)
        return timer_set, live, "", failed

    def refresh(self) -> None:
        config, config_error = self._load_config()
        timer_set, live, live_error, failed = self._load_live()
        with self._lock:
            self.config = config
            self.timer_set = timer_set
            self.live_stages = live
            self.error = live_error or config_error
            self.failed_sources = failed

    def snapshot(self, now_ms: Optional[int] = None) -> LiveSnapshot:
        now = int(now_ms) if now_ms is not None else wall_clock_ms()
        with self._lock:
            supported = frozenset(ex.stage for ex in self.extractors)
            rows = []
            for cfg in self.config:
                is_live = self.timer_set is not None and cfg.stepName in self.live_stages
                starts = (self.timer_set or {}).get(cfg.stepName, [])
                rows.append(
                    summarize_stage(
                        cfg,
                        starts,
                        now_ms=now,
                        supported=cfg.stepName in supported,
                        live=is_live,
                        time_zone=self.time_zone,
                        due_soon_ms=self.due_soon_ms,
                    )
                )
            return LiveSnapshot(
                nowMs=now,
                generatedAt=to_iso_utc(now),
                error=self.error,
                failedSources=self.failed_sources,
                stages=tuple(rows),
            )
