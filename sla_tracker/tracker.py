from __future__ import annotations

import threading
from typing import Any, Callable, Mapping, Optional

from sla_tracker.clock import DEFAULT_INTERVAL_MS, SharedClock, get_shared_clock
from sla_tracker.countdown import DEFAULT_DUE_SOON_MS, CountdownResult, derive_countdown
from sla_tracker.formatting import DEFAULT_TIME_ZONE, ms_in_range

_INPUT_DEFAULTS: dict[str, Any] = {
    "sla": None,
    "step_key": None,
    "step_start_at": None,
    "planned_minutes": None,
    "deadline_at": None,
    "now_ms": None,
    "time_zone": DEFAULT_TIME_ZONE,
    "due_soon_ms": DEFAULT_DUE_SOON_MS,
    "enabled": True,
}


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return tuple(sorted((str(k), _freeze(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    try:
        hash(value)
    except TypeError:
        return repr(value)
    return value


def _has_now(value: Any) -> bool:
    return ms_in_range(value)


class CountdownTracker:
    """Keeps one countdown current against the shared clock.

    Subscribes only while enabled and no explicit ``now_ms`` is supplied; a
    caller that already drives time passes ``now_ms`` and no timer is used.
    """

    def __init__(
        self,
        *,
        clock: Optional[SharedClock] = None,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        on_change: Optional[Callable[[CountdownResult], Any]] = None,
        **inputs: Any,
    ):
        unknown = set(inputs) - set(_INPUT_DEFAULTS)
        if unknown:
            raise TypeError(f"unexpected countdown inputs: {sorted(unknown)}")

        self._clock = clock or get_shared_clock()
        self._interval_ms = interval_ms
        self._on_change = on_change
        self._lock = threading.RLock()
        self._inputs = {**_INPUT_DEFAULTS, **inputs}
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._memo_key: Any = None
        self._memo: Optional[CountdownResult] = None
        self._sync_subscription()

    @property
    def subscribed(self) -> bool:
        return self._unsubscribe is not None

    @property
    def should_subscribe(self) -> bool:
        return bool(self._inputs["enabled"]) and not _has_now(self._inputs["now_ms"])

    def _sync_subscription(self) -> None:
        with self._lock:
            want = self.should_subscribe
            if want and self._unsubscribe is None:
                self._unsubscribe = self._clock.subscribe(self._on_tick, interval_ms=self._interval_ms)
            elif not want and self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None

    def update(self, **inputs: Any) -> CountdownResult:
        unknown = set(inputs) - set(_INPUT_DEFAULTS)
        if unknown:
            raise TypeError(f"unexpected countdown inputs: {sorted(unknown)}")
        with self._lock:
            self._inputs.update(inputs)
            self._sync_subscription()
            return self.result

    def _effective_now(self) -> int:
        now_ms = self._inputs["now_ms"]
        if _has_now(now_ms):
            return int(now_ms)
        if self._unsubscribe is not None:
            return self._clock.get_snapshot()
        return self._clock.get_server_snapshot()

    @property
    def result(self) -> CountdownResult:
        with self._lock:
            now = self._effective_now()
            i = self._inputs
            key = (
                _freeze(i["sla"]),
                _freeze(i["step_key"]),
                _freeze(i["step_start_at"]),
                _freeze(i["planned_minutes"]),
                _freeze(i["deadline_at"]),
                now,
                i["time_zone"],
                i["due_soon_ms"],
            )
            if self._memo is None or key != self._memo_key:
                self._memo = derive_countdown(
                    sla=i["sla"],
                    step_key=i["step_key"],
                    step_start_at=i["step_start_at"],
                    planned_minutes=i["planned_minutes"],
                    deadline_at=i["deadline_at"],
                    now_ms=now,
                    time_zone=i["time_zone"],
                    due_soon_ms=i["due_soon_ms"],
                )
                self._memo_key = key
            return self._memo

    def _on_tick(self) -> None:
        previous = self._memo
        current = self.result
        if self._on_change is not None and current != previous:
            self._on_change(current)

    def close(self) -> None:
        with self._lock:
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None

    def __enter__(self) -> "CountdownTracker":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.close()
