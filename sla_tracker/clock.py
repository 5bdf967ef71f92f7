"""
Shared ticking clock.

One "now" snapshot (epoch ms) read by any number of subscribers, driven by at
most one periodic timer. The timer runs at the smallest interval requested by
the current subscribers and stops as soon as the last one unsubscribes.
"""
from __future__ import annotations

import itertools
import logging
import threading
import time
from typing import Any, Callable, Optional

log = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 1000


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


def _interval_or_default(value: Any) -> int:
    try:
        ms = int(value)
    except (TypeError, ValueError):
        return DEFAULT_INTERVAL_MS
    return ms if ms > 0 else DEFAULT_INTERVAL_MS


class RepeatingTimer:
    def __init__(self, interval_ms: int, callback: Callable[[], None]):
        self.interval_ms = int(interval_ms)
        self._callback = callback
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name="sla-clock", daemon=True)

    def _run(self) -> None:
        while not self._stopped.wait(self.interval_ms / 1000.0):
            try:
                self._callback()
            except Exception:
                log.exception("clock tick failed")

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._stopped.set()


class SharedClock:
    def __init__(
        self,
        *,
        time_source: Optional[Callable[[], int]] = None,
        timer_factory: Optional[Callable[[int, Callable[[], None]], Any]] = None,
    ):
        self._time_source = time_source or wall_clock_ms
        self._timer_factory = timer_factory or RepeatingTimer
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        # Insertion order is registration order.
        self._listeners: dict[int, tuple[Callable[[], Any], int]] = {}
        self._timer: Any = None
        self._active_interval_ms = DEFAULT_INTERVAL_MS
        self._now_ms = int(self._time_source())

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._timer is not None

    @property
    def active_interval_ms(self) -> Optional[int]:
        with self._lock:
            return self._active_interval_ms if self._timer is not None else None

    def get_snapshot(self) -> int:
        return self._now_ms

    def get_server_snapshot(self) -> int:
        return int(self._time_source())

    def subscribe(self, on_change: Callable[[], Any], *, interval_ms: Any = DEFAULT_INTERVAL_MS) -> Callable[[], None]:
        if not callable(on_change):
            return lambda: None

        with self._lock:
            key = next(self._ids)
            self._listeners[key] = (on_change, _interval_or_default(interval_ms))
            self._reconcile()

        def _unsubscribe() -> None:
            with self._lock:
                if self._listeners.pop(key, None) is None:
                    return
                self._reconcile()

        return _unsubscribe

    def tick(self) -> None:
        now = int(self._time_source())
        with self._lock:
            self._now_ms = now
            listeners = [fn for fn, _ms in self._listeners.values()]

        for fn in listeners:
            try:
                fn()
            except Exception:
                log.exception("clock subscriber failed")

    def _min_interval_ms(self) -> int:
        return min(ms for _fn, ms in self._listeners.values())

    def _start_timer(self, interval_ms: int) -> None:
        self._active_interval_ms = interval_ms
        self._timer = self._timer_factory(interval_ms, self.tick)
        self._timer.start()

    def _stop_timer(self) -> None:
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None

    def _reconcile(self) -> None:
        if not self._listeners:
            self._stop_timer()
            return
        nxt = self._min_interval_ms()
        if self._timer is None:
            # The snapshot went stale while nobody was subscribed.
            self._now_ms = int(self._time_source())
            self._start_timer(nxt)
            return
        if nxt != self._active_interval_ms:
            self._stop_timer()
            self._start_timer(nxt)
            log.debug("clock interval changed to %sms", nxt)


_shared: SharedClock | None = None
_shared_lock = threading.Lock()


def get_shared_clock() -> SharedClock:
    global _shared
    with _shared_lock:
        if _shared is None:
            _shared = SharedClock()
    return _shared


def reset_shared_clock_for_tests(clock: SharedClock | None = None) -> None:
    global _shared
    with _shared_lock:
        _shared = clock
