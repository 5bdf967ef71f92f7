from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from sla_tracker.clock import SharedClock, get_shared_clock
from sla_tracker.countdown import DEFAULT_DUE_SOON_MS, CountdownResult, derive_countdown
from sla_tracker.formatting import DEFAULT_TIME_ZONE
from sla_tracker.tracker import CountdownTracker

BADGE_VARIANTS = {"blue", "green", "orange", "red", "gray"}


@dataclass(frozen=True)
class Badge:
    variant: str
    text: str


@dataclass(frozen=True)
class CountdownView:
    badge: Badge
    detail: str
    align: str
    countdown: CountdownResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "badge": {"variant": self.badge.variant, "text": self.badge.text},
            "detail": self.detail,
            "align": self.align,
        }

    def lines(self) -> list[str]:
        out = [f"[{self.badge.variant}] {self.badge.text}"]
        if self.detail:
            out.append(self.detail)
        return out


def is_configured(*, sla: Any = None, step_key: Any = None, planned_minutes: Any = None, deadline_at: Any = None) -> bool:
    # No SLA context at all: the page shows nothing rather than an empty chip.
    return bool(sla or step_key or planned_minutes or deadline_at)


def render_countdown_view(result: CountdownResult, *, compact: bool = False) -> CountdownView:
    variant = result.badgeVariant if result.badgeVariant in BADGE_VARIANTS else "gray"
    if result.hasSla:
        detail = f"{result.deadlineText} | {result.plannedText}"
    else:
        detail = result.plannedText or ""
    return CountdownView(
        badge=Badge(variant=variant, text=result.badgeText),
        detail=detail,
        align="end" if compact else "start",
        countdown=result,
    )


def render_sla_countdown(
    *,
    sla: Any = None,
    step_key: Any = None,
    step_start_at: Any = None,
    planned_minutes: Any = None,
    deadline_at: Any = None,
    now_ms: Optional[float] = None,
    time_zone: str = DEFAULT_TIME_ZONE,
    due_soon_ms: float = DEFAULT_DUE_SOON_MS,
    compact: bool = False,
    clock: Optional[SharedClock] = None,
) -> Optional[CountdownView]:
    if not is_configured(sla=sla, step_key=step_key, planned_minutes=planned_minutes, deadline_at=deadline_at):
        return None
    if now_ms is None:
        now_ms = (clock or get_shared_clock()).get_server_snapshot()
    result = derive_countdown(
        sla=sla,
        step_key=step_key,
        step_start_at=step_start_at,
        planned_minutes=planned_minutes,
        deadline_at=deadline_at,
        now_ms=now_ms,
        time_zone=time_zone,
        due_soon_ms=due_soon_ms,
    )
    return render_countdown_view(result, compact=compact)


class CountdownWidget:
    """A mounted countdown: re-renders on every shared-clock tick until closed."""

    def __init__(
        self,
        *,
        compact: bool = False,
        clock: Optional[SharedClock] = None,
        on_render: Optional[Callable[[Optional[CountdownView]], Any]] = None,
        **props: Any,
    ):
        self._compact = compact
        self._props = dict(props)
        self._on_render = on_render
        self._tracker = CountdownTracker(
            clock=clock,
            on_change=self._changed if on_render is not None else None,
            **props,
        )

    def _configured(self) -> bool:
        p = self._props
        return is_configured(
            sla=p.get("sla"),
            step_key=p.get("step_key"),
            planned_minutes=p.get("planned_minutes"),
            deadline_at=p.get("deadline_at"),
        )

    def _changed(self, result: CountdownResult) -> None:
        if self._on_render is not None:
            self._on_render(render_countdown_view(result, compact=self._compact) if self._configured() else None)

    def update(self, **props: Any) -> Optional[CountdownView]:
        self._props.update(props)
        self._tracker.update(**props)
        return self.render()

    def render(self) -> Optional[CountdownView]:
        # The tracker is always bound so a later update() keeps ticking.
        result = self._tracker.result
        if not self._configured():
            return None
        return render_countdown_view(result, compact=self._compact)

    def close(self) -> None:
        self._tracker.close()

    def __enter__(self) -> "CountdownWidget":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.close()
