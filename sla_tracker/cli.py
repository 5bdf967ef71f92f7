from __future__ import annotations

import argparse
import json
import sys
import threading
from typing import Optional

from dotenv import load_dotenv

from sla_tracker.backend import BackendClient
from sla_tracker.clock import SharedClock, get_shared_clock
from sla_tracker.config import LIVE_FETCH_MODES, get_config
from sla_tracker.live import LiveSlaView, LiveSnapshot
from sla_tracker.utils.logging import setup_logging
from sla_tracker.widget import render_sla_countdown


def format_live_table(snap: LiveSnapshot) -> list[str]:
    lines = [f"{'STEP':<16} {'PLANNED':>8} {'ACTIVE':>7} {'OVERDUE':>8}  OLDEST TIMER"]
    for s in snap.stages:
        if not s.supported:
            active = overdue = s.note
        elif not s.live:
            active, overdue = "-", "-"
        else:
            active, overdue = str(s.active), str(s.overdue or "")
        timer = s.countdown.badgeText if s.countdown else s.note
        lines.append(f"{s.stepName:<16} {s.plannedMinutes:>8} {active:>7} {overdue:>8}  {timer}")
    if snap.error:
        lines.append(f"error: {snap.error}")
    elif snap.failedSources:
        lines.append(f"no live data from: {', '.join(snap.failedSources)}")
    return lines


def _cmd_countdown(args, cfg) -> int:
    view = render_sla_countdown(
        step_key=args.step or None,
        step_start_at=args.start_at or None,
        planned_minutes=args.planned_minutes,
        deadline_at=args.deadline_at or None,
        now_ms=args.now_ms,
        time_zone=args.time_zone or cfg.TIMEZONE_DISPLAY,
        due_soon_ms=cfg.DUE_SOON_MS,
    )
    if view is None:
        print("No SLA context")
        return 0
    if args.json:
        print(json.dumps({"countdown": view.countdown.to_dict(), "view": view.to_dict()}, indent=2))
    else:
        print("\n".join(view.lines()))
    return 0


def run_watch(view: LiveSlaView, clock: SharedClock, *, ticks: int, interval_ms: int, out=None) -> int:
    out = out or sys.stdout
    done = threading.Event()
    printed = {"n": 0}

    def _render(now_ms: int) -> None:
        out.write("\n".join(format_live_table(view.snapshot(now_ms))) + "\n\n")
        out.flush()
        printed["n"] += 1
        if ticks and printed["n"] >= ticks:
            done.set()

    _render(clock.get_server_snapshot())
    if done.is_set():
        return 0

    unsubscribe = clock.subscribe(lambda: _render(clock.get_snapshot()), interval_ms=interval_ms)
    try:
        done.wait()
    except KeyboardInterrupt:
        pass
    finally:
        unsubscribe()
    return 0


def _cmd_watch(args, cfg) -> int:
    client = BackendClient(args.base_url or cfg.BACKEND_BASE_URL, timeout_seconds=cfg.BACKEND_TIMEOUT_SECONDS)
    view = LiveSlaView(
        client,
        args.token,
        mode=args.mode or cfg.LIVE_FETCH_MODE,
        time_zone=cfg.TIMEZONE_DISPLAY,
        due_soon_ms=cfg.DUE_SOON_MS,
        max_workers=cfg.LIVE_FETCH_MAX_WORKERS,
    )
    view.refresh()
    return run_watch(view, get_shared_clock(), ticks=args.ticks, interval_ms=args.interval_ms or cfg.SLA_TICK_INTERVAL_MS)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sla_tracker", description="SLA countdowns for the HRMS recruitment pipeline.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("countdown", help="Derive one countdown and print it.")
    p.add_argument("--step", default="", help="Step name, e.g. PRECALL.")
    p.add_argument("--planned-minutes", type=float, default=None)
    p.add_argument("--start-at", default="", help="ISO-8601 step start.")
    p.add_argument("--deadline-at", default="", help="ISO-8601 deadline (wins over start + planned).")
    p.add_argument("--now-ms", type=int, default=None, help="Fixed 'now' in epoch ms (default: current time).")
    p.add_argument("--time-zone", default="")
    p.add_argument("--json", action="store_true")

    w = sub.add_parser("watch", help="Live per-stage SLA table, refreshed every clock tick.")
    w.add_argument("--token", required=True, help="Backend session token.")
    w.add_argument("--base-url", default="", help="Backend base URL (default: BACKEND_BASE_URL).")
    w.add_argument("--mode", choices=sorted(LIVE_FETCH_MODES), default="")
    w.add_argument("--interval-ms", type=int, default=0)
    w.add_argument("--ticks", type=int, default=0, help="Stop after N renders (0 = until Ctrl-C).")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    load_dotenv()
    cfg = get_config()
    setup_logging(cfg.LOG_LEVEL)

    if args.command == "countdown":
        return _cmd_countdown(args, cfg)
    return _cmd_watch(args, cfg)


if __name__ == "__main__":
    raise SystemExit(main())
