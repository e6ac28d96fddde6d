"""Live terminal dashboard for fan and thermal readings.

Polls the fan driver every interval and rewrites only the value cells.
A terminal resize recomputes the layout and repaints everything from the
last snapshot; SIGTERM, SIGINT or SIGHUP restore the terminal and exit.

Usage:
    fanmon
    fanmon --interval 0.5 --raw
    fanmon --json
"""

from __future__ import annotations

import argparse
import json
import select
import signal
import socket
import sys
import termios
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from types import FrameType
from typing import Any, Protocol, TextIO

from fanmon.config import (
    bands_from_config,
    dump_default_config,
    load_config,
    validate_interval,
)
from fanmon.fields import REGISTRY, FieldId, FormatKind, RawValue, Registry
from fanmon.formatting import RESET, Bands
from fanmon.layout import Layout, TerminalSize, compute_layout, terminal_size
from fanmon.normalize import normalize
from fanmon.provider import AcquisitionError, SysfsStateProvider
from fanmon.renderer import CLEAR, HIDE_CURSOR, HOME, SHOW_CURSOR, Renderer

# ── Events & states ────────────────────────────────────────────────────────


class Event(Enum):
    TICK = "tick"
    RESIZE = "resize"
    SHUTDOWN = "shutdown"


class DashboardState(Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


class StateProvider(Protocol):
    def read(self) -> dict[FieldId, RawValue]: ...


class EventSource(Protocol):
    def wait(self, timeout: float) -> Event: ...


RESIZE_SIGNALS: tuple[int, ...] = (signal.SIGWINCH,)
SHUTDOWN_SIGNALS: tuple[int, ...] = (signal.SIGTERM, signal.SIGINT, signal.SIGHUP)


def _wake(signum: int, frame: FrameType | None) -> None:
    """Python-level no-op; the wakeup fd already carries the signal number."""


class SignalEvents:
    """Turns signals into events for a single interruptible wait.

    Signal numbers arrive on a socket via :func:`signal.set_wakeup_fd`, so
    :meth:`wait` is one ``select`` call that returns early on resize or
    shutdown and otherwise times out into a tick.
    """

    def __init__(self) -> None:
        self._rsock, self._wsock = socket.socketpair()
        self._previous: dict[int, Any] = {}
        self._previous_fd = -1

    def __enter__(self) -> SignalEvents:
        self._rsock.setblocking(False)
        self._wsock.setblocking(False)
        self._previous_fd = signal.set_wakeup_fd(self._wsock.fileno())
        for signum in (*RESIZE_SIGNALS, *SHUTDOWN_SIGNALS):
            self._previous[signum] = signal.signal(signum, _wake)
        return self

    def __exit__(self, *exc: object) -> None:
        for signum, handler in self._previous.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        signal.set_wakeup_fd(self._previous_fd)
        self._rsock.close()
        self._wsock.close()

    def wait(self, timeout: float) -> Event:
        deadline = time.monotonic() + timeout
        while True:
            remaining = max(0.0, deadline - time.monotonic())
            ready, _, _ = select.select([self._rsock], [], [], remaining)
            if not ready:
                return Event.TICK
            try:
                received = set(self._rsock.recv(64))
            except BlockingIOError:
                continue
            if received.intersection(SHUTDOWN_SIGNALS):
                return Event.SHUTDOWN
            if received.intersection(RESIZE_SIGNALS):
                return Event.RESIZE


@contextmanager
def terminal_session(out: TextIO, stdin: TextIO | None = None) -> Iterator[None]:
    """Hide the cursor and stop key echo for the duration.

    Both are restored and the screen cleared on every exit path. Echo is
    only touched when *stdin* (default ``sys.stdin``) is a terminal.
    """
    stdin = sys.stdin if stdin is None else stdin
    fd = -1
    saved: list[Any] | None = None
    if stdin.isatty():
        fd = stdin.fileno()
        saved = termios.tcgetattr(fd)
        attrs = termios.tcgetattr(fd)
        attrs[3] &= ~(termios.ICANON | termios.ECHO)
        termios.tcsetattr(fd, termios.TCSANOW, attrs)
    out.write(HIDE_CURSOR)
    out.flush()
    try:
        yield
    finally:
        if saved is not None:
            # Keys typed while the dashboard was up are discarded
            termios.tcsetattr(fd, termios.TCSAFLUSH, saved)
        out.write(f"{RESET}{SHOW_CURSOR}{HOME}{CLEAR}")
        out.flush()


# ── Dashboard ──────────────────────────────────────────────────────────────


class Dashboard:
    def __init__(
        self,
        provider: StateProvider,
        renderer: Renderer,
        registry: Registry = REGISTRY,
        raw: bool = False,
        size: Callable[[], TerminalSize] = terminal_size,
    ) -> None:
        self.provider = provider
        self.renderer = renderer
        self.registry = registry
        self.raw = raw
        self.size = size
        self.state = DashboardState.INITIALIZING
        self.layout: Layout | None = None
        self.snapshot: dict[FieldId, RawValue] = {}

    def poll(self) -> dict[FieldId, RawValue]:
        raw = self.provider.read()
        self.snapshot = raw if self.raw else normalize(raw)
        return self.snapshot

    def _apply_layout(self, size: TerminalSize) -> Layout:
        self.layout = compute_layout(size, self.registry)
        self.renderer.draw_chrome(self.layout, self.registry)
        return self.layout

    def start(self) -> None:
        self.poll()
        layout = self._apply_layout(self.size())
        self.renderer.draw_values(layout, self.snapshot, self.registry)
        self.state = DashboardState.RUNNING

    def tick(self) -> None:
        self.poll()
        size = self.size()
        layout = self.layout
        if layout is None or layout.size != size:
            layout = self._apply_layout(size)
        self.renderer.draw_values(layout, self.snapshot, self.registry)

    def relayout(self) -> None:
        """Full repaint at the current size, reusing the last snapshot."""
        layout = self._apply_layout(self.size())
        self.renderer.draw_values(layout, self.snapshot, self.registry)

    def run(
        self,
        events: EventSource,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Drive the dashboard until a shutdown event; acquisition errors propagate."""
        try:
            if self.state is DashboardState.INITIALIZING:
                self.start()
            deadline = clock() + interval
            while self.state is DashboardState.RUNNING:
                event = events.wait(max(0.0, deadline - clock()))
                if event is Event.SHUTDOWN:
                    break
                if event is Event.RESIZE:
                    self.relayout()
                    continue
                self.tick()
                deadline += interval
                now = clock()
                if deadline <= now:
                    deadline = now + interval
        finally:
            self.state = DashboardState.SHUTTING_DOWN


# ── CLI entry point ────────────────────────────────────────────────────────


def snapshot_json(snapshot: Mapping[FieldId, RawValue], raw: bool = False) -> str:
    values = dict(snapshot) if raw else normalize(snapshot)
    return json.dumps({fid.value: value for fid, value in values.items()}, indent=2)


def _interval_arg(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from e
    try:
        return validate_interval(seconds)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fanmon",
        description="Live terminal dashboard for fan speed, fan mode and thermal readings.",
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=_interval_arg,
        default=None,
        help="Seconds between refreshes, 0.3 to 10 (default: 1.0 or config)",
    )
    parser.add_argument(
        "-r",
        "--raw",
        action="store_true",
        help="Show driver values as-is, without N/A for settings the mode ignores",
    )
    parser.add_argument(
        "-j",
        "--json",
        action="store_true",
        help="Print one snapshot as JSON and exit",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help="Path to TOML config file",
    )
    parser.add_argument(
        "--print-config",
        action="store_true",
        help="Print the default configuration as TOML and exit",
    )
    return parser


def run_dashboard(
    provider: StateProvider,
    interval: float,
    bands: Mapping[FormatKind, Bands] | None = None,
    raw: bool = False,
    out: TextIO = sys.stdout,
) -> None:
    renderer = Renderer(out, interval, raw=raw, bands=bands)
    dashboard = Dashboard(provider, renderer, raw=raw)
    with terminal_session(out), SignalEvents() as events:
        dashboard.run(events, interval)


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    if args.print_config:
        print(dump_default_config(), end="")
        return

    config = load_config(args.config)
    interval = args.interval
    if interval is None:
        try:
            interval = validate_interval(float(config["interval"]))
        except (TypeError, ValueError) as e:
            print(f"fanmon: invalid interval in config: {e}", file=sys.stderr)
            raise SystemExit(1) from e
    try:
        bands = bands_from_config(config)
    except ValueError as e:
        print(f"fanmon: invalid thresholds in config: {e}", file=sys.stderr)
        raise SystemExit(1) from e

    provider = SysfsStateProvider(
        Path(config["sysfs_path"]),
        module=str(config["module"]),
        temp_sensor=str(config["temp_sensor"]),
    )
    try:
        provider.check_available()
        if args.json:
            print(snapshot_json(provider.read(), raw=args.raw))
            return
        run_dashboard(provider, interval, bands, raw=args.raw)
    except AcquisitionError as e:
        print(f"fanmon: {e}", file=sys.stderr)
        raise SystemExit(1) from e
    except KeyboardInterrupt:
        pass
    print("fanmon: stopped.")


if __name__ == "__main__":
    main()
