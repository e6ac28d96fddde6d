"""Tests for the dashboard loop, signal events and CLI entry point."""

from __future__ import annotations

import io
import json
import os
import signal
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from fanmon.dashboard import (
    Dashboard,
    DashboardState,
    Event,
    SignalEvents,
    main,
    run_dashboard,
    snapshot_json,
    terminal_session,
)
from fanmon.fields import FieldId, RawValue
from fanmon.layout import TerminalSize
from fanmon.normalize import NOT_APPLICABLE
from fanmon.provider import AcquisitionError
from fanmon.renderer import CLEAR, HIDE_CURSOR, SHOW_CURSOR, Renderer

SNAPSHOT: dict[FieldId, RawValue] = {
    FieldId.FAN1_RPM: 2100,
    FieldId.FAN2_RPM: 1900,
    FieldId.FAN1_MODE: "auto",
    FieldId.FAN1_LEVEL: 72,
    FieldId.FAN1_RAMP_UP: "3",
    FieldId.FAN1_RAMP_DOWN: "1",
    FieldId.FAN2_MODE: "curve",
    FieldId.FAN2_LEVEL: 50,
    FieldId.FAN2_RAMP_UP: "5",
    FieldId.FAN2_RAMP_DOWN: "2",
    FieldId.TEMP_CURRENT: 61,
    FieldId.TEMP_MIN: 40,
    FieldId.TEMP_MAX: 85,
    FieldId.POWER_MODE: "balanced",
}


class FakeProvider:
    def __init__(self, fail_after: int | None = None) -> None:
        self.calls = 0
        self.fail_after = fail_after

    def read(self) -> dict[FieldId, RawValue]:
        self.calls += 1
        if self.fail_after is not None and self.calls > self.fail_after:
            raise AcquisitionError("cannot read /sys/devices/platform/ec_fan/fan1_rpm")
        return dict(SNAPSHOT)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class ScriptedEvents:
    """Replays events; each entry is (event, seconds elapsed before it fires)."""

    def __init__(self, script: list[tuple[Event, float]], clock: FakeClock | None = None) -> None:
        self.script = list(script)
        self.clock = clock
        self.timeouts: list[float] = []

    def __enter__(self) -> ScriptedEvents:
        return self

    def __exit__(self, *exc: object) -> None:
        pass

    def wait(self, timeout: float) -> Event:
        self.timeouts.append(timeout)
        event, elapsed = self.script.pop(0) if self.script else (Event.SHUTDOWN, 0.0)
        if self.clock is not None:
            self.clock.now += timeout if elapsed < 0 else elapsed
        return event


class Screen:
    """Mutable terminal size for the dashboard under test."""

    def __init__(self, rows: int = 24, cols: int = 80) -> None:
        self.size = TerminalSize(rows=rows, cols=cols)

    def __call__(self) -> TerminalSize:
        return self.size


def _dashboard(
    provider: FakeProvider | None = None, raw: bool = False, screen: Screen | None = None
) -> tuple[Dashboard, io.StringIO]:
    out = io.StringIO()
    dashboard = Dashboard(
        provider or FakeProvider(),
        Renderer(out, interval=1.0, raw=raw),
        raw=raw,
        size=screen or Screen(),
    )
    return dashboard, out


# ── Dashboard ──────────────────────────────────────────────────────────────


class TestDashboard:
    def test_start_polls_before_drawing(self) -> None:
        dashboard, out = _dashboard()
        assert dashboard.state is DashboardState.INITIALIZING
        dashboard.start()
        assert dashboard.state is DashboardState.RUNNING
        assert dashboard.provider.calls == 1  # type: ignore[attr-defined]
        assert CLEAR in out.getvalue()
        assert "2100 RPM" in out.getvalue()

    def test_tick_redraws_values_only(self) -> None:
        dashboard, out = _dashboard()
        dashboard.start()
        out.seek(0)
        out.truncate()
        dashboard.tick()
        assert CLEAR not in out.getvalue()
        assert "61°C" in out.getvalue()

    def test_normalizes_by_default(self) -> None:
        dashboard, _ = _dashboard()
        dashboard.start()
        assert dashboard.snapshot[FieldId.FAN1_LEVEL] == NOT_APPLICABLE

    def test_raw_skips_normalization(self) -> None:
        dashboard, _ = _dashboard(raw=True)
        dashboard.start()
        assert dashboard.snapshot[FieldId.FAN1_LEVEL] == 72

    def test_resize_reuses_last_snapshot(self) -> None:
        screen = Screen()
        dashboard, out = _dashboard(screen=screen)
        dashboard.start()
        out.seek(0)
        out.truncate()
        screen.size = TerminalSize(rows=24, cols=120)
        dashboard.relayout()
        assert dashboard.provider.calls == 1  # type: ignore[attr-defined]
        assert dashboard.layout is not None
        assert dashboard.layout.columns == 3
        assert CLEAR in out.getvalue()
        assert "2100 RPM" in out.getvalue()

    def test_tick_relayouts_on_size_change(self) -> None:
        screen = Screen()
        dashboard, out = _dashboard(screen=screen)
        dashboard.start()
        out.seek(0)
        out.truncate()
        screen.size = TerminalSize(rows=30, cols=80)
        dashboard.tick()
        assert CLEAR in out.getvalue()
        assert dashboard.layout is not None
        assert dashboard.layout.size == screen.size


class TestRun:
    def test_runs_until_shutdown(self) -> None:
        dashboard, _ = _dashboard()
        events = ScriptedEvents([(Event.TICK, 0.0), (Event.TICK, 0.0), (Event.SHUTDOWN, 0.0)])
        dashboard.run(events, 1.0, clock=FakeClock())
        assert dashboard.state is DashboardState.SHUTTING_DOWN
        # Initial poll plus two ticks
        assert dashboard.provider.calls == 3  # type: ignore[attr-defined]

    def test_resize_does_not_reset_deadline(self) -> None:
        clock = FakeClock()
        dashboard, _ = _dashboard()
        events = ScriptedEvents(
            [(Event.RESIZE, 0.4), (Event.TICK, -1), (Event.SHUTDOWN, 0.0)], clock
        )
        dashboard.run(events, 1.0, clock=clock)
        assert events.timeouts == [
            pytest.approx(1.0),
            pytest.approx(0.6),
            pytest.approx(1.0),
        ]
        # Resize repainted from the cached snapshot
        assert dashboard.provider.calls == 2  # type: ignore[attr-defined]

    def test_slow_tick_schedules_from_now(self) -> None:
        clock = FakeClock()
        dashboard, _ = _dashboard()
        events = ScriptedEvents([(Event.TICK, 3.5), (Event.SHUTDOWN, 0.0)], clock)
        dashboard.run(events, 1.0, clock=clock)
        assert events.timeouts == [pytest.approx(1.0), pytest.approx(1.0)]

    def test_acquisition_error_propagates(self) -> None:
        dashboard, _ = _dashboard(provider=FakeProvider(fail_after=1))
        with pytest.raises(AcquisitionError):
            dashboard.run(ScriptedEvents([(Event.TICK, 0.0)]), 1.0, clock=FakeClock())
        assert dashboard.state is DashboardState.SHUTTING_DOWN

    def test_startup_failure_propagates(self) -> None:
        dashboard, out = _dashboard(provider=FakeProvider(fail_after=0))
        with pytest.raises(AcquisitionError):
            dashboard.run(ScriptedEvents([]), 1.0, clock=FakeClock())
        assert out.getvalue() == ""


# ── Terminal session & signals ─────────────────────────────────────────────


class TestTerminalSession:
    def test_cursor_restored_on_exit(self) -> None:
        out = io.StringIO()
        with terminal_session(out, io.StringIO()):
            assert out.getvalue() == HIDE_CURSOR
        assert out.getvalue().endswith(CLEAR)
        assert SHOW_CURSOR in out.getvalue()

    def test_cursor_restored_on_error(self) -> None:
        out = io.StringIO()
        with pytest.raises(AcquisitionError), terminal_session(out, io.StringIO()):
            raise AcquisitionError("gone")
        assert SHOW_CURSOR in out.getvalue()

    @patch("fanmon.dashboard.termios")
    def test_echo_left_alone_without_tty(self, mock_termios: MagicMock) -> None:
        with terminal_session(io.StringIO(), io.StringIO()):
            pass
        mock_termios.tcgetattr.assert_not_called()
        mock_termios.tcsetattr.assert_not_called()

    @patch("fanmon.dashboard.termios")
    def test_echo_disabled_and_restored_on_error(self, mock_termios: MagicMock) -> None:
        mock_termios.ICANON = 0o2
        mock_termios.ECHO = 0o10
        mock_termios.ISIG = 0o1
        mock_termios.TCSANOW = 0
        mock_termios.TCSAFLUSH = 2
        saved = [0, 0, 0, 0o2 | 0o10 | 0o1, 0, 0, []]
        mock_termios.tcgetattr.side_effect = lambda fd: list(saved)
        stdin = MagicMock()
        stdin.isatty.return_value = True
        stdin.fileno.return_value = 7

        with pytest.raises(AcquisitionError), terminal_session(io.StringIO(), stdin):
            fd, when, attrs = mock_termios.tcsetattr.call_args.args
            assert (fd, when) == (7, 0)
            # Canonical mode and echo off, Ctrl+C still delivers SIGINT
            assert attrs[3] == 0o1
            raise AcquisitionError("gone")

        assert mock_termios.tcsetattr.call_count == 2
        assert mock_termios.tcsetattr.call_args.args == (7, 2, saved)


class TestSignalEvents:
    def test_timeout_is_tick(self) -> None:
        with SignalEvents() as events:
            assert events.wait(0.01) is Event.TICK

    def test_sigwinch_is_resize(self) -> None:
        with SignalEvents() as events:
            os.kill(os.getpid(), signal.SIGWINCH)
            assert events.wait(2.0) is Event.RESIZE

    def test_sigterm_is_shutdown(self) -> None:
        with SignalEvents() as events:
            os.kill(os.getpid(), signal.SIGTERM)
            assert events.wait(2.0) is Event.SHUTDOWN

    def test_handlers_restored(self) -> None:
        before = signal.getsignal(signal.SIGTERM)
        with SignalEvents():
            assert signal.getsignal(signal.SIGTERM) is not before
        assert signal.getsignal(signal.SIGTERM) is before


# ── CLI ────────────────────────────────────────────────────────────────────


def test_snapshot_json_normalizes() -> None:
    data = json.loads(snapshot_json(SNAPSHOT))
    assert data["fan1.rpm"] == 2100
    assert data["fan1.level"] == NOT_APPLICABLE
    assert json.loads(snapshot_json(SNAPSHOT, raw=True))["fan1.level"] == 72


@patch("fanmon.dashboard.sys.stdin", new=io.StringIO())
@patch("fanmon.dashboard.SignalEvents")
def test_run_dashboard_restores_terminal(mock_events: MagicMock) -> None:
    mock_events.return_value = ScriptedEvents([(Event.TICK, 0.0), (Event.SHUTDOWN, 0.0)])
    out = io.StringIO()
    run_dashboard(FakeProvider(), 1.0, out=out)
    output = out.getvalue()
    assert output.startswith(HIDE_CURSOR)
    assert SHOW_CURSOR in output
    assert output.endswith(CLEAR)


@pytest.fixture
def driver_config(tmp_path: Path) -> Path:
    root = tmp_path / "ec_fan"
    root.mkdir()
    files = {
        "fan1_rpm": "2100",
        "fan2_rpm": "1900",
        "fan1_mode": "auto",
        "fan1_level": "72",
        "fan1_ramp_up": "3",
        "fan1_ramp_down": "1",
        "fan2_mode": "fixed",
        "fan2_level": "50",
        "fan2_ramp_up": "5",
        "fan2_ramp_down": "2",
        "temp_current": "61",
        "temp_min": "40",
        "temp_max": "85",
        "power_mode": "quiet",
    }
    for name, value in files.items():
        (root / name).write_text(f"{value}\n")
    config = tmp_path / "config.toml"
    config.write_text(f'sysfs_path = "{root}"\nmodule = ""\n')
    return config


class TestMain:
    @pytest.mark.parametrize("argv", [["--interval", "20"], ["-i", "0.1"], ["-i", "fast"], ["--bogus"]])
    def test_bad_arguments_exit_2(self, argv: list[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(argv)
        assert exc_info.value.code == 2

    def test_print_config(self, capsys: pytest.CaptureFixture[str]) -> None:
        main(["--print-config"])
        assert "[thresholds.rpm]" in capsys.readouterr().out

    def test_json_snapshot(self, driver_config: Path, capsys: pytest.CaptureFixture[str]) -> None:
        main(["--json", "--config", str(driver_config)])
        data = json.loads(capsys.readouterr().out)
        assert data["fan1.rpm"] == 2100
        assert data["fan1.level"] == NOT_APPLICABLE
        assert data["fan2.level"] == 50
        assert data["fan2.rampUp"] == NOT_APPLICABLE
        assert data["power.mode"] == "quiet"

    def test_missing_driver_exits_1(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        config = tmp_path / "config.toml"
        config.write_text(f'sysfs_path = "{tmp_path / "absent"}"\nmodule = ""\n')
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(config)])
        assert exc_info.value.code == 1
        assert "driver directory not found" in capsys.readouterr().err

    def test_invalid_config_interval_exits_1(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        config = tmp_path / "config.toml"
        config.write_text("interval = 0.05\n")
        with pytest.raises(SystemExit) as exc_info:
            main(["--config", str(config)])
        assert exc_info.value.code == 1
        assert "invalid interval" in capsys.readouterr().err

    @patch("fanmon.dashboard.run_dashboard", side_effect=KeyboardInterrupt)
    def test_interrupt_stops_cleanly(
        self,
        mock_run: MagicMock,
        driver_config: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        main(["--config", str(driver_config), "--interval", "0.5"])
        assert mock_run.call_args.args[1] == 0.5
        assert "fanmon: stopped." in capsys.readouterr().out

    @pytest.mark.parametrize(
        "table",
        [
            '[thresholds.rpm]\nmid = "fast"\n',
            "[thresholds.temp]\nmid = 90\nhigh = 60\n",
            'thresholds = "loud"\n',
        ],
    )
    def test_bad_thresholds_exit_1(
        self, table: str, driver_config: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        driver_config.write_text(driver_config.read_text() + table)
        with pytest.raises(SystemExit) as exc_info:
            main(["--json", "--config", str(driver_config)])
        assert exc_info.value.code == 1
        captured = capsys.readouterr()
        assert "fanmon: invalid thresholds in config" in captured.err
        assert captured.out == ""

    def test_undecodable_driver_file_exits_1(
        self, driver_config: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        (driver_config.parent / "ec_fan" / "power_mode").write_bytes(b"\xff\xfe\n")
        with pytest.raises(SystemExit) as exc_info:
            main(["--json", "--config", str(driver_config)])
        assert exc_info.value.code == 1
        assert "fanmon: cannot decode" in capsys.readouterr().err
