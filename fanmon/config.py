"""Settings for fanmon: built-in defaults overlaid with a user TOML file.

The file comes from ``--config`` when given; otherwise
``~/.config/fanmon/config.toml`` is used if it exists. A broken file named
on the command line is fatal, a broken default file only draws a warning.
"""

from __future__ import annotations

import sys
import tomllib
from pathlib import Path
from typing import Any

from fanmon.fields import FormatKind
from fanmon.formatting import Bands

MIN_INTERVAL = 0.3
MAX_INTERVAL = 10.0

DEFAULT_CONFIG: dict[str, Any] = {
    "interval": 1.0,
    "sysfs_path": "/sys/devices/platform/ec_fan",
    "module": "ec_fan",
    "temp_sensor": "",
    "thresholds": {
        "rpm": {"mid": 1200, "high": 3000},
        "temp": {"mid": 50, "high": 70},
    },
}

_DEFAULT_PATH = Path.home() / ".config" / "fanmon" / "config.toml"

_THRESHOLD_KINDS: dict[str, FormatKind] = {
    "rpm": FormatKind.RPM,
    "temp": FormatKind.TEMP,
}


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Overlay wins; tables present on both sides are combined one level deep."""
    merged = {**base, **overlay}
    for key in base.keys() & overlay.keys():
        if isinstance(base[key], dict) and isinstance(overlay[key], dict):
            merged[key] = {**base[key], **overlay[key]}
    return merged


def _read_toml(path: Path) -> dict[str, Any]:
    return tomllib.loads(path.read_text(encoding="utf-8"))


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Return the defaults with the user's TOML file merged over them.

    Raises:
        SystemExit: If *path* is given but missing or not valid TOML.
    """
    if path is None:
        return _deep_merge(DEFAULT_CONFIG, _user_overlay())

    if not path.is_file():
        print(f"fanmon: config file not found: {path}", file=sys.stderr)
        raise SystemExit(1)
    try:
        overlay = _read_toml(path)
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as e:
        print(f"fanmon: invalid TOML in {path}: {e}", file=sys.stderr)
        raise SystemExit(1) from e
    return _deep_merge(DEFAULT_CONFIG, overlay)


def _user_overlay() -> dict[str, Any]:
    if not _DEFAULT_PATH.is_file():
        return {}
    try:
        return _read_toml(_DEFAULT_PATH)
    except (tomllib.TOMLDecodeError, UnicodeDecodeError):
        print(f"fanmon: warning: ignoring invalid TOML in {_DEFAULT_PATH}", file=sys.stderr)
        return {}


def validate_interval(value: float) -> float:
    """Return *value* if it is an acceptable poll interval.

    Raises:
        ValueError: If the interval is outside 0.3–10 seconds.
    """
    if not MIN_INTERVAL <= value <= MAX_INTERVAL:
        raise ValueError(
            f"interval must be between {MIN_INTERVAL:g} and {MAX_INTERVAL:g} seconds, got {value:g}"
        )
    return value


def _threshold(name: str, level: str, value: Any) -> float:
    # TOML booleans would otherwise pass as ints
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"thresholds.{name}.{level} must be a number, got {value!r}")
    return float(value)


def bands_from_config(config: dict[str, Any]) -> dict[FormatKind, Bands]:
    """Colour thresholds for the formatter, falling back to defaults per key.

    Raises:
        ValueError: If a threshold table or value has the wrong type, or a
            ``mid`` level is above its ``high`` level.
    """
    thresholds = config.get("thresholds", {})
    if not isinstance(thresholds, dict):
        raise ValueError("thresholds must be a table")

    bands: dict[FormatKind, Bands] = {}
    for name, kind in _THRESHOLD_KINDS.items():
        table = thresholds.get(name, {})
        if not isinstance(table, dict):
            raise ValueError(f"thresholds.{name} must be a table")
        levels = {**DEFAULT_CONFIG["thresholds"][name], **table}
        mid = _threshold(name, "mid", levels["mid"])
        high = _threshold(name, "high", levels["high"])
        if mid > high:
            raise ValueError(f"thresholds.{name}: mid ({mid:g}) is above high ({high:g})")
        bands[kind] = Bands(mid=mid, high=high)
    return bands


def dump_default_config() -> str:
    """Return the default configuration as a TOML string."""
    lines = [
        "# fanmon configuration",
        "# Place this file at ~/.config/fanmon/config.toml",
        "",
        f"interval = {DEFAULT_CONFIG['interval']}",
        f'sysfs_path = "{DEFAULT_CONFIG["sysfs_path"]}"',
        f'module = "{DEFAULT_CONFIG["module"]}"',
        "# psutil sensor chip for the current temperature, e.g. \"coretemp\";",
        "# empty reads it from the driver",
        f'temp_sensor = "{DEFAULT_CONFIG["temp_sensor"]}"',
        "",
    ]

    for metric, levels in DEFAULT_CONFIG["thresholds"].items():
        lines.append(f"[thresholds.{metric}]")
        lines.append(f"mid = {levels['mid']}")
        lines.append(f"high = {levels['high']}")
        lines.append("")

    return "\n".join(lines) + "\n"
