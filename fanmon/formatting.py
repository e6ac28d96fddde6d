"""Value formatting for the dashboard.

Values are formatted into a :class:`DisplayString` (plain text plus a style
tag) and only turned into ANSI markup when written, so width and padding never
have to look inside escape sequences.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

from fanmon.fields import FormatKind, RawValue

# ── ANSI helpers ───────────────────────────────────────────────────────────

BOLD = "\033[1m"
DIM = "\033[2m"
REVERSE = "\033[7m"
RED = "\033[91m"
YELLOW = "\033[93m"
GREEN = "\033[92m"
CYAN = "\033[96m"
RESET = "\033[0m"

# Only SGR sequences (ESC [ params m) are recognised; cursor movement and other
# control sequences are not stripped.
ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


class Style(Enum):
    NEUTRAL = "neutral"
    LOW = "low"
    MID = "mid"
    HIGH = "high"
    INFO = "info"


_SGR: dict[Style, str] = {
    Style.NEUTRAL: "",
    Style.LOW: GREEN,
    Style.MID: YELLOW,
    Style.HIGH: RED,
    Style.INFO: CYAN,
}

FAN_MODE_STYLES: dict[str, Style] = {
    "auto": Style.LOW,
    "fixed": Style.MID,
    "curve": Style.INFO,
}

POWER_MODE_STYLES: dict[str, Style] = {
    "quiet": Style.LOW,
    "balanced": Style.INFO,
    "performance": Style.HIGH,
}


class Bands(NamedTuple):
    """Lower bounds of the mid and high bands; anything below *mid* is low."""

    mid: float
    high: float


DEFAULT_BANDS: dict[FormatKind, Bands] = {
    FormatKind.RPM: Bands(mid=1200, high=3000),
    FormatKind.TEMP: Bands(mid=50, high=70),
}

_UNITS: dict[FormatKind, str] = {
    FormatKind.RPM: " RPM",
    FormatKind.TEMP: "°C",
}


@dataclass(frozen=True)
class DisplayString:
    text: str
    style: Style = Style.NEUTRAL

    @property
    def width(self) -> int:
        return len(self.text)

    def render(self) -> str:
        """Serialize to text with ANSI colour markup."""
        sgr = _SGR[self.style]
        if not sgr:
            return self.text
        return f"{sgr}{self.text}{RESET}"

    def truncate(self, width: int) -> DisplayString:
        if self.width <= width:
            return self
        return DisplayString(self.text[: max(0, width)], self.style)


# ── Formatting ─────────────────────────────────────────────────────────────


def band_style(value: float, bands: Bands) -> Style:
    if value >= bands.high:
        return Style.HIGH
    if value >= bands.mid:
        return Style.MID
    return Style.LOW


def format_value(
    raw: RawValue,
    kind: FormatKind,
    bands: Mapping[FormatKind, Bands] | None = None,
) -> DisplayString:
    """Format one raw field value for display.

    Never raises: values the kind does not recognise (a string where a number
    is expected, an unknown mode name) come back as their plain text with no
    colour.
    """
    if kind in (FormatKind.RPM, FormatKind.TEMP):
        if isinstance(raw, bool) or not isinstance(raw, int):
            return DisplayString(str(raw))
        limits = (bands or DEFAULT_BANDS).get(kind, DEFAULT_BANDS[kind])
        return DisplayString(f"{raw}{_UNITS[kind]}", band_style(raw, limits))

    if kind is FormatKind.FAN_MODE:
        style = FAN_MODE_STYLES.get(str(raw))
        if style is None:
            return DisplayString(str(raw))
        return DisplayString(f"[{raw}]", style)

    if kind is FormatKind.POWER_MODE:
        return DisplayString(str(raw), POWER_MODE_STYLES.get(str(raw), Style.NEUTRAL))

    return DisplayString(str(raw))


def strip_markup(text: str) -> str:
    return ANSI_RE.sub("", text)


def visible_width(value: DisplayString | str) -> int:
    """Terminal cells *value* occupies.

    Plain strings are taken to be serialized output, so colour markup is
    stripped before measuring.
    """
    if isinstance(value, DisplayString):
        return value.width
    return len(strip_markup(value))
