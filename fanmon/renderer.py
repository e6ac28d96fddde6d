"""ANSI renderer for the dashboard.

``draw_chrome`` repaints everything static (title, status, block titles,
labels, footer) and is called whenever the layout changes. ``draw_values``
overwrites only the value cells and is called every tick.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TextIO

from fanmon.fields import REGISTRY, FieldId, FormatKind, RawValue, Registry
from fanmon.formatting import (
    BOLD,
    CYAN,
    DIM,
    RESET,
    REVERSE,
    Bands,
    DisplayString,
    format_value,
)
from fanmon.layout import COLUMN_WIDTH, LABEL_WIDTH, VALUE_WIDTH, Layout
from fanmon.normalize import NOT_APPLICABLE

CLEAR = "\033[2J"
HOME = "\033[H"
HIDE_CURSOR = "\033[?25l"
SHOW_CURSOR = "\033[?25h"

TITLE = "fanmon  fan and thermal monitor"
FOOTER = "Ctrl+C to quit"


def move(row: int, col: int) -> str:
    """Cursor-position sequence for a zero-based cell."""
    return f"\033[{row + 1};{col + 1}H"


class Renderer:
    def __init__(
        self,
        out: TextIO,
        interval: float,
        raw: bool = False,
        bands: Mapping[FormatKind, Bands] | None = None,
    ) -> None:
        self.out = out
        self.interval = interval
        self.raw = raw
        self.bands = bands

    # ── Chrome ─────────────────────────────────────────────────────────────

    def status_line(self, layout: Layout) -> str:
        parts = [
            f"every {self.interval:g}s",
            f"{layout.size.cols}x{layout.size.rows}",
        ]
        if self.raw:
            parts.append("raw values")
        if layout.dropped:
            parts.append(f"{len(layout.dropped)} block(s) hidden, enlarge terminal")
        return " " + " | ".join(parts)

    def draw_chrome(self, layout: Layout, registry: Registry = REGISTRY) -> None:
        rows, cols = layout.size
        chunks = [HOME, CLEAR]

        if rows > 0 and cols > 0:
            bar = f" {TITLE}".ljust(cols)[:cols]
            chunks.append(f"{move(0, 0)}{CYAN}{REVERSE}{BOLD}{bar}{RESET}")
        if rows > 1:
            chunks.append(f"{move(1, 0)}{DIM}{self.status_line(layout)[:cols]}{RESET}")

        for block in registry.blocks:
            if not layout.placed(block.fields):
                continue
            first = layout.cells[block.fields[0]]
            left = first.col - LABEL_WIDTH
            room = min(COLUMN_WIDTH - 1, cols - left)
            chunks.append(f"{move(first.row - 1, left)}{CYAN}{BOLD}{block.title[:room]}{RESET}")
            for fid in block.fields:
                label = registry.field(fid).label[: LABEL_WIDTH - 1]
                chunks.append(f"{move(layout.cells[fid].row, left)}{DIM}{label}{RESET}")

        if rows > 2:
            chunks.append(f"{move(rows - 1, 0)}{DIM}{FOOTER[:cols]}{RESET}")

        self.out.write("".join(chunks))
        self.out.flush()

    # ── Values ─────────────────────────────────────────────────────────────

    def cell(self, layout: Layout, fid: FieldId, value: DisplayString) -> str:
        """One value cell: text then padding, VALUE_WIDTH cells wide in total."""
        pos = layout.cells[fid]
        width = max(0, min(VALUE_WIDTH, layout.size.cols - pos.col))
        shown = value.truncate(width)
        return f"{move(pos.row, pos.col)}{shown.render()}{' ' * (width - shown.width)}"

    def draw_values(
        self,
        layout: Layout,
        snapshot: Mapping[FieldId, RawValue],
        registry: Registry = REGISTRY,
    ) -> None:
        chunks: list[str] = []
        for fid in layout.cells:
            raw = snapshot.get(fid, NOT_APPLICABLE)
            value = format_value(raw, registry.field(fid).kind, self.bands)
            chunks.append(self.cell(layout, fid, value))
        self.out.write("".join(chunks))
        self.out.flush()
