"""Screen layout: which field value goes at which terminal cell.

The terminal is cut into fixed-width columns. Blocks are packed first-fit,
top to bottom and then left to right, in registry order. Blocks that do not
fit are dropped, along with every block after them, until the terminal grows.
"""

from __future__ import annotations

import shutil
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import NamedTuple

from fanmon.fields import REGISTRY, BlockId, FieldId, Registry

# ── Constants ──────────────────────────────────────────────────────────────

COLUMN_WIDTH = 40
LABEL_WIDTH = 20
VALUE_WIDTH = 15
TOP_ROW = 2  # rows 0-1: title bar and status line
RESERVED_ROWS = 4  # TOP_ROW plus a spacer and the footer prompt


class TerminalSize(NamedTuple):
    rows: int
    cols: int


class ScreenCoordinate(NamedTuple):
    row: int
    col: int


@dataclass(frozen=True)
class Layout:
    """Immutable result of one layout pass."""

    size: TerminalSize
    columns: int
    blocks_per_column: int
    cells: Mapping[FieldId, ScreenCoordinate]
    dropped: tuple[BlockId, ...] = ()

    def placed(self, block_fields: tuple[FieldId, ...]) -> bool:
        return bool(block_fields) and block_fields[0] in self.cells


def terminal_size() -> TerminalSize:
    cols, rows = shutil.get_terminal_size((80, 24))
    return TerminalSize(rows=rows, cols=cols)


def compute_layout(size: TerminalSize, registry: Registry = REGISTRY) -> Layout:
    """Assign every field of every fitting block an absolute screen cell.

    The cell is where the value starts; the block title sits one row above the
    block's first field and labels start ``LABEL_WIDTH`` columns to the left.
    """
    columns = max(1, size.cols // COLUMN_WIDTH)
    usable = size.rows - RESERVED_ROWS
    bottom = TOP_ROW + usable
    blocks_per_column = max(1, usable // registry.tallest) if registry.tallest else 1

    cells: dict[FieldId, ScreenCoordinate] = {}
    dropped: list[BlockId] = []

    col = 0
    row = TOP_ROW
    if size.cols <= LABEL_WIDTH:
        # Not even the first value cell lies inside the terminal.
        col = columns

    for block in registry.blocks:
        if col < columns and row + block.height > bottom:
            col += 1
            row = TOP_ROW
            # A block taller than a whole column fits nowhere.
            if row + block.height > bottom:
                col = columns
        if col >= columns:
            dropped.append(block.block_id)
            continue

        left = col * COLUMN_WIDTH
        for offset, fid in enumerate(block.fields, start=1):
            cells[fid] = ScreenCoordinate(row=row + offset, col=left + LABEL_WIDTH)
        row += block.height

    return Layout(
        size=size,
        columns=columns,
        blocks_per_column=blocks_per_column,
        cells=MappingProxyType(cells),
        dropped=tuple(dropped),
    )
