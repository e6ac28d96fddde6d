"""Static description of every value the dashboard shows.

Fields are grouped into blocks; a block is drawn as a titled unit and is the
smallest thing the layout engine places or drops.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

RawValue = int | str


class FieldId(str, Enum):
    FAN1_RPM = "fan1.rpm"
    FAN2_RPM = "fan2.rpm"
    FAN1_MODE = "fan1.mode"
    FAN1_LEVEL = "fan1.level"
    FAN1_RAMP_UP = "fan1.rampUp"
    FAN1_RAMP_DOWN = "fan1.rampDown"
    FAN2_MODE = "fan2.mode"
    FAN2_LEVEL = "fan2.level"
    FAN2_RAMP_UP = "fan2.rampUp"
    FAN2_RAMP_DOWN = "fan2.rampDown"
    TEMP_CURRENT = "temp.current"
    TEMP_MIN = "temp.min"
    TEMP_MAX = "temp.max"
    POWER_MODE = "power.mode"


class FormatKind(Enum):
    PLAIN = "plain"
    RPM = "rpm"
    TEMP = "temp"
    FAN_MODE = "fan_mode"
    POWER_MODE = "power_mode"


class BlockId(str, Enum):
    SPEEDS = "speeds"
    FAN1 = "fan1"
    FAN2 = "fan2"
    THERMAL = "thermal"


@dataclass(frozen=True)
class FieldSpec:
    field_id: FieldId
    label: str
    kind: FormatKind
    block: BlockId


@dataclass(frozen=True)
class BlockSpec:
    block_id: BlockId
    title: str
    fields: tuple[FieldId, ...]

    @property
    def height(self) -> int:
        """Rows occupied: title, one row per field, trailing spacer."""
        return len(self.fields) + 2


@dataclass(frozen=True)
class Registry:
    """Ordered blocks plus the per-field lookup table."""

    blocks: tuple[BlockSpec, ...]
    specs: Mapping[FieldId, FieldSpec]

    def field(self, field_id: FieldId) -> FieldSpec:
        return self.specs[field_id]

    def block(self, block_id: BlockId) -> BlockSpec:
        for block in self.blocks:
            if block.block_id is block_id:
                return block
        raise KeyError(block_id)

    def field_ids(self) -> tuple[FieldId, ...]:
        """Every field in declared block order."""
        return tuple(fid for block in self.blocks for fid in block.fields)

    @property
    def tallest(self) -> int:
        return max((block.height for block in self.blocks), default=0)


def build_registry(
    blocks: tuple[BlockSpec, ...],
    fields: tuple[tuple[FieldId, str, FormatKind], ...],
) -> Registry:
    """Assemble a Registry, tying each field to the block that lists it.

    Raises:
        ValueError: If a field is listed by no block or by more than one, or
            a listed field has no entry in *fields*.
    """
    owner: dict[FieldId, BlockId] = {}
    for block in blocks:
        for fid in block.fields:
            if fid in owner:
                raise ValueError(f"{fid.value} listed by {owner[fid].value} and {block.block_id.value}")
            owner[fid] = block.block_id

    specs: dict[FieldId, FieldSpec] = {}
    for fid, label, kind in fields:
        if fid not in owner:
            raise ValueError(f"{fid.value} is not listed by any block")
        specs[fid] = FieldSpec(field_id=fid, label=label, kind=kind, block=owner[fid])

    missing = [fid.value for fid in owner if fid not in specs]
    if missing:
        raise ValueError(f"no label/format for {', '.join(missing)}")
    return Registry(blocks=blocks, specs=MappingProxyType(specs))


# ── Default registry ───────────────────────────────────────────────────────

_BLOCKS: tuple[BlockSpec, ...] = (
    BlockSpec(BlockId.SPEEDS, "Fan Speeds", (FieldId.FAN1_RPM, FieldId.FAN2_RPM)),
    BlockSpec(
        BlockId.FAN1,
        "Fan 1",
        (FieldId.FAN1_MODE, FieldId.FAN1_LEVEL, FieldId.FAN1_RAMP_UP, FieldId.FAN1_RAMP_DOWN),
    ),
    BlockSpec(
        BlockId.FAN2,
        "Fan 2",
        (FieldId.FAN2_MODE, FieldId.FAN2_LEVEL, FieldId.FAN2_RAMP_UP, FieldId.FAN2_RAMP_DOWN),
    ),
    BlockSpec(
        BlockId.THERMAL,
        "Thermal & Power",
        (FieldId.TEMP_CURRENT, FieldId.TEMP_MIN, FieldId.TEMP_MAX, FieldId.POWER_MODE),
    ),
)

_FIELDS: tuple[tuple[FieldId, str, FormatKind], ...] = (
    (FieldId.FAN1_RPM, "Fan 1", FormatKind.RPM),
    (FieldId.FAN2_RPM, "Fan 2", FormatKind.RPM),
    (FieldId.FAN1_MODE, "Mode", FormatKind.FAN_MODE),
    (FieldId.FAN1_LEVEL, "Level", FormatKind.PLAIN),
    (FieldId.FAN1_RAMP_UP, "Ramp up", FormatKind.PLAIN),
    (FieldId.FAN1_RAMP_DOWN, "Ramp down", FormatKind.PLAIN),
    (FieldId.FAN2_MODE, "Mode", FormatKind.FAN_MODE),
    (FieldId.FAN2_LEVEL, "Level", FormatKind.PLAIN),
    (FieldId.FAN2_RAMP_UP, "Ramp up", FormatKind.PLAIN),
    (FieldId.FAN2_RAMP_DOWN, "Ramp down", FormatKind.PLAIN),
    (FieldId.TEMP_CURRENT, "Temperature", FormatKind.TEMP),
    (FieldId.TEMP_MIN, "Min", FormatKind.TEMP),
    (FieldId.TEMP_MAX, "Max", FormatKind.TEMP),
    (FieldId.POWER_MODE, "Power mode", FormatKind.POWER_MODE),
)

REGISTRY: Registry = build_registry(_BLOCKS, _FIELDS)
