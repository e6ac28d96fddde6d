"""Mode-dependent cleanup of raw readings.

A fan in ``auto`` or ``fixed`` mode ignores its ramp curve, and one in
``auto`` mode ignores its level too. The driver still reports whatever was
last written to those files, so they are replaced with ``N/A`` for display.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import NamedTuple

from fanmon.fields import FieldId, RawValue

NOT_APPLICABLE = "N/A"


class FanControls(NamedTuple):
    mode: FieldId
    level: FieldId
    ramp_up: FieldId
    ramp_down: FieldId


FANS: tuple[FanControls, ...] = (
    FanControls(FieldId.FAN1_MODE, FieldId.FAN1_LEVEL, FieldId.FAN1_RAMP_UP, FieldId.FAN1_RAMP_DOWN),
    FanControls(FieldId.FAN2_MODE, FieldId.FAN2_LEVEL, FieldId.FAN2_RAMP_UP, FieldId.FAN2_RAMP_DOWN),
)

CURVE_UNUSED = ("auto", "fixed")
LEVEL_UNUSED = ("auto",)


def normalize(snapshot: Mapping[FieldId, RawValue]) -> dict[FieldId, RawValue]:
    """Return a copy of *snapshot* with inapplicable fan settings blanked."""
    result = dict(snapshot)
    for fan in FANS:
        mode = snapshot.get(fan.mode)
        if mode in CURVE_UNUSED:
            result[fan.ramp_up] = NOT_APPLICABLE
            result[fan.ramp_down] = NOT_APPLICABLE
        if mode in LEVEL_UNUSED:
            result[fan.level] = NOT_APPLICABLE
    return result
